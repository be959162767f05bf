from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from app.models.order import Order


def _money(value) -> str | None:
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def order_to_dict(order: Order) -> Dict[str, Any]:
    payment = order.payment
    return {
        "id": order.id,
        "merchant_id": order.merchant_id,
        "customer_id": order.customer_id,
        "order_number": order.order_number,
        "order_type": order.order_type,
        "status": order.status,
        "table_number": order.table_number,
        "notes": order.notes,
        "is_scheduled": bool(order.is_scheduled),
        "scheduled_time": order.scheduled_time,
        "stock_deducted_at": _iso(order.stock_deducted_at),
        "subtotal": _money(order.subtotal),
        "tax_amount": _money(order.tax_amount),
        "service_charge_amount": _money(order.service_charge_amount),
        "packaging_fee_amount": _money(order.packaging_fee_amount),
        "discount_amount": _money(order.discount_amount),
        "total_amount": _money(order.total_amount),
        "placed_at": _iso(order.placed_at),
        "edited_at": _iso(order.edited_at),
        "edited_by_user_id": order.edited_by_user_id,
        "items": [
            {
                "id": item.id,
                "type": "CUSTOM" if item.is_custom else "MENU",
                "menu_id": item.menu_id,
                "menu_name": item.menu_name,
                "menu_price": _money(item.menu_price),
                "quantity": item.quantity,
                "subtotal": _money(item.subtotal),
                "notes": item.notes,
                "addons": [
                    {
                        "addon_item_id": addon.addon_item_id,
                        "addon_name": addon.addon_name,
                        "addon_price": _money(addon.addon_price),
                        "quantity": addon.quantity,
                        "subtotal": _money(addon.subtotal),
                    }
                    for addon in item.addons
                ],
            }
            for item in order.order_items
        ],
        "discounts": [
            {
                "source": discount.source,
                "label": discount.label,
                "discount_type": discount.discount_type,
                "discount_value": _money(discount.discount_value),
                "discount_amount": _money(discount.discount_amount),
                "voucher_template_id": discount.voucher_template_id,
                "voucher_code_id": discount.voucher_code_id,
            }
            for discount in order.discounts
        ],
        "payment": (
            {
                "amount": _money(payment.amount),
                "method": payment.method,
                "status": payment.status,
            }
            if payment is not None
            else None
        ),
    }
