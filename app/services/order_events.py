from __future__ import annotations

from app.models.order import Order
from app.services.event_bus import event_bus

ORDER_CREATED = "order.created"
ORDER_UPDATED = "order.updated"
STOCK_LOW = "stock.low"
STOCK_OUT = "stock.out"


def _money(value) -> str:
    return f"{value or 0:.2f}"


def build_order_payload(order: Order) -> dict:
    return {
        "order_id": order.id,
        "merchant_id": order.merchant_id,
        "order_number": order.order_number,
        "order_type": order.order_type,
        "status": (order.status or "").strip().upper(),
        "customer_id": order.customer_id,
        "is_scheduled": bool(order.is_scheduled),
        "subtotal": _money(order.subtotal),
        "discount_amount": _money(order.discount_amount),
        "total_amount": _money(order.total_amount),
    }


def emit_order_created(order: Order, source: str) -> None:
    payload = build_order_payload(order)
    payload["source"] = source
    event_bus.emit(ORDER_CREATED, payload)


def emit_order_updated(order: Order, user_id: int | None, dropped_discounts: list[dict] | None = None) -> None:
    payload = build_order_payload(order)
    payload["edited_by_user_id"] = user_id
    payload["dropped_discounts"] = list(dropped_discounts or [])
    event_bus.emit(ORDER_UPDATED, payload)


def emit_stock_alerts(merchant_id: int, alerts: list[dict]) -> None:
    for alert in alerts:
        event_name = STOCK_OUT if alert["kind"] == "out" else STOCK_LOW
        event_bus.emit(event_name, {"merchant_id": merchant_id, **alert})
