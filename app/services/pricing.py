from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy.orm import Session

from app.core.errors import (
    CustomItemError,
    InvalidQuantityError,
    MenuNotAvailableError,
    MenuNotFoundError,
    PosValidationError,
)
from app.core.money import ZERO, mul2, round2, sum2, to_decimal
from app.models.addon_item import AddonItem
from app.models.menu import Menu
from app.models.merchant import Merchant
from app.services.merchant_settings import get_custom_item_settings
from app.services.special_prices import get_active_promo_prices

logger = logging.getLogger(__name__)


@dataclass
class PricedAddon:
    addon_item_id: int
    addon_name: str
    addon_price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass
class PricedLine:
    menu_id: int | None
    menu_name: str
    menu_price: Decimal
    quantity: int
    subtotal: Decimal
    notes: str | None = None
    is_custom: bool = False
    addons: list[PricedAddon] = field(default_factory=list)


@dataclass
class PricedOrder:
    lines: list[PricedLine]
    subtotal: Decimal
    menu_quantities: dict[int, int]
    addon_quantities: dict[int, int]

    @property
    def menu_line_subtotals(self) -> list[tuple[int, Decimal]]:
        """(menu_id, subtotal) de cada linha de cardápio, para escopo de voucher."""
        return [(line.menu_id, line.subtotal) for line in self.lines if line.menu_id is not None]


def _validate_quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidQuantityError()
    if isinstance(value, float) and not value.is_integer():
        raise InvalidQuantityError()
    if isinstance(value, Decimal) and value != value.to_integral_value():
        raise InvalidQuantityError()
    quantity = int(value)
    if quantity <= 0:
        raise InvalidQuantityError()
    return quantity


def _is_available(row, retained_ids: set[int]) -> bool:
    if row.deleted_at is not None:
        return False
    if row.is_active:
        return True
    sold_out = bool(row.track_stock) and row.stock_qty is not None and row.stock_qty <= 0
    return sold_out and row.id in retained_ids


def _line_type(item) -> str:
    return (getattr(item, "type", None) or "MENU").upper()


def _price_custom_line(item, settings) -> PricedLine:
    if not settings.enabled:
        raise CustomItemError("Custom items are disabled for this merchant.", "POS_CUSTOM_ITEMS_DISABLED")
    if item.addons:
        raise CustomItemError("Custom items do not support addons.", "CUSTOM_ITEM_ADDONS_NOT_ALLOWED")

    name = (item.custom_name or "").strip()
    if not name:
        raise CustomItemError("Custom item name is required.", "CUSTOM_ITEM_NAME_REQUIRED")
    if len(name) > settings.max_name_length:
        raise CustomItemError(
            f"Custom item name is too long (max {settings.max_name_length} characters).",
            "CUSTOM_ITEM_NAME_TOO_LONG",
        )

    try:
        price = to_decimal(item.custom_price) if item.custom_price is not None else None
    except ValueError:
        price = None
    if price is None or not price.is_finite() or price <= 0:
        raise CustomItemError("Custom item price must be a valid number.", "CUSTOM_ITEM_PRICE_INVALID")
    if price > settings.max_price:
        raise CustomItemError(
            f"Custom item price is too high (max {settings.max_price}).",
            "CUSTOM_ITEM_PRICE_TOO_HIGH",
        )

    quantity = _validate_quantity(item.quantity)
    unit_price = round2(price)
    return PricedLine(
        menu_id=None,
        menu_name=name,
        menu_price=unit_price,
        quantity=quantity,
        subtotal=mul2(unit_price, quantity),
        notes=item.notes or None,
        is_custom=True,
    )


def price_items(
    db: Session,
    merchant: Merchant,
    items: Sequence,
    now: datetime,
    allow_custom: bool,
    retained_menu_ids: set[int] | None = None,
    retained_addon_ids: set[int] | None = None,
) -> PricedOrder:
    """Calcula subtotais de linhas (com adicionais e preço promocional) e os mapas de quantidade para estoque.

    `items` são MenuLineRequest/CustomLineRequest (ou objetos com os mesmos atributos).
    Adicionais desconhecidos, inativos ou removidos são ignorados.
    `retained_*_ids` são os itens que já estavam no pedido: se só estão inativos por
    estoque zerado continuam valendo, e a reconciliação de estoque decide.
    """
    retained_menu_ids = retained_menu_ids or set()
    retained_addon_ids = retained_addon_ids or set()
    if not items:
        raise PosValidationError("Order must contain at least one item.", "EMPTY_ITEMS")

    menu_ids: set[int] = set()
    addon_ids: set[int] = set()
    for item in items:
        if _line_type(item) == "CUSTOM":
            continue
        menu_ids.add(int(item.menu_id))
        for addon in item.addons or []:
            addon_ids.add(int(addon.addon_item_id))

    menus = {}
    if menu_ids:
        menus = {
            menu.id: menu
            for menu in db.query(Menu).filter(Menu.merchant_id == merchant.id, Menu.id.in_(menu_ids)).all()
        }
    addons = {}
    if addon_ids:
        addons = {
            addon.id: addon
            for addon in db.query(AddonItem)
            .filter(AddonItem.merchant_id == merchant.id, AddonItem.id.in_(addon_ids))
            .all()
        }
    promo_prices = get_active_promo_prices(db, merchant.id, menus.keys(), now, merchant.timezone)

    custom_settings = get_custom_item_settings(merchant)
    if not allow_custom:
        custom_settings = replace(custom_settings, enabled=False)

    lines: list[PricedLine] = []
    menu_quantities: dict[int, int] = {}
    addon_quantities: dict[int, int] = {}

    for item in items:
        if _line_type(item) == "CUSTOM":
            lines.append(_price_custom_line(item, custom_settings))
            continue

        menu = menus.get(int(item.menu_id))
        if menu is None:
            raise MenuNotFoundError(item.menu_id)
        if not _is_available(menu, retained_menu_ids):
            raise MenuNotAvailableError(menu.id, menu.name)

        quantity = _validate_quantity(item.quantity)
        unit_price = promo_prices.get(menu.id, round2(menu.price))
        line_subtotal = mul2(unit_price, quantity)

        priced_addons: list[PricedAddon] = []
        for selection in item.addons or []:
            addon = addons.get(int(selection.addon_item_id))
            if addon is None or not _is_available(addon, retained_addon_ids):
                logger.debug("Skipping unavailable addon addon_item_id=%s", selection.addon_item_id)
                continue
            addon_qty = _validate_quantity(selection.quantity or 1)
            addon_price = round2(addon.price)
            addon_subtotal = mul2(addon_price, addon_qty)
            line_subtotal = round2(line_subtotal + addon_subtotal)
            priced_addons.append(
                PricedAddon(
                    addon_item_id=addon.id,
                    addon_name=addon.name,
                    addon_price=addon_price,
                    quantity=addon_qty,
                    subtotal=addon_subtotal,
                )
            )
            addon_quantities[addon.id] = addon_quantities.get(addon.id, 0) + addon_qty

        menu_quantities[menu.id] = menu_quantities.get(menu.id, 0) + quantity
        lines.append(
            PricedLine(
                menu_id=menu.id,
                menu_name=menu.name,
                menu_price=unit_price,
                quantity=quantity,
                subtotal=line_subtotal,
                notes=item.notes or None,
                addons=priced_addons,
            )
        )

    subtotal = sum2(line.subtotal for line in lines)
    return PricedOrder(
        lines=lines,
        subtotal=subtotal if subtotal > 0 else ZERO,
        menu_quantities=menu_quantities,
        addon_quantities=addon_quantities,
    )
