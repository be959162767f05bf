from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.core.errors import InsufficientStockError
from app.models.addon_item import AddonItem
from app.models.menu import Menu
from app.models.merchant import Merchant
from app.services.merchant_settings import get_low_stock_threshold

logger = logging.getLogger(__name__)

ENTITY_MENU = "menu"
ENTITY_ADDON = "addon"

_MODELS = {ENTITY_MENU: Menu, ENTITY_ADDON: AddonItem}


@dataclass
class StockChange:
    entity: str
    entity_id: int
    name: str
    delta: int
    stock_qty: int
    low_stock_threshold: int | None = None
    row: Any = None

    @property
    def resulting_qty(self) -> int:
        return self.stock_qty - self.delta


@dataclass
class StockPlan:
    changes: list[StockChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.changes


def quantities_from_order_items(order_items) -> tuple[dict[int, int], dict[int, int]]:
    """Mapas de quantidade (menu, adicional) dos itens já gravados; itens avulsos não contam."""
    menu_qty: dict[int, int] = {}
    addon_qty: dict[int, int] = {}
    for item in order_items:
        if item.menu_id is None or item.is_custom:
            continue
        menu_qty[item.menu_id] = menu_qty.get(item.menu_id, 0) + int(item.quantity or 0)
        for addon in item.addons or []:
            addon_qty[addon.addon_item_id] = addon_qty.get(addon.addon_item_id, 0) + int(addon.quantity or 0)
    return menu_qty, addon_qty


def _load_rows(db: Session, model, merchant_id: int, ids: set[int]) -> list:
    if not ids:
        return []
    return (
        db.query(model)
        .filter(model.merchant_id == merchant_id, model.id.in_(ids))
        .order_by(model.id.asc())
        .all()
    )


def _plan_for_entity(
    entity: str,
    rows: list,
    old_qty: dict[int, int],
    new_qty: dict[int, int],
) -> list[StockChange]:
    changes: list[StockChange] = []
    for row in rows:
        if not row.track_stock or row.stock_qty is None:
            continue
        delta = new_qty.get(row.id, 0) - old_qty.get(row.id, 0)
        if delta == 0:
            continue
        changes.append(
            StockChange(
                entity=entity,
                entity_id=row.id,
                name=row.name,
                delta=delta,
                stock_qty=int(row.stock_qty),
                low_stock_threshold=row.low_stock_threshold,
                row=row,
            )
        )
    return changes


def plan_stock_changes(
    db: Session,
    merchant_id: int,
    old_menu_qty: dict[int, int],
    new_menu_qty: dict[int, int],
    old_addon_qty: dict[int, int] | None = None,
    new_addon_qty: dict[int, int] | None = None,
) -> StockPlan:
    old_addon_qty = old_addon_qty or {}
    new_addon_qty = new_addon_qty or {}

    menu_rows = _load_rows(db, Menu, merchant_id, set(old_menu_qty) | set(new_menu_qty))
    addon_rows = _load_rows(db, AddonItem, merchant_id, set(old_addon_qty) | set(new_addon_qty))

    changes = _plan_for_entity(ENTITY_MENU, menu_rows, old_menu_qty, new_menu_qty)
    changes.extend(_plan_for_entity(ENTITY_ADDON, addon_rows, old_addon_qty, new_addon_qty))
    return StockPlan(changes=changes)


def check_stock_plan(plan: StockPlan) -> None:
    """Pré-checagem fora da transação; a garantia real é o UPDATE condicional."""
    for change in plan.changes:
        if change.delta > 0 and change.stock_qty < change.delta:
            logger.info(
                "[STOCK] precheck failed entity=%s id=%s qty=%s delta=%s",
                change.entity,
                change.entity_id,
                change.stock_qty,
                change.delta,
            )
            raise InsufficientStockError(change.entity, change.entity_id, change.name)


def _sync_active_flag(db: Session, model, entity_id: int) -> None:
    db.execute(
        update(model)
        .where(model.id == entity_id, model.stock_qty.is_not(None))
        .values(is_active=case((model.stock_qty > 0, True), else_=False))
        .execution_options(synchronize_session=False)
    )


def apply_stock_plan(db: Session, plan: StockPlan) -> None:
    """Aplica o plano dentro da transação corrente. Decremento só acontece se houver saldo."""
    for change in plan.changes:
        model = _MODELS[change.entity]
        if change.delta > 0:
            result = db.execute(
                update(model)
                .where(
                    model.id == change.entity_id,
                    model.track_stock.is_(True),
                    model.stock_qty >= change.delta,
                )
                .values(stock_qty=model.stock_qty - change.delta)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "[STOCK] guarded decrement failed entity=%s id=%s delta=%s",
                    change.entity,
                    change.entity_id,
                    change.delta,
                )
                raise InsufficientStockError(change.entity, change.entity_id, change.name)
        else:
            db.execute(
                update(model)
                .where(model.id == change.entity_id)
                .values(stock_qty=model.stock_qty + abs(change.delta))
                .execution_options(synchronize_session=False)
            )

        _sync_active_flag(db, model, change.entity_id)
        if change.row is not None:
            db.expire(change.row, ["stock_qty", "is_active"])

        logger.info(
            "[STOCK] adjusted entity=%s id=%s delta=%s",
            change.entity,
            change.entity_id,
            -change.delta,
        )


def build_stock_alerts(merchant: Merchant, plan: StockPlan) -> list[dict]:
    if not merchant.stock_alert_enabled:
        return []

    alerts: list[dict] = []
    for change in plan.changes:
        if change.delta <= 0:
            continue
        previous_qty = change.stock_qty
        updated_qty = change.resulting_qty
        threshold = get_low_stock_threshold(merchant, change.low_stock_threshold) or 0
        kind = None
        if updated_qty <= 0:
            kind = "out"
        elif threshold > 0 and previous_qty > threshold and updated_qty <= threshold:
            kind = "low"
        if kind:
            alerts.append(
                {
                    "kind": kind,
                    "entity": change.entity,
                    "id": change.entity_id,
                    "name": change.name,
                    "stock_qty": updated_qty,
                    "threshold": threshold or None,
                }
            )
    return alerts
