from __future__ import annotations

import logging

from app.services.event_bus import event_bus
from app.services.order_events import ORDER_CREATED, ORDER_UPDATED, STOCK_LOW, STOCK_OUT

logger = logging.getLogger(__name__)


def handle_order_created(payload: dict) -> None:
    logger.info(
        "[ORDER_EVENTS] created order_id=%s number=%s source=%s total=%s",
        payload.get("order_id"),
        payload.get("order_number"),
        payload.get("source"),
        payload.get("total_amount"),
    )


def handle_order_updated(payload: dict) -> None:
    dropped = payload.get("dropped_discounts") or []
    logger.info(
        "[ORDER_EVENTS] updated order_id=%s total=%s by_user=%s dropped_discounts=%s",
        payload.get("order_id"),
        payload.get("total_amount"),
        payload.get("edited_by_user_id"),
        len(dropped),
    )


def handle_stock_alert(payload: dict) -> None:
    # Entrega de notificação fica fora deste serviço
    logger.warning(
        "[STOCK] alert kind=%s merchant_id=%s entity=%s id=%s name=%s qty=%s threshold=%s",
        payload.get("kind"),
        payload.get("merchant_id"),
        payload.get("entity"),
        payload.get("id"),
        payload.get("name"),
        payload.get("stock_qty"),
        payload.get("threshold"),
    )


event_bus.subscribe(ORDER_CREATED, handle_order_created)
event_bus.subscribe(ORDER_UPDATED, handle_order_updated)
event_bus.subscribe(STOCK_LOW, handle_stock_alert)
event_bus.subscribe(STOCK_OUT, handle_stock_alert)
