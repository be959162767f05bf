from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from app.core.clock import day_of_week, minutes_of_day, parse_hhmm, to_merchant_local
from app.core.money import round2
from app.models.special_price import SpecialPrice, SpecialPriceItem

logger = logging.getLogger(__name__)


def is_special_price_active(special_price: SpecialPrice, local_now: datetime) -> bool:
    if not special_price.is_active:
        return False

    today = local_now.date()
    if special_price.start_date and today < special_price.start_date:
        return False
    if special_price.end_date and today > special_price.end_date:
        return False

    days = special_price.applicable_days or []
    if days and day_of_week(local_now) not in {int(day) for day in days}:
        return False

    if special_price.is_all_day:
        return True

    start = parse_hhmm(special_price.start_time)
    end = parse_hhmm(special_price.end_time)
    if start is None or end is None:
        # Sem janela válida: vale o dia todo
        return True
    current = minutes_of_day(local_now)
    return start <= current <= end


def get_active_promo_prices(
    db: Session,
    merchant_id: int,
    menu_ids: Iterable[int],
    now: datetime,
    timezone_name: str | None = None,
) -> dict[int, Decimal]:
    """Menor preço promocional ativo por menu_id, no fuso do merchant."""
    ids = {int(menu_id) for menu_id in menu_ids}
    if not ids:
        return {}

    local_now = to_merchant_local(now, timezone_name)
    rows = (
        db.query(SpecialPriceItem, SpecialPrice)
        .join(SpecialPrice, SpecialPrice.id == SpecialPriceItem.special_price_id)
        .filter(
            SpecialPrice.merchant_id == merchant_id,
            SpecialPrice.is_active.is_(True),
            SpecialPriceItem.menu_id.in_(ids),
        )
        .all()
    )

    prices: dict[int, Decimal] = {}
    for item, special_price in rows:
        if item.promo_price is None or not is_special_price_active(special_price, local_now):
            continue
        promo = round2(item.promo_price)
        current = prices.get(item.menu_id)
        if current is None or promo < current:
            prices[item.menu_id] = promo

    if prices:
        logger.debug("Active promo prices merchant_id=%s menus=%s", merchant_id, sorted(prices))
    return prices
