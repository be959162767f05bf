from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import as_utc, day_of_week, minutes_of_day, parse_hhmm, to_merchant_local
from app.core.config import DISCOUNT_REVALIDATION_POLICY
from app.core.errors import ManualDiscountError, VoucherError
from app.core.money import ZERO, clamp_percentage, percent_of, round2, sum2, to_decimal
from app.models.menu_category import MenuCategoryItem
from app.models.order_discount import OrderDiscount
from app.models.voucher import (
    OrderVoucherCode,
    OrderVoucherTemplate,
    OrderVoucherTemplateCategory,
    OrderVoucherTemplateMenu,
)

logger = logging.getLogger(__name__)

POLICY_DROP = "drop"
POLICY_REJECT = "reject"

SOURCE_POS_VOUCHER = "POS_VOUCHER"
SOURCE_CUSTOMER_VOUCHER = "CUSTOMER_VOUCHER"
SOURCE_MANUAL = "MANUAL"
VOUCHER_SOURCES = {SOURCE_POS_VOUCHER, SOURCE_CUSTOMER_VOUCHER}

PERCENTAGE = "PERCENTAGE"
FIXED_AMOUNT = "FIXED_AMOUNT"

MANUAL_DISCOUNT_LABEL = "Manual discount"


@dataclass
class VoucherContext:
    merchant_id: int
    timezone: str | None
    audience: str  # POS / CUSTOMER
    order_type: str
    subtotal: Decimal
    # (menu_id, subtotal da linha com adicionais); itens avulsos ficam de fora
    lines: Sequence[tuple[int, Decimal]] = field(default_factory=list)
    now: datetime | None = None


@dataclass
class VoucherResolution:
    template_id: int
    code_id: int | None
    label: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    eligible_subtotal: Decimal
    max_discount_amount: Decimal | None = None


@dataclass
class DiscountDraft:
    source: str
    label: str
    discount_type: str
    discount_value: Decimal | None
    discount_amount: Decimal
    voucher_template_id: int | None = None
    voucher_code_id: int | None = None
    applied_by_user_id: int | None = None
    applied_by_customer_id: int | None = None


def resolve_policy(policy: str | None) -> str:
    normalized = (policy or DISCOUNT_REVALIDATION_POLICY or POLICY_DROP).strip().lower()
    return normalized if normalized in {POLICY_DROP, POLICY_REJECT} else POLICY_DROP


def source_for_audience(audience: str) -> str:
    return SOURCE_CUSTOMER_VOUCHER if audience == "CUSTOMER" else SOURCE_POS_VOUCHER


def _audience_matches(template_audience: str | None, audience: str) -> bool:
    normalized = (template_audience or "").upper()
    return normalized == "BOTH" or normalized == audience


def is_time_within_window(current: int, start: int, end: int) -> bool:
    """Janela em minutos do dia. start == end vale o dia todo; start > end cruza a meia-noite."""
    if start == end:
        return True
    if start < end:
        return start <= current <= end
    return current >= start or current <= end


def _load_voucher(
    db: Session,
    ctx: VoucherContext,
    code: str | None,
    template_id: int | None,
) -> tuple[OrderVoucherTemplate, OrderVoucherCode | None]:
    normalized_code = (code or "").strip().upper()

    if normalized_code:
        voucher_code = (
            db.query(OrderVoucherCode)
            .filter(OrderVoucherCode.merchant_id == ctx.merchant_id, OrderVoucherCode.code == normalized_code)
            .first()
        )
        if not voucher_code:
            raise VoucherError("Invalid voucher code", "VOUCHER_NOT_FOUND")
        template = voucher_code.template
        if not voucher_code.is_active or template is None or not template.is_active:
            raise VoucherError("Voucher is inactive", "VOUCHER_INACTIVE")
        if not _audience_matches(template.audience, ctx.audience):
            raise VoucherError("Voucher is not applicable", "VOUCHER_NOT_APPLICABLE")
        return template, voucher_code

    if not template_id:
        raise VoucherError("Voucher template is required", "VOUCHER_TEMPLATE_REQUIRED")

    template = (
        db.query(OrderVoucherTemplate)
        .filter(OrderVoucherTemplate.id == template_id, OrderVoucherTemplate.merchant_id == ctx.merchant_id)
        .first()
    )
    if not template:
        raise VoucherError("Voucher template not found", "VOUCHER_NOT_FOUND")
    if not template.is_active:
        raise VoucherError("Voucher is inactive", "VOUCHER_INACTIVE")
    if not _audience_matches(template.audience, ctx.audience):
        raise VoucherError("Voucher is not applicable", "VOUCHER_NOT_APPLICABLE")
    return template, None


def _assert_validity_window(valid_from: datetime | None, valid_until: datetime | None, now: datetime) -> None:
    start = as_utc(valid_from)
    end = as_utc(valid_until)
    if start and now < start:
        raise VoucherError("Voucher is not active yet", "VOUCHER_NOT_ACTIVE_YET", {"validFrom": start.isoformat()})
    if end and now > end:
        raise VoucherError("Voucher has expired", "VOUCHER_EXPIRED", {"validUntil": end.isoformat()})


def _assert_schedule(
    template: OrderVoucherTemplate,
    voucher_code: OrderVoucherCode | None,
    ctx: VoucherContext,
    now: datetime,
) -> None:
    _assert_validity_window(template.valid_from, template.valid_until, now)
    if voucher_code is not None:
        _assert_validity_window(voucher_code.valid_from, voucher_code.valid_until, now)

    local_now = to_merchant_local(now, ctx.timezone)

    days = template.days_of_week or []
    if days:
        today = day_of_week(local_now)
        if today not in {int(day) for day in days}:
            raise VoucherError(
                "Voucher is not available today",
                "VOUCHER_NOT_AVAILABLE_TODAY",
                {"daysOfWeek": list(days), "today": today},
            )

    if template.start_time and template.end_time:
        start = parse_hhmm(template.start_time)
        end = parse_hhmm(template.end_time)
        if start is None or end is None:
            raise VoucherError("Voucher schedule is invalid", "VOUCHER_SCHEDULE_INVALID")
        if not is_time_within_window(minutes_of_day(local_now), start, end):
            raise VoucherError(
                "Voucher is not available at this time",
                "VOUCHER_NOT_AVAILABLE_NOW",
                {
                    "startTime": template.start_time,
                    "endTime": template.end_time,
                    "now": local_now.strftime("%H:%M"),
                },
            )


def _usage_query(db: Session, merchant_id: int, exclude_order_id: int | None, *criteria):
    query = db.query(func.count(OrderDiscount.id)).filter(OrderDiscount.merchant_id == merchant_id, *criteria)
    if exclude_order_id is not None:
        query = query.filter(OrderDiscount.order_id != exclude_order_id)
    return query


def _raise_usage_limit(limit: int, used: int) -> None:
    raise VoucherError(
        "Voucher usage limit reached",
        "VOUCHER_USAGE_LIMIT_REACHED",
        {"limit": limit, "used": used},
    )


def _assert_usage_limits(
    db: Session,
    merchant_id: int,
    template: OrderVoucherTemplate,
    voucher_code: OrderVoucherCode | None,
    customer_id: int | None,
    exclude_order_id: int | None,
) -> None:
    by_template = OrderDiscount.voucher_template_id == template.id

    if template.max_uses_total is not None:
        used = _usage_query(db, merchant_id, exclude_order_id, by_template).scalar() or 0
        if used >= template.max_uses_total:
            _raise_usage_limit(template.max_uses_total, used)

    if voucher_code is not None and voucher_code.max_uses_total is not None:
        by_code = OrderDiscount.voucher_code_id == voucher_code.id
        used = _usage_query(db, merchant_id, exclude_order_id, by_code).scalar() or 0
        if used >= voucher_code.max_uses_total:
            _raise_usage_limit(voucher_code.max_uses_total, used)

    if customer_id is not None and template.max_uses_per_customer is not None:
        used = (
            _usage_query(
                db, merchant_id, exclude_order_id, by_template, OrderDiscount.applied_by_customer_id == customer_id
            ).scalar()
            or 0
        )
        if used >= template.max_uses_per_customer:
            _raise_usage_limit(template.max_uses_per_customer, used)

    if customer_id is not None and voucher_code is not None and voucher_code.max_uses_per_customer is not None:
        used = (
            _usage_query(
                db,
                merchant_id,
                exclude_order_id,
                OrderDiscount.voucher_code_id == voucher_code.id,
                OrderDiscount.applied_by_customer_id == customer_id,
            ).scalar()
            or 0
        )
        if used >= voucher_code.max_uses_per_customer:
            _raise_usage_limit(voucher_code.max_uses_per_customer, used)

    if template.total_discount_cap is not None:
        query = db.query(func.coalesce(func.sum(OrderDiscount.discount_amount), 0)).filter(
            OrderDiscount.merchant_id == merchant_id, by_template
        )
        if exclude_order_id is not None:
            query = query.filter(OrderDiscount.order_id != exclude_order_id)
        spent = round2(query.scalar())
        cap = round2(template.total_discount_cap)
        if spent >= cap:
            raise VoucherError(
                "Voucher discount budget reached",
                "VOUCHER_DISCOUNT_CAP_REACHED",
                {"totalDiscountCap": str(cap), "used": str(spent)},
            )


def compute_eligible_subtotal(
    db: Session,
    template: OrderVoucherTemplate,
    lines: Iterable[tuple[int, Decimal]],
    subtotal: Decimal,
) -> Decimal:
    if template.include_all_items:
        return round2(subtotal)

    line_list = list(lines)
    scoped_menus = {
        row.menu_id
        for row in db.query(OrderVoucherTemplateMenu).filter(OrderVoucherTemplateMenu.template_id == template.id)
    }
    scoped_categories = {
        row.category_id
        for row in db.query(OrderVoucherTemplateCategory).filter(
            OrderVoucherTemplateCategory.template_id == template.id
        )
    }
    if not scoped_menus and not scoped_categories:
        return ZERO

    menus_from_categories: set[int] = set()
    item_menu_ids = {menu_id for menu_id, _ in line_list}
    if scoped_categories and item_menu_ids:
        menus_from_categories = {
            row.menu_id
            for row in db.query(MenuCategoryItem).filter(
                MenuCategoryItem.menu_id.in_(item_menu_ids),
                MenuCategoryItem.category_id.in_(scoped_categories),
            )
        }

    eligible = scoped_menus | menus_from_categories
    return sum2(line_subtotal for menu_id, line_subtotal in line_list if menu_id in eligible)


def calculate_discount_amount(
    discount_type: str,
    value,
    base: Decimal,
    max_discount_amount=None,
) -> Decimal:
    """PERCENTAGE: pct em 0..100, limitado ao teto e à base. FIXED_AMOUNT: min(valor, base)."""
    base = round2(base)
    if discount_type == PERCENTAGE:
        amount = percent_of(base, clamp_percentage(value))
        if max_discount_amount is not None and to_decimal(max_discount_amount) > 0:
            amount = min(amount, round2(max_discount_amount))
        amount = min(amount, base)
    else:
        amount = min(round2(value), base)
    return amount if amount > 0 else ZERO


def resolve_voucher(
    db: Session,
    ctx: VoucherContext,
    code: str | None = None,
    template_id: int | None = None,
    customer_id: int | None = None,
    exclude_order_id: int | None = None,
) -> VoucherResolution:
    """Valida o voucher (código ou template) contra o pedido e calcula o desconto.

    As checagens param na primeira falha, sempre com VoucherError e um código estável.
    """
    now = as_utc(ctx.now) if ctx.now else None
    if now is None:
        raise ValueError("VoucherContext.now is required")

    template, voucher_code = _load_voucher(db, ctx, code, template_id)

    _assert_schedule(template, voucher_code, ctx, now)

    allowed_types = template.allowed_order_types or []
    if allowed_types and ctx.order_type not in allowed_types:
        raise VoucherError(
            "Voucher is not applicable for this order type",
            "VOUCHER_ORDER_TYPE_NOT_ALLOWED",
            {"orderType": ctx.order_type, "allowedOrderTypes": list(allowed_types)},
        )

    if template.requires_customer_login and not customer_id:
        raise VoucherError("Customer login is required to use this voucher", "VOUCHER_REQUIRES_LOGIN")

    subtotal = round2(ctx.subtotal)
    if template.min_order_amount is not None and subtotal < round2(template.min_order_amount):
        raise VoucherError(
            "Order does not meet minimum amount",
            "VOUCHER_MIN_ORDER_NOT_MET",
            {"minOrderAmount": str(round2(template.min_order_amount)), "subtotal": str(subtotal)},
        )

    _assert_usage_limits(db, ctx.merchant_id, template, voucher_code, customer_id, exclude_order_id)

    eligible = compute_eligible_subtotal(db, template, ctx.lines, subtotal)
    if eligible <= 0:
        raise VoucherError("Voucher is not applicable to selected items", "VOUCHER_NOT_APPLICABLE_ITEMS")

    discount_value = to_decimal(template.discount_value)
    if template.discount_type == PERCENTAGE:
        discount_value = clamp_percentage(discount_value)
    amount = calculate_discount_amount(
        template.discount_type, discount_value, eligible, template.max_discount_amount
    )
    if amount <= 0:
        raise VoucherError("Voucher discount is zero", "VOUCHER_DISCOUNT_ZERO")

    logger.info(
        "[VOUCHER] resolved merchant_id=%s template_id=%s code_id=%s eligible=%s amount=%s",
        ctx.merchant_id,
        template.id,
        voucher_code.id if voucher_code else None,
        eligible,
        amount,
    )
    return VoucherResolution(
        template_id=template.id,
        code_id=voucher_code.id if voucher_code else None,
        # nunca expor o código no label (vai para recibo)
        label=template.name,
        discount_type=template.discount_type,
        discount_value=discount_value,
        discount_amount=amount,
        eligible_subtotal=eligible,
        max_discount_amount=to_decimal(template.max_discount_amount) if template.max_discount_amount else None,
    )


def compute_manual_discount(subtotal, discount_type: str, value) -> Decimal:
    normalized_type = (discount_type or "").upper()
    if normalized_type not in {PERCENTAGE, FIXED_AMOUNT}:
        raise ManualDiscountError("Invalid manual discount type.")
    try:
        raw_value = to_decimal(value)
    except ValueError as exc:
        raise ManualDiscountError("Manual discount value must be a valid number.") from exc
    if not raw_value.is_finite() or raw_value <= 0:
        raise ManualDiscountError("Manual discount value must be greater than zero.")

    amount = calculate_discount_amount(normalized_type, raw_value, round2(subtotal))
    if amount <= 0:
        raise ManualDiscountError("Manual discount amount is zero.")
    return amount


def check_voucher_stacking(existing: Iterable[OrderDiscount]) -> None:
    for discount in existing:
        if discount.source in VOUCHER_SOURCES:
            raise VoucherError(
                "Only one voucher can be used per order",
                "VOUCHER_ALREADY_APPLIED",
                {"existingSource": discount.source, "existingLabel": discount.label},
            )


def draft_from_resolution(
    resolution: VoucherResolution,
    source: str,
    user_id: int | None = None,
    customer_id: int | None = None,
) -> DiscountDraft:
    return DiscountDraft(
        source=source,
        label=resolution.label,
        discount_type=resolution.discount_type,
        discount_value=resolution.discount_value,
        discount_amount=resolution.discount_amount,
        voucher_template_id=resolution.template_id,
        voucher_code_id=resolution.code_id,
        applied_by_user_id=user_id,
        applied_by_customer_id=customer_id,
    )


def _dropped_entry(discount: OrderDiscount, error: VoucherError) -> dict:
    return {
        "source": discount.source,
        "label": discount.label,
        "discount_amount": str(round2(discount.discount_amount)),
        "error_code": error.error_code,
        "message": error.message,
    }


def _recompute_voucher_row(
    db: Session,
    ctx: VoucherContext,
    discount: OrderDiscount,
    order_id: int,
    order_customer_id: int | None,
) -> DiscountDraft | None:
    voucher_code = None
    if discount.voucher_code_id is not None:
        voucher_code = db.query(OrderVoucherCode).filter(OrderVoucherCode.id == discount.voucher_code_id).first()
    code_value = voucher_code.code if voucher_code else None

    if not code_value and not discount.voucher_template_id:
        # linha legada sem referência: mantém o valor, limitado ao subtotal
        amount = min(round2(discount.discount_amount), round2(ctx.subtotal))
        if amount <= 0:
            return None
        return DiscountDraft(
            source=discount.source,
            label=discount.label,
            discount_type=discount.discount_type,
            discount_value=discount.discount_value,
            discount_amount=amount,
            voucher_code_id=discount.voucher_code_id,
            applied_by_user_id=discount.applied_by_user_id,
            applied_by_customer_id=discount.applied_by_customer_id,
        )

    audience = "CUSTOMER" if discount.source == SOURCE_CUSTOMER_VOUCHER else "POS"
    customer_id = None
    if discount.source == SOURCE_CUSTOMER_VOUCHER:
        customer_id = discount.applied_by_customer_id or order_customer_id

    voucher_ctx = VoucherContext(
        merchant_id=ctx.merchant_id,
        timezone=ctx.timezone,
        audience=audience,
        order_type=ctx.order_type,
        subtotal=ctx.subtotal,
        lines=ctx.lines,
        now=ctx.now,
    )
    resolution = resolve_voucher(
        db,
        voucher_ctx,
        code=code_value,
        template_id=None if code_value else discount.voucher_template_id,
        customer_id=customer_id,
        exclude_order_id=order_id,
    )

    discount_type = resolution.discount_type
    discount_value = resolution.discount_value
    amount = resolution.discount_amount
    # template aplicado pelo POS sem código guarda o valor usado no momento
    if (
        discount.source == SOURCE_POS_VOUCHER
        and not code_value
        and discount.discount_value is not None
        and discount.discount_type in {PERCENTAGE, FIXED_AMOUNT}
    ):
        discount_type = discount.discount_type
        discount_value = to_decimal(discount.discount_value)
        if discount_type == PERCENTAGE:
            discount_value = clamp_percentage(discount_value)
        amount = calculate_discount_amount(
            discount_type, discount_value, resolution.eligible_subtotal, resolution.max_discount_amount
        )

    if amount <= 0:
        return None
    return DiscountDraft(
        source=discount.source,
        label=resolution.label,
        discount_type=discount_type,
        discount_value=discount_value,
        discount_amount=amount,
        voucher_template_id=resolution.template_id,
        voucher_code_id=resolution.code_id,
        applied_by_user_id=discount.applied_by_user_id,
        applied_by_customer_id=discount.applied_by_customer_id,
    )


def recompute_discounts(
    db: Session,
    ctx: VoucherContext,
    existing: Sequence[OrderDiscount],
    order_id: int,
    order_customer_id: int | None = None,
    policy: str | None = None,
) -> tuple[list[DiscountDraft], list[dict]]:
    """Reavalia cada desconto gravado contra o novo subtotal.

    Retorna (descontos válidos, descontos descartados). Com a política "reject"
    o primeiro voucher inválido aborta com VoucherError.
    """
    effective_policy = resolve_policy(policy)
    drafts: list[DiscountDraft] = []
    dropped: list[dict] = []

    for discount in existing:
        if discount.source == SOURCE_MANUAL:
            stored_value = discount.discount_value
            if stored_value is not None and discount.discount_type in {PERCENTAGE, FIXED_AMOUNT}:
                amount = calculate_discount_amount(discount.discount_type, stored_value, ctx.subtotal)
            else:
                amount = min(round2(discount.discount_amount), round2(ctx.subtotal))
            if amount > 0:
                drafts.append(
                    DiscountDraft(
                        source=SOURCE_MANUAL,
                        label=discount.label or MANUAL_DISCOUNT_LABEL,
                        discount_type=discount.discount_type,
                        discount_value=stored_value,
                        discount_amount=amount,
                        applied_by_user_id=discount.applied_by_user_id,
                        applied_by_customer_id=discount.applied_by_customer_id,
                    )
                )
            continue

        if discount.source not in VOUCHER_SOURCES:
            continue

        try:
            draft = _recompute_voucher_row(db, ctx, discount, order_id, order_customer_id)
        except VoucherError as exc:
            if effective_policy == POLICY_REJECT:
                logger.info(
                    "[VOUCHER] revalidation rejected order_id=%s label=%s code=%s",
                    order_id,
                    discount.label,
                    exc.error_code,
                )
                raise
            logger.warning(
                "[VOUCHER] dropping discount on revalidation order_id=%s label=%s code=%s",
                order_id,
                discount.label,
                exc.error_code,
            )
            dropped.append(_dropped_entry(discount, exc))
            continue

        if draft is not None:
            drafts.append(draft)

    return drafts, dropped


def total_discount(drafts: Iterable[DiscountDraft]) -> Decimal:
    return sum2(draft.discount_amount for draft in drafts)
