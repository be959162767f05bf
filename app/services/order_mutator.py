from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from app.core.clock import parse_hhmm, to_merchant_local, utcnow
from app.core.errors import (
    OrderAlreadyPaidError,
    OrderNotEditableError,
    OrderNotFoundError,
    OrderTypeMismatchError,
    PosValidationError,
    VoucherError,
)
from app.core.money import round2, sum2
from app.models.customer import Customer
from app.models.merchant import Merchant
from app.models.order import Order
from app.models.order_discount import OrderDiscount
from app.models.order_item import OrderItem, OrderItemAddon
from app.models.payment import Payment
from app.services.fees import FeeBreakdown, calculate_fees, calculate_total
from app.services.merchant_settings import (
    get_active_merchant_by_code,
    get_fee_config,
    get_merchant,
    is_pos_edit_order_enabled,
)
from app.services.order_events import emit_order_created, emit_order_updated, emit_stock_alerts
from app.services.pricing import PricedOrder, price_items
from app.services.stock import (
    StockPlan,
    apply_stock_plan,
    build_stock_alerts,
    check_stock_plan,
    plan_stock_changes,
    quantities_from_order_items,
)
from app.services.vouchers import (
    MANUAL_DISCOUNT_LABEL,
    SOURCE_CUSTOMER_VOUCHER,
    SOURCE_MANUAL,
    SOURCE_POS_VOUCHER,
    DiscountDraft,
    VoucherContext,
    check_voucher_stacking,
    compute_manual_discount,
    draft_from_resolution,
    recompute_discounts,
    resolve_voucher,
    total_discount,
)

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = {"PENDING", "ACCEPTED"}
SUPPORTED_ORDER_TYPES = {"DINE_IN", "TAKEAWAY"}
DEFAULT_PAYMENT_METHOD = "CASH_ON_COUNTER"


@dataclass
class OrderEditResult:
    order: Order
    dropped_discounts: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def generate_order_number(db: Session, merchant: Merchant, now: datetime) -> str:
    """ORD-YYYYMMDD-NNNN, sequência diária por merchant no fuso do merchant."""
    date_str = to_merchant_local(now, merchant.timezone).strftime("%Y%m%d")
    prefix = f"ORD-{date_str}-"
    count = (
        db.query(Order)
        .filter(Order.merchant_id == merchant.id, Order.order_number.like(f"{prefix}%"))
        .count()
    )
    return f"{prefix}{count + 1:04d}"


def _voucher_context(
    merchant: Merchant,
    audience: str,
    order_type: str,
    priced: PricedOrder,
    now: datetime,
) -> VoucherContext:
    return VoucherContext(
        merchant_id=merchant.id,
        timezone=merchant.timezone,
        audience=audience,
        order_type=order_type,
        subtotal=priced.subtotal,
        lines=priced.menu_line_subtotals,
        now=now,
    )


def _assert_supported_order_type(order_type: str) -> None:
    if order_type not in SUPPORTED_ORDER_TYPES:
        raise PosValidationError("Only DINE_IN and TAKEAWAY orders are supported.", "ORDER_TYPE_NOT_SUPPORTED")


def _assert_table_number(merchant: Merchant, order_type: str, table_number: str | None) -> None:
    if order_type == "DINE_IN" and merchant.require_table_number_for_dine_in and not (table_number or "").strip():
        raise PosValidationError("Table number is required for dine-in orders.", "TABLE_NUMBER_REQUIRED")


def _build_order_items(priced: PricedOrder) -> list[OrderItem]:
    items: list[OrderItem] = []
    for line in priced.lines:
        items.append(
            OrderItem(
                menu_id=line.menu_id,
                menu_name=line.menu_name,
                menu_price=line.menu_price,
                quantity=line.quantity,
                subtotal=line.subtotal,
                notes=line.notes,
                is_custom=line.is_custom,
                addons=[
                    OrderItemAddon(
                        addon_item_id=addon.addon_item_id,
                        addon_name=addon.addon_name,
                        addon_price=addon.addon_price,
                        quantity=addon.quantity,
                        subtotal=addon.subtotal,
                    )
                    for addon in line.addons
                ],
            )
        )
    return items


def _build_discount_rows(merchant_id: int, drafts: list[DiscountDraft]) -> list[OrderDiscount]:
    return [
        OrderDiscount(
            merchant_id=merchant_id,
            source=draft.source,
            label=draft.label,
            discount_type=draft.discount_type,
            discount_value=draft.discount_value,
            discount_amount=draft.discount_amount,
            voucher_template_id=draft.voucher_template_id,
            voucher_code_id=draft.voucher_code_id,
            applied_by_user_id=draft.applied_by_user_id,
            applied_by_customer_id=draft.applied_by_customer_id,
        )
        for draft in drafts
    ]


def _apply_totals(order: Order, subtotal: Decimal, fees: FeeBreakdown, discount: Decimal, total: Decimal) -> None:
    order.subtotal = subtotal
    order.tax_amount = fees.tax_amount
    order.service_charge_amount = fees.service_charge_amount
    order.packaging_fee_amount = fees.packaging_fee_amount
    order.discount_amount = discount
    order.total_amount = total


def _load_order_for_update(db: Session, merchant_id: int, order_id: int) -> Order:
    order = (
        db.query(Order)
        .filter(Order.id == order_id, Order.merchant_id == merchant_id)
        .with_for_update()
        .first()
    )
    if not order:
        raise OrderNotFoundError()
    return order


def _assert_order_mutable(order: Order) -> None:
    if (order.status or "").upper() not in EDITABLE_STATUSES:
        raise OrderNotEditableError()
    _assert_supported_order_type(order.order_type)
    if order.payment is not None and (order.payment.status or "").upper() == "COMPLETED":
        raise OrderAlreadyPaidError()


def _emit_after_commit(merchant: Merchant, plan: StockPlan | None) -> None:
    if plan is None or plan.is_empty:
        return
    alerts = build_stock_alerts(merchant, plan)
    if alerts:
        emit_stock_alerts(merchant.id, alerts)


# ---------------------------------------------------------------------------
# POS edit
# ---------------------------------------------------------------------------


def edit_pos_order(
    db: Session,
    merchant_id: int,
    order_id: int,
    request,
    user_id: int | None = None,
    now: datetime | None = None,
    policy: str | None = None,
) -> OrderEditResult:
    """Substitui itens de um pedido POS aberto, reprecificando descontos, taxas e estoque numa transação."""
    now = now or utcnow()
    effective_policy = policy or getattr(request, "discount_policy", None)

    try:
        merchant = get_merchant(db, merchant_id)
        if not is_pos_edit_order_enabled(merchant):
            raise PosValidationError("Editing POS orders is disabled for this merchant.", "POS_EDIT_ORDER_DISABLED")
        _assert_table_number(merchant, request.order_type, request.table_number)

        order = _load_order_for_update(db, merchant.id, order_id)
        _assert_order_mutable(order)
        if request.order_type != order.order_type:
            raise OrderTypeMismatchError()

        old_menu_qty, old_addon_qty = quantities_from_order_items(order.order_items)
        priced = price_items(
            db,
            merchant,
            request.items,
            now,
            allow_custom=True,
            retained_menu_ids=set(old_menu_qty),
            retained_addon_ids=set(old_addon_qty),
        )

        ctx = _voucher_context(merchant, "POS", order.order_type, priced, now)
        drafts, dropped = recompute_discounts(
            db,
            ctx,
            list(order.discounts),
            order_id=order.id,
            order_customer_id=order.customer_id,
            policy=effective_policy,
        )
        discount_amount = total_discount(drafts)

        fees = calculate_fees(priced.subtotal, get_fee_config(merchant), order.order_type)
        total = calculate_total(priced.subtotal, fees, discount_amount)

        plan = None
        if not order.is_scheduled or order.stock_deducted_at is not None:
            plan = plan_stock_changes(
                db,
                merchant.id,
                old_menu_qty,
                priced.menu_quantities,
                old_addon_qty,
                priced.addon_quantities,
            )
            check_stock_plan(plan)
            apply_stock_plan(db, plan)

        order.order_items = _build_order_items(priced)
        order.discounts = _build_discount_rows(merchant.id, drafts)
        _apply_totals(order, priced.subtotal, fees, discount_amount, total)
        order.table_number = request.table_number or None
        order.notes = request.notes or None
        order.edited_at = now
        order.edited_by_user_id = user_id
        if order.payment is not None:
            order.payment.amount = total

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "[POS_EDIT] order_id=%s merchant_id=%s subtotal=%s discount=%s total=%s dropped=%s",
        order.id,
        merchant.id,
        order.subtotal,
        order.discount_amount,
        order.total_amount,
        len(dropped),
    )

    emit_order_updated(order, user_id, dropped)
    _emit_after_commit(merchant, plan)
    return OrderEditResult(order=order, dropped_discounts=dropped)


# ---------------------------------------------------------------------------
# POS create
# ---------------------------------------------------------------------------


def create_pos_order(
    db: Session,
    merchant_id: int,
    request,
    user_id: int | None = None,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()

    try:
        merchant = get_merchant(db, merchant_id)
        _assert_supported_order_type(request.order_type)
        _assert_table_number(merchant, request.order_type, request.table_number)

        priced = price_items(db, merchant, request.items, now, allow_custom=True)

        drafts: list[DiscountDraft] = []
        if request.voucher_code or request.voucher_template_id:
            ctx = _voucher_context(merchant, "POS", request.order_type, priced, now)
            resolution = resolve_voucher(
                db,
                ctx,
                code=request.voucher_code,
                template_id=request.voucher_template_id,
                customer_id=request.customer_id,
            )
            drafts.append(draft_from_resolution(resolution, SOURCE_POS_VOUCHER, user_id=user_id))
        if request.manual_discount is not None:
            amount = compute_manual_discount(
                priced.subtotal, request.manual_discount.type, request.manual_discount.value
            )
            drafts.append(
                DiscountDraft(
                    source=SOURCE_MANUAL,
                    label=MANUAL_DISCOUNT_LABEL,
                    discount_type=request.manual_discount.type,
                    discount_value=request.manual_discount.value,
                    discount_amount=amount,
                    applied_by_user_id=user_id,
                )
            )
        discount_amount = total_discount(drafts)

        fees = calculate_fees(priced.subtotal, get_fee_config(merchant), request.order_type)
        total = calculate_total(priced.subtotal, fees, discount_amount)

        plan = plan_stock_changes(db, merchant.id, {}, priced.menu_quantities, {}, priced.addon_quantities)
        check_stock_plan(plan)

        order = Order(
            merchant_id=merchant.id,
            customer_id=request.customer_id,
            order_number=generate_order_number(db, merchant, now),
            order_type=request.order_type,
            status="PENDING",
            table_number=request.table_number or None,
            notes=request.notes or None,
            is_scheduled=False,
            stock_deducted_at=now,
            placed_at=now,
        )
        _apply_totals(order, priced.subtotal, fees, discount_amount, total)
        order.order_items = _build_order_items(priced)
        order.discounts = _build_discount_rows(merchant.id, drafts)
        order.payment = Payment(amount=total, method=DEFAULT_PAYMENT_METHOD, status="PENDING")
        db.add(order)
        db.flush()

        apply_stock_plan(db, plan)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "[POS_CREATE] order_id=%s number=%s merchant_id=%s total=%s",
        order.id,
        order.order_number,
        merchant.id,
        order.total_amount,
    )
    emit_order_created(order, source="POS")
    _emit_after_commit(merchant, plan)
    return order


# ---------------------------------------------------------------------------
# Customer checkout
# ---------------------------------------------------------------------------


def find_or_register_customer(db: Session, name: str, email: str, phone: str | None = None) -> Customer:
    normalized_email = (email or "").strip().lower()
    customer = db.query(Customer).filter(Customer.email == normalized_email).first()
    if customer:
        if phone and not customer.phone:
            customer.phone = phone
        return customer

    customer = Customer(name=name.strip(), email=normalized_email, phone=phone or None)
    db.add(customer)
    db.flush()
    logger.info("[CHECKOUT] registered customer customer_id=%s", customer.id)
    return customer


def _resolve_checkout_customer(db: Session, request, customer_id: int | None) -> int | None:
    if request.customer is not None:
        customer = find_or_register_customer(
            db, request.customer.name, request.customer.email, request.customer.phone
        )
        return customer.id
    return customer_id


def create_customer_order(
    db: Session,
    request,
    customer_id: int | None = None,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()

    try:
        merchant = get_active_merchant_by_code(db, request.merchant_code)
        _assert_supported_order_type(request.order_type)
        _assert_table_number(merchant, request.order_type, request.table_number)

        is_scheduled = bool(request.scheduled_time)
        if is_scheduled and parse_hhmm(request.scheduled_time) is None:
            raise PosValidationError("Scheduled time must be in HH:MM format.", "INVALID_SCHEDULED_TIME")

        priced = price_items(db, merchant, request.items, now, allow_custom=False)
        resolved_customer_id = _resolve_checkout_customer(db, request, customer_id)

        drafts: list[DiscountDraft] = []
        if request.voucher_code:
            ctx = _voucher_context(merchant, "CUSTOMER", request.order_type, priced, now)
            resolution = resolve_voucher(db, ctx, code=request.voucher_code, customer_id=resolved_customer_id)
            drafts.append(
                draft_from_resolution(resolution, SOURCE_CUSTOMER_VOUCHER, customer_id=resolved_customer_id)
            )
        discount_amount = total_discount(drafts)

        fees = calculate_fees(priced.subtotal, get_fee_config(merchant), request.order_type)
        total = calculate_total(priced.subtotal, fees, discount_amount)

        # Pedido agendado: estoque fica para a confirmação
        plan = None
        if not is_scheduled:
            plan = plan_stock_changes(db, merchant.id, {}, priced.menu_quantities, {}, priced.addon_quantities)
            check_stock_plan(plan)

        order = Order(
            merchant_id=merchant.id,
            customer_id=resolved_customer_id,
            order_number=generate_order_number(db, merchant, now),
            order_type=request.order_type,
            status="PENDING",
            table_number=request.table_number or None,
            notes=request.notes or None,
            is_scheduled=is_scheduled,
            scheduled_time=request.scheduled_time if is_scheduled else None,
            stock_deducted_at=None if is_scheduled else now,
            placed_at=now,
        )
        _apply_totals(order, priced.subtotal, fees, discount_amount, total)
        order.order_items = _build_order_items(priced)
        order.discounts = _build_discount_rows(merchant.id, drafts)
        order.payment = Payment(amount=total, method=DEFAULT_PAYMENT_METHOD, status="PENDING")
        db.add(order)
        db.flush()

        if plan is not None:
            apply_stock_plan(db, plan)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "[CHECKOUT] order_id=%s number=%s merchant_id=%s scheduled=%s total=%s",
        order.id,
        order.order_number,
        merchant.id,
        order.is_scheduled,
        order.total_amount,
    )
    emit_order_created(order, source="CUSTOMER")
    _emit_after_commit(merchant, plan)
    return order


# ---------------------------------------------------------------------------
# Scheduled orders
# ---------------------------------------------------------------------------


def deduct_scheduled_order_stock(
    db: Session,
    merchant_id: int,
    order_id: int,
    now: datetime | None = None,
) -> Order:
    """Baixa o estoque de um pedido agendado na confirmação. Idempotente."""
    now = now or utcnow()
    plan = None

    try:
        merchant = get_merchant(db, merchant_id)
        order = _load_order_for_update(db, merchant.id, order_id)
        if order.stock_deducted_at is not None:
            logger.info("[STOCK] already deducted order_id=%s", order.id)
            db.rollback()
            return order
        if (order.status or "").upper() == "CANCELLED":
            raise OrderNotEditableError("Cancelled orders cannot deduct stock.")

        new_menu_qty, new_addon_qty = quantities_from_order_items(order.order_items)
        plan = plan_stock_changes(db, merchant.id, {}, new_menu_qty, {}, new_addon_qty)
        check_stock_plan(plan)
        apply_stock_plan(db, plan)
        order.stock_deducted_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("[STOCK] scheduled order stock deducted order_id=%s", order.id)
    _emit_after_commit(merchant, plan)
    return order


# ---------------------------------------------------------------------------
# Discounts on an existing order
# ---------------------------------------------------------------------------


def _stored_fees(order: Order) -> FeeBreakdown:
    return FeeBreakdown(
        tax_amount=round2(order.tax_amount),
        service_charge_amount=round2(order.service_charge_amount),
        packaging_fee_amount=round2(order.packaging_fee_amount),
    )


def apply_discount_to_order(
    db: Session,
    merchant_id: int,
    order_id: int,
    request,
    user_id: int | None = None,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()
    has_voucher = bool(request.voucher_code or request.voucher_template_id)
    has_manual = request.manual_discount is not None

    try:
        if has_voucher == has_manual:
            raise PosValidationError("Provide either a voucher or a manual discount.", "INVALID_DISCOUNT_REQUEST")

        merchant = get_merchant(db, merchant_id)
        order = _load_order_for_update(db, merchant.id, order_id)
        _assert_order_mutable(order)

        subtotal = round2(order.subtotal)
        existing = list(order.discounts)

        if has_voucher:
            check_voucher_stacking(existing)
            ctx = VoucherContext(
                merchant_id=merchant.id,
                timezone=merchant.timezone,
                audience="POS",
                order_type=order.order_type,
                subtotal=subtotal,
                lines=[(item.menu_id, round2(item.subtotal)) for item in order.order_items if item.menu_id is not None],
                now=now,
            )
            resolution = resolve_voucher(
                db,
                ctx,
                code=request.voucher_code,
                template_id=request.voucher_template_id,
                customer_id=order.customer_id,
                exclude_order_id=order.id,
            )
            new_row = draft_from_resolution(resolution, SOURCE_POS_VOUCHER, user_id=user_id)
            kept = existing
        else:
            amount = compute_manual_discount(subtotal, request.manual_discount.type, request.manual_discount.value)
            new_row = DiscountDraft(
                source=SOURCE_MANUAL,
                label=MANUAL_DISCOUNT_LABEL,
                discount_type=request.manual_discount.type,
                discount_value=request.manual_discount.value,
                discount_amount=amount,
                applied_by_user_id=user_id,
            )
            # desconto manual substitui o anterior
            kept = [discount for discount in existing if discount.source != SOURCE_MANUAL]

        order.discounts = kept + _build_discount_rows(merchant.id, [new_row])
        discount_amount = sum2(discount.discount_amount for discount in order.discounts)
        order.discount_amount = discount_amount
        order.total_amount = calculate_total(subtotal, _stored_fees(order), discount_amount)
        if order.payment is not None:
            order.payment.amount = order.total_amount
        order.edited_at = now
        order.edited_by_user_id = user_id

        db.commit()
    except VoucherError as exc:
        db.rollback()
        logger.info("[VOUCHER] apply rejected order_id=%s code=%s", order_id, exc.error_code)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "[POS_EDIT] discount applied order_id=%s source=%s discount=%s total=%s",
        order.id,
        new_row.source,
        order.discount_amount,
        order.total_amount,
    )
    emit_order_updated(order, user_id)
    return order


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------


def quote_order(
    db: Session,
    merchant: Merchant,
    request,
    audience: str = "CUSTOMER",
    customer_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Prévia de preço (itens, voucher, taxas) sem persistir nada."""
    now = now or utcnow()
    _assert_supported_order_type(request.order_type)

    priced = price_items(db, merchant, request.items, now, allow_custom=audience == "POS")

    drafts: list[DiscountDraft] = []
    voucher_code = getattr(request, "voucher_code", None)
    if voucher_code:
        ctx = _voucher_context(merchant, audience, request.order_type, priced, now)
        resolution = resolve_voucher(db, ctx, code=voucher_code, customer_id=customer_id)
        source = SOURCE_CUSTOMER_VOUCHER if audience == "CUSTOMER" else SOURCE_POS_VOUCHER
        drafts.append(draft_from_resolution(resolution, source, customer_id=customer_id))
    discount_amount = total_discount(drafts)

    fees = calculate_fees(priced.subtotal, get_fee_config(merchant), request.order_type)
    total = calculate_total(priced.subtotal, fees, discount_amount)

    return {
        "currency": merchant.currency,
        "items": [
            {
                "menu_id": line.menu_id,
                "menu_name": line.menu_name,
                "menu_price": str(line.menu_price),
                "quantity": line.quantity,
                "subtotal": str(line.subtotal),
                "addons": [
                    {
                        "addon_item_id": addon.addon_item_id,
                        "addon_name": addon.addon_name,
                        "addon_price": str(addon.addon_price),
                        "quantity": addon.quantity,
                        "subtotal": str(addon.subtotal),
                    }
                    for addon in line.addons
                ],
            }
            for line in priced.lines
        ],
        "discounts": [
            {
                "source": draft.source,
                "label": draft.label,
                "discount_type": draft.discount_type,
                "discount_amount": str(draft.discount_amount),
            }
            for draft in drafts
        ],
        "subtotal": str(priced.subtotal),
        "tax_amount": str(fees.tax_amount),
        "service_charge_amount": str(fees.service_charge_amount),
        "packaging_fee_amount": str(fees.packaging_fee_amount),
        "discount_amount": str(discount_amount),
        "total_amount": str(total),
    }
