from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.errors import ManualDiscountError, VoucherError
from app.models.order_discount import OrderDiscount
from app.schemas.orders import PosOrderRequest
from app.services.order_mutator import create_pos_order
from app.services.vouchers import (
    POLICY_DROP,
    POLICY_REJECT,
    VoucherContext,
    calculate_discount_amount,
    check_voucher_stacking,
    compute_manual_discount,
    is_time_within_window,
    recompute_discounts,
    resolve_policy,
    resolve_voucher,
)
from tests.fixtures_data import (
    FIXED_NOW,
    make_session,
    menu_line,
    seed_category,
    seed_menu,
    seed_merchant,
    seed_voucher,
)


def _ctx(subtotal, lines=(), audience="POS", order_type="DINE_IN", now=FIXED_NOW):
    return VoucherContext(
        merchant_id=1,
        timezone="Australia/Sydney",
        audience=audience,
        order_type=order_type,
        subtotal=Decimal(subtotal),
        lines=[(menu_id, Decimal(amount)) for menu_id, amount in lines],
        now=now,
    )


def _voucher_error(db, ctx, **kwargs) -> VoucherError:
    with pytest.raises(VoucherError) as exc:
        resolve_voucher(db, ctx, **kwargs)
    return exc.value


def test_calculate_discount_amount_caps():
    assert calculate_discount_amount("PERCENTAGE", Decimal("10"), Decimal("200"), Decimal("15")) == Decimal("15.00")
    assert calculate_discount_amount("PERCENTAGE", Decimal("10"), Decimal("200")) == Decimal("20.00")
    assert calculate_discount_amount("PERCENTAGE", Decimal("150"), Decimal("40")) == Decimal("40.00")
    assert calculate_discount_amount("FIXED_AMOUNT", Decimal("60"), Decimal("50")) == Decimal("50.00")
    assert calculate_discount_amount("FIXED_AMOUNT", Decimal("5"), Decimal("0")) == Decimal("0.00")


@pytest.mark.parametrize(
    "current, start, end, expected",
    [
        (12 * 60, 11 * 60, 14 * 60, True),
        (15 * 60, 11 * 60, 14 * 60, False),
        (23 * 60, 22 * 60, 2 * 60, True),
        (1 * 60, 22 * 60, 2 * 60, True),
        (12 * 60, 22 * 60, 2 * 60, False),
        (5 * 60, 9 * 60, 9 * 60, True),
    ],
)
def test_time_window_handles_overnight_ranges(current, start, end, expected):
    assert is_time_within_window(current, start, end) is expected


def test_code_lookup_is_case_insensitive_and_label_hides_code():
    db = make_session()
    seed_merchant(db)
    template, code = seed_voucher(db, code="SAVE10")

    resolution = resolve_voucher(db, _ctx("40.00"), code="  save10 ")

    assert resolution.discount_amount == Decimal("4.00")
    assert resolution.code_id == code.id
    assert resolution.template_id == template.id
    assert resolution.label == "Ten percent off"


def test_template_without_code_resolves_by_id():
    db = make_session()
    seed_merchant(db)
    template, _ = seed_voucher(db, discount_type="FIXED_AMOUNT", discount_value=Decimal("5"))

    resolution = resolve_voucher(db, _ctx("40.00"), template_id=template.id)

    assert resolution.discount_amount == Decimal("5.00")
    assert resolution.code_id is None


@pytest.mark.parametrize(
    "kwargs, expected_code",
    [
        ({"code": "NOPE"}, "VOUCHER_NOT_FOUND"),
        ({"template_id": 999}, "VOUCHER_NOT_FOUND"),
        ({}, "VOUCHER_TEMPLATE_REQUIRED"),
    ],
)
def test_unknown_voucher(kwargs, expected_code):
    db = make_session()
    seed_merchant(db)

    assert _voucher_error(db, _ctx("40.00"), **kwargs).error_code == expected_code


def test_inactive_voucher_and_audience_mismatch():
    db = make_session()
    seed_merchant(db)
    seed_voucher(db, code="OFF", is_active=False)
    seed_voucher(db, code="APPONLY", audience="CUSTOMER")
    seed_voucher(db, code="EVERYONE", audience="BOTH")

    assert _voucher_error(db, _ctx("40.00"), code="OFF").error_code == "VOUCHER_INACTIVE"
    assert _voucher_error(db, _ctx("40.00"), code="APPONLY").error_code == "VOUCHER_NOT_APPLICABLE"
    assert resolve_voucher(db, _ctx("40.00", audience="CUSTOMER"), code="APPONLY").discount_amount == Decimal("4.00")
    assert resolve_voucher(db, _ctx("40.00"), code="EVERYONE").discount_amount == Decimal("4.00")


def test_validity_window_on_template_and_code():
    db = make_session()
    seed_merchant(db)
    seed_voucher(db, code="LATER", valid_from=FIXED_NOW + timedelta(days=1))
    seed_voucher(db, code="OLD", valid_until=FIXED_NOW - timedelta(days=1))
    _, code = seed_voucher(db, code="CODEOLD")
    code.valid_until = FIXED_NOW - timedelta(minutes=1)
    db.commit()

    assert _voucher_error(db, _ctx("40.00"), code="LATER").error_code == "VOUCHER_NOT_ACTIVE_YET"
    assert _voucher_error(db, _ctx("40.00"), code="OLD").error_code == "VOUCHER_EXPIRED"
    assert _voucher_error(db, _ctx("40.00"), code="CODEOLD").error_code == "VOUCHER_EXPIRED"


def test_day_and_time_of_day_are_checked_in_merchant_timezone():
    db = make_session()
    seed_merchant(db)
    seed_voucher(db, code="SUNDAY", days_of_week=[0])
    seed_voucher(db, code="WEDNESDAY", days_of_week=[3])
    seed_voucher(db, code="DINNER", start_time="18:00", end_time="22:00")
    seed_voucher(db, code="LATE", start_time="22:00", end_time="02:00")
    seed_voucher(db, code="BROKEN", start_time="9am", end_time="22:00")

    sunday = _voucher_error(db, _ctx("40.00"), code="SUNDAY")
    assert sunday.error_code == "VOUCHER_NOT_AVAILABLE_TODAY"
    assert sunday.details["today"] == 3
    assert resolve_voucher(db, _ctx("40.00"), code="WEDNESDAY").discount_amount == Decimal("4.00")

    dinner = _voucher_error(db, _ctx("40.00"), code="DINNER")
    assert dinner.error_code == "VOUCHER_NOT_AVAILABLE_NOW"
    assert dinner.details["now"] == "12:00"

    # 13:30 UTC = 00:30 de quinta em Sydney
    late_night = FIXED_NOW + timedelta(hours=12, minutes=30)
    assert resolve_voucher(db, _ctx("40.00", now=late_night), code="LATE").discount_amount == Decimal("4.00")

    assert _voucher_error(db, _ctx("40.00"), code="BROKEN").error_code == "VOUCHER_SCHEDULE_INVALID"


def test_order_type_login_and_minimum_order():
    db = make_session()
    seed_merchant(db)
    seed_voucher(db, code="TAKEAWAY", allowed_order_types=["TAKEAWAY"])
    seed_voucher(db, code="MEMBERS", requires_customer_login=True)
    seed_voucher(db, code="BIGORDER", min_order_amount=Decimal("50"))

    wrong_type = _voucher_error(db, _ctx("40.00"), code="TAKEAWAY")
    assert wrong_type.error_code == "VOUCHER_ORDER_TYPE_NOT_ALLOWED"
    assert resolve_voucher(db, _ctx("40.00", order_type="TAKEAWAY"), code="TAKEAWAY").discount_amount == Decimal("4.00")

    assert _voucher_error(db, _ctx("40.00"), code="MEMBERS").error_code == "VOUCHER_REQUIRES_LOGIN"
    assert resolve_voucher(db, _ctx("40.00"), code="MEMBERS", customer_id=3).discount_amount == Decimal("4.00")

    minimum = _voucher_error(db, _ctx("40.00"), code="BIGORDER")
    assert minimum.error_code == "VOUCHER_MIN_ORDER_NOT_MET"
    assert minimum.details == {"minOrderAmount": "50.00", "subtotal": "40.00"}


def test_category_scope_only_discounts_matching_lines():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, name="Classic Burger", price="20.00")
    fries = seed_menu(db, name="Fries", price="30.00")
    category = seed_category(db, menus=[burger])
    seed_voucher(
        db,
        code="BURGERS",
        discount_value=Decimal("50"),
        include_all_items=False,
        category_ids=[category.id],
    )

    resolution = resolve_voucher(db, _ctx("50.00", lines=[(burger.id, "20.00"), (fries.id, "30.00")]), code="BURGERS")

    assert resolution.eligible_subtotal == Decimal("20.00")
    assert resolution.discount_amount == Decimal("10.00")


def test_scoped_voucher_without_matching_items_is_rejected():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, price="20.00")
    fries = seed_menu(db, name="Fries", price="30.00")
    seed_voucher(db, code="FRIES", include_all_items=False, menu_ids=[fries.id])
    seed_voucher(db, code="EMPTYSCOPE", include_all_items=False)

    ctx = _ctx("20.00", lines=[(burger.id, "20.00")])
    assert _voucher_error(db, ctx, code="FRIES").error_code == "VOUCHER_NOT_APPLICABLE_ITEMS"
    assert _voucher_error(db, ctx, code="EMPTYSCOPE").error_code == "VOUCHER_NOT_APPLICABLE_ITEMS"


def test_percentage_voucher_respects_max_discount_amount():
    db = make_session()
    seed_merchant(db)
    seed_voucher(db, code="HALF", discount_value=Decimal("50"), max_discount_amount=Decimal("15"))

    assert resolve_voucher(db, _ctx("100.00"), code="HALF").discount_amount == Decimal("15.00")


def test_fixed_voucher_larger_than_order_zeroes_the_total():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, price="50.00")
    seed_voucher(db, code="SIXTY", discount_type="FIXED_AMOUNT", discount_value=Decimal("60"))

    order = create_pos_order(
        db,
        1,
        PosOrderRequest(order_type="DINE_IN", items=[menu_line(burger.id)], voucher_code="SIXTY"),
        user_id=7,
        now=FIXED_NOW,
    )

    assert order.subtotal == Decimal("50.00")
    assert order.discount_amount == Decimal("50.00")
    assert order.total_amount == Decimal("0.00")
    assert order.discounts[0].source == "POS_VOUCHER"
    assert order.discounts[0].applied_by_user_id == 7


def test_usage_limit_excludes_the_order_being_edited():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, price="40.00")
    seed_voucher(db, code="ONCE", max_uses_total=1)

    order = create_pos_order(
        db,
        1,
        PosOrderRequest(order_type="DINE_IN", items=[menu_line(burger.id)], voucher_code="ONCE"),
        now=FIXED_NOW,
    )

    limit = _voucher_error(db, _ctx("40.00"), code="ONCE")
    assert limit.error_code == "VOUCHER_USAGE_LIMIT_REACHED"
    assert limit.details == {"limit": 1, "used": 1}
    assert resolve_voucher(db, _ctx("40.00"), code="ONCE", exclude_order_id=order.id).discount_amount == Decimal("4.00")


def test_per_customer_limit_and_discount_budget():
    db = make_session()
    seed_merchant(db)
    template, code = seed_voucher(db, code="LOYAL", audience="BOTH", max_uses_per_customer=1)
    budget, _ = seed_voucher(db, code="BUDGET", total_discount_cap=Decimal("10"))
    db.add_all(
        [
            OrderDiscount(
                order_id=50,
                merchant_id=1,
                source="CUSTOMER_VOUCHER",
                label="Loyal",
                discount_type="PERCENTAGE",
                discount_value=Decimal("10"),
                discount_amount=Decimal("4.00"),
                voucher_template_id=template.id,
                voucher_code_id=code.id,
                applied_by_customer_id=3,
            ),
            OrderDiscount(
                order_id=51,
                merchant_id=1,
                source="POS_VOUCHER",
                label="Budget",
                discount_type="PERCENTAGE",
                discount_value=Decimal("10"),
                discount_amount=Decimal("10.00"),
                voucher_template_id=budget.id,
            ),
        ]
    )
    db.commit()

    customer_ctx = _ctx("40.00", audience="CUSTOMER")
    assert _voucher_error(db, customer_ctx, code="LOYAL", customer_id=3).error_code == "VOUCHER_USAGE_LIMIT_REACHED"
    assert resolve_voucher(db, customer_ctx, code="LOYAL", customer_id=4).discount_amount == Decimal("4.00")

    cap = _voucher_error(db, _ctx("40.00"), code="BUDGET")
    assert cap.error_code == "VOUCHER_DISCOUNT_CAP_REACHED"
    assert resolve_voucher(db, _ctx("40.00"), code="BUDGET", exclude_order_id=51).discount_amount == Decimal("4.00")


def test_manual_discount_rules():
    assert compute_manual_discount(Decimal("80.00"), "percentage", Decimal("12.5")) == Decimal("10.00")
    assert compute_manual_discount(Decimal("50.00"), "FIXED_AMOUNT", Decimal("80")) == Decimal("50.00")

    for discount_type, value in [("BOGUS", 5), ("FIXED_AMOUNT", 0), ("PERCENTAGE", -1), ("FIXED_AMOUNT", "abc")]:
        with pytest.raises(ManualDiscountError) as exc:
            compute_manual_discount(Decimal("50.00"), discount_type, value)
        assert exc.value.error_code == "MANUAL_DISCOUNT_INVALID"


def test_only_one_voucher_per_order():
    existing = [SimpleNamespace(source="MANUAL", label="Manual discount")]
    check_voucher_stacking(existing)

    existing.append(SimpleNamespace(source="CUSTOMER_VOUCHER", label="Welcome"))
    with pytest.raises(VoucherError) as exc:
        check_voucher_stacking(existing)

    assert exc.value.error_code == "VOUCHER_ALREADY_APPLIED"


def test_resolve_policy_defaults_to_drop():
    assert resolve_policy(None) == POLICY_DROP
    assert resolve_policy(" Reject ") == POLICY_REJECT
    assert resolve_policy("whatever") == POLICY_DROP


def test_recompute_discounts_rescales_manual_and_drops_invalid_voucher():
    db = make_session()
    seed_merchant(db)
    template, code = seed_voucher(db, code="BIGORDER", min_order_amount=Decimal("30"))
    manual = SimpleNamespace(
        source="MANUAL",
        label="Manual discount",
        discount_type="PERCENTAGE",
        discount_value=Decimal("10"),
        discount_amount=Decimal("4.00"),
        applied_by_user_id=7,
        applied_by_customer_id=None,
    )
    voucher = SimpleNamespace(
        source="POS_VOUCHER",
        label=template.name,
        discount_type="PERCENTAGE",
        discount_value=Decimal("10"),
        discount_amount=Decimal("4.00"),
        voucher_template_id=template.id,
        voucher_code_id=code.id,
        applied_by_user_id=7,
        applied_by_customer_id=None,
    )

    drafts, dropped = recompute_discounts(db, _ctx("20.00"), [manual, voucher], order_id=1, policy="drop")

    assert [draft.discount_amount for draft in drafts] == [Decimal("2.00")]
    assert dropped == [
        {
            "source": "POS_VOUCHER",
            "label": "Ten percent off",
            "discount_amount": "4.00",
            "error_code": "VOUCHER_MIN_ORDER_NOT_MET",
            "message": "Order does not meet minimum amount",
        }
    ]

    with pytest.raises(VoucherError) as exc:
        recompute_discounts(db, _ctx("20.00"), [manual, voucher], order_id=1, policy="reject")
    assert exc.value.error_code == "VOUCHER_MIN_ORDER_NOT_MET"


def test_recompute_keeps_pos_template_value_and_caps_legacy_rows():
    db = make_session()
    seed_merchant(db)
    template, _ = seed_voucher(db, discount_value=Decimal("10"))
    pos_template_row = SimpleNamespace(
        source="POS_VOUCHER",
        label=template.name,
        discount_type="PERCENTAGE",
        discount_value=Decimal("20"),
        discount_amount=Decimal("8.00"),
        voucher_template_id=template.id,
        voucher_code_id=None,
        applied_by_user_id=7,
        applied_by_customer_id=None,
    )
    legacy_row = SimpleNamespace(
        source="CUSTOMER_VOUCHER",
        label="Legacy promo",
        discount_type="FIXED_AMOUNT",
        discount_value=None,
        discount_amount=Decimal("90.00"),
        voucher_template_id=None,
        voucher_code_id=None,
        applied_by_user_id=None,
        applied_by_customer_id=3,
    )

    drafts, dropped = recompute_discounts(db, _ctx("60.00"), [pos_template_row, legacy_row], order_id=1)

    assert dropped == []
    assert drafts[0].discount_value == Decimal("20")
    assert drafts[0].discount_amount == Decimal("12.00")
    assert drafts[1].discount_amount == Decimal("60.00")
