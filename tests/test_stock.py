from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from app.core.errors import InsufficientStockError, OrderNotEditableError
from app.models.menu import Menu
from app.schemas.orders import CustomerOrderRequest, PosOrderEditRequest, PosOrderRequest
from app.services.order_events import STOCK_LOW, STOCK_OUT
from app.services.order_mutator import (
    create_customer_order,
    create_pos_order,
    deduct_scheduled_order_stock,
    edit_pos_order,
)
from app.services.stock import (
    StockChange,
    StockPlan,
    apply_stock_plan,
    build_stock_alerts,
    plan_stock_changes,
    quantities_from_order_items,
)
from tests.fixtures_data import FIXED_NOW, make_session, menu_line, seed_addon, seed_menu, seed_merchant


def _create(db, items, order_type="DINE_IN"):
    return create_pos_order(db, 1, PosOrderRequest(order_type=order_type, items=items), user_id=7, now=FIXED_NOW)


def _edit(db, order_id, items, order_type="DINE_IN"):
    return edit_pos_order(
        db, 1, order_id, PosOrderEditRequest(order_type=order_type, items=items), user_id=7, now=FIXED_NOW
    )


def _stock(db, menu) -> int:
    db.refresh(menu)
    return menu.stock_qty


def test_reducing_quantity_restores_stock():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=10)

    order = _create(db, [menu_line(burger.id, 3)])
    assert _stock(db, burger) == 7

    _edit(db, order.id, [menu_line(burger.id, 1)])
    assert _stock(db, burger) == 9


def test_increase_beyond_stock_fails_and_leaves_everything_unchanged():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=3)
    order = _create(db, [menu_line(burger.id, 1)])
    assert _stock(db, burger) == 2

    with pytest.raises(InsufficientStockError) as exc:
        _edit(db, order.id, [menu_line(burger.id, 5)])

    assert exc.value.error_code == "INSUFFICIENT_STOCK"
    assert exc.value.details == {"entity": "menu", "id": burger.id, "name": "Classic Burger"}
    assert _stock(db, burger) == 2
    db.refresh(order)
    assert [item.quantity for item in order.order_items] == [1]
    assert order.subtotal == Decimal("20.00")


def test_removing_an_item_restores_all_of_it_and_addons_too():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=5)
    fries = seed_menu(db, name="Fries", price="6.00")
    bacon = seed_addon(db, name="Bacon", track_stock=True, stock_qty=4)

    order = _create(db, [menu_line(burger.id, 2, [(bacon.id, 2)])])
    db.refresh(bacon)
    assert (_stock(db, burger), bacon.stock_qty) == (3, 2)

    _edit(db, order.id, [menu_line(fries.id, 1)])
    db.refresh(bacon)
    assert (_stock(db, burger), bacon.stock_qty) == (5, 4)


def test_sold_out_item_can_be_reduced_on_its_own_order():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=3)

    order = _create(db, [menu_line(burger.id, 3)])
    db.refresh(burger)
    assert (burger.stock_qty, burger.is_active) == (0, False)

    _edit(db, order.id, [menu_line(burger.id, 1)])
    db.refresh(burger)
    assert (burger.stock_qty, burger.is_active) == (2, True)


def test_untracked_items_never_touch_stock():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=False, stock_qty=None)

    order = _create(db, [menu_line(burger.id, 50)])
    _edit(db, order.id, [menu_line(burger.id, 80)])

    assert _stock(db, burger) is None


def test_guarded_decrement_rejects_stale_plans():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=5)
    plan = plan_stock_changes(db, 1, {}, {burger.id: 3})

    # outra transação consumiu o estoque depois do planejamento
    db.query(Menu).filter(Menu.id == burger.id).update({"stock_qty": 1})
    db.commit()

    with pytest.raises(InsufficientStockError):
        apply_stock_plan(db, plan)
    db.rollback()
    assert _stock(db, burger) == 1


def test_quantities_from_order_items_ignore_custom_lines():
    items = [
        SimpleNamespace(menu_id=1, is_custom=False, quantity=2, addons=[SimpleNamespace(addon_item_id=9, quantity=1)]),
        SimpleNamespace(menu_id=1, is_custom=False, quantity=1, addons=[SimpleNamespace(addon_item_id=9, quantity=2)]),
        SimpleNamespace(menu_id=None, is_custom=True, quantity=4, addons=[]),
    ]

    assert quantities_from_order_items(items) == ({1: 3}, {9: 3})


def _change(delta, stock_qty, threshold=None):
    return StockChange(entity="menu", entity_id=1, name="Classic Burger", delta=delta, stock_qty=stock_qty, low_stock_threshold=threshold)


def test_stock_alerts_low_and_out():
    merchant = SimpleNamespace(stock_alert_enabled=True, default_low_stock_threshold=5)

    low = build_stock_alerts(merchant, StockPlan([_change(2, 6)]))
    out = build_stock_alerts(merchant, StockPlan([_change(2, 2)]))
    already_low = build_stock_alerts(merchant, StockPlan([_change(1, 4)]))
    restock = build_stock_alerts(merchant, StockPlan([_change(-3, 1)]))

    assert low == [{"kind": "low", "entity": "menu", "id": 1, "name": "Classic Burger", "stock_qty": 4, "threshold": 5}]
    assert out[0]["kind"] == "out"
    assert already_low == []
    assert restock == []


def test_stock_alerts_respect_entity_threshold_and_toggle():
    merchant = SimpleNamespace(stock_alert_enabled=True, default_low_stock_threshold=5)
    assert build_stock_alerts(merchant, StockPlan([_change(2, 6, threshold=0)])) == []

    merchant.stock_alert_enabled = False
    assert build_stock_alerts(merchant, StockPlan([_change(6, 6)])) == []


def test_stock_alert_events_are_emitted_after_commit():
    db = make_session()
    seed_merchant(db, stock_alert_enabled=True, default_low_stock_threshold=5)
    burger = seed_menu(db, track_stock=True, stock_qty=6)
    fries = seed_menu(db, name="Fries", price="6.00", track_stock=True, stock_qty=1)

    with patch("app.services.order_events.event_bus.emit") as emit:
        _create(db, [menu_line(burger.id, 2), menu_line(fries.id, 1)])

    emitted = {call.args[0]: call.args[1] for call in emit.call_args_list}
    assert emitted[STOCK_LOW]["id"] == burger.id
    assert emitted[STOCK_LOW]["stock_qty"] == 4
    assert emitted[STOCK_OUT]["id"] == fries.id
    assert emitted[STOCK_OUT]["merchant_id"] == 1


def test_scheduled_order_defers_stock_until_deduction():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=10)
    order = create_customer_order(
        db,
        CustomerOrderRequest(
            merchant_code="burger-house",
            order_type="TAKEAWAY",
            items=[menu_line(burger.id, 2)],
            scheduled_time="18:30",
        ),
        now=FIXED_NOW,
    )
    assert order.is_scheduled is True
    assert order.stock_deducted_at is None
    assert _stock(db, burger) == 10

    # edição antes da confirmação não mexe no estoque
    _edit(db, order.id, [menu_line(burger.id, 4)], order_type="TAKEAWAY")
    assert _stock(db, burger) == 10

    deducted = deduct_scheduled_order_stock(db, 1, order.id, now=FIXED_NOW)
    assert deducted.stock_deducted_at is not None
    assert _stock(db, burger) == 6

    deduct_scheduled_order_stock(db, 1, order.id, now=FIXED_NOW)
    assert _stock(db, burger) == 6

    # depois da baixa, edições reconciliam normalmente
    _edit(db, order.id, [menu_line(burger.id, 1)], order_type="TAKEAWAY")
    assert _stock(db, burger) == 9


def test_cancelled_scheduled_order_cannot_deduct_stock():
    db = make_session()
    seed_merchant(db)
    burger = seed_menu(db, track_stock=True, stock_qty=10)
    order = create_customer_order(
        db,
        CustomerOrderRequest(
            merchant_code="burger-house",
            order_type="TAKEAWAY",
            items=[menu_line(burger.id, 2)],
            scheduled_time="18:30",
        ),
        now=FIXED_NOW,
    )
    order.status = "CANCELLED"
    db.commit()

    with pytest.raises(OrderNotEditableError):
        deduct_scheduled_order_stock(db, 1, order.id, now=FIXED_NOW)
    assert _stock(db, burger) == 10
