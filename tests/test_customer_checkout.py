from decimal import Decimal

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.error_handlers import register_exception_handlers
from app.middleware.merchant_context import MerchantContextMiddleware
from app.models.customer import Customer
from app.models.menu import Menu
from app.models.order import Order
from app.routers.pos_orders import router as pos_orders_router
from app.routers.public_orders import router as public_orders_router
from tests.fixtures_data import (
    HAPPY_PATH_CUSTOMER,
    MERCHANT_HEADERS,
    custom_line,
    make_session,
    menu_line,
    seed_menu,
    seed_merchant,
    seed_voucher,
)


def _build_client() -> TestClient:
    db = make_session()
    seed_merchant(
        db,
        enable_tax=True,
        tax_percentage=Decimal("10"),
        enable_packaging_fee=True,
        packaging_fee_amount=Decimal("2.00"),
    )
    seed_merchant(db, id=2, code="closed-diner", name="Closed Diner", is_active=False)
    seed_menu(db, name="Classic Burger", price="20.00", track_stock=True, stock_qty=10)

    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(MerchantContextMiddleware)
    app.include_router(public_orders_router)
    app.include_router(pos_orders_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app)


def _db(client):
    return client.app.dependency_overrides[get_db]()


def _checkout(client, headers=None, **extra):
    payload = {
        "merchant_code": "burger-house",
        "order_type": "TAKEAWAY",
        "customer": HAPPY_PATH_CUSTOMER,
        "items": [menu_line(1, 2)],
    }
    payload.update(extra)
    return client.post("/api/public/orders", json=payload, headers=headers or {})


def test_checkout_registers_customer_and_applies_fees():
    client = _build_client()

    response = _checkout(client)

    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["subtotal"] == "40.00"
    assert data["tax_amount"] == "4.00"
    assert data["packaging_fee_amount"] == "2.00"
    assert data["total_amount"] == "46.00"
    assert data["is_scheduled"] is False
    assert data["stock_deducted_at"] is not None

    customer = _db(client).query(Customer).one()
    assert customer.email == "maria.silva@example.com"
    assert data["customer_id"] == customer.id
    assert _db(client).query(Menu).filter(Menu.id == 1).one().stock_qty == 8


def test_returning_customer_is_matched_by_email():
    client = _build_client()

    first = _checkout(client).json()["data"]
    second = _checkout(client, customer={**HAPPY_PATH_CUSTOMER, "email": "MARIA.SILVA@example.com "}).json()["data"]

    assert first["customer_id"] == second["customer_id"]
    assert _db(client).query(Customer).count() == 1


def test_dine_in_packaging_fee_is_not_charged():
    client = _build_client()

    data = _checkout(client, order_type="DINE_IN").json()["data"]

    assert data["packaging_fee_amount"] == "0.00"
    assert data["total_amount"] == "44.00"


def test_scheduled_checkout_then_merchant_confirms_stock():
    client = _build_client()

    order = _checkout(client, scheduled_time="18:30").json()["data"]

    assert order["is_scheduled"] is True
    assert order["scheduled_time"] == "18:30"
    assert order["stock_deducted_at"] is None
    assert _db(client).query(Menu).filter(Menu.id == 1).one().stock_qty == 10

    response = client.post(f"/api/merchant/orders/{order['id']}/deduct-stock", headers=MERCHANT_HEADERS)
    again = client.post(f"/api/merchant/orders/{order['id']}/deduct-stock", headers=MERCHANT_HEADERS)

    assert response.status_code == 200
    assert response.json()["data"]["stock_deducted_at"] is not None
    assert again.status_code == 200
    assert _db(client).query(Menu).filter(Menu.id == 1).one().stock_qty == 8


def test_invalid_scheduled_time_is_rejected():
    client = _build_client()

    response = _checkout(client, scheduled_time="25:99")

    assert response.status_code == 400
    assert response.json()["errorCode"] == "INVALID_SCHEDULED_TIME"
    assert _db(client).query(Order).count() == 0


def test_inactive_or_unknown_merchant_cannot_take_orders():
    client = _build_client()

    inactive = _checkout(client, merchant_code="closed-diner")
    unknown = _checkout(client, merchant_code="nope")

    assert inactive.json()["errorCode"] == "MERCHANT_INACTIVE"
    assert unknown.json()["errorCode"] == "MERCHANT_INACTIVE"


def test_customers_cannot_send_custom_items():
    client = _build_client()

    response = _checkout(client, items=[custom_line()])

    assert response.status_code == 400
    assert response.json()["errorCode"] == "POS_CUSTOM_ITEMS_DISABLED"


def test_delivery_is_not_supported():
    client = _build_client()

    response = _checkout(client, order_type="DELIVERY")

    assert response.json()["errorCode"] == "ORDER_TYPE_NOT_SUPPORTED"


def test_customer_voucher_requiring_login():
    client = _build_client()
    seed_voucher(_db(client), code="MEMBERS", audience="CUSTOMER", requires_customer_login=True)

    anonymous = _checkout(client, customer=None, voucher_code="MEMBERS")
    registered = _checkout(client, voucher_code="MEMBERS")

    assert anonymous.json()["errorCode"] == "VOUCHER_REQUIRES_LOGIN"
    data = registered.json()["data"]
    assert data["discount_amount"] == "4.00"
    assert data["discounts"][0]["discount_type"] == "PERCENTAGE"
    assert data["total_amount"] == "42.00"


def test_pos_only_voucher_is_not_available_to_customers():
    client = _build_client()
    seed_voucher(_db(client), code="STAFF", audience="POS")

    response = _checkout(client, voucher_code="STAFF")

    assert response.json()["errorCode"] == "VOUCHER_NOT_APPLICABLE"


def test_quote_prices_without_persisting():
    client = _build_client()
    seed_voucher(_db(client), code="WELCOME", audience="BOTH")

    response = client.post(
        "/api/public/orders/quote",
        json={
            "merchant_code": "burger-house",
            "order_type": "TAKEAWAY",
            "items": [menu_line(1, 2)],
            "voucher_code": "welcome",
        },
    )

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["currency"] == "AUD"
    assert data["subtotal"] == "40.00"
    assert data["discount_amount"] == "4.00"
    assert data["total_amount"] == "42.00"
    assert data["discounts"][0]["source"] == "CUSTOMER_VOUCHER"
    assert _db(client).query(Order).count() == 0
    assert _db(client).query(Menu).filter(Menu.id == 1).one().stock_qty == 10
