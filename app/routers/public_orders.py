from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.responses import success_response
from app.deps import get_request_customer_id
from app.models.customer import Customer
from app.schemas.orders import CustomerOrderRequest, QuoteRequest
from app.services.merchant_settings import get_active_merchant_by_code
from app.services.order_mutator import create_customer_order, quote_order
from app.services.order_serializer import order_to_dict

router = APIRouter(prefix="/api/public/orders", tags=["public-orders"])


@router.post("", status_code=201)
def checkout(
    payload: CustomerOrderRequest,
    customer_id: int | None = Depends(get_request_customer_id),
    db: Session = Depends(get_db),
):
    order = create_customer_order(db, payload, customer_id=customer_id)
    return success_response(order_to_dict(order), "Order created successfully", status_code=201)


@router.post("/quote")
def quote(
    payload: QuoteRequest,
    customer_id: int | None = Depends(get_request_customer_id),
    db: Session = Depends(get_db),
):
    merchant = get_active_merchant_by_code(db, payload.merchant_code)
    if customer_id is None and payload.customer_email:
        customer = (
            db.query(Customer)
            .filter(Customer.email == payload.customer_email.strip().lower())
            .first()
        )
        customer_id = customer.id if customer else None
    return success_response(quote_order(db, merchant, payload, audience="CUSTOMER", customer_id=customer_id))
