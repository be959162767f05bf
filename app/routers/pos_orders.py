from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import OrderNotFoundError
from app.core.responses import success_response
from app.deps import get_request_user_id, require_merchant_context
from app.models.order import Order
from app.schemas.orders import DiscountApplyRequest, PosOrderEditRequest, PosOrderRequest
from app.services.order_mutator import (
    apply_discount_to_order,
    create_pos_order,
    deduct_scheduled_order_stock,
    edit_pos_order,
)
from app.services.order_serializer import order_to_dict

router = APIRouter(prefix="/api/merchant/orders", tags=["pos-orders"])


@router.get("/pos/{order_id}")
def get_pos_order(
    order_id: int,
    merchant_id: int = Depends(require_merchant_context),
    db: Session = Depends(get_db),
):
    order = db.query(Order).filter(Order.id == order_id, Order.merchant_id == merchant_id).first()
    if not order:
        raise OrderNotFoundError()
    return success_response(order_to_dict(order))


@router.put("/pos/{order_id}")
def update_pos_order(
    order_id: int,
    payload: PosOrderEditRequest,
    merchant_id: int = Depends(require_merchant_context),
    user_id: int | None = Depends(get_request_user_id),
    db: Session = Depends(get_db),
):
    result = edit_pos_order(
        db,
        merchant_id,
        order_id,
        payload,
        user_id=user_id,
        policy=payload.discount_policy,
    )
    data = order_to_dict(result.order)
    data["dropped_discounts"] = result.dropped_discounts
    return success_response(data, "Order updated successfully")


@router.post("/pos", status_code=201)
def create_order_from_pos(
    payload: PosOrderRequest,
    merchant_id: int = Depends(require_merchant_context),
    user_id: int | None = Depends(get_request_user_id),
    db: Session = Depends(get_db),
):
    order = create_pos_order(db, merchant_id, payload, user_id=user_id)
    return success_response(order_to_dict(order), "Order created successfully", status_code=201)


@router.post("/pos/{order_id}/discounts")
def add_order_discount(
    order_id: int,
    payload: DiscountApplyRequest,
    merchant_id: int = Depends(require_merchant_context),
    user_id: int | None = Depends(get_request_user_id),
    db: Session = Depends(get_db),
):
    order = apply_discount_to_order(db, merchant_id, order_id, payload, user_id=user_id)
    return success_response(order_to_dict(order), "Discount applied successfully")


@router.post("/{order_id}/deduct-stock")
def deduct_order_stock(
    order_id: int,
    merchant_id: int = Depends(require_merchant_context),
    db: Session = Depends(get_db),
):
    order = deduct_scheduled_order_stock(db, merchant_id, order_id)
    return success_response(order_to_dict(order), "Stock deducted")
