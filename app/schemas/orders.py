from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

OrderType = Literal["DINE_IN", "TAKEAWAY", "DELIVERY"]
DiscountType = Literal["PERCENTAGE", "FIXED_AMOUNT"]


class AddonSelection(BaseModel):
    addon_item_id: int
    quantity: int = 1


class MenuLineRequest(BaseModel):
    type: Literal["MENU"] = "MENU"
    menu_id: int
    # validação de inteiro positivo acontece no pricing (INVALID_QUANTITY)
    quantity: Union[int, float]
    notes: Optional[str] = None
    addons: list[AddonSelection] = Field(default_factory=list)


class CustomLineRequest(BaseModel):
    type: Literal["CUSTOM"]
    custom_name: Optional[str] = None
    custom_price: Optional[Decimal] = None
    quantity: Union[int, float]
    notes: Optional[str] = None
    addons: list[AddonSelection] = Field(default_factory=list)


LineRequest = Annotated[Union[MenuLineRequest, CustomLineRequest], Field(discriminator="type")]


class ManualDiscountRequest(BaseModel):
    type: DiscountType
    value: Decimal


class PosOrderRequest(BaseModel):
    order_type: OrderType
    table_number: Optional[str] = None
    notes: Optional[str] = None
    customer_id: Optional[int] = None
    items: list[LineRequest] = Field(default_factory=list)
    voucher_code: Optional[str] = None
    voucher_template_id: Optional[int] = None
    manual_discount: Optional[ManualDiscountRequest] = None


class PosOrderEditRequest(BaseModel):
    order_type: OrderType
    table_number: Optional[str] = None
    notes: Optional[str] = None
    items: list[LineRequest] = Field(default_factory=list)
    # sobrescreve DISCOUNT_REVALIDATION_POLICY por chamada
    discount_policy: Optional[Literal["drop", "reject"]] = None


class DiscountApplyRequest(BaseModel):
    voucher_code: Optional[str] = None
    voucher_template_id: Optional[int] = None
    manual_discount: Optional[ManualDiscountRequest] = None


class CustomerInfo(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        if "@" not in normalized:
            raise ValueError("invalid email")
        return normalized

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("name is required")
        return normalized


class CustomerOrderRequest(BaseModel):
    merchant_code: str
    order_type: OrderType
    table_number: Optional[str] = None
    notes: Optional[str] = None
    customer: Optional[CustomerInfo] = None
    items: list[LineRequest] = Field(default_factory=list)
    voucher_code: Optional[str] = None
    scheduled_time: Optional[str] = None


class QuoteRequest(BaseModel):
    merchant_code: str
    order_type: OrderType
    items: list[LineRequest] = Field(default_factory=list)
    voucher_code: Optional[str] = None
    customer_email: Optional[str] = None
