from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderDiscount(Base):
    __tablename__ = "order_discounts"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), nullable=False, index=True)
    source = Column(String(20), nullable=False)  # POS_VOUCHER / CUSTOMER_VOUCHER / MANUAL
    label = Column(String(120), nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    voucher_template_id = Column(Integer, ForeignKey("order_voucher_templates.id"), nullable=True, index=True)
    voucher_code_id = Column(Integer, ForeignKey("order_voucher_codes.id"), nullable=True, index=True)
    applied_by_user_id = Column(Integer, nullable=True)
    applied_by_customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="discounts")
