from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("merchant_id", "order_number", name="uq_orders_merchant_number"),)

    id = Column(Integer, primary_key=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)

    order_number = Column(String(32), nullable=False)
    order_type = Column(String(20), nullable=False)  # DINE_IN / TAKEAWAY / DELIVERY
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING / ACCEPTED / IN_PROGRESS / READY / COMPLETED / CANCELLED
    table_number = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    # Pedido agendado: estoque só é baixado na confirmação
    is_scheduled = Column(Boolean, default=False, nullable=False)
    scheduled_time = Column(String(5), nullable=True)
    stock_deducted_at = Column(DateTime(timezone=True), nullable=True)

    subtotal = Column(Numeric(10, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0, nullable=False)
    service_charge_amount = Column(Numeric(10, 2), default=0, nullable=False)
    packaging_fee_amount = Column(Numeric(10, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), default=0, nullable=False)

    placed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    edited_by_user_id = Column(Integer, nullable=True)

    customer = relationship("Customer", back_populates="orders")
    order_items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    discounts = relationship(
        "OrderDiscount", back_populates="order", cascade="all, delete-orphan", order_by="OrderDiscount.id"
    )
    payment = relationship("Payment", back_populates="order", uselist=False, cascade="all, delete-orphan")
