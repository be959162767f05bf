import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderVoucherTemplate(Base):
    __tablename__ = "order_voucher_templates"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    audience = Column(String(20), default="POS", nullable=False)  # POS / CUSTOMER / BOTH
    discount_type = Column(String(20), nullable=False)  # PERCENTAGE / FIXED_AMOUNT
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)
    min_order_amount = Column(Numeric(10, 2), nullable=True)
    max_uses_total = Column(Integer, nullable=True)
    max_uses_per_customer = Column(Integer, nullable=True)
    max_uses_per_order = Column(Integer, nullable=True)
    total_discount_cap = Column(Numeric(10, 2), nullable=True)
    requires_customer_login = Column(Boolean, default=False, nullable=False)
    allowed_order_types = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    days_of_week = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    include_all_items = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    codes = relationship("OrderVoucherCode", back_populates="template", cascade="all, delete-orphan")
    scoped_menus = relationship("OrderVoucherTemplateMenu", cascade="all, delete-orphan")
    scoped_categories = relationship("OrderVoucherTemplateCategory", cascade="all, delete-orphan")


class OrderVoucherTemplateMenu(Base):
    __tablename__ = "order_voucher_template_menus"

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey("order_voucher_templates.id"), nullable=False, index=True)
    menu_id = Column(Integer, ForeignKey("menus.id"), nullable=False, index=True)


class OrderVoucherTemplateCategory(Base):
    __tablename__ = "order_voucher_template_categories"

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey("order_voucher_templates.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("menu_categories.id"), nullable=False, index=True)


class OrderVoucherCode(Base):
    __tablename__ = "order_voucher_codes"
    __table_args__ = (UniqueConstraint("merchant_id", "code", name="uq_order_voucher_codes_merchant_code"),)

    id = Column(Integer, primary_key=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("order_voucher_templates.id"), nullable=False, index=True)
    code = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    max_uses_total = Column(Integer, nullable=True)
    max_uses_per_customer = Column(Integer, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    template = relationship("OrderVoucherTemplate", back_populates="codes")
