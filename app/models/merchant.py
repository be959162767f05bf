import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(Integer, primary_key=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    currency = Column(String(3), default="AUD", nullable=False)
    timezone = Column(String(64), default="Australia/Sydney", nullable=False)

    # Taxas e encargos
    enable_tax = Column(Boolean, default=False, nullable=False)
    tax_percentage = Column(Numeric(5, 2), nullable=True)
    enable_service_charge = Column(Boolean, default=False, nullable=False)
    service_charge_percent = Column(Numeric(5, 2), nullable=True)
    enable_packaging_fee = Column(Boolean, default=False, nullable=False)
    packaging_fee_amount = Column(Numeric(10, 2), nullable=True)

    # Estoque
    stock_alert_enabled = Column(Boolean, default=False, nullable=False)
    default_low_stock_threshold = Column(Integer, nullable=True)

    require_table_number_for_dine_in = Column(Boolean, default=False, nullable=False)

    # {"pos_custom_items": {...}, "pos_edit_order": {...}}
    features = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
