import sqlalchemy as sa
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class SpecialPrice(Base):
    __tablename__ = "special_prices"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), index=True, nullable=False)
    name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # 0 = domingo ... 6 = sábado; lista vazia = todos os dias
    applicable_days = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    is_all_day = Column(Boolean, default=True, nullable=False)
    start_time = Column(String(5), nullable=True)  # HH:MM
    end_time = Column(String(5), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship("SpecialPriceItem", back_populates="special_price", cascade="all, delete-orphan")


class SpecialPriceItem(Base):
    __tablename__ = "special_price_items"

    id = Column(Integer, primary_key=True)
    special_price_id = Column(Integer, ForeignKey("special_prices.id"), index=True, nullable=False)
    menu_id = Column(Integer, ForeignKey("menus.id"), index=True, nullable=False)
    promo_price = Column(Numeric(10, 2), nullable=False)

    special_price = relationship("SpecialPrice", back_populates="items")
