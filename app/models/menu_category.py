from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship("MenuCategoryItem", back_populates="category", cascade="all, delete-orphan")


class MenuCategoryItem(Base):
    __tablename__ = "menu_category_items"
    __table_args__ = (UniqueConstraint("category_id", "menu_id", name="uq_menu_category_items_pair"),)

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("menu_categories.id"), index=True, nullable=False)
    menu_id = Column(Integer, ForeignKey("menus.id"), index=True, nullable=False)

    category = relationship("MenuCategory", back_populates="items")
    menu = relationship("Menu", back_populates="category_links")
