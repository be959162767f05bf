from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_id = Column(Integer, ForeignKey("menus.id"), nullable=True, index=True)  # NULL = item avulso (POS)
    menu_name = Column(String, nullable=False)
    menu_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # inclui os adicionais
    subtotal = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    is_custom = Column(Boolean, default=False, nullable=False)

    order = relationship("Order", back_populates="order_items")
    addons = relationship(
        "OrderItemAddon", back_populates="order_item", cascade="all, delete-orphan", order_by="OrderItemAddon.id"
    )


class OrderItemAddon(Base):
    __tablename__ = "order_item_addons"

    id = Column(Integer, primary_key=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, index=True)
    addon_item_id = Column(Integer, ForeignKey("addon_items.id"), nullable=False, index=True)
    addon_name = Column(String, nullable=False)
    addon_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    subtotal = Column(Numeric(10, 2), nullable=False)

    order_item = relationship("OrderItem", back_populates="addons")
