from app.models.merchant import Merchant
from app.models.menu_category import MenuCategory, MenuCategoryItem
from app.models.menu import Menu
from app.models.addon_item import AddonItem
from app.models.special_price import SpecialPrice, SpecialPriceItem
from app.models.customer import Customer
from app.models.order import Order
from app.models.order_item import OrderItem, OrderItemAddon
from app.models.payment import Payment
from app.models.voucher import (
    OrderVoucherCode,
    OrderVoucherTemplate,
    OrderVoucherTemplateCategory,
    OrderVoucherTemplateMenu,
)
from app.models.order_discount import OrderDiscount
