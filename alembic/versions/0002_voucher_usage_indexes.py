from __future__ import annotations

from alembic import op
from sqlalchemy import inspect


revision = "0002_voucher_usage_indexes"
down_revision = "0001_ordering_schema"
branch_labels = None
depends_on = None

_INDEXES = {
    "ix_order_discounts_template_customer": (
        "order_discounts",
        ["merchant_id", "voucher_template_id", "applied_by_customer_id"],
    ),
    "ix_order_discounts_code_customer": (
        "order_discounts",
        ["merchant_id", "voucher_code_id", "applied_by_customer_id"],
    ),
    "ix_special_price_items_menu_price": ("special_price_items", ["menu_id", "special_price_id"]),
}


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def upgrade() -> None:
    inspector = inspect(op.get_bind())
    for index_name, (table_name, columns) in _INDEXES.items():
        if not _has_index(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    inspector = inspect(op.get_bind())
    for index_name, (table_name, _columns) in _INDEXES.items():
        if _has_index(inspector, table_name, index_name):
            op.drop_index(index_name, table_name=table_name)
