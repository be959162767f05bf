from __future__ import annotations

from alembic import op

from app.core.database import Base
import app.models  # noqa: F401

revision = "0001_ordering_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Schema inicial: merchants, cardápio, pedidos, vouchers e descontos
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
