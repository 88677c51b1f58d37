"""green coffee kg columns: numeric(12,3) -> numeric(14,5)

Revision ID: 5c8d2e4f9a71
Revises: 11dc41ad9497
Create Date: 2026-10-20
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c8d2e4f9a71"
down_revision: Union[str, Sequence[str], None] = "11dc41ad9497"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OLD = sa.Numeric(12, 3)
NEW = sa.Numeric(14, 5)

# (table, colonne)
GREEN_COLUMNS = (
    ("coffees", "quantity_kg"),
    ("retail_order_items", "green_quantity_kg"),
    ("coffee_inventory_logs", "change_kg"),
    ("coffee_inventory_logs", "balance_kg"),
)


def upgrade() -> None:
    # élargissement sans perte : les valeurs existantes restent au gramme
    for table_name, column_name in GREEN_COLUMNS:
        op.alter_column(table_name, column_name, type_=NEW, existing_type=OLD, existing_nullable=False)


def downgrade() -> None:
    # Attention : arrondit au gramme, les annulations ultérieures ne rendent plus exactement
    for table_name, column_name in GREEN_COLUMNS:
        op.alter_column(table_name, column_name, type_=OLD, existing_type=NEW, existing_nullable=False)
