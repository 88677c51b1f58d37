"""add coffees / retail_inventory / order items nonneg constraints

Revision ID: 11dc41ad9497
Revises: 3f1a9c2b7d10
Create Date: 2026-09-21
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "11dc41ad9497"
down_revision: Union[str, Sequence[str], None] = "3f1a9c2b7d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COUNT_COLUMNS = (
    "small_bags_espresso",
    "small_bags_filter",
    "medium_bags_espresso",
    "medium_bags_filter",
    "large_bags",
)

# (table, nom de contrainte, expression)
CHECKS: list[tuple[str, str, str]] = (
    [("coffees", "ck_coffee_quantity_nonneg", "quantity_kg >= 0")]
    + [("retail_inventory", f"ck_retail_inv_{col}_nonneg", f"{col} >= 0") for col in COUNT_COLUMNS]
    + [("retail_inventory", "ck_retail_inv_total_nonneg", "total_quantity_kg >= 0")]
    + [("retail_order_items", f"ck_order_item_{col}_nonneg", f"{col} >= 0") for col in COUNT_COLUMNS]
    + [("retail_order_items", "ck_order_item_total_nonneg", "total_quantity_kg >= 0")]
    + [
        ("retail_order_items", "ck_order_item_green_nonneg", "green_quantity_kg >= 0"),
        ("coffee_inventory_logs", "ck_coffee_log_balance_nonneg", "balance_kg >= 0"),
    ]
)


def _add_check_if_missing(table_name: str, constraint_name: str, check_sql: str) -> None:
    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{table_name}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {table_name}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    # Pas de clamp à 0 des données sales : un stock négatif est un bug
    # du ledger, on préfère que la migration échoue.
    for table_name, constraint_name, check_sql in CHECKS:
        _add_check_if_missing(table_name, constraint_name, check_sql)


def downgrade() -> None:
    for table_name, constraint_name, _ in reversed(CHECKS):
        op.execute(f"ALTER TABLE {table_name} DROP CONSTRAINT IF EXISTS {constraint_name};")
