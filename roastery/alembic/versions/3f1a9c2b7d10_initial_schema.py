"""initial schema: coffees, shops, retail inventory, orders, alerts

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-09-14
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

KG = sa.Numeric(12, 3)

role = sa.Enum("admin", "owner", "retailer", "roaster", "barista", name="role")
coffee_grade = sa.Enum("specialty", "premium", "rarity", name="coffee_grade")
order_status = sa.Enum("pending", "confirmed", "roasted", "delivered", "cancelled", name="order_status")
alert_level = sa.Enum("ok", "warning", "critical", name="alert_level")


def _package_columns() -> list[sa.Column]:
    return [
        sa.Column("small_bags_espresso", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("small_bags_filter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("medium_bags_espresso", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("medium_bags_filter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("large_bags", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_quantity_kg", KG, nullable=False, server_default="0"),
    ]


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("role", role, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )

    op.create_table(
        "shops",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("address", sa.String(255)),
        sa.Column("min_small_bags", sa.Integer()),
        sa.Column("min_medium_bags", sa.Integer()),
        sa.Column("min_large_bags", sa.Integer()),
        _ts("created_at"),
        sa.CheckConstraint("min_small_bags IS NULL OR min_small_bags >= 0", name="ck_shop_min_small_nonneg"),
        sa.CheckConstraint("min_medium_bags IS NULL OR min_medium_bags >= 0", name="ck_shop_min_medium_nonneg"),
        sa.CheckConstraint("min_large_bags IS NULL OR min_large_bags >= 0", name="ck_shop_min_large_nonneg"),
    )

    op.create_table(
        "shop_users",
        sa.Column("shop_id", sa.BigInteger(), sa.ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _ts("created_at"),
    )

    op.create_table(
        "coffees",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("origin", sa.String(128)),
        sa.Column("producer", sa.String(128)),
        sa.Column("process", sa.String(64)),
        sa.Column("grade", coffee_grade),
        sa.Column("quantity_kg", KG, nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "retail_inventory",
        sa.Column("shop_id", sa.BigInteger(), sa.ForeignKey("shops.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("coffee_id", sa.BigInteger(), sa.ForeignKey("coffees.id", ondelete="RESTRICT"), primary_key=True),
        *_package_columns(),
        _ts("last_order_date", nullable=True),
        _ts("updated_at"),
    )

    op.create_table(
        "retail_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("shop_id", sa.BigInteger(), sa.ForeignKey("shops.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("ordered_by_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_retail_orders_shop_id", "retail_orders", ["shop_id"])
    op.create_index("ix_retail_orders_status_created", "retail_orders", ["status", "created_at"])

    op.create_table(
        "retail_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "order_id",
            sa.BigInteger(),
            sa.ForeignKey("retail_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("coffee_id", sa.BigInteger(), sa.ForeignKey("coffees.id", ondelete="RESTRICT"), nullable=False),
        *_package_columns(),
        sa.Column("green_quantity_kg", KG, nullable=False),
    )
    op.create_index("ix_retail_order_items_order_id", "retail_order_items", ["order_id"])

    op.create_table(
        "haircut_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        _ts("updated_at"),
        sa.Column("updated_by_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_haircut_percentage_0_100"),
    )

    op.create_table(
        "shop_alert_states",
        sa.Column("shop_id", sa.BigInteger(), sa.ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("level", alert_level, nullable=False),
        _ts("evaluated_at"),
    )

    op.create_table(
        "alert_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("shop_id", sa.BigInteger(), sa.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False),
        sa.Column("alert_type", alert_level, nullable=False),
        sa.Column("total_small_bags", sa.Integer(), nullable=False),
        sa.Column("total_medium_bags", sa.Integer(), nullable=False),
        sa.Column("total_large_bags", sa.Integer(), nullable=False),
        sa.Column("min_small_bags", sa.Integer()),
        sa.Column("min_medium_bags", sa.Integer()),
        sa.Column("min_large_bags", sa.Integer()),
        sa.Column("small_bags_percentage", sa.Numeric(7, 2)),
        sa.Column("medium_bags_percentage", sa.Numeric(7, 2)),
        sa.Column("large_bags_percentage", sa.Numeric(7, 2)),
        _ts("created_at"),
    )
    op.create_index("ix_alert_logs_shop_time", "alert_logs", ["shop_id", "created_at"])

    op.create_table(
        "alert_log_recipients",
        sa.Column(
            "alert_log_id",
            sa.BigInteger(),
            sa.ForeignKey("alert_logs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "coffee_inventory_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("coffee_id", sa.BigInteger(), sa.ForeignKey("coffees.id", ondelete="CASCADE"), nullable=False),
        sa.Column("change_kg", KG, nullable=False),
        sa.Column("balance_kg", KG, nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("retail_orders.id", ondelete="SET NULL")),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        _ts("created_at"),
    )
    op.create_index("ix_coffee_inventory_logs_coffee_id", "coffee_inventory_logs", ["coffee_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.Text()),
        _ts("created_at"),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    for table in (
        "audit_log",
        "coffee_inventory_logs",
        "alert_log_recipients",
        "alert_logs",
        "shop_alert_states",
        "haircut_settings",
        "retail_order_items",
        "retail_orders",
        "retail_inventory",
        "coffees",
        "shop_users",
        "shops",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (alert_level, order_status, coffee_grade, role):
        enum_type.drop(bind, checkfirst=True)
