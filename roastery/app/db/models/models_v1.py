from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Table,
    Column,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roastery.app.db.base import Base
from roastery.app.db.models.core_types import (
    Role,
    OrderStatus,
    PackageType,
    AlertLevel,
    CoffeeGrade,
    PACKAGE_COLUMNS,
)

# BIGINT en prod, INTEGER sous SQLite (sinon pas d'autoincrement)
BigId = BigInteger().with_variant(Integer, "sqlite")

# Poids retail en kg (multiples de 0.1 kg)
Kg = Numeric(12, 3)

# Café vert : retail * (1 + h/100) avec h à 2 décimales, exact sur 5 décimales
GreenKg = Numeric(14, 5)


# ---------- AUTH ----------
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


# ---------- MASTER DATA ----------
class Shop(Base):
    __tablename__ = "shops"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(String(255))

    # Seuils minimum par classe de paquet (NULL / 0 = non configuré)
    min_small_bags: Mapped[int | None] = mapped_column(Integer)
    min_medium_bags: Mapped[int | None] = mapped_column(Integer)
    min_large_bags: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    members: Mapped[list["ShopUser"]] = relationship(back_populates="shop", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("min_small_bags IS NULL OR min_small_bags >= 0", name="ck_shop_min_small_nonneg"),
        CheckConstraint("min_medium_bags IS NULL OR min_medium_bags >= 0", name="ck_shop_min_medium_nonneg"),
        CheckConstraint("min_large_bags IS NULL OR min_large_bags >= 0", name="ck_shop_min_large_nonneg"),
    )


class ShopUser(Base):
    __tablename__ = "shop_users"
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    shop: Mapped[Shop] = relationship(back_populates="members")
    user: Mapped[User] = relationship()


class Coffee(Base):
    """Lot de café vert. quantity_kg n'est modifié QUE par services.inventory."""

    __tablename__ = "coffees"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    origin: Mapped[str | None] = mapped_column(String(128))
    producer: Mapped[str | None] = mapped_column(String(128))
    process: Mapped[str | None] = mapped_column(String(64))
    grade: Mapped[CoffeeGrade | None] = mapped_column(Enum(CoffeeGrade, name="coffee_grade"))
    quantity_kg: Mapped[Decimal] = mapped_column(GreenKg, default=Decimal("0"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (CheckConstraint("quantity_kg >= 0", name="ck_coffee_quantity_nonneg"),)


# ---------- RETAIL ----------
class PackageCountsMixin:
    small_bags_espresso: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    small_bags_filter: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    medium_bags_espresso: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    medium_bags_filter: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    large_bags: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Dérivé : toujours recalculé depuis les compteurs, jamais incrémenté
    total_quantity_kg: Mapped[Decimal] = mapped_column(Kg, default=Decimal("0"), nullable=False)

    def counts(self) -> dict[PackageType, int]:
        return {ptype: int(getattr(self, col) or 0) for ptype, col in PACKAGE_COLUMNS.items()}


def _nonneg_counts(prefix: str) -> tuple[CheckConstraint, ...]:
    return tuple(
        CheckConstraint(f"{col} >= 0", name=f"ck_{prefix}_{col}_nonneg")
        for col in PACKAGE_COLUMNS.values()
    ) + (CheckConstraint("total_quantity_kg >= 0", name=f"ck_{prefix}_total_nonneg"),)


class RetailInventory(PackageCountsMixin, Base):
    __tablename__ = "retail_inventory"
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="RESTRICT"), primary_key=True)
    coffee_id: Mapped[int] = mapped_column(ForeignKey("coffees.id", ondelete="RESTRICT"), primary_key=True)

    last_order_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    coffee: Mapped[Coffee] = relationship()

    __table_args__ = _nonneg_counts("retail_inv")


class Order(Base):
    __tablename__ = "retail_orders"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="RESTRICT"), nullable=False, index=True)
    ordered_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.pending,
        nullable=False,
    )

    # Idempotence de la soumission (clé unique, nullable OK)
    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    shop: Mapped[Shop] = relationship()
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (Index("ix_retail_orders_status_created", "status", "created_at"),)


class OrderItem(PackageCountsMixin, Base):
    __tablename__ = "retail_order_items"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("retail_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    coffee_id: Mapped[int] = mapped_column(ForeignKey("coffees.id", ondelete="RESTRICT"), nullable=False)

    # Café vert réellement débité à la création (haircut inclus).
    # L'annulation rend exactement ce montant.
    green_quantity_kg: Mapped[Decimal] = mapped_column(GreenKg, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    coffee: Mapped[Coffee] = relationship()

    __table_args__ = _nonneg_counts("order_item") + (
        CheckConstraint("green_quantity_kg >= 0", name="ck_order_item_green_nonneg"),
    )


# ---------- SETTINGS ----------
class HaircutSetting(Base):
    """Singleton (id = 1)."""

    __tablename__ = "haircut_settings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
    updated_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    __table_args__ = (
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_haircut_percentage_0_100"),
    )


# ---------- ALERTS ----------
alert_level_enum = Enum(AlertLevel, name="alert_level")

alert_log_recipients = Table(
    "alert_log_recipients",
    Base.metadata,
    Column("alert_log_id", ForeignKey("alert_logs.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class ShopAlertState(Base):
    __tablename__ = "shop_alert_states"
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True)
    level: Mapped[AlertLevel] = mapped_column(alert_level_enum, nullable=False)
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class AlertLog(Base):
    """Append-only : jamais modifié après création."""

    __tablename__ = "alert_logs"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    alert_type: Mapped[AlertLevel] = mapped_column(alert_level_enum, nullable=False)

    total_small_bags: Mapped[int] = mapped_column(Integer, nullable=False)
    total_medium_bags: Mapped[int] = mapped_column(Integer, nullable=False)
    total_large_bags: Mapped[int] = mapped_column(Integer, nullable=False)
    min_small_bags: Mapped[int | None] = mapped_column(Integer)
    min_medium_bags: Mapped[int | None] = mapped_column(Integer)
    min_large_bags: Mapped[int | None] = mapped_column(Integer)
    small_bags_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))
    medium_bags_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))
    large_bags_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    notified_users: Mapped[list[User]] = relationship(secondary=alert_log_recipients)

    __table_args__ = (Index("ix_alert_logs_shop_time", "shop_id", "created_at"),)


# ---------- INVENTORY ----------
class CoffeeInventoryLog(Base):
    __tablename__ = "coffee_inventory_logs"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    coffee_id: Mapped[int] = mapped_column(
        ForeignKey("coffees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    change_kg: Mapped[Decimal] = mapped_column(GreenKg, nullable=False)
    balance_kg: Mapped[Decimal] = mapped_column(GreenKg, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("retail_orders.id", ondelete="SET NULL"))
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (CheckConstraint("balance_kg >= 0", name="ck_coffee_log_balance_nonneg"),)


# ---------- AUDIT ----------
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meta: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)
