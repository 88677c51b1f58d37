"""
Rapports en lecture seule :
- demande en attente par café (planification torréfaction)
- historique des commandes d'une boutique
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from roastery.app.core.config import get_settings
from roastery.app.db.models.models_v1 import Coffee, Order, OrderItem, Shop
from roastery.app.db.models.core_types import OrderStatus, PackageType
from roastery.services.errors import NotFoundError, ValidationError
from roastery.services.units import weight_of


@dataclass
class CoffeeDemand:
    coffee_id: int
    coffee_name: str
    bags: dict[PackageType, int] = field(default_factory=lambda: {p: 0 for p in PackageType})
    espresso_kg: Decimal = Decimal("0")
    filter_kg: Decimal = Decimal("0")
    total_kg: Decimal = Decimal("0")
    item_count: int = 0


ESPRESSO = (PackageType.small_espresso, PackageType.medium_espresso)
FILTER = (PackageType.small_filter, PackageType.medium_filter)


def pending_demand(db: Session, status: OrderStatus = OrderStatus.pending) -> list[CoffeeDemand]:
    rows = db.execute(
        select(OrderItem, Coffee.name)
        .join(Order, Order.id == OrderItem.order_id)
        .join(Coffee, Coffee.id == OrderItem.coffee_id)
        .where(Order.status == status)
    ).all()

    demand: dict[int, CoffeeDemand] = {}
    for item, coffee_name in rows:
        entry = demand.setdefault(int(item.coffee_id), CoffeeDemand(int(item.coffee_id), coffee_name))
        for ptype, count in item.counts().items():
            entry.bags[ptype] += count
            kg = weight_of(ptype) * count
            if ptype in ESPRESSO:
                entry.espresso_kg += kg
            elif ptype in FILTER:
                entry.filter_kg += kg
        entry.total_kg += Decimal(item.total_quantity_kg)
        entry.item_count += 1

    return sorted(demand.values(), key=lambda d: (d.coffee_name.lower(), d.coffee_id))


@dataclass
class ShopHistoryEntry:
    order_id: int
    status: OrderStatus
    created_at: datetime
    ordered_by_id: int
    item_count: int
    total_bags: int
    retail_kg: Decimal
    green_kg: Decimal


def shop_order_history(
    db: Session,
    shop_id: int,
    *,
    days: int | None = None,
    now: datetime | None = None,
) -> list[ShopHistoryEntry]:
    """
    Historique d'inventaire d'une boutique : ses commandes (tous statuts)
    sur les `days` derniers jours, de la plus récente à la plus ancienne.
    """
    if days is None:
        days = get_settings().SHOP_HISTORY_DAYS
    if days <= 0:
        raise ValidationError("days must be positive")
    if db.get(Shop, shop_id) is None:
        raise NotFoundError("Shop", shop_id)

    since = (now or datetime.utcnow()) - timedelta(days=days)
    orders = db.execute(
        select(Order)
        .where(Order.shop_id == shop_id)
        .where(Order.created_at >= since)
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).scalars().all()

    history = []
    for order in orders:
        history.append(
            ShopHistoryEntry(
                order_id=int(order.id),
                status=order.status,
                created_at=order.created_at,
                ordered_by_id=int(order.ordered_by_id),
                item_count=len(order.items),
                total_bags=sum(sum(item.counts().values()) for item in order.items),
                retail_kg=sum((Decimal(item.total_quantity_kg) for item in order.items), Decimal("0")),
                green_kg=sum((Decimal(item.green_quantity_kg) for item in order.items), Decimal("0")),
            )
        )
    return history
