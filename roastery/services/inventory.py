"""
Inventory ledger.

SEUL module autorisé à modifier Coffee.quantity_kg et RetailInventory.
Aucune fonction ici ne commit : l'appelant (services.orders,
services.reconciliation, ...) porte la frontière de transaction, et un
rollback annule tout ce qui a été écrit ici.

Propriétés :
- verrouillage SQL (FOR UPDATE), lignes Coffee verrouillées par id croissant
- total_quantity_kg toujours recalculé depuis les compteurs
- aucune quantité négative (sinon erreur, rien n'est appliqué)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from roastery.app.core.config import get_settings
from roastery.app.db.models.models_v1 import (
    AuditLog,
    Coffee,
    CoffeeInventoryLog,
    OrderItem,
    Order,
    RetailInventory,
    Shop,
)
from roastery.app.db.models.core_types import PackageType, PACKAGE_COLUMNS
from roastery.services.errors import (
    InsufficientStockError,
    LedgerConsistencyError,
    NotFoundError,
    ValidationError,
)
from roastery.services.haircut import HaircutService, green_consumption, quantize_kg
from roastery.services.units import total_weight

logger = logging.getLogger(__name__)

# Raisons des mouvements de café vert (CoffeeInventoryLog.reason)
REASON_ORDER = "ORDER"
REASON_ORDER_REVERSAL = "ORDER_REVERSAL"
REASON_DUPLICATE_REVERSAL = "DUPLICATE_REVERSAL"
REASON_INTAKE = "INTAKE"
REASON_ADJUSTMENT = "ADJUSTMENT"


@dataclass
class LedgerLine:
    coffee_id: int
    counts: dict[PackageType, int]


@dataclass
class ItemEffect:
    coffee_id: int
    counts: dict[PackageType, int]
    retail_kg: Decimal
    green_kg: Decimal


@dataclass
class OrderEffect:
    shop_id: int
    haircut_percentage: Decimal
    items: list[ItemEffect] = field(default_factory=list)

    @property
    def retail_kg(self) -> Decimal:
        return sum((i.retail_kg for i in self.items), Decimal("0"))

    @property
    def green_kg(self) -> Decimal:
        return sum((i.green_kg for i in self.items), Decimal("0"))


def recompute_total(row) -> None:
    """total_quantity_kg = Σ compteurs * poids, depuis les NOUVEAUX compteurs."""
    row.total_quantity_kg = total_weight(row.counts())


def _lock_coffees(db: Session, coffee_ids: Iterable[int]) -> dict[int, Coffee]:
    ids = sorted({int(cid) for cid in coffee_ids})
    rows = (
        db.execute(
            select(Coffee)
            .where(Coffee.id.in_(ids))
            .order_by(Coffee.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    coffees = {int(c.id): c for c in rows}
    for cid in ids:
        if cid not in coffees:
            raise NotFoundError("Coffee", cid)
    return coffees


def _get_or_create_retail_row(db: Session, shop_id: int, coffee_id: int) -> RetailInventory:
    row = (
        db.execute(
            select(RetailInventory)
            .where(RetailInventory.shop_id == shop_id)
            .where(RetailInventory.coffee_id == coffee_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if row:
        return row

    row = RetailInventory(shop_id=shop_id, coffee_id=coffee_id, total_quantity_kg=Decimal("0"))
    for col in PACKAGE_COLUMNS.values():
        setattr(row, col, 0)
    db.add(row)
    db.flush()
    return row


def _log_green_movement(
    db: Session,
    coffee: Coffee,
    change_kg: Decimal,
    reason: str,
    *,
    order_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
) -> None:
    db.add(
        CoffeeInventoryLog(
            coffee_id=coffee.id,
            change_kg=change_kg,
            balance_kg=coffee.quantity_kg,
            reason=reason,
            order_id=order_id,
            created_by=actor_id,
            notes=notes,
        )
    )


class InventoryLedger:
    def __init__(self, haircut: HaircutService):
        self.haircut = haircut

    def apply_order(
        self,
        db: Session,
        *,
        shop_id: int,
        lines: list[LedgerLine],
        order_id: int | None = None,
        actor_id: int | None = None,
    ) -> OrderEffect:
        """
        Débite le pool vert et crédite l'inventaire retail de la boutique.

        Tout ou rien : la première ligne en rupture lève
        InsufficientStockError et l'appelant rollback l'ensemble.
        Plusieurs lignes sur le même café voient le solde déjà décrémenté.
        Aucun arrondi : Σ vert des lignes == green_consumption(Σ retail).
        """
        coffees = _lock_coffees(db, (line.coffee_id for line in lines))

        # relu ici, au moment de la transaction
        percentage = self.haircut.get_percentage(db)
        effect = OrderEffect(shop_id=shop_id, haircut_percentage=percentage)
        now = datetime.utcnow()

        for line in lines:
            coffee = coffees[int(line.coffee_id)]
            retail_kg = total_weight(line.counts)
            green_kg = green_consumption(retail_kg, percentage)

            available = Decimal(coffee.quantity_kg)
            if green_kg > available:
                raise InsufficientStockError(int(coffee.id), coffee.name, green_kg, available)

            coffee.quantity_kg = available - green_kg
            _log_green_movement(db, coffee, -green_kg, REASON_ORDER, order_id=order_id, actor_id=actor_id)

            row = _get_or_create_retail_row(db, shop_id, int(coffee.id))
            for ptype, count in line.counts.items():
                col = PACKAGE_COLUMNS[ptype]
                setattr(row, col, getattr(row, col) + count)
            recompute_total(row)
            row.last_order_date = now
            # flush : la ligne suivante peut relire (FOR UPDATE) la même ligne retail
            db.flush()

            effect.items.append(
                ItemEffect(coffee_id=int(coffee.id), counts=dict(line.counts), retail_kg=retail_kg, green_kg=green_kg)
            )

        logger.info(
            "Ledger applied order for shop %s: retail=%skg green=%skg (haircut %s%%)",
            shop_id,
            effect.retail_kg,
            effect.green_kg,
            percentage,
        )
        return effect

    def reverse_item(
        self,
        db: Session,
        *,
        shop_id: int,
        item: OrderItem,
        reason: str = REASON_ORDER_REVERSAL,
        actor_id: int | None = None,
    ) -> None:
        """
        Inverse exact d'une ligne : rend item.green_quantity_kg au pool et
        retire les compteurs enregistrés sur la ligne. N'utilise PAS le
        haircut courant.
        """
        coffee = _lock_coffees(db, [item.coffee_id])[int(item.coffee_id)]
        row = _get_or_create_retail_row(db, shop_id, int(item.coffee_id))

        for ptype, count in item.counts().items():
            col = PACKAGE_COLUMNS[ptype]
            remaining = getattr(row, col) - count
            if remaining < 0:
                raise LedgerConsistencyError(
                    f"Reversal would make {col} negative for shop {shop_id}, coffee {item.coffee_id} "
                    f"(current={getattr(row, col)}, reversing={count})"
                )
            setattr(row, col, remaining)
        recompute_total(row)

        green_kg = Decimal(item.green_quantity_kg)
        coffee.quantity_kg = Decimal(coffee.quantity_kg) + green_kg
        _log_green_movement(db, coffee, green_kg, reason, order_id=item.order_id, actor_id=actor_id)
        db.flush()

    def reverse_order(self, db: Session, order: Order, *, actor_id: int | None = None) -> None:
        for item in sorted(order.items, key=lambda i: int(i.coffee_id)):
            self.reverse_item(db, shop_id=order.shop_id, item=item, actor_id=actor_id)
        logger.info("Ledger reversed order %s for shop %s", order.id, order.shop_id)

    def green_movements(
        self,
        db: Session,
        *,
        coffee_id: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CoffeeInventoryLog]:
        """Journal des mouvements de café vert, du plus récent au plus ancien."""
        if limit is None:
            limit = get_settings().INVENTORY_LOG_PAGE_SIZE
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        if coffee_id is not None and db.get(Coffee, coffee_id) is None:
            raise NotFoundError("Coffee", coffee_id)

        stmt = (
            select(CoffeeInventoryLog)
            .order_by(CoffeeInventoryLog.created_at.desc(), CoffeeInventoryLog.id.desc())
            .limit(limit)
            .offset(offset)
        )
        if coffee_id is not None:
            stmt = stmt.where(CoffeeInventoryLog.coffee_id == coffee_id)
        return list(db.execute(stmt).scalars().all())

    def add_green_stock(
        self,
        db: Session,
        *,
        coffee_id: int,
        amount_kg: Decimal,
        actor_id: int | None = None,
        notes: str | None = None,
    ) -> Coffee:
        """Entrée (ou retrait si négatif) de café vert, journalisée."""
        amount_kg = quantize_kg(Decimal(amount_kg))
        if amount_kg == 0:
            raise ValidationError("Stock adjustment amount must be non-zero")

        coffee = _lock_coffees(db, [coffee_id])[int(coffee_id)]
        available = Decimal(coffee.quantity_kg)
        if available + amount_kg < 0:
            raise InsufficientStockError(int(coffee.id), coffee.name, -amount_kg, available)

        coffee.quantity_kg = available + amount_kg
        reason = REASON_INTAKE if amount_kg > 0 else REASON_ADJUSTMENT
        _log_green_movement(db, coffee, amount_kg, reason, actor_id=actor_id, notes=notes)
        db.add(
            AuditLog(
                actor_id=actor_id,
                action=reason,
                entity_type="COFFEE",
                entity_id=str(coffee.id),
                meta=json.dumps({"change_kg": str(amount_kg), "balance_kg": str(coffee.quantity_kg)}),
            )
        )
        db.flush()
        logger.info("Green stock for coffee %s adjusted by %skg -> %skg", coffee.id, amount_kg, coffee.quantity_kg)
        return coffee

    def record_stock_take(
        self,
        db: Session,
        *,
        shop_id: int,
        coffee_id: int,
        counts: Mapping[PackageType, int],
        actor_id: int | None = None,
    ) -> RetailInventory:
        """Remplace les compteurs retail par un comptage physique (ventes)."""
        if db.get(Shop, shop_id) is None:
            raise NotFoundError("Shop", shop_id)
        if db.get(Coffee, coffee_id) is None:
            raise NotFoundError("Coffee", coffee_id)
        # valide aussi les compteurs négatifs
        total_weight(counts)

        row = _get_or_create_retail_row(db, shop_id, coffee_id)
        for ptype, col in PACKAGE_COLUMNS.items():
            setattr(row, col, int(counts.get(ptype, 0)))
        recompute_total(row)
        db.add(
            AuditLog(
                actor_id=actor_id,
                action="STOCK_TAKE",
                entity_type="RETAIL_INVENTORY",
                entity_id=f"{shop_id}:{coffee_id}",
                meta=json.dumps({col: getattr(row, col) for col in PACKAGE_COLUMNS.values()}),
            )
        )
        db.flush()
        logger.info("Stock take recorded for shop %s coffee %s: %skg", shop_id, coffee_id, row.total_quantity_kg)
        return row
