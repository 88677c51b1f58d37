"""
Order engine.

Ce module orchestre le cycle de vie des commandes retail (création, statut)
mais ne contient AUCUNE logique de calcul de stock.

Toute la logique stock est centralisée dans :
    roastery.services.inventory

Chaque opération publique est une unité de travail : commit si tout passe,
rollback complet sinon (rien n'est écrit partiellement).
"""

from __future__ import annotations

import json
import logging
from typing import Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roastery.app.db.models.models_v1 import (
    AuditLog,
    Coffee,
    Order,
    OrderItem,
    Shop,
    User,
)
from roastery.app.db.models.core_types import OrderStatus, PackageType, PACKAGE_COLUMNS
from roastery.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    RoasteryError,
    ValidationError,
)
from roastery.services.inventory import InventoryLedger, LedgerLine

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.pending: {OrderStatus.confirmed, OrderStatus.cancelled},
    OrderStatus.confirmed: {OrderStatus.roasted, OrderStatus.cancelled},
    OrderStatus.roasted: {OrderStatus.delivered},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
}


def _audit(db: Session, actor_id: int | None, action: str, order_id: int, **meta) -> None:
    db.add(
        AuditLog(
            actor_id=actor_id,
            action=action,
            entity_type="RETAIL_ORDER",
            entity_id=str(order_id),
            meta=json.dumps(meta, default=str),
        )
    )


def _normalize_lines(items: Sequence) -> list[LedgerLine]:
    """
    Accepte des LedgerLine ou des mappings {"coffee_id": .., "counts": {..}}.
    Vérifie au moins un compteur > 0 et aucun compteur négatif.
    """
    lines: list[LedgerLine] = []
    for idx, item in enumerate(items):
        if isinstance(item, LedgerLine):
            line = item
        elif isinstance(item, Mapping):
            try:
                line = LedgerLine(
                    coffee_id=int(item["coffee_id"]),
                    counts={PackageType(k): int(v) for k, v in dict(item.get("counts") or {}).items()},
                )
            except (KeyError, TypeError, ValueError):
                raise ValidationError(f"Invalid order item at position {idx}") from None
        else:
            raise ValidationError(f"Invalid order item at position {idx}")

        if any(c < 0 for c in line.counts.values()):
            raise ValidationError(f"Negative bag count for coffee {line.coffee_id}")
        if not any(c > 0 for c in line.counts.values()):
            raise ValidationError(f"Order item for coffee {line.coffee_id} must contain at least one bag")
        lines.append(line)
    return lines


class OrderEngine:
    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    # ---------- lecture ----------
    def get_order(self, db: Session, order_id: int) -> Order:
        order = db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        db: Session,
        *,
        shop_id: int | None = None,
        status: OrderStatus | None = None,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if shop_id is not None:
            stmt = stmt.where(Order.shop_id == shop_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        return list(db.execute(stmt).scalars().all())

    # ---------- création ----------
    def _find_replay(self, db: Session, shop_id: int, idempotency_key: str) -> Order | None:
        existing = db.execute(
            select(Order).where(Order.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing is None:
            return None
        if existing.shop_id != shop_id:
            raise ValidationError("Idempotency-Key already used for another shop")
        logger.info("Replaying order %s for idempotency key %s", existing.id, idempotency_key)
        return existing

    def _validate(self, db: Session, shop_id: int, actor_id: int, lines: list[LedgerLine]) -> None:
        if db.get(Shop, shop_id) is None:
            raise NotFoundError("Shop", shop_id)
        if db.get(User, actor_id) is None:
            raise NotFoundError("User", actor_id)

        for line in lines:
            coffee = db.get(Coffee, line.coffee_id)
            if coffee is None:
                raise NotFoundError("Coffee", line.coffee_id)
            if not coffee.active:
                raise ValidationError(f"Coffee '{coffee.name}' (id={coffee.id}) is not active")

    def create_order(
        self,
        db: Session,
        *,
        shop_id: int,
        actor_id: int,
        items: Sequence,
        idempotency_key: str | None = None,
    ) -> Order:
        if not items:
            raise ValidationError("Order must contain at least one item")
        lines = _normalize_lines(items)

        if idempotency_key:
            existing = self._find_replay(db, shop_id, idempotency_key)
            if existing:
                return existing

        try:
            self._validate(db, shop_id, actor_id, lines)

            order = Order(
                shop_id=shop_id,
                ordered_by_id=actor_id,
                status=OrderStatus.pending,
                idempotency_key=idempotency_key,
            )
            db.add(order)

            # Concurrence : deux soumissions simultanées avec la même clé
            try:
                db.flush()
            except IntegrityError:
                db.rollback()
                existing = self._find_replay(db, shop_id, idempotency_key) if idempotency_key else None
                if existing is None:
                    raise
                return existing

            effect = self.ledger.apply_order(
                db,
                shop_id=shop_id,
                lines=lines,
                order_id=order.id,
                actor_id=actor_id,
            )

            for item_effect in effect.items:
                item = OrderItem(
                    order_id=order.id,
                    coffee_id=item_effect.coffee_id,
                    total_quantity_kg=item_effect.retail_kg,
                    green_quantity_kg=item_effect.green_kg,
                )
                for ptype, col in PACKAGE_COLUMNS.items():
                    setattr(item, col, int(item_effect.counts.get(ptype, 0)))
                order.items.append(item)

            _audit(
                db,
                actor_id,
                "CREATE",
                order.id,
                shop_id=shop_id,
                item_count=len(effect.items),
                retail_kg=effect.retail_kg,
                green_kg=effect.green_kg,
                haircut_percentage=effect.haircut_percentage,
            )
            db.commit()
        except RoasteryError as exc:
            db.rollback()
            logger.warning("Order rejected for shop %s: %s", shop_id, exc)
            raise
        except Exception:
            db.rollback()
            raise

        logger.info("Created order %s for shop %s (%s items)", order.id, shop_id, len(order.items))
        return order

    # ---------- statut ----------
    def transition_status(
        self,
        db: Session,
        *,
        order_id: int,
        new_status: OrderStatus | str,
        actor_id: int | None,
    ) -> Order:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status value: {new_status!r}") from None

        try:
            order = db.execute(
                select(Order)
                .where(Order.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if not order:
                raise NotFoundError("Order", order_id)

            current = order.status
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(current.value, target.value)

            # l'inventaire a été appliqué à la création : seule l'annulation y touche
            if target == OrderStatus.cancelled:
                self.ledger.reverse_order(db, order, actor_id=actor_id)

            order.status = target
            _audit(db, actor_id, "STATUS_CHANGE", order.id, previous=current.value, new=target.value)
            db.commit()
        except RoasteryError as exc:
            db.rollback()
            logger.warning("Status change refused for order %s: %s", order_id, exc)
            raise
        except Exception:
            db.rollback()
            raise

        logger.info("Order %s status %s -> %s", order_id, current.value, target.value)
        return order
