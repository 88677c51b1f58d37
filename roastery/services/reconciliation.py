"""
Réconciliation des lignes de commande dupliquées (soumissions rejouées).

Règle métier :
    doublons = lignes d'un même (shop, café), dans des commandes au statut
    filtré, dont TOUS les compteurs et total_quantity_kg sont identiques.
    On garde la plus ancienne (created_at de la commande, puis id commande,
    puis id ligne) et on supprime les autres.

Chaque suppression :
- rend au ledger l'effet inventaire de la ligne (reverse_item)
- tourne dans sa propre transaction : un échec est loggé, rollback, et
  le batch continue

Idempotent : un second passage ne trouve plus rien.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roastery.app.db.models.models_v1 import AuditLog, Order, OrderItem
from roastery.app.db.models.core_types import OrderStatus, PACKAGE_COLUMNS
from roastery.services.errors import RoasteryError, ValidationError
from roastery.services.inventory import REASON_DUPLICATE_REVERSAL, InventoryLedger

logger = logging.getLogger(__name__)

# les lignes ne sont mutables qu'en PENDING
RECONCILABLE_STATUSES = {OrderStatus.pending}


@dataclass
class Correction:
    shop_id: int
    coffee_id: int
    items_deleted: int = 0
    retail_kg: Decimal = Decimal("0")
    green_kg: Decimal = Decimal("0")


@dataclass
class ReconciliationReport:
    status: OrderStatus
    groups_found: int = 0
    items_deleted: int = 0
    orders_removed: int = 0
    deleted_item_ids: list[int] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    corrections: list[Correction] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def _duplicate_key(item: OrderItem) -> tuple:
    return tuple(getattr(item, col) for col in PACKAGE_COLUMNS.values()) + (
        Decimal(item.total_quantity_kg),
    )


class DuplicateReconciler:
    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    def find_duplicates(self, db: Session, status: OrderStatus) -> list[list[tuple[int, int, int]]]:
        """
        Retourne les clusters de doublons, chaque cluster trié du plus ancien
        au plus récent : [(order_id, item_id, shop_id), ...].
        """
        rows = db.execute(
            select(OrderItem, Order.shop_id)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status == status)
            .order_by(Order.created_at.asc(), Order.id.asc(), OrderItem.id.asc())
        ).all()

        clusters: dict[tuple, list[tuple[int, int, int]]] = defaultdict(list)
        for item, shop_id in rows:
            key = (int(shop_id), int(item.coffee_id)) + _duplicate_key(item)
            clusters[key].append((int(item.order_id), int(item.id), int(shop_id)))

        return [members for members in clusters.values() if len(members) > 1]

    def reconcile(
        self,
        db: Session,
        status_filter: OrderStatus | str = OrderStatus.pending,
        *,
        actor_id: int | None = None,
    ) -> ReconciliationReport:
        try:
            status = OrderStatus(status_filter)
        except ValueError:
            raise ValidationError(f"Invalid status value: {status_filter!r}") from None
        if status not in RECONCILABLE_STATUSES:
            raise ValidationError(f"Order items are immutable in status {status.value}")

        report = ReconciliationReport(status=status)
        clusters = self.find_duplicates(db, status)
        report.groups_found = len(clusters)
        corrections: dict[tuple[int, int], Correction] = {}

        for members in clusters:
            keep_order_id, keep_item_id, _ = members[0]
            for order_id, item_id, shop_id in members[1:]:
                try:
                    order = db.execute(
                        select(Order)
                        .where(Order.id == order_id)
                        .with_for_update()
                        .execution_options(populate_existing=True)
                    ).scalar_one_or_none()
                    item = db.get(OrderItem, item_id)
                    if order is None or item is None or order.status != status:
                        # déjà traité ou statut changé entre-temps
                        db.rollback()
                        continue
                    coffee_id = int(item.coffee_id)
                    retail_kg = Decimal(item.total_quantity_kg)
                    green_kg = Decimal(item.green_quantity_kg)

                    self.ledger.reverse_item(
                        db,
                        shop_id=shop_id,
                        item=item,
                        reason=REASON_DUPLICATE_REVERSAL,
                        actor_id=actor_id,
                    )
                    order.items.remove(item)
                    db.flush()

                    order_removed = not order.items
                    if order_removed:
                        db.delete(order)

                    db.add(
                        AuditLog(
                            actor_id=actor_id,
                            action="DELETE_DUPLICATE",
                            entity_type="RETAIL_ORDER_ITEM",
                            entity_id=str(item_id),
                            meta=json.dumps(
                                {
                                    "order_id": order_id,
                                    "kept_item_id": keep_item_id,
                                    "kept_order_id": keep_order_id,
                                    "order_removed": order_removed,
                                }
                            ),
                        )
                    )
                    db.commit()
                except (RoasteryError, SQLAlchemyError) as exc:
                    db.rollback()
                    logger.exception("Failed to delete duplicate item %s (order %s)", item_id, order_id)
                    report.failures.append({"item_id": item_id, "order_id": order_id, "error": str(exc)})
                    continue

                report.items_deleted += 1
                report.deleted_item_ids.append(item_id)
                if order_removed:
                    report.orders_removed += 1

                corr = corrections.setdefault((shop_id, coffee_id), Correction(shop_id, coffee_id))
                corr.items_deleted += 1
                corr.retail_kg += retail_kg
                corr.green_kg += green_kg

                logger.info(
                    "Deleted duplicate item %s of order %s (kept item %s), corrected %skg retail / %skg green",
                    item_id,
                    order_id,
                    keep_item_id,
                    retail_kg,
                    green_kg,
                )

        report.corrections = sorted(corrections.values(), key=lambda c: (c.shop_id, c.coffee_id))
        logger.info(
            "Duplicate reconciliation (%s): %s groups, %s items deleted, %s failures",
            status.value,
            report.groups_found,
            report.items_deleted,
            len(report.failures),
        )
        return report
