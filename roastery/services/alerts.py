"""
Alertes de stock retail par boutique.

    pourcentage = courant / minimum * 100   (par classe de paquet)
    < critique  -> CRITICAL
    < warning   -> WARNING
    sinon       -> OK

Le niveau de la boutique est le pire niveau de ses classes. Un AlertLog
n'est écrit que quand le niveau est WARNING/CRITICAL ET différent du
dernier niveau évalué (ShopAlertState) : deux évaluations de suite sans
changement d'inventaire n'écrivent qu'une fois.

Une alerte ne doit jamais bloquer le flux de commandes : toute erreur ici
retombe sur OK (loggée), jamais levée.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roastery.app.core.config import get_settings
from roastery.app.db.models.models_v1 import (
    AlertLog,
    RetailInventory,
    Shop,
    ShopAlertState,
    ShopUser,
    User,
)
from roastery.app.db.models.core_types import AlertLevel, PackageClass, Role
from roastery.services.units import class_totals

logger = logging.getLogger(__name__)

SEVERITY = {AlertLevel.ok: 0, AlertLevel.warning: 1, AlertLevel.critical: 2}


@dataclass
class ClassSnapshot:
    package_class: PackageClass
    current: int
    minimum: int | None
    percentage: Decimal | None
    level: AlertLevel


@dataclass
class AlertState:
    shop_id: int
    level: AlertLevel
    classes: list[ClassSnapshot] = field(default_factory=list)
    alert_log_id: int | None = None
    notified_user_ids: list[int] = field(default_factory=list)

    def snapshot(self, package_class: PackageClass) -> ClassSnapshot | None:
        for snap in self.classes:
            if snap.package_class == package_class:
                return snap
        return None


def _shop_minimums(shop: Shop) -> dict[PackageClass, int | None]:
    return {
        PackageClass.small: shop.min_small_bags,
        PackageClass.medium: shop.min_medium_bags,
        PackageClass.large: shop.min_large_bags,
    }


class AlertEvaluator:
    def __init__(
        self,
        critical_percentage: Decimal | None = None,
        warning_percentage: Decimal | None = None,
    ):
        settings = get_settings()
        self.critical = Decimal(
            settings.ALERT_CRITICAL_PERCENTAGE if critical_percentage is None else critical_percentage
        )
        self.warning = Decimal(
            settings.ALERT_WARNING_PERCENTAGE if warning_percentage is None else warning_percentage
        )
        if self.critical >= self.warning:
            raise ValueError("critical percentage must be lower than warning percentage")

    def classify(self, percentage: Decimal) -> AlertLevel:
        if percentage < self.critical:
            return AlertLevel.critical
        if percentage < self.warning:
            return AlertLevel.warning
        return AlertLevel.ok

    def _compute(self, db: Session, shop: Shop) -> AlertState:
        rows = db.execute(
            select(RetailInventory).where(RetailInventory.shop_id == shop.id)
        ).scalars().all()

        totals = {pclass: 0 for pclass in PackageClass}
        for row in rows:
            for pclass, count in class_totals(row.counts()).items():
                totals[pclass] += count

        state = AlertState(shop_id=int(shop.id), level=AlertLevel.ok)
        for pclass, minimum in _shop_minimums(shop).items():
            current = totals[pclass]
            if not minimum:
                # seuil non configuré : classe ignorée
                state.classes.append(ClassSnapshot(pclass, current, minimum, None, AlertLevel.ok))
                continue

            percentage = (Decimal(current) / Decimal(minimum) * 100).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            level = self.classify(percentage)
            state.classes.append(ClassSnapshot(pclass, current, minimum, percentage, level))
            if SEVERITY[level] > SEVERITY[state.level]:
                state.level = level
        return state

    def _recipients(self, db: Session, shop_id: int) -> list[User]:
        """ADMIN / OWNER actifs + RETAILER rattachés à la boutique."""
        return list(
            db.execute(
                select(User)
                .where(User.active.is_(True))
                .where(
                    or_(
                        User.role.in_([Role.admin, Role.owner]),
                        and_(
                            User.role == Role.retailer,
                            User.id.in_(select(ShopUser.user_id).where(ShopUser.shop_id == shop_id)),
                        ),
                    )
                )
                .order_by(User.id.asc())
            )
            .scalars()
            .all()
        )

    def _record(self, db: Session, shop: Shop, state: AlertState) -> None:
        previous = db.execute(
            select(ShopAlertState)
            .where(ShopAlertState.shop_id == shop.id)
            .with_for_update()
        ).scalar_one_or_none()
        previous_level = previous.level if previous else AlertLevel.ok

        if state.level != AlertLevel.ok and state.level != previous_level:
            snaps = {s.package_class: s for s in state.classes}
            recipients = self._recipients(db, int(shop.id))
            log = AlertLog(
                shop_id=shop.id,
                alert_type=state.level,
                total_small_bags=snaps[PackageClass.small].current,
                total_medium_bags=snaps[PackageClass.medium].current,
                total_large_bags=snaps[PackageClass.large].current,
                min_small_bags=snaps[PackageClass.small].minimum,
                min_medium_bags=snaps[PackageClass.medium].minimum,
                min_large_bags=snaps[PackageClass.large].minimum,
                small_bags_percentage=snaps[PackageClass.small].percentage,
                medium_bags_percentage=snaps[PackageClass.medium].percentage,
                large_bags_percentage=snaps[PackageClass.large].percentage,
                notified_users=recipients,
            )
            db.add(log)
            db.flush()
            state.alert_log_id = int(log.id)
            state.notified_user_ids = [int(u.id) for u in recipients]
            logger.info(
                "Inventory alert %s for shop %s (%s users notified)",
                state.level.value,
                shop.id,
                len(recipients),
            )

        if previous:
            previous.level = state.level
            previous.evaluated_at = datetime.utcnow()
        else:
            db.add(ShopAlertState(shop_id=shop.id, level=state.level))

    def evaluate(self, db: Session, shop_id: int) -> AlertState:
        shop = db.get(Shop, shop_id)
        if shop is None:
            logger.warning("Alert evaluation skipped: shop %s not found", shop_id)
            return AlertState(shop_id=shop_id, level=AlertLevel.ok)

        try:
            state = self._compute(db, shop)
            self._record(db, shop, state)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Alert evaluation failed for shop %s, defaulting to OK", shop_id)
            return AlertState(shop_id=shop_id, level=AlertLevel.ok)
        return state

    def evaluate_all(self, db: Session) -> list[AlertState]:
        shop_ids = db.execute(select(Shop.id).order_by(Shop.id.asc())).scalars().all()
        return [self.evaluate(db, int(sid)) for sid in shop_ids]

    def list_alert_logs(self, db: Session, *, shop_id: int | None = None, limit: int | None = None) -> list[AlertLog]:
        if limit is None:
            limit = get_settings().ALERT_LOG_PAGE_SIZE
        stmt = select(AlertLog).order_by(AlertLog.created_at.desc(), AlertLog.id.desc()).limit(limit)
        if shop_id is not None:
            stmt = stmt.where(AlertLog.shop_id == shop_id)
        return list(db.execute(stmt).scalars().all())
