"""
Haircut : perte de process appliquée quand une demande retail est
convertie en consommation de café vert.

    vert = retail * (1 + h / 100)

Le pourcentage h a au plus 2 décimales et les poids sont des multiples
de 0.1 kg : le produit tient en 5 décimales, il est donc stocké exact
(KG_QUANTUM) et jamais arrondi au gramme.

Le pourcentage h est relu à chaque transaction, jamais mis en cache entre
deux requêtes (il peut changer entre deux appels).
"""
from __future__ import annotations

import json
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from roastery.app.core.config import get_settings
from roastery.app.db.models.models_v1 import AuditLog, HaircutSetting
from roastery.services.errors import ValidationError

logger = logging.getLogger(__name__)

SETTING_ID = 1
KG_QUANTUM = Decimal("0.00001")
PERCENT_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize_kg(value: Decimal) -> Decimal:
    return value.quantize(KG_QUANTUM, rounding=ROUND_HALF_UP)


def green_consumption(retail_kg: Decimal, percentage: Decimal) -> Decimal:
    return quantize_kg(retail_kg * (1 + percentage / HUNDRED))


def haircut_amount(retail_kg: Decimal, percentage: Decimal) -> Decimal:
    return quantize_kg(retail_kg * (percentage / HUNDRED))


class HaircutService:
    def __init__(self, default_percentage: Decimal | None = None):
        if default_percentage is None:
            default_percentage = get_settings().DEFAULT_HAIRCUT_PERCENTAGE
        self.default_percentage = Decimal(default_percentage)

    def _insert_default(self, db: Session) -> None:
        """INSERT ... ON CONFLICT DO NOTHING : deux premières lectures concurrentes ne se marchent pas dessus."""
        values = {"id": SETTING_ID, "percentage": self.default_percentage}
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(HaircutSetting).values(**values).on_conflict_do_nothing(index_elements=["id"])
        elif dialect == "sqlite":
            stmt = sqlite_insert(HaircutSetting).values(**values).on_conflict_do_nothing(index_elements=["id"])
        else:
            stmt = insert(HaircutSetting).values(**values)
        db.execute(stmt)

    def _load(self, db: Session, *, for_update: bool = False) -> HaircutSetting:
        stmt = select(HaircutSetting).where(HaircutSetting.id == SETTING_ID)
        if for_update:
            stmt = stmt.with_for_update()
        setting = db.execute(stmt).scalar_one_or_none()
        if setting:
            return setting

        self._insert_default(db)
        logger.info("Haircut setting initialised to default %s%%", self.default_percentage)
        return db.execute(stmt.execution_options(populate_existing=True)).scalar_one()

    def get_percentage(self, db: Session) -> Decimal:
        return Decimal(self._load(db).percentage)

    def set_percentage(self, db: Session, value: Decimal | float | str, actor_id: int | None) -> Decimal:
        try:
            new_value = Decimal(str(value))
        except ArithmeticError:
            raise ValidationError(f"Invalid haircut percentage: {value!r}") from None
        if not new_value.is_finite() or not Decimal("0") <= new_value <= HUNDRED:
            raise ValidationError("Haircut percentage must be between 0 and 100")
        # colonne Numeric(5, 2)
        if new_value != new_value.quantize(PERCENT_QUANTUM):
            raise ValidationError("Haircut percentage accepts at most 2 decimal places")

        try:
            setting = self._load(db, for_update=True)
            previous = Decimal(setting.percentage)
            setting.percentage = new_value
            setting.updated_by_id = actor_id

            db.add(
                AuditLog(
                    actor_id=actor_id,
                    action="UPDATE",
                    entity_type="HAIRCUT_SETTING",
                    entity_id=str(SETTING_ID),
                    meta=json.dumps({"previous": str(previous), "new": str(new_value)}),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("Haircut percentage changed %s%% -> %s%% by actor %s", previous, new_value, actor_id)
        return new_value

    def green_consumption(self, db: Session, retail_kg: Decimal) -> Decimal:
        return green_consumption(retail_kg, self.get_percentage(db))

    def haircut_amount(self, db: Session, retail_kg: Decimal) -> Decimal:
        return haircut_amount(retail_kg, self.get_percentage(db))

    def info(self, db: Session) -> dict:
        percentage = self.get_percentage(db)
        examples = []
        for retail in (Decimal("10"), Decimal("25")):
            examples.append(
                {
                    "retail_kg": retail,
                    "haircut_kg": haircut_amount(retail, percentage),
                    "green_kg": green_consumption(retail, percentage),
                }
            )
        return {
            "percentage": percentage,
            "multiplier": 1 + percentage / HUNDRED,
            "examples": examples,
        }
