from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from roastery.app.db.models.core_types import AlertLevel, PackageClass


class ClassSnapshotRead(BaseModel):
    package_class: PackageClass
    current: int
    minimum: int | None
    percentage: Decimal | None
    level: AlertLevel

    class Config:
        from_attributes = True


class AlertStateRead(BaseModel):
    shop_id: int
    level: AlertLevel
    classes: list[ClassSnapshotRead]
    alert_log_id: int | None
    notified_user_ids: list[int]

    class Config:
        from_attributes = True


class AlertLogRead(BaseModel):
    id: int
    shop_id: int
    alert_type: AlertLevel
    total_small_bags: int
    total_medium_bags: int
    total_large_bags: int
    min_small_bags: int | None
    min_medium_bags: int | None
    min_large_bags: int | None
    small_bags_percentage: Decimal | None
    medium_bags_percentage: Decimal | None
    large_bags_percentage: Decimal | None
    created_at: datetime

    class Config:
        from_attributes = True
