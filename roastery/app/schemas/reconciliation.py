from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from roastery.app.db.models.core_types import OrderStatus


class CorrectionRead(BaseModel):
    shop_id: int
    coffee_id: int
    items_deleted: int
    retail_kg: Decimal
    green_kg: Decimal

    class Config:
        from_attributes = True


class ReconciliationReportRead(BaseModel):
    status: OrderStatus
    groups_found: int
    items_deleted: int
    orders_removed: int
    deleted_item_ids: list[int]
    failures: list[dict]
    corrections: list[CorrectionRead]

    class Config:
        from_attributes = True
