from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from roastery.app.db.models.core_types import OrderStatus, PackageType


class OrderItemCreate(BaseModel):
    coffee_id: int
    small_bags_espresso: int = Field(default=0, ge=0)
    small_bags_filter: int = Field(default=0, ge=0)
    medium_bags_espresso: int = Field(default=0, ge=0)
    medium_bags_filter: int = Field(default=0, ge=0)
    large_bags: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _legacy_small_bags(cls, data):
        # Ancien format : "small_bags" sans split espresso / filtre
        # -> traité comme espresso. Seul endroit où ce format est accepté.
        if isinstance(data, dict) and "small_bags" in data:
            data = dict(data)
            legacy = data.pop("small_bags") or 0
            if legacy and not data.get("small_bags_espresso") and not data.get("small_bags_filter"):
                data["small_bags_espresso"] = legacy
        return data

    def counts(self) -> dict[PackageType, int]:
        return {
            PackageType.small_espresso: self.small_bags_espresso,
            PackageType.small_filter: self.small_bags_filter,
            PackageType.medium_espresso: self.medium_bags_espresso,
            PackageType.medium_filter: self.medium_bags_filter,
            PackageType.large: self.large_bags,
        }


class OrderCreate(BaseModel):
    shop_id: int
    items: list[OrderItemCreate] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemRead(BaseModel):
    id: int
    coffee_id: int
    small_bags_espresso: int
    small_bags_filter: int
    medium_bags_espresso: int
    medium_bags_filter: int
    large_bags: int
    total_quantity_kg: Decimal
    green_quantity_kg: Decimal

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    shop_id: int
    ordered_by_id: int
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemRead]

    class Config:
        from_attributes = True
