from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from roastery.app.db.models.core_types import OrderStatus, PackageType


class RetailInventoryRead(BaseModel):
    shop_id: int
    coffee_id: int

    small_bags_espresso: int
    small_bags_filter: int
    medium_bags_espresso: int
    medium_bags_filter: int
    large_bags: int
    total_quantity_kg: Decimal  # READ ONLY : recalculé, jamais écrit
    last_order_date: datetime | None

    class Config:
        from_attributes = True


class StockTakeCreate(BaseModel):
    shop_id: int
    coffee_id: int
    small_bags_espresso: int = Field(default=0, ge=0)
    small_bags_filter: int = Field(default=0, ge=0)
    medium_bags_espresso: int = Field(default=0, ge=0)
    medium_bags_filter: int = Field(default=0, ge=0)
    large_bags: int = Field(default=0, ge=0)

    def counts(self) -> dict[PackageType, int]:
        return {
            PackageType.small_espresso: self.small_bags_espresso,
            PackageType.small_filter: self.small_bags_filter,
            PackageType.medium_espresso: self.medium_bags_espresso,
            PackageType.medium_filter: self.medium_bags_filter,
            PackageType.large: self.large_bags,
        }


class GreenStockAdjust(BaseModel):
    amount_kg: Decimal
    notes: str | None = Field(default=None, max_length=500)


class CoffeeStockRead(BaseModel):
    id: int
    name: str
    quantity_kg: Decimal

    class Config:
        from_attributes = True


class CoffeeDemandRead(BaseModel):
    coffee_id: int
    coffee_name: str
    bags: dict[PackageType, int]
    espresso_kg: Decimal
    filter_kg: Decimal
    total_kg: Decimal
    item_count: int

    class Config:
        from_attributes = True


class CoffeeInventoryLogRead(BaseModel):
    id: int
    coffee_id: int
    change_kg: Decimal
    balance_kg: Decimal
    reason: str
    order_id: int | None
    created_by: int | None
    notes: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class ShopHistoryEntryRead(BaseModel):
    order_id: int
    status: OrderStatus
    created_at: datetime
    ordered_by_id: int
    item_count: int
    total_bags: int
    retail_kg: Decimal
    green_kg: Decimal

    class Config:
        from_attributes = True
