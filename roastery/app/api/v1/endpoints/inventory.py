from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from roastery.app.api.deps import get_actor_id, get_container, get_db, http_error
from roastery.app.db.models.core_types import OrderStatus
from roastery.app.db.models.models_v1 import RetailInventory
from roastery.app.schemas.inventory import (
    CoffeeDemandRead,
    CoffeeInventoryLogRead,
    CoffeeStockRead,
    GreenStockAdjust,
    RetailInventoryRead,
    ShopHistoryEntryRead,
    StockTakeCreate,
)
from roastery.services.container import Services
from roastery.services.errors import RoasteryError
from roastery.services.reports import pending_demand, shop_order_history

router = APIRouter()


@router.get("/inventory", response_model=list[RetailInventoryRead])
def get_inventory(
    shop_id: int | None = None,
    coffee_id: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Inventaire retail (READ ONLY)
    - total_quantity_kg est recalculé par le ledger, jamais modifiable
    """
    stmt = select(RetailInventory).order_by(RetailInventory.shop_id, RetailInventory.coffee_id)
    if shop_id is not None:
        stmt = stmt.where(RetailInventory.shop_id == shop_id)
    if coffee_id is not None:
        stmt = stmt.where(RetailInventory.coffee_id == coffee_id)
    return db.execute(stmt).scalars().all()


@router.post("/inventory/stock-take", response_model=RetailInventoryRead)
def stock_take(
    payload: StockTakeCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
):
    try:
        row = services.ledger.record_stock_take(
            db,
            shop_id=payload.shop_id,
            coffee_id=payload.coffee_id,
            counts=payload.counts(),
            actor_id=actor_id,
        )
    except RoasteryError as exc:
        db.rollback()
        raise http_error(exc)
    db.commit()
    db.refresh(row)
    return row


@router.get("/inventory/pending-demand", response_model=list[CoffeeDemandRead])
def get_pending_demand(
    status: OrderStatus = OrderStatus.pending,
    db: Session = Depends(get_db),
):
    return pending_demand(db, status)


@router.post("/coffees/{coffee_id}/stock", response_model=CoffeeStockRead)
def adjust_green_stock(
    coffee_id: int,
    payload: GreenStockAdjust,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
):
    try:
        coffee = services.ledger.add_green_stock(
            db,
            coffee_id=coffee_id,
            amount_kg=payload.amount_kg,
            actor_id=actor_id,
            notes=payload.notes,
        )
    except RoasteryError as exc:
        db.rollback()
        raise http_error(exc)
    db.commit()
    db.refresh(coffee)
    return coffee


@router.get("/inventory/history", response_model=list[ShopHistoryEntryRead])
def get_shop_history(
    shop_id: int,
    days: int | None = None,
    db: Session = Depends(get_db),
):
    try:
        return shop_order_history(db, shop_id, days=days)
    except RoasteryError as exc:
        raise http_error(exc)


@router.get("/coffees/{coffee_id}/inventory/logs", response_model=list[CoffeeInventoryLogRead])
def get_green_movements(
    coffee_id: int,
    limit: int | None = None,
    offset: int = 0,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    try:
        return services.ledger.green_movements(db, coffee_id=coffee_id, limit=limit, offset=offset)
    except RoasteryError as exc:
        raise http_error(exc)
