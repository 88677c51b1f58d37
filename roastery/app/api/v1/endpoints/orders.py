from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from roastery.app.api.deps import get_actor_id, get_container, get_db, http_error
from roastery.app.db.models.core_types import OrderStatus
from roastery.app.schemas.order import OrderCreate, OrderRead, OrderStatusUpdate
from roastery.services.container import Services
from roastery.services.errors import RoasteryError
from roastery.services.inventory import LedgerLine

router = APIRouter(prefix="/orders")


@router.post("", response_model=OrderRead)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    lines = [LedgerLine(coffee_id=item.coffee_id, counts=item.counts()) for item in payload.items]
    idem = idempotency_key.strip() if idempotency_key and idempotency_key.strip() else None
    try:
        return services.orders.create_order(
            db,
            shop_id=payload.shop_id,
            actor_id=actor_id,
            items=lines,
            idempotency_key=idem,
        )
    except RoasteryError as exc:
        raise http_error(exc)


@router.get("", response_model=list[OrderRead])
def list_orders(
    shop_id: int | None = None,
    status: OrderStatus | None = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    return services.orders.list_orders(db, shop_id=shop_id, status=status)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    try:
        return services.orders.get_order(db, order_id)
    except RoasteryError as exc:
        raise http_error(exc)


@router.put("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
):
    try:
        return services.orders.transition_status(
            db,
            order_id=order_id,
            new_status=payload.status,
            actor_id=actor_id,
        )
    except RoasteryError as exc:
        raise http_error(exc)
