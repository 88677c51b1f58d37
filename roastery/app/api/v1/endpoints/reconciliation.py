from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roastery.app.api.deps import get_actor_id, get_container, get_db, http_error
from roastery.app.db.models.core_types import OrderStatus
from roastery.app.schemas.reconciliation import ReconciliationReportRead
from roastery.services.container import Services
from roastery.services.errors import RoasteryError

router = APIRouter(prefix="/reconciliation")


@router.post("/duplicates", response_model=ReconciliationReportRead)
def reconcile_duplicates(
    status: OrderStatus = OrderStatus.pending,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
):
    try:
        return services.reconciler.reconcile(db, status, actor_id=actor_id)
    except RoasteryError as exc:
        raise http_error(exc)
