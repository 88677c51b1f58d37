from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roastery.app.api.deps import get_container, get_db
from roastery.app.schemas.alert import AlertLogRead, AlertStateRead
from roastery.services.container import Services

router = APIRouter(prefix="/alerts")


@router.post("/evaluate", response_model=list[AlertStateRead])
def evaluate_all_shops(
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    # appelé par le scheduler (cron)
    return services.alerts.evaluate_all(db)


@router.post("/evaluate/{shop_id}", response_model=AlertStateRead)
def evaluate_shop(
    shop_id: int,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    return services.alerts.evaluate(db, shop_id)


@router.get("", response_model=list[AlertLogRead])
def list_alert_logs(
    shop_id: int | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    return services.alerts.list_alert_logs(db, shop_id=shop_id, limit=limit)
