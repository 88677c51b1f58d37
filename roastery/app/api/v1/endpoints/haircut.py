from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roastery.app.api.deps import get_actor_id, get_container, get_db, http_error
from roastery.app.schemas.haircut import HaircutRead, HaircutUpdate
from roastery.services.container import Services
from roastery.services.errors import RoasteryError

router = APIRouter(prefix="/haircut")


@router.get("", response_model=HaircutRead)
def get_haircut(
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
):
    percentage = services.haircut.get_percentage(db)
    # persiste la valeur par défaut au premier accès
    db.commit()
    return {"percentage": percentage}


@router.put("", response_model=HaircutRead)
def set_haircut(
    payload: HaircutUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_container),
    actor_id: int = Depends(get_actor_id),
):
    """Admin uniquement : le contrôle de rôle est fait par l'appelant."""
    try:
        percentage = services.haircut.set_percentage(db, payload.percentage, actor_id)
    except RoasteryError as exc:
        raise http_error(exc)
    return {"percentage": percentage}
