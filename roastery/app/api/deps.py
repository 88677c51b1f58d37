from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from roastery.app.db.session import SessionLocal
from roastery.services.container import Services, get_services
from roastery.services.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    LedgerConsistencyError,
    NotFoundError,
    RoasteryError,
    ValidationError,
)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_container() -> Services:
    return get_services()


def get_actor_id(actor_id: int | None = Header(default=None, alias="X-Actor-Id")) -> int:
    # l'authentification est faite en amont : on fait confiance à l'en-tête
    if actor_id is None:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    return actor_id


_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    InsufficientStockError: 409,
    InvalidTransitionError: 409,
    LedgerConsistencyError: 409,
}


def http_error(exc: RoasteryError) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            break
    else:
        status_code = 400

    detail: dict = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, InsufficientStockError):
        detail.update(
            coffee_id=exc.coffee_id,
            requested_kg=str(exc.requested_kg),
            available_kg=str(exc.available_kg),
            shortfall_kg=str(exc.shortfall_kg),
        )
    return HTTPException(status_code=status_code, detail=detail)
