from decimal import Decimal

from pydantic import BaseModel


class HaircutRead(BaseModel):
    percentage: Decimal


class HaircutUpdate(BaseModel):
    # bornes 0..100 vérifiées par HaircutService (ValidationError -> 400)
    percentage: Decimal
