"""
Erreurs métier du moteur commandes / inventaire.

La couche API les traduit en codes HTTP (voir roastery.app.api.deps).
"""
from __future__ import annotations

from decimal import Decimal


class RoasteryError(Exception):
    """Racine de toutes les erreurs métier."""


class ValidationError(RoasteryError):
    pass


class NotFoundError(RoasteryError):
    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InsufficientStockError(RoasteryError):
    def __init__(self, coffee_id: int, coffee_name: str, requested_kg: Decimal, available_kg: Decimal):
        self.coffee_id = coffee_id
        self.coffee_name = coffee_name
        self.requested_kg = requested_kg
        self.available_kg = available_kg
        self.shortfall_kg = requested_kg - available_kg
        super().__init__(
            f"Insufficient green stock for coffee '{coffee_name}' (id={coffee_id}): "
            f"requested={requested_kg}kg, available={available_kg}kg, shortfall={self.shortfall_kg}kg"
        )


class InvalidTransitionError(RoasteryError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")


class LedgerConsistencyError(RoasteryError):
    """Une écriture ferait passer un compteur retail sous zéro."""
