"""
Câblage des services (injection explicite des dépendances).

    HaircutService -> InventoryLedger -> OrderEngine / DuplicateReconciler
    AlertEvaluator (seuils depuis la config)
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from roastery.services.alerts import AlertEvaluator
from roastery.services.haircut import HaircutService
from roastery.services.inventory import InventoryLedger
from roastery.services.orders import OrderEngine
from roastery.services.reconciliation import DuplicateReconciler


@dataclass(frozen=True)
class Services:
    haircut: HaircutService
    ledger: InventoryLedger
    orders: OrderEngine
    alerts: AlertEvaluator
    reconciler: DuplicateReconciler


def build_services() -> Services:
    haircut = HaircutService()
    ledger = InventoryLedger(haircut)
    return Services(
        haircut=haircut,
        ledger=ledger,
        orders=OrderEngine(ledger),
        alerts=AlertEvaluator(),
        reconciler=DuplicateReconciler(ledger),
    )


@lru_cache()
def get_services() -> Services:
    return build_services()
