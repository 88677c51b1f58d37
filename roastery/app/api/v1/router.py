from fastapi import APIRouter

from roastery.app.api.v1.endpoints.health import router as health_router
from roastery.app.api.v1.endpoints.orders import router as orders_router
from roastery.app.api.v1.endpoints.haircut import router as haircut_router
from roastery.app.api.v1.endpoints.inventory import router as inventory_router
from roastery.app.api.v1.endpoints.alerts import router as alerts_router
from roastery.app.api.v1.endpoints.reconciliation import router as reconciliation_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(orders_router, tags=["orders"])
router.include_router(haircut_router, tags=["haircut"])
router.include_router(inventory_router, tags=["inventory"])
router.include_router(alerts_router, tags=["alerts"])
router.include_router(reconciliation_router, tags=["reconciliation"])
