import logging

from fastapi import FastAPI

from roastery.app.api.v1.router import router as v1_router
from roastery.app.core.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="ROASTERY", version=settings.SERVICE_VERSION)
app.include_router(v1_router, prefix="/v1")
