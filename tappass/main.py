from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tappass.api.access_logs import router as access_logs_router
from tappass.api.credentials import router as credentials_router
from tappass.api.health import router as health_router
from tappass.api.metrics_endpoint import router as metrics_router
from tappass.api.readers import router as readers_router
from tappass.core.config import SETTINGS
from tappass.core.logging import setup_logging
from tappass.db.engine import lifespan_db
from tappass.db.redis import lifespan_redis
from tappass.middleware.metrics import MetricsMiddleware
from tappass.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Torn down in reverse order: Redis first, then the database.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="tappass",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last added runs first: RequestContext -> Metrics -> route handler.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(readers_router)
app.include_router(credentials_router)
app.include_router(access_logs_router)

logger.info(
    "tappass started  env=%s log_level=%s port=%d tz=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.facility_timezone,
    "on" if SETTINGS.is_dev else "off",
)
