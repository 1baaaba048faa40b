from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from membership_service.api.admin import router as admin_router
from membership_service.api.children import router as children_router
from membership_service.api.errors import register_exception_handlers
from membership_service.api.health import router as health_router
from membership_service.api.invites import router as invites_router
from membership_service.api.metrics_endpoint import router as metrics_router
from membership_service.api.orgs import router as orgs_router
from membership_service.api.parent_invites import router as parent_invites_router
from membership_service.core.config import SETTINGS
from membership_service.core.logging import setup_logging
from membership_service.db.engine import lifespan_db
from membership_service.middleware.metrics import MetricsMiddleware
from membership_service.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        yield


app = FastAPI(
    title="membership-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first (outermost):
# RequestContext -> Metrics -> CORS -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(admin_router)
app.include_router(orgs_router)
app.include_router(children_router)
app.include_router(invites_router)
app.include_router(parent_invites_router)

logger.info(
    "membership-service started  env=%s log_level=%s port=%d store=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "sql" if SETTINGS.database_url else "memory",
    "on" if SETTINGS.is_dev else "off",
)
