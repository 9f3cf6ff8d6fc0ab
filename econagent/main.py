# =============================================================================
# Application Entry Point — FastAPI App Assembly
# =============================================================================
#
# Run with:
#   uvicorn econagent.main:app --reload
#
# Configures logging from settings, mounts the routers and closes the shared
# HTTP client on shutdown.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from econagent.api import catalog, chat
from econagent.config import settings
from econagent.models.responses import HealthResponse
from econagent.services.http import close_http_client

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    yield
    await close_http_client()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(chat.router)
app.include_router(catalog.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
