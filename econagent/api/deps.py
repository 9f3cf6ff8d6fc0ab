# =============================================================================
# API Dependencies — Caller Identity & Shared Services
# =============================================================================
#
# 1. get_current_user_id() — who is asking (drives credential lookups)
# 2. get_catalog_cache(), get_tool_registry(), get_credential_store() —
#    process-wide singletons, built on first use
#
# Authentication itself happens upstream (reverse proxy / session layer),
# which forwards the authenticated id in `X-User-Id`. With auth disabled the
# configured default user is assumed, which is what local development and
# single-user deployments use.
#
# Singletons are plain functions wrapped in lru_cache so tests can swap
# them through app.dependency_overrides.
# =============================================================================

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Header, HTTPException

from econagent.agents.tools import ToolRegistry
from econagent.config import settings
from econagent.services.catalog import CatalogCache, PgCatalogStore
from econagent.services.credentials import LayeredCredentialStore, PgCredentialStore
from econagent.services.hybrid_search import HybridSearchEngine

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    """
    Resolve the caller's user id.

    Raises:
        HTTPException 401: Auth enabled and no identity forwarded.
    """
    if x_user_id:
        return x_user_id
    if settings.auth_enabled:
        raise HTTPException(status_code=401, detail="No autorizado")
    return settings.default_user_id


@lru_cache
def get_catalog_store() -> PgCatalogStore:
    return PgCatalogStore()


@lru_cache
def get_catalog_cache() -> CatalogCache:
    return CatalogCache(get_catalog_store())


@lru_cache
def get_credential_store() -> LayeredCredentialStore:
    """User keys from the database, then server-level keys from settings."""
    return LayeredCredentialStore(
        PgCredentialStore(),
        server_keys={
            "groq": settings.groq_api_key,
            "openai": settings.openai_api_key,
            "google": settings.google_api_key,
            "anthropic": settings.anthropic_api_key,
        },
    )


@lru_cache
def get_tool_registry() -> ToolRegistry:
    store = get_catalog_store()
    return ToolRegistry(
        search_engine=HybridSearchEngine(store),
        catalog=store,
        credentials=get_credential_store(),
    )
