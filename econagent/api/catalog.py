# =============================================================================
# Catalog API — Indicator Quick Search
# =============================================================================
#
# GET /search-indicators?q=<text>&source=inegi|banxico
#
# Accent- and case-insensitive substring match over the in-memory catalog
# cache (first request per source loads it). Used by the UI's autocomplete;
# the agent uses the hybrid search instead.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from econagent.api.deps import get_catalog_cache, get_current_user_id
from econagent.models.responses import IndicatorHit, IndicatorSearchResponse
from econagent.services.catalog import CatalogCache, CatalogSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


@router.get(
    "/search-indicators",
    response_model=IndicatorSearchResponse,
    summary="Search the INEGI or Banxico indicator catalog",
)
async def search_indicators(
    q: str = Query(default="", max_length=200, description="Search text"),
    source: CatalogSource = Query(default=CatalogSource.INEGI),
    limit: int = Query(default=10, ge=1, le=50),
    _user_id: str = Depends(get_current_user_id),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> IndicatorSearchResponse:
    try:
        hits = await cache.quick_search(q, source, limit=limit)
    except SQLAlchemyError as e:
        logger.error("Catalog load failed for %s: %s", source.value, e)
        raise HTTPException(status_code=503, detail="Catálogo no disponible") from e

    return IndicatorSearchResponse(
        results=[IndicatorHit(id=h.id, description=h.description) for h in hits],
    )
