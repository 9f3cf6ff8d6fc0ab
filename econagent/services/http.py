# =============================================================================
# Shared HTTP Client — httpx.AsyncClient
# =============================================================================
#
# One AsyncClient per process, created lazily on first use and closed on
# application shutdown. Every request carries the
# configured timeout so a hung data source cannot stall a chat request.
# =============================================================================

from __future__ import annotations

import logging

import httpx

from econagent.config import settings

logger = logging.getLogger(__name__)

_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Return the shared client, creating it on first use."""
    global _client
    if _client is None or _client.is_closed:
        timeout = httpx.Timeout(
            timeout=settings.http_timeout_seconds,
            connect=10.0,
        )
        _client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": f"econagent/{settings.app_version}"},
        )
        logger.info(
            "Initialized shared HTTP client (timeout=%.0fs)",
            settings.http_timeout_seconds,
        )
    return _client


async def close_http_client() -> None:
    """Close the shared client. Safe to call when it was never created."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
        logger.info("Closed shared HTTP client")
    _client = None
