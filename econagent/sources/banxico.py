# =============================================================================
# Banxico Adapter — SIE REST API
# =============================================================================
#
# URL variants:
#   {base}/series/{id}/datos                       → full history
#   {base}/series/{id}/datos/{start}/{end}         → date range (YYYY-MM-DD)
#   {base}/series/{id}/datos/oportuno              → latest observation only
#
# The token travels in the `Bmx-Token` header. SIE answers an unknown series
# with HTTP 404 or with an empty `series` list; the former maps to
# SourceNotFoundError, the latter to an empty parse result.
# =============================================================================

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from urllib.parse import quote

import httpx

from econagent.config import settings
from econagent.services.http import get_http_client
from econagent.sources import ParsedSeries, SourceNotFoundError, SourceTransportError

logger = logging.getLogger(__name__)

SOURCE_NAME = "Banxico"
HEADER = ["Fecha", "Valor", "Serie", "Titulo"]


def build_series_url(
    series_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    latest: bool = False,
) -> str:
    """Pick the SIE endpoint for the requested window."""
    base = f"{settings.banxico_base_url}/series/{quote(series_id, safe=',')}/datos"
    if latest:
        return f"{base}/oportuno"
    if start_date and end_date:
        return f"{base}/{start_date.isoformat()}/{end_date.isoformat()}"
    return base


async def fetch_series(
    series_id: str,
    token: str,
    start_date: date | None = None,
    end_date: date | None = None,
    latest: bool = False,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """
    Fetch one SIE series.

    Raises:
        SourceNotFoundError: SIE answered 404 for the series.
        SourceTransportError: Any other HTTP or decoding failure.
    """
    url = build_series_url(series_id, start_date, end_date, latest)
    logger.info("[BANXICO] Fetching %s", url)

    http = client or get_http_client()
    try:
        response = await http.get(
            url,
            headers={"Bmx-Token": token, "Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        raise SourceTransportError(f"Banxico request failed: {e}") from e

    if response.status_code == 404:
        raise SourceNotFoundError(SOURCE_NAME, series_id)
    if response.status_code >= 400:
        logger.warning(
            "[BANXICO] API error %d for series %s",
            response.status_code, series_id,
        )
        raise SourceTransportError(f"Banxico API error: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise SourceTransportError("Banxico returned a non-JSON payload") from e

    return data


def parse_series(data: dict[str, Any]) -> ParsedSeries | None:
    """Turn a SIE payload into (header, rows); None when there is no data."""
    bmx = data.get("bmx") if isinstance(data, dict) else None
    series_list = bmx.get("series") if isinstance(bmx, dict) else None
    if not series_list:
        logger.info("[BANXICO] No series in response")
        return None
    if not isinstance(series_list, list) or not isinstance(series_list[0], dict):
        logger.warning("[BANXICO] Unexpected series shape: %s", type(series_list).__name__)
        return None

    series = series_list[0]
    observations = series.get("datos") or []
    if not observations:
        logger.info("[BANXICO] No datos in series %s", series.get("idSerie"))
        return None
    if not isinstance(observations, list) or not all(isinstance(o, dict) for o in observations):
        logger.warning("[BANXICO] Unexpected datos shape in series %s", series.get("idSerie"))
        return None

    series_id = str(series.get("idSerie", ""))
    title = str(series.get("titulo", ""))
    rows = [
        [str(obs.get("fecha", "")), str(obs.get("dato", "")), series_id, title]
        for obs in observations
    ]

    logger.info("[BANXICO] Parsed %d observations for %s", len(rows), series_id)
    return list(HEADER), rows
