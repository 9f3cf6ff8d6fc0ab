# =============================================================================
# INEGI Adapter — Banco de Indicadores (BIE/BISE) API
# =============================================================================
#
# URL shape:
#   {base}/INDICATOR/{id}/es/{area}/{recent}/BIE-BISE/2.0/{token}?type=json
#
# The token is part of the path, so it is redacted before any URL is logged.
# An unknown indicator comes back as a non-2xx response whose body contains
# "ErrorCode:100"; that is the only case mapped to SourceNotFoundError.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from econagent.config import settings
from econagent.services.http import get_http_client
from econagent.sources import ParsedSeries, SourceNotFoundError, SourceTransportError

logger = logging.getLogger(__name__)

SOURCE_NAME = "INEGI"
HEADER = ["Periodo", "Valor", "Unidad", "UltimaActualizacion"]

_NOT_FOUND_MARKER = "ErrorCode:100"


async def fetch_indicator(
    indicator_id: str,
    token: str,
    area: str = "00",
    recent: bool = False,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """
    Fetch one indicator's observations.

    Args:
        indicator_id: INEGI indicator id (e.g. "444456" for GDP).
        token: The user's INEGI API token.
        area: Geographic area code ("00" = national).
        recent: When True, only the most recent observation is returned.
        client: Optional client override (tests).

    Raises:
        SourceNotFoundError: INEGI does not know the indicator.
        SourceTransportError: Any other HTTP or decoding failure.
    """
    reciente = "true" if recent else "false"
    url = (
        f"{settings.inegi_base_url}/INDICATOR/{quote(indicator_id, safe='')}/es/{area}/"
        f"{reciente}/BIE-BISE/2.0/{token}"
    )
    logger.info("[INEGI] Fetching %s", url.replace(token, "TOKEN"))

    http = client or get_http_client()
    try:
        response = await http.get(url, params={"type": "json"})
    except httpx.HTTPError as e:
        raise SourceTransportError(f"INEGI request failed: {e}") from e

    if response.status_code >= 400:
        body = response.text
        logger.warning(
            "[INEGI] API error %d for indicator %s",
            response.status_code, indicator_id,
        )
        if _NOT_FOUND_MARKER in body:
            raise SourceNotFoundError(SOURCE_NAME, indicator_id)
        raise SourceTransportError(f"INEGI API error: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise SourceTransportError("INEGI returned a non-JSON payload") from e

    series = data.get("Series") if isinstance(data, dict) else None
    logger.info(
        "[INEGI] Response received, series count: %d",
        len(series) if isinstance(series, list) else 0,
    )
    return data


def parse_indicator(data: dict[str, Any]) -> ParsedSeries | None:
    """
    Turn an INEGI payload into (header, rows).

    Only the first series is used. Returns None when the payload has no
    series or the series has no observations.
    """
    series_list = data.get("Series") if isinstance(data, dict) else None
    if not series_list:
        logger.info("[INEGI] No Series in response")
        return None
    if not isinstance(series_list, list) or not isinstance(series_list[0], dict):
        logger.warning("[INEGI] Unexpected Series shape: %s", type(series_list).__name__)
        return None

    series = series_list[0]
    observations = series.get("OBSERVATIONS") or []
    if not observations:
        logger.info("[INEGI] No observations in series")
        return None
    if not isinstance(observations, list) or not all(isinstance(o, dict) for o in observations):
        logger.warning("[INEGI] Unexpected OBSERVATIONS shape")
        return None

    unit = str(series.get("UNIT", ""))
    last_update = str(series.get("LASTUPDATE", ""))
    rows = [
        [
            str(obs.get("TIME_PERIOD", "")),
            str(obs.get("OBS_VALUE", "")),
            unit,
            last_update,
        ]
        for obs in observations
    ]

    logger.info(
        "[INEGI] Parsed %d observations, LASTUPDATE=%s",
        len(rows), last_update,
    )
    return list(HEADER), rows
