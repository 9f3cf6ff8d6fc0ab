# =============================================================================
# SHCP Adapter — Public Finance Open-Data CSVs
# =============================================================================
#
# Five fixed datasets published as CSV files. No credential is needed.
# The parser keeps the header plus the first `limit` data rows and can
# optionally filter rows on one column (case-insensitive substring match).
# =============================================================================

from __future__ import annotations

import csv
import enum
import io
import logging

import httpx

from econagent.config import settings
from econagent.services.http import get_http_client
from econagent.sources import ParsedSeries, SourceTransportError

logger = logging.getLogger(__name__)

SOURCE_NAME = "SHCP"


class SHCPDataset(str, enum.Enum):
    """The datasets exposed through the get_shcp_data tool."""

    DEUDA_PUBLICA = "deuda_publica"
    INGRESO_GASTO = "ingreso_gasto"
    TRANSFERENCIAS = "transferencias"
    RFSP = "rfsp"
    DEUDA_AMPLIA = "deuda_amplia"


DATASET_FILES: dict[SHCPDataset, str] = {
    SHCPDataset.DEUDA_PUBLICA: "deuda_publica.csv",
    SHCPDataset.INGRESO_GASTO: "ingreso_gasto_finan.csv",
    SHCPDataset.TRANSFERENCIAS: "transferencias_entidades_fed.csv",
    SHCPDataset.RFSP: "rfsp.csv",
    SHCPDataset.DEUDA_AMPLIA: "shrfsp_deuda_amplia_actual.csv",
}

DATASET_NAMES: dict[SHCPDataset, str] = {
    SHCPDataset.DEUDA_PUBLICA: "Deuda Pública",
    SHCPDataset.INGRESO_GASTO: "Ingreso, Gasto y Financiamiento Público",
    SHCPDataset.TRANSFERENCIAS: "Transferencias a Entidades Federativas",
    SHCPDataset.RFSP: "Requerimientos Financieros del Sector Público",
    SHCPDataset.DEUDA_AMPLIA: "Saldo Histórico RFSP (Deuda Amplia)",
}


def dataset_url(dataset: SHCPDataset) -> str:
    return f"{settings.shcp_base_url}/{DATASET_FILES[dataset]}"


async def fetch_dataset(
    dataset: SHCPDataset,
    client: httpx.AsyncClient | None = None,
) -> str:
    """
    Download the raw CSV text for a dataset.

    Raises:
        SourceTransportError: Network failure or non-2xx status.
    """
    url = dataset_url(dataset)
    logger.info("[SHCP] Fetching %s", url)

    http = client or get_http_client()
    try:
        response = await http.get(url)
    except httpx.HTTPError as e:
        raise SourceTransportError(f"SHCP request failed: {e}") from e

    if response.status_code >= 400:
        raise SourceTransportError(f"SHCP data fetch error: {response.status_code}")

    return response.text


def parse_dataset(
    csv_text: str,
    column: str | None = None,
    value: str | None = None,
    limit: int | None = None,
) -> ParsedSeries | None:
    """
    Parse SHCP CSV text into (header, rows).

    Args:
        csv_text: Raw CSV as downloaded.
        column: Optional header name to filter on (case-insensitive).
        value: Substring that `column` must contain (case-insensitive).
        limit: Max data rows kept (default settings.shcp_row_limit).

    Returns None when the file has no data rows.
    """
    text = csv_text.strip()
    if not text:
        return None

    reader = csv.reader(io.StringIO(text))
    try:
        parsed = [[cell.strip() for cell in row] for row in reader if row]
    except csv.Error as e:
        logger.warning("[SHCP] Malformed CSV: %s", e)
        return None
    if len(parsed) < 2:
        return None

    header, rows = parsed[0], parsed[1:]

    if column and value:
        lowered = [h.lower() for h in header]
        if column.lower() in lowered:
            idx = lowered.index(column.lower())
            needle = value.lower()
            rows = [
                row for row in rows
                if idx < len(row) and needle in row[idx].lower()
            ]

    max_rows = limit or settings.shcp_row_limit
    rows = rows[:max_rows]
    if not rows:
        return None

    logger.info("[SHCP] Parsed %d rows (%d columns)", len(rows), len(header))
    return header, rows
