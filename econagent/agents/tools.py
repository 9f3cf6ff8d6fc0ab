# =============================================================================
# Tool Registry — Search + Data-Source Tools
# =============================================================================
#
# The four tools the planner can call, as a closed set:
#
#   search_indicator  → HybridSearchEngine            → SearchResults
#   get_inegi_data    → INEGI adapter (token needed)  → DataTable | ToolError
#   get_banxico_data  → Banxico adapter (token needed) → DataTable | ToolError
#   get_shcp_data     → SHCP adapter (no token)        → DataTable | ToolError
#
# FLOW for one call:
#   1. parse_arguments() validates the raw arguments with the tool's pydantic
#      model. Unknown tool or invalid arguments raise ToolArgumentError before
#      any credential lookup or network call.
#   2. execute() dispatches on the argument type. The isinstance chain ends in
#      assert_never, so a new argument model that is not handled is a type
#      error.
#   3. Adapter failures are mapped into ToolError kinds:
#        SourceNotFoundError            → NOT_FOUND
#        missing credential             → NO_CREDENTIAL
#        transport error / empty parse  → FETCH_FAILED
#
# The registry holds no per-request state and is shared by all requests.
# =============================================================================

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.exc import SQLAlchemyError
from typing_extensions import assert_never

from econagent.services.catalog import CatalogSource, CatalogStore
from econagent.services.credentials import CredentialStore
from econagent.services.hybrid_search import HybridSearchEngine
from econagent.services.llm import ToolCallRequest, ToolSpec
from econagent.sources import SourceNotFoundError, SourceTransportError, banxico, inegi, shcp
from econagent.sources.shcp import SHCPDataset

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool Names & Declarations
# ---------------------------------------------------------------------------

SEARCH_INDICATOR = "search_indicator"
GET_INEGI_DATA = "get_inegi_data"
GET_BANXICO_DATA = "get_banxico_data"
GET_SHCP_DATA = "get_shcp_data"

# Schemas stay within the JSON-schema subset every backend accepts
# (no "format", "pattern" or $ref; Gemini rejects them).
TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=SEARCH_INDICATOR,
        description=(
            "Busca el ID de un indicador en el catálogo de INEGI o Banxico cuando "
            "no conoces el ID exacto. Usa esta herramienta ANTES de get_inegi_data "
            "o get_banxico_data si no tienes el ID."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        'Palabras clave del indicador a buscar (ej: "inflacion", '
                        '"PIB", "tipo de cambio")'
                    ),
                },
                "source": {
                    "type": "string",
                    "enum": [s.value for s in CatalogSource],
                    "description": 'Fuente donde buscar: "inegi" o "banxico"',
                },
            },
            "required": ["query", "source"],
        },
    ),
    ToolSpec(
        name=GET_INEGI_DATA,
        description=(
            "Obtiene datos de indicadores económicos del INEGI (PIB, inflación, "
            "población, empleo, etc.)"
        ),
        parameters={
            "type": "object",
            "properties": {
                "indicator_id": {
                    "type": "string",
                    "description": (
                        "ID del indicador INEGI (ej: 444456 para PIB, 5264722 "
                        "para inflación anual)"
                    ),
                },
            },
            "required": ["indicator_id"],
        },
    ),
    ToolSpec(
        name=GET_BANXICO_DATA,
        description=(
            "Obtiene series financieras del Banco de México (tipo de cambio, "
            "tasas, reservas, UDIS, etc.). Acepta un rango de fechas opcional."
        ),
        parameters={
            "type": "object",
            "properties": {
                "series_id": {
                    "type": "string",
                    "description": (
                        "ID de la serie Banxico (ej: SF43718 para tipo de cambio "
                        "FIX, SF61745 para tasa objetivo)"
                    ),
                },
                "start_date": {
                    "type": "string",
                    "description": "Fecha inicial YYYY-MM-DD (opcional)",
                },
                "end_date": {
                    "type": "string",
                    "description": (
                        "Fecha final YYYY-MM-DD (opcional, por defecto hoy si se "
                        "da start_date)"
                    ),
                },
            },
            "required": ["series_id"],
        },
    ),
    ToolSpec(
        name=GET_SHCP_DATA,
        description=(
            "Obtiene datos de finanzas públicas de la SHCP (deuda, ingresos, "
            "gastos, RFSP)"
        ),
        parameters={
            "type": "object",
            "properties": {
                "dataset_id": {
                    "type": "string",
                    "enum": [d.value for d in SHCPDataset],
                    "description": "ID del dataset SHCP",
                },
            },
            "required": ["dataset_id"],
        },
    ),
)


# ---------------------------------------------------------------------------
# Argument Models
# ---------------------------------------------------------------------------
# Numbers are coerced to strings: models routinely send indicator ids such
# as 444456 unquoted.
# ---------------------------------------------------------------------------


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class SearchIndicatorArgs(_ToolArgs):
    query: str = Field(..., min_length=1)
    source: CatalogSource


class InegiDataArgs(_ToolArgs):
    indicator_id: str = Field(..., min_length=1, pattern=r"^\d+$")


class BanxicoDataArgs(_ToolArgs):
    series_id: str = Field(..., min_length=1)
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _check_range(self) -> BanxicoDataArgs:
        if self.end_date and not self.start_date:
            raise ValueError("end_date requires start_date")
        if self.start_date and not self.end_date:
            self.end_date = date.today()
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class ShcpDataArgs(_ToolArgs):
    dataset_id: SHCPDataset


ToolArgs = Union[SearchIndicatorArgs, InegiDataArgs, BanxicoDataArgs, ShcpDataArgs]

_ARGUMENT_MODELS: dict[str, type[_ToolArgs]] = {
    SEARCH_INDICATOR: SearchIndicatorArgs,
    GET_INEGI_DATA: InegiDataArgs,
    GET_BANXICO_DATA: BanxicoDataArgs,
    GET_SHCP_DATA: ShcpDataArgs,
}


class ToolArgumentError(Exception):
    """Unknown tool name or arguments that do not match the tool schema."""

    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"{tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail


# ---------------------------------------------------------------------------
# Result Shapes
# ---------------------------------------------------------------------------


class ToolErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    NO_CREDENTIAL = "no_credential"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class DataTable:
    """Tabular data; rows[0] is the header."""

    rows: list[list[str]]
    source_label: str

    @property
    def header(self) -> list[str]:
        return self.rows[0]

    @property
    def row_count(self) -> int:
        return len(self.rows) - 1


@dataclass(frozen=True)
class SearchResults:
    """Ranked (id, description) candidates, at most 10."""

    candidates: list[tuple[str, str]]


@dataclass(frozen=True)
class ToolError:
    kind: ToolErrorKind
    subject_id: str | None = None
    source: str | None = None


ToolResult = Union[DataTable, SearchResults, ToolError]


# ---------------------------------------------------------------------------
# CSV Rendering
# ---------------------------------------------------------------------------


def to_csv(rows: list[list[str]]) -> str:
    """Every cell double-quoted, comma-joined; rows newline-joined."""
    return "\n".join(",".join(f'"{cell}"' for cell in row) for row in rows)


def from_csv(text: str) -> list[list[str]]:
    """Inverse of to_csv for cells that do not contain '","'."""
    rows: list[list[str]] = []
    for line in text.split("\n"):
        if not line:
            continue
        rows.append(line[1:-1].split('","'))
    return rows


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """
    Validates and executes tool calls.

    Args:
        search_engine: Hybrid search used by search_indicator.
        catalog: Catalog store for best-effort label lookup.
        credentials: Source of per-user INEGI/Banxico tokens.
    """

    def __init__(
        self,
        search_engine: HybridSearchEngine,
        catalog: CatalogStore,
        credentials: CredentialStore,
    ) -> None:
        self._search = search_engine
        self._catalog = catalog
        self._credentials = credentials

    @property
    def specs(self) -> tuple[ToolSpec, ...]:
        return TOOL_SPECS

    def parse_arguments(self, name: str, arguments: dict[str, Any]) -> ToolArgs:
        """
        Validate raw arguments against the named tool.

        Raises:
            ToolArgumentError: Unknown tool or non-conforming arguments.
        """
        model = _ARGUMENT_MODELS.get(name)
        if model is None:
            raise ToolArgumentError(name, "unknown tool")
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            raise ToolArgumentError(name, str(e)) from e

    async def execute(self, call: ToolCallRequest, user_id: str) -> ToolResult:
        """
        Validate and run one tool call.

        Raises:
            ToolArgumentError: Validation failed; nothing was executed.
        """
        args = self.parse_arguments(call.name, call.arguments)
        logger.info("[TOOL] %s(%s) for user %s", call.name, args.model_dump(), user_id)

        if isinstance(args, SearchIndicatorArgs):
            result: ToolResult = await self._search_indicator(args)
        elif isinstance(args, InegiDataArgs):
            result = await self._get_inegi_data(args, user_id)
        elif isinstance(args, BanxicoDataArgs):
            result = await self._get_banxico_data(args, user_id)
        elif isinstance(args, ShcpDataArgs):
            result = await self._get_shcp_data(args)
        else:
            assert_never(args)

        logger.info("[TOOL] %s → %s", call.name, _describe(result))
        return result

    # --- handlers ---

    async def _search_indicator(self, args: SearchIndicatorArgs) -> ToolResult:
        try:
            hits = await self._search.search(args.query, args.source)
        except SQLAlchemyError as e:
            logger.error("Catalog search failed for '%s': %s", args.query, e)
            return ToolError(ToolErrorKind.FETCH_FAILED, args.query, args.source.value)
        return SearchResults(candidates=[(hit.id, hit.description) for hit in hits])

    async def _get_inegi_data(self, args: InegiDataArgs, user_id: str) -> ToolResult:
        token = await self._credentials.get(user_id, "inegi")
        if not token:
            return ToolError(ToolErrorKind.NO_CREDENTIAL, "inegi", inegi.SOURCE_NAME)

        try:
            payload = await inegi.fetch_indicator(args.indicator_id, token)
        except SourceNotFoundError:
            return ToolError(ToolErrorKind.NOT_FOUND, args.indicator_id, inegi.SOURCE_NAME)
        except SourceTransportError as e:
            logger.warning("[TOOL] INEGI fetch failed: %s", e)
            return ToolError(ToolErrorKind.FETCH_FAILED, args.indicator_id, inegi.SOURCE_NAME)

        parsed = inegi.parse_indicator(payload)
        if parsed is None:
            return ToolError(ToolErrorKind.FETCH_FAILED, args.indicator_id, inegi.SOURCE_NAME)

        header, rows = parsed
        label = await self._label(args.indicator_id, CatalogSource.INEGI)
        return DataTable(rows=[header, *rows], source_label=f"INEGI - {label}")

    async def _get_banxico_data(self, args: BanxicoDataArgs, user_id: str) -> ToolResult:
        token = await self._credentials.get(user_id, "banxico")
        if not token:
            return ToolError(ToolErrorKind.NO_CREDENTIAL, "banxico", banxico.SOURCE_NAME)

        try:
            payload = await banxico.fetch_series(
                args.series_id, token,
                start_date=args.start_date, end_date=args.end_date,
            )
        except SourceNotFoundError:
            return ToolError(ToolErrorKind.NOT_FOUND, args.series_id, banxico.SOURCE_NAME)
        except SourceTransportError as e:
            logger.warning("[TOOL] Banxico fetch failed: %s", e)
            return ToolError(ToolErrorKind.FETCH_FAILED, args.series_id, banxico.SOURCE_NAME)

        parsed = banxico.parse_series(payload)
        if parsed is None:
            return ToolError(ToolErrorKind.FETCH_FAILED, args.series_id, banxico.SOURCE_NAME)

        header, rows = parsed
        label = await self._label(args.series_id, CatalogSource.BANXICO)
        return DataTable(rows=[header, *rows], source_label=f"Banxico - {label}")

    async def _get_shcp_data(self, args: ShcpDataArgs) -> ToolResult:
        try:
            text = await shcp.fetch_dataset(args.dataset_id)
        except SourceTransportError as e:
            logger.warning("[TOOL] SHCP fetch failed: %s", e)
            return ToolError(ToolErrorKind.FETCH_FAILED, args.dataset_id.value, shcp.SOURCE_NAME)

        parsed = shcp.parse_dataset(text)
        if parsed is None:
            return ToolError(ToolErrorKind.FETCH_FAILED, args.dataset_id.value, shcp.SOURCE_NAME)

        header, rows = parsed
        return DataTable(rows=[header, *rows], source_label=shcp.SOURCE_NAME)

    async def _label(self, entry_id: str, source: CatalogSource) -> str:
        """Catalog label for an id; the raw id when the lookup misses or fails."""
        try:
            label = await self._catalog.lookup_label(entry_id, source)
        except SQLAlchemyError as e:
            logger.warning("Label lookup failed for %s: %s", entry_id, e)
            label = None
        return label or entry_id


def _describe(result: ToolResult) -> str:
    if isinstance(result, DataTable):
        return f"DataTable({result.row_count} rows, '{result.source_label}')"
    if isinstance(result, SearchResults):
        return f"SearchResults({len(result.candidates)} candidates)"
    return f"ToolError({result.kind.value}, {result.subject_id})"
