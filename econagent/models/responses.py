# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The chat response carries the assistant's text and, when a data tool
# succeeded, the full table plus its CSV rendering. The LLM never saw the
# cell values; they go straight from the data source to the client.
# =============================================================================

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ChatData(BaseModel):
    """Tabular payload attached to a successful data answer."""

    table: list[list[str]] = Field(
        ..., description="Rows of cells; the first row is the header",
    )
    csv: str = Field(..., description="Quoted CSV rendering of `table`")
    source: str = Field(..., description='Source label, e.g. "Banxico - Tipo de cambio"')


class ChatResponse(BaseModel):
    """Response for POST /chat."""

    message: str
    data: ChatData | None = None


class IndicatorHit(BaseModel):
    id: str
    description: str


class IndicatorSearchResponse(BaseModel):
    """Response for GET /search-indicators."""

    results: list[IndicatorHit]
