# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """
    Request body for POST /chat — ask for an economic series in plain words.

    Example:
        {"message": "¿Cuál es el tipo de cambio FIX de enero de 2024?"}
    """

    message: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Free-form request for Mexican economic data",
        examples=["¿Cuál es la inflación anual más reciente?"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "Dame el tipo de cambio FIX de enero de 2024"},
                {"message": "Muéstrame la deuda pública de la SHCP"},
            ]
        }
    )
