# =============================================================================
# Chat API — Agent Entry Point
# =============================================================================
#
# POST /chat runs the tool-calling agent for one message:
#   1. Resolve the caller and their provider credentials
#   2. Run the LangGraph loop (plan → tool → plan … → answer)
#   3. Return the answer text plus the table/CSV when data was fetched
#
# The agent turns every expected failure (quota, missing key, unknown id,
# iteration limit) into a 200 response with a fixed message. Only a failure
# outside the agent reaches the 502 branch.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from econagent.agents.orchestrator import run_agent
from econagent.agents.tools import ToolRegistry
from econagent.api.deps import get_credential_store, get_current_user_id, get_tool_registry
from econagent.models.requests import ChatRequest
from econagent.models.responses import ChatData, ChatResponse
from econagent.services.credentials import CredentialStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask for Mexican economic data in natural language",
    description=(
        "The agent searches the INEGI/Banxico catalogs when needed, fetches "
        "the series from INEGI, Banxico or SHCP, and answers with a short "
        "description plus the full table and a CSV rendering."
    ),
)
async def chat_endpoint(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    registry: ToolRegistry = Depends(get_tool_registry),
    credentials: CredentialStore = Depends(get_credential_store),
) -> ChatResponse:
    logger.info("Chat request: user=%s message='%s'", user_id, request.message[:80])

    try:
        result = await run_agent(
            message=request.message,
            user_id=user_id,
            registry=registry,
            credentials=credentials,
        )
    except Exception as e:
        logger.exception("Chat request failed: %s", e)
        raise HTTPException(status_code=502, detail="Error al procesar la solicitud") from e

    data = ChatData(**result.data) if result.data else None
    return ChatResponse(message=result.message, data=data)
