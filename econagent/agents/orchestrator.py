# =============================================================================
# LangGraph Orchestrator — Bounded Tool-Calling Loop
# =============================================================================
#
# Drives the LLM planner through zero or more tool calls until it answers,
# runs out of iterations, or hits a terminal condition.
#
# GRAPH TOPOLOGY:
#
#   START ──▶ plan ──▶ execute_tool ──▶ plan ──▶ … ──▶ END
#              │            │
#              │            ├──▶ narrate ──▶ END      (DataTable)
#              │            ├──▶ exhausted ──▶ END    (iteration bound)
#              │            └──▶ END                  (terminal tool error)
#              └──▶ END                               (answer / LLM failure)
#
# STATES → NODES:
#   PLANNING        plan          one provider step, with fallback
#   EXECUTING_TOOL  execute_tool  ToolRegistry.execute()
#   DONE            narrate / plan returning text
#   EXHAUSTED       exhausted
#   TERMINAL_ERROR  any node setting outcome=terminal_error
#
# PROVIDER FALLBACK (inside plan):
#   QUOTA         → provider skipped for the rest of the request, next one
#   TOOL_PROTOCOL → same provider retried up to llm_tool_protocol_retries
#                   times, then the next provider (for this step only)
#   OTHER         → terminal, "Error del LLM: <message>"
#
# ITERATION BOUND: `iteration` counts entries into plan. After a tool result
# that would send the loop back to plan, routing goes to `exhausted` once
# iteration == max_iterations, so plan runs at most max_iterations times.
#
# Conversation is request-scoped: nodes return a new list with the appended
# messages, nothing is shared between requests. Providers and the registry
# travel in the state as objects; safe while no checkpointer is configured.
# =============================================================================

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from econagent.agents import prompts
from econagent.agents.tools import (
    DataTable,
    SearchResults,
    ToolArgumentError,
    ToolError,
    ToolErrorKind,
    ToolRegistry,
    ToolResult,
    to_csv,
)
from econagent.config import settings
from econagent.services.credentials import CredentialStore
from econagent.services.llm import (
    ChatMessage,
    ErrorClass,
    LLMProvider,
    StepResult,
    ToolCallRequest,
    build_provider_chain,
)

logger = logging.getLogger(__name__)


class AgentOutcome(str, enum.Enum):
    DONE = "done"
    EXHAUSTED = "exhausted"
    TERMINAL_ERROR = "terminal_error"


@dataclass
class AgentResult:
    """What the chat endpoint returns to the caller."""

    outcome: AgentOutcome
    message: str
    data: dict[str, Any] | None = None
    iterations: int = 0
    provider: str | None = None


# ---------------------------------------------------------------------------
# Agent State Schema
# ---------------------------------------------------------------------------


class AgentState(TypedDict, total=False):
    """
    State that flows through the graph.

    total=False so nodes only return the keys they update.
    """

    # --- Input (set by run_agent) ---
    user_id: str
    providers: list[LLMProvider]
    registry: ToolRegistry
    max_iterations: int

    # --- Loop state ---
    conversation: list[ChatMessage]
    iteration: int
    exhausted: list[str]          # providers out of quota for this request
    active_provider: LLMProvider | None
    pending_call: ToolCallRequest | None

    # --- Output ---
    outcome: AgentOutcome | None
    message: str
    data: dict[str, Any] | None


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def plan_node(state: AgentState) -> dict:
    """PLANNING: one LLM step over the provider chain."""
    iteration = state.get("iteration", 0) + 1
    exhausted = list(state.get("exhausted", []))
    conversation = state["conversation"]

    logger.info("[AGENT] Planning step %d", iteration)

    step, provider, saw_protocol_error = await _step_with_fallback(
        state["providers"], exhausted, conversation, state["registry"].specs,
    )
    update: dict = {"iteration": iteration, "exhausted": exhausted}

    if step is None or provider is None:
        message = (
            prompts.MSG_BAD_ARGUMENTS if saw_protocol_error
            else prompts.MSG_ALL_PROVIDERS_EXHAUSTED
        )
        logger.warning("[AGENT] No provider produced a usable step")
        return {**update, "outcome": AgentOutcome.TERMINAL_ERROR, "message": message}

    if step.error_class is ErrorClass.OTHER:
        logger.error("[AGENT] %s failed: %s", provider.name, step.error_message)
        return {
            **update,
            "outcome": AgentOutcome.TERMINAL_ERROR,
            "message": prompts.MSG_LLM_ERROR.format(error=step.error_message),
            "active_provider": provider,
        }

    if not step.tool_calls:
        logger.info("[AGENT] %s answered without tool calls", provider.name)
        return {
            **update,
            "outcome": AgentOutcome.DONE,
            "message": step.text or prompts.MSG_EMPTY_ANSWER,
            "active_provider": provider,
        }

    call = step.tool_calls[0]
    assistant = ChatMessage(role="assistant", content=step.text, tool_calls=(call,))
    return {
        **update,
        "conversation": [*conversation, assistant],
        "pending_call": call,
        "active_provider": provider,
    }


async def execute_tool_node(state: AgentState) -> dict:
    """EXECUTING_TOOL: run the pending call and fold the result back in."""
    call = state["pending_call"]
    assert call is not None

    try:
        result = await state["registry"].execute(call, state["user_id"])
    except ToolArgumentError as e:
        logger.warning("[AGENT] Rejected tool call: %s", e)
        return {
            "pending_call": None,
            "outcome": AgentOutcome.TERMINAL_ERROR,
            "message": prompts.MSG_BAD_ARGUMENTS,
        }

    update: dict = {"pending_call": None}

    if isinstance(result, ToolError) and result.kind is ToolErrorKind.NOT_FOUND:
        update["outcome"] = AgentOutcome.TERMINAL_ERROR
        update["message"] = prompts.MSG_NOT_FOUND.format(
            subject_id=result.subject_id, source=result.source,
        )
        return update

    if isinstance(result, ToolError) and result.kind is ToolErrorKind.NO_CREDENTIAL:
        key = (result.subject_id or "").upper()
        update["outcome"] = AgentOutcome.TERMINAL_ERROR
        update["message"] = prompts.MSG_NO_CREDENTIAL.format(key=key)
        return update

    tool_message = ChatMessage(
        role="tool",
        content=json.dumps(tool_payload(result), ensure_ascii=False),
        tool_call_id=call.id,
        name=call.name,
    )
    update["conversation"] = [*state["conversation"], tool_message]

    if isinstance(result, DataTable):
        update["data"] = {
            "table": result.rows,
            "csv": to_csv(result.rows),
            "source": result.source_label,
        }
    return update


async def narrate_node(state: AgentState) -> dict:
    """DONE (with data): one text-only call to describe the table."""
    data = state["data"] or {}
    fallback = prompts.MSG_DATA_FALLBACK.format(source=data.get("source", ""))
    provider = state.get("active_provider")
    if provider is None:
        return {"outcome": AgentOutcome.DONE, "message": fallback}

    conversation = [
        *state["conversation"],
        ChatMessage(role="user", content=prompts.NARRATIVE_INSTRUCTION),
    ]
    step = await provider.step(conversation, None)
    if not step.ok or not step.text:
        logger.warning(
            "[AGENT] Narrative call failed (%s); using fallback text",
            step.error_message or "empty text",
        )
        return {"outcome": AgentOutcome.DONE, "message": fallback}

    return {"outcome": AgentOutcome.DONE, "message": step.text}


async def exhausted_node(state: AgentState) -> dict:
    logger.warning(
        "[AGENT] Iteration limit reached after %d planning steps",
        state.get("iteration", 0),
    )
    return {
        "outcome": AgentOutcome.EXHAUSTED,
        "message": prompts.MSG_ITERATION_LIMIT,
    }


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def route_after_plan(state: AgentState) -> str:
    if state.get("outcome") is None and state.get("pending_call") is not None:
        return "execute_tool"
    return END


def route_after_tool(state: AgentState) -> str:
    if state.get("outcome") is not None:
        return END
    if state.get("data") is not None:
        return "narrate"
    if state.get("iteration", 0) >= state["max_iterations"]:
        return "exhausted"
    return "plan"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------
# Compiled once at module level and shared by all requests.
# ---------------------------------------------------------------------------

_builder = StateGraph(AgentState)
_builder.add_node("plan", plan_node)
_builder.add_node("execute_tool", execute_tool_node)
_builder.add_node("narrate", narrate_node)
_builder.add_node("exhausted", exhausted_node)

_builder.add_edge(START, "plan")
_builder.add_conditional_edges("plan", route_after_plan, ["execute_tool", END])
_builder.add_conditional_edges(
    "execute_tool", route_after_tool, ["plan", "narrate", "exhausted", END],
)
_builder.add_edge("narrate", END)
_builder.add_edge("exhausted", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_agent(
    message: str,
    user_id: str,
    registry: ToolRegistry,
    credentials: CredentialStore | None = None,
    providers: Sequence[LLMProvider] | None = None,
    max_iterations: int | None = None,
) -> AgentResult:
    """
    Resolve one user message. Never raises.

    Args:
        message: The user's request.
        user_id: Caller identity for credential lookups.
        registry: Shared tool registry.
        credentials: Used to build the provider chain when `providers`
            is not given.
        providers: Explicit provider chain (tests, admin tooling).
        max_iterations: Planning-step bound; defaults to settings.

    Returns:
        AgentResult with the user-facing message and optional table data.
    """
    limit = settings.max_agent_iterations if max_iterations is None else max_iterations

    try:
        if providers is None:
            if credentials is None:
                raise ValueError("Either providers or credentials is required")
            providers = await build_provider_chain(user_id, credentials)
        chain = list(providers)

        if not chain:
            logger.info("[AGENT] No LLM credentials for user %s", user_id)
            return AgentResult(AgentOutcome.TERMINAL_ERROR, prompts.MSG_NO_LLM_KEY)
        if limit < 1:
            return AgentResult(AgentOutcome.EXHAUSTED, prompts.MSG_ITERATION_LIMIT)

        initial_state: AgentState = {
            "user_id": user_id,
            "providers": chain,
            "registry": registry,
            "max_iterations": limit,
            "conversation": [
                ChatMessage(role="system", content=prompts.SYSTEM_PROMPT),
                ChatMessage(role="user", content=message),
            ],
            "iteration": 0,
            "exhausted": [],
            "active_provider": None,
            "pending_call": None,
            "outcome": None,
            "data": None,
        }

        logger.info(
            "Invoking agent graph: user=%s providers=%s message='%s'",
            user_id, [p.name for p in chain], message[:80],
        )

        # Each planning round is two supersteps (plan + execute_tool).
        final = await graph.ainvoke(
            initial_state, config={"recursion_limit": 2 * limit + 5},
        )
    except Exception:
        logger.exception("Agent run failed for user %s", user_id)
        return AgentResult(AgentOutcome.TERMINAL_ERROR, prompts.MSG_INTERNAL_ERROR)

    outcome = final.get("outcome") or AgentOutcome.TERMINAL_ERROR
    provider = final.get("active_provider")
    data = final.get("data") if outcome is AgentOutcome.DONE else None

    logger.info(
        "Agent graph complete: outcome=%s iterations=%d provider=%s data=%s",
        outcome.value, final.get("iteration", 0),
        provider.name if provider else None, data is not None,
    )

    return AgentResult(
        outcome=outcome,
        message=final.get("message") or prompts.MSG_EMPTY_ANSWER,
        data=data,
        iterations=final.get("iteration", 0),
        provider=provider.name if provider else None,
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


async def _step_with_fallback(
    providers: Sequence[LLMProvider],
    exhausted: list[str],
    conversation: Sequence[ChatMessage],
    specs: Sequence[Any],
) -> tuple[StepResult | None, LLMProvider | None, bool]:
    """
    Try providers in priority order until one yields a non-quota result.

    Mutates `exhausted` with providers that reported QUOTA. Returns
    (step, provider, saw_protocol_error); step is None when every provider
    was skipped or gave up.
    """
    saw_protocol_error = False

    for provider in providers:
        if provider.name in exhausted:
            continue

        attempts = 0
        while True:
            attempts += 1
            step = await provider.step(conversation, specs)

            if step.error_class is ErrorClass.QUOTA:
                logger.info(
                    "[AGENT] %s quota exhausted (%s); trying next provider",
                    provider.name, step.error_message,
                )
                exhausted.append(provider.name)
                break

            if step.error_class is ErrorClass.TOOL_PROTOCOL:
                saw_protocol_error = True
                if attempts <= settings.llm_tool_protocol_retries:
                    logger.info(
                        "[AGENT] %s tool-protocol error, retry %d: %s",
                        provider.name, attempts, step.error_message,
                    )
                    continue
                logger.info(
                    "[AGENT] %s tool-protocol retries spent; trying next provider",
                    provider.name,
                )
                break

            return step, provider, saw_protocol_error

    return None, None, saw_protocol_error


def tool_payload(result: ToolResult) -> dict[str, Any]:
    """
    JSON body of the tool message fed back to the model.

    DataTable results are summarized (row count, columns, source); the cell
    values never enter the prompt.
    """
    if isinstance(result, SearchResults):
        return {
            "results": [
                {"id": cid, "description": desc} for cid, desc in result.candidates
            ],
        }
    if isinstance(result, DataTable):
        return {
            "success": True,
            "data": {
                "rows": result.row_count,
                "columns": result.header,
                "source": result.source_label,
            },
        }
    return {
        "success": False,
        "error": (
            "No pude obtener los datos solicitados de "
            f"{result.source or 'la fuente'} para '{result.subject_id}'. "
            "Intenta con otro ID o informa al usuario."
        ),
    }
