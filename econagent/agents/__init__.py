# =============================================================================
# Agents Package — Tool-Calling Query Resolution
# =============================================================================
# Turns a free-form request for an economic series into validated tool calls:
#   - prompts.py: System prompt and the fixed user-facing message templates
#   - tools.py: The four tools (search + three data fetchers), argument
#     validation, exhaustive dispatch, result shapes and CSV rendering
#   - orchestrator.py: LangGraph state machine — plan → execute tool → plan,
#     bounded by an iteration limit, with provider fallback on quota errors
#
# Tools: search_indicator, get_inegi_data, get_banxico_data, get_shcp_data
# Loop: plan → execute tool → plan … → narrate (max N planning steps)
# =============================================================================
