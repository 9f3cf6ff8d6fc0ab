# =============================================================================
# Mexican Economic Data Agent
# =============================================================================
# An LLM tool-calling agent that turns a free-form request ("tipo de cambio
# del último mes") into a validated call against INEGI, Banxico or SHCP and
# returns the series as a table plus a short narrative.
#
# Package structure:
#   econagent/
#   ├── api/          → FastAPI route handlers (chat, catalog quick search)
#   ├── agents/       → LangGraph agent loop, tool registry, prompts
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → LLM providers, embeddings, catalog, hybrid search,
#   │                    credential lookup
#   └── sources/      → INEGI, Banxico and SHCP fetch + parse adapters
# =============================================================================
