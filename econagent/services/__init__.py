# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core services, separated from API handlers and the agent loop:
#   - llm.py: Provider adapters (OpenAI-compatible, Gemini, Anthropic) with
#     tool-calling translation and error classification
#   - embedder.py: Query embeddings via an OpenAI-compatible endpoint
#   - catalog.py: Catalog store (full-text + pgvector) and in-memory cache
#   - hybrid_search.py: Reciprocal Rank Fusion over lexical + semantic
#   - credentials.py: Per-user provider credential lookup
#   - http.py: Shared httpx.AsyncClient (data sources, Gemini REST)
# =============================================================================
