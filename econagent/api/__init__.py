# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter:
#   - chat.py: POST /chat, the agent entry point
#   - catalog.py: GET /search-indicators, cached catalog quick search
#   - deps.py: Caller identity and the process-wide service singletons
# =============================================================================
