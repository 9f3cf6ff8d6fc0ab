# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the HTTP API. Kept apart from the ORM models
# in econagent/db/models.py so embeddings and stored keys never reach the
# wire.
# =============================================================================
