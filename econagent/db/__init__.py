# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session management, and ORM models.
#
# Key exports:
#   - async_session_factory: session factory used by the catalog and
#     credential stores
#   - InegiIndicator, BanxicoSeries: catalog tables (text + embedding)
#   - ProviderCredential: per-user API keys for LLMs and data sources
# =============================================================================
