# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# The agent only reads from PostgreSQL (catalog lookups, credential lookups),
# so a single async engine backed by asyncpg covers every caller. Catalog
# ingestion and embedding backfill run elsewhere and write to the same
# tables.
#
# SESSION LIFECYCLE:
# Stores open a short-lived session per query via `async_session_factory()`
# and let it close on exit. Nothing here holds a session across an LLM call.
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from econagent.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# - echo=settings.debug: logs generated SQL in debug mode.
# - pool_size / max_overflow: sized for a handful of concurrent chat requests,
#   each of which holds a connection only for the duration of one query.
# - pool_pre_ping: catalog reads are bursty; stale connections are replaced
#   instead of failing the first search after an idle period.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
)

# expire_on_commit=False keeps loaded rows readable after the session closes.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
