# =============================================================================
# Catalog Store — Indicator Catalogs in PostgreSQL
# =============================================================================
#
# Read-only access to the two indicator catalogs (INEGI indicators, Banxico
# series). The hybrid search needs two rankings from here, and the tool
# registry needs a short human-readable label per id.
#
# ARCHITECTURE:
#   CatalogStore (Protocol)
#   ├── PgCatalogStore      — PostgreSQL full-text + pgvector
#   │   ├── lexical_search()   — ts_rank('spanish') OR ILIKE substring
#   │   ├── semantic_search()  — cosine distance over non-NULL embeddings
#   │   ├── lookup_label()     — primary-key lookup + label shortening
#   │   └── all_entries()      — full table scan (cache warm-up)
#   └── CatalogCache        — process-wide, init-once in-memory copy used by
#                              the /search-indicators quick search
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
import unicodedata
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import func, or_, select

from econagent.db.engine import async_session_factory
from econagent.db.models import BanxicoSeries, InegiIndicator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class CatalogSource(str, enum.Enum):
    """Catalogs the search_indicator tool can query."""

    INEGI = "inegi"
    BANXICO = "banxico"


@dataclass(frozen=True)
class CatalogEntry:
    """One catalog row. `embedding` is None until the backfill reaches it."""

    id: str
    text: str
    embedding: list[float] | None = None


@dataclass(frozen=True)
class CatalogHit:
    """A ranked search candidate: the id plus its catalog description."""

    id: str
    description: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_query(text: str) -> str:
    """Lowercase and strip diacritics ("Dólar" → "dolar")."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def short_label(text: str, source: CatalogSource) -> str:
    """
    Shorten a catalog description to a display label.

    INEGI descriptions are "/"-separated paths; Banxico titles are sentences.
    The first segment is kept in both cases.
    """
    separator = "/" if source is CatalogSource.INEGI else "."
    return text.split(separator)[0].strip()


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class CatalogStore(Protocol):
    """Read interface over the indicator catalogs."""

    async def lexical_search(
        self, query: str, source: CatalogSource, limit: int,
    ) -> list[CatalogHit]:
        """Full-text ranking, best first."""
        ...

    async def semantic_search(
        self, embedding: list[float], source: CatalogSource, limit: int,
    ) -> list[CatalogHit]:
        """Vector-similarity ranking over embedded rows, closest first."""
        ...

    async def lookup_label(self, entry_id: str, source: CatalogSource) -> str | None:
        """Short display label for an id, or None if the id is unknown."""
        ...

    async def all_entries(self, source: CatalogSource) -> list[CatalogEntry]:
        """Every row of a catalog, in primary-key order."""
        ...


# ---------------------------------------------------------------------------
# Implementation: PostgreSQL
# ---------------------------------------------------------------------------


def _table(source: CatalogSource) -> tuple[Any, Any]:
    """Map a source to its ORM model and text column."""
    if source is CatalogSource.INEGI:
        return InegiIndicator, InegiIndicator.descripcion
    return BanxicoSeries, BanxicoSeries.titulo


class PgCatalogStore:
    """
    PostgreSQL-backed catalog store.

    The lexical query mirrors the GIN expression indexes declared in
    econagent.db.models: `to_tsvector('spanish', <text>)` matched against
    `plainto_tsquery('spanish', <query>)`, OR-ed with a case-insensitive
    substring match on the diacritic-stripped query so that short or
    unaccented phrases ("dolar") still hit.
    """

    async def lexical_search(
        self, query: str, source: CatalogSource, limit: int,
    ) -> list[CatalogHit]:
        model, text_col = _table(source)
        document = func.to_tsvector("spanish", text_col)
        ts_query = func.plainto_tsquery("spanish", query)
        rank = func.ts_rank(document, ts_query)
        pattern = f"%{normalize_query(query)}%"

        stmt = (
            select(model.id, text_col.label("text"), rank.label("rank"))
            .where(or_(document.op("@@")(ts_query), text_col.ilike(pattern)))
            .order_by(rank.desc(), model.id)
            .limit(limit)
        )

        async with async_session_factory() as session:
            rows = (await session.execute(stmt)).all()

        logger.debug(
            "Lexical search returned %d rows (source=%s, query='%s')",
            len(rows), source.value, query,
        )
        return [CatalogHit(id=row.id, description=row.text) for row in rows]

    async def semantic_search(
        self, embedding: list[float], source: CatalogSource, limit: int,
    ) -> list[CatalogHit]:
        model, text_col = _table(source)
        distance = model.embedding.cosine_distance(embedding)

        stmt = (
            select(model.id, text_col.label("text"), distance.label("distance"))
            .where(model.embedding.is_not(None))
            .order_by(distance, model.id)
            .limit(limit)
        )

        async with async_session_factory() as session:
            rows = (await session.execute(stmt)).all()

        logger.debug(
            "Semantic search returned %d rows (source=%s)",
            len(rows), source.value,
        )
        return [CatalogHit(id=row.id, description=row.text) for row in rows]

    async def lookup_label(self, entry_id: str, source: CatalogSource) -> str | None:
        model, text_col = _table(source)
        async with async_session_factory() as session:
            text = (
                await session.execute(select(text_col).where(model.id == entry_id))
            ).scalar_one_or_none()

        if not text:
            return None
        return short_label(text, source) or None

    async def all_entries(self, source: CatalogSource) -> list[CatalogEntry]:
        model, text_col = _table(source)
        stmt = select(model.id, text_col.label("text"), model.embedding).order_by(model.id)

        async with async_session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            CatalogEntry(
                id=row.id,
                text=row.text,
                embedding=list(row.embedding) if row.embedding is not None else None,
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# In-Memory Catalog Cache
# ---------------------------------------------------------------------------


class CatalogCache:
    """
    Process-wide, lazily loaded copy of each catalog.

    Initialization contract:
    - Each source is loaded at most once per process, on first use.
    - Concurrent first requests share one load: the check is repeated under
      the per-source lock before loading (double-checked).
    - Entries are never invalidated; a catalog re-import needs a restart.

    Construct one instance at application startup and inject it where
    needed (see econagent.api.deps).
    """

    def __init__(self, store: CatalogStore) -> None:
        self._store = store
        self._entries: dict[CatalogSource, list[CatalogEntry]] = {}
        self._locks: dict[CatalogSource, asyncio.Lock] = {
            source: asyncio.Lock() for source in CatalogSource
        }

    def is_loaded(self, source: CatalogSource) -> bool:
        return source in self._entries

    async def entries(self, source: CatalogSource) -> list[CatalogEntry]:
        """Return the cached catalog, loading it on first use."""
        cached = self._entries.get(source)
        if cached is not None:
            return cached

        async with self._locks[source]:
            cached = self._entries.get(source)
            if cached is None:
                cached = await self._store.all_entries(source)
                self._entries[source] = cached
                logger.info(
                    "Loaded %d %s catalog entries into memory",
                    len(cached), source.value,
                )
        return cached

    async def quick_search(
        self, query: str, source: CatalogSource, limit: int = 10,
    ) -> list[CatalogHit]:
        """
        Case- and accent-insensitive substring match over the cached rows,
        in catalog order. An empty query returns nothing.
        """
        needle = normalize_query(query.strip())
        if not needle:
            return []

        hits: list[CatalogHit] = []
        for entry in await self.entries(source):
            if needle in normalize_query(entry.text):
                hits.append(CatalogHit(id=entry.id, description=entry.text))
                if len(hits) >= limit:
                    break
        return hits
