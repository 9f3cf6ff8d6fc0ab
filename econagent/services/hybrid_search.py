# =============================================================================
# Hybrid Catalog Search — Reciprocal Rank Fusion
# =============================================================================
#
# Resolves a phrase like "tipo de cambio" into ranked catalog candidates by
# fusing two rankings:
#
# 1. LEXICAL  — PostgreSQL full-text rank + unaccented substring match
# 2. SEMANTIC — query embedding vs. catalog embeddings (cosine distance)
# 3. FUSE     — score(id) = Σ 1 / (k + rank) over the lists containing id,
#               ranks 1-indexed, k = 60; top 10 by descending score
#
# DEGRADED MODE: when the embedding service (or the semantic query) fails,
# the lexical ranking alone is returned with the same 10-item cap. This is
# logged and never raised to the caller.
#
# Ties keep first-seen order (lexical list first, then semantic) because
# Python's sort is stable; identical inputs always give identical output.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from econagent.config import settings
from econagent.services.catalog import CatalogHit, CatalogSource, CatalogStore
from econagent.services.embedder import EmbeddingUnavailable, aembed_query

logger = logging.getLogger(__name__)

Embedder = Callable[[str], Awaitable[list[float]]]


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[CatalogHit]],
    k: int = 60,
    limit: int = 10,
) -> list[CatalogHit]:
    """
    Fuse ranked candidate lists into one.

    The first description seen for an id is kept, so passing the lexical
    list first makes its description win on disagreement.
    """
    scores: dict[str, float] = {}
    hits: dict[str, CatalogHit] = {}

    for ranking in rankings:
        for rank, hit in enumerate(ranking, start=1):
            scores[hit.id] = scores.get(hit.id, 0.0) + 1.0 / (k + rank)
            hits.setdefault(hit.id, hit)

    ordered = sorted(hits, key=lambda hit_id: scores[hit_id], reverse=True)
    return [hits[hit_id] for hit_id in ordered[:limit]]


class HybridSearchEngine:
    """
    Lexical + semantic catalog search over a CatalogStore.

    Stateless apart from its collaborators; one instance is shared by all
    requests.
    """

    def __init__(
        self,
        store: CatalogStore,
        embed: Embedder = aembed_query,
        candidate_limit: int | None = None,
        result_limit: int | None = None,
        rrf_k: int | None = None,
    ) -> None:
        self._store = store
        self._embed = embed
        self._candidate_limit = candidate_limit or settings.search_candidate_limit
        self._result_limit = result_limit or settings.search_result_limit
        self._rrf_k = rrf_k or settings.rrf_k

    async def search(self, query: str, source: CatalogSource) -> list[CatalogHit]:
        """
        Return up to `result_limit` fused candidates for `query`.

        Lexical failures (database errors) propagate; semantic failures
        degrade to lexical-only results.
        """
        lexical = await self._store.lexical_search(
            query, source, self._candidate_limit,
        )

        semantic = await self._semantic_ranking(query, source)
        if semantic is None:
            return lexical[: self._result_limit]

        fused = reciprocal_rank_fusion(
            [lexical, semantic], k=self._rrf_k, limit=self._result_limit,
        )

        logger.info(
            "Hybrid search '%s' (%s): lexical=%d semantic=%d fused=%d",
            query, source.value, len(lexical), len(semantic), len(fused),
        )
        return fused

    async def _semantic_ranking(
        self, query: str, source: CatalogSource,
    ) -> list[CatalogHit] | None:
        """Semantic candidates, or None when the semantic path is down."""
        try:
            embedding = await self._embed(query)
        except EmbeddingUnavailable as e:
            logger.warning(
                "Embedding unavailable, using lexical-only search: %s", e,
            )
            return None
        except Exception:
            logger.warning(
                "Unexpected embedding failure, using lexical-only search",
                exc_info=True,
            )
            return None

        try:
            return await self._store.semantic_search(
                embedding, source, self._candidate_limit,
            )
        except SQLAlchemyError as e:
            logger.warning(
                "Semantic search failed, using lexical-only search: %s", e,
            )
            return None
