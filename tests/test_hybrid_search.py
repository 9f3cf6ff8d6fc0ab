# =============================================================================
# Unit Tests — Hybrid Catalog Search (RRF)
# =============================================================================
#
# Uses an in-memory catalog store with scripted rankings. No database or
# embedding service is needed.
# =============================================================================

from __future__ import annotations

import asyncio

from sqlalchemy.exc import OperationalError

from econagent.services.catalog import CatalogHit, CatalogSource
from econagent.services.embedder import EmbeddingUnavailable
from econagent.services.hybrid_search import HybridSearchEngine, reciprocal_rank_fusion


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _hits(*ids: str) -> list[CatalogHit]:
    return [CatalogHit(id=i, description=f"desc {i}") for i in ids]


class ScriptedStore:
    """Catalog store returning fixed lexical/semantic rankings."""

    def __init__(self, lexical, semantic=None, semantic_error=None):
        self.lexical = lexical
        self.semantic = semantic or []
        self.semantic_error = semantic_error
        self.semantic_calls = 0

    async def lexical_search(self, query, source, limit):
        return self.lexical[:limit]

    async def semantic_search(self, embedding, source, limit):
        self.semantic_calls += 1
        if self.semantic_error:
            raise self.semantic_error
        return self.semantic[:limit]

    async def lookup_label(self, entry_id, source):
        return None

    async def all_entries(self, source):
        return []


async def _fake_embed(text: str) -> list[float]:
    return [0.1, 0.2, 0.3]


# ---------------------------------------------------------------------------
# Test: reciprocal_rank_fusion
# ---------------------------------------------------------------------------


class TestReciprocalRankFusion:

    def test_item_in_both_lists_ranks_first(self):
        fused = reciprocal_rank_fusion([_hits("a", "b", "c"), _hits("c", "d")])
        assert fused[0].id == "c"

    def test_ties_keep_first_seen_order(self):
        # a and b get identical scores: 1/61 + 1/62
        fused = reciprocal_rank_fusion([_hits("a", "b"), _hits("b", "a")])
        assert [h.id for h in fused] == ["a", "b"]

    def test_repeated_calls_are_identical(self):
        lexical = _hits(*[f"L{i}" for i in range(20)])
        semantic = _hits(*[f"L{i}" for i in range(19, -1, -2)])
        first = reciprocal_rank_fusion([lexical, semantic])
        for _ in range(5):
            assert reciprocal_rank_fusion([lexical, semantic]) == first

    def test_limit_is_ten_by_default(self):
        fused = reciprocal_rank_fusion([_hits(*[str(i) for i in range(30)])])
        assert len(fused) == 10

    def test_lexical_description_wins(self):
        lexical = [CatalogHit("x", "lexical text")]
        semantic = [CatalogHit("x", "semantic text")]
        fused = reciprocal_rank_fusion([lexical, semantic])
        assert fused[0].description == "lexical text"

    def test_scores_use_k_plus_one_indexed_rank(self):
        # With k=0: "b" scores 1/2 + 1/1 = 1.5, "a" scores 1/1 = 1.0
        fused = reciprocal_rank_fusion([_hits("a", "b"), _hits("b")], k=0)
        assert [h.id for h in fused] == ["b", "a"]

    def test_empty_rankings(self):
        assert reciprocal_rank_fusion([[], []]) == []


# ---------------------------------------------------------------------------
# Test: HybridSearchEngine
# ---------------------------------------------------------------------------


class TestHybridSearchEngine:

    def test_exchange_rate_scenario(self):
        """Semantic rank 1 lifts a lexical rank-6 entry into the top 3."""
        lexical = _hits("L1", "L2", "L3", "L4", "L5") + [
            CatalogHit("SF43718", "Tipo de cambio pesos por dólar FIX"),
        ] + _hits("L7", "L8")
        semantic = [
            CatalogHit("SF43718", "Tipo de cambio pesos por dólar FIX"),
        ] + _hits("S2", "S3", "S4")
        engine = HybridSearchEngine(ScriptedStore(lexical, semantic), embed=_fake_embed)

        result = _run(engine.search("tipo de cambio", CatalogSource.BANXICO))

        assert "SF43718" in [h.id for h in result[:3]]
        assert result[0].id == "SF43718"

    def test_result_capped_at_ten(self):
        store = ScriptedStore(_hits(*[f"L{i}" for i in range(30)]),
                              _hits(*[f"S{i}" for i in range(30)]))
        engine = HybridSearchEngine(store, embed=_fake_embed)
        assert len(_run(engine.search("pib", CatalogSource.INEGI))) == 10

    def test_deterministic_across_calls(self):
        store = ScriptedStore(_hits("a", "b", "c", "d"), _hits("d", "c", "e"))
        engine = HybridSearchEngine(store, embed=_fake_embed)
        first = _run(engine.search("q", CatalogSource.INEGI))
        second = _run(engine.search("q", CatalogSource.INEGI))
        assert first == second


class TestDegradedMode:

    def test_embedding_unavailable_falls_back_to_lexical(self):
        async def broken_embed(text):
            raise EmbeddingUnavailable("no key")

        store = ScriptedStore(_hits(*[f"L{i}" for i in range(12)]), _hits("S1"))
        engine = HybridSearchEngine(store, embed=broken_embed)

        result = _run(engine.search("inflacion", CatalogSource.INEGI))

        assert [h.id for h in result] == [f"L{i}" for i in range(10)]
        assert store.semantic_calls == 0

    def test_unexpected_embedding_error_never_raises(self):
        async def exploding_embed(text):
            raise RuntimeError("connection reset")

        store = ScriptedStore(_hits("L1", "L2"))
        engine = HybridSearchEngine(store, embed=exploding_embed)

        assert [h.id for h in _run(engine.search("x", CatalogSource.INEGI))] == ["L1", "L2"]

    def test_semantic_query_failure_falls_back(self):
        store = ScriptedStore(
            _hits("L1"),
            semantic_error=OperationalError("SELECT", {}, Exception("vector missing")),
        )
        engine = HybridSearchEngine(store, embed=_fake_embed)

        assert [h.id for h in _run(engine.search("x", CatalogSource.BANXICO))] == ["L1"]

    def test_empty_lexical_and_no_embeddings(self):
        async def broken_embed(text):
            raise EmbeddingUnavailable("down")

        engine = HybridSearchEngine(ScriptedStore([]), embed=broken_embed)
        assert _run(engine.search("zzz", CatalogSource.INEGI)) == []
