# =============================================================================
# Embedding Service — Query Vectors (Provider-Agnostic)
# =============================================================================
#
# Generates query embeddings through any OpenAI-compatible embeddings
# endpoint. The catalogs were embedded with Voyage AI's voyage-3-lite via its
# OpenAI-compatible API, so that is the default here; queries must use the
# same model as the stored vectors.
#
# Every failure mode (no key, network error, timeout, API error) surfaces as
# EmbeddingUnavailable. The hybrid search treats that as the signal to fall
# back to lexical-only ranking.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

import openai
from openai import OpenAI

from econagent.config import settings

logger = logging.getLogger(__name__)


class EmbeddingUnavailable(Exception):
    """The embedding service is misconfigured or not reachable."""


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# The OpenAI client manages its own HTTP connection pool and is thread-safe.
# Lazy initialization avoids import-time failures when no key is set.
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        if not settings.embedding_api_key:
            raise EmbeddingUnavailable(
                "No API key configured for embeddings. "
                "Set EMBEDDING_API_KEY in .env"
            )

        client_kwargs: dict = {
            "api_key": settings.embedding_api_key,
            "timeout": settings.embedding_timeout_seconds,
            "max_retries": 1,
        }
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


def embed_query(text: str) -> list[float]:
    """
    Generate an embedding for a single query string.

    Raises:
        EmbeddingUnavailable: On missing configuration or any API failure.
    """
    client = _get_client()
    try:
        response = client.embeddings.create(
            model=settings.embedding_model,
            input=[text],
        )
    except openai.OpenAIError as e:
        raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

    if not response.data:
        raise EmbeddingUnavailable("Embedding response contained no vectors")

    return response.data[0].embedding


async def aembed_query(text: str) -> list[float]:
    """Async wrapper: the OpenAI sync client runs in a worker thread."""
    return await asyncio.to_thread(embed_query, text)
