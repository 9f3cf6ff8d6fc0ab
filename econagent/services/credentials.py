# =============================================================================
# Credential Store — Per-User Provider Secrets
# =============================================================================
#
# Looks up the secret a user configured for a provider (an LLM backend or a
# data source). A missing credential is a normal answer (None), never an
# error: it decides which providers join the fallback chain and whether a
# data-source tool can run at all.
#
# Keys are stored base64-encoded by the settings UI that writes them; that
# encoding is reversed here. Encryption at rest is handled outside this
# service.
# =============================================================================

from __future__ import annotations

import base64
import binascii
import logging
from typing import Protocol

from sqlalchemy import select

from econagent.db.engine import async_session_factory
from econagent.db.models import ProviderCredential

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Anything that can answer "secret for (user, provider), or None"."""

    async def get(self, user_id: str, provider: str) -> str | None:
        ...


class PgCredentialStore:
    """Credential lookups against the `api_keys` table."""

    async def get(self, user_id: str, provider: str) -> str | None:
        stmt = select(ProviderCredential.key).where(
            ProviderCredential.user_id == user_id,
            ProviderCredential.provider == provider,
        )
        async with async_session_factory() as session:
            stored = (await session.execute(stmt)).scalar_one_or_none()

        if stored is None:
            return None

        try:
            return base64.b64decode(stored, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning(
                "Stored %s credential for user %s is not valid base64; ignoring",
                provider, user_id,
            )
            return None


class StaticCredentialStore:
    """
    In-memory credentials keyed by (user_id, provider).

    Used for server-level keys from settings and in tests.
    """

    def __init__(self, secrets: dict[tuple[str, str], str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    async def get(self, user_id: str, provider: str) -> str | None:
        return self._secrets.get((user_id, provider))


class LayeredCredentialStore:
    """
    User credentials first, then server-level fallbacks by provider name.

    A server-level key (e.g. GROQ_API_KEY in .env) lets every user reach that
    provider without configuring their own.
    """

    def __init__(
        self,
        primary: CredentialStore,
        server_keys: dict[str, str] | None = None,
    ) -> None:
        self._primary = primary
        self._server_keys = {k: v for k, v in (server_keys or {}).items() if v}

    async def get(self, user_id: str, provider: str) -> str | None:
        secret = await self._primary.get(user_id, provider)
        if secret:
            return secret
        return self._server_keys.get(provider)
