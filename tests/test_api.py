# =============================================================================
# Unit Tests — HTTP API
# =============================================================================
#
# Service singletons are replaced via app.dependency_overrides and the agent
# entry point is patched, so the routes run without a database.
# =============================================================================

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from econagent.agents.orchestrator import AgentOutcome, AgentResult
from econagent.api.deps import (
    get_catalog_cache,
    get_credential_store,
    get_current_user_id,
    get_tool_registry,
)
from econagent.main import app
from econagent.services.catalog import CatalogCache, CatalogEntry, CatalogSource
from econagent.services.credentials import StaticCredentialStore


class _Store:
    async def all_entries(self, source):
        if source is CatalogSource.BANXICO:
            return [CatalogEntry("SF43718", "Tipo de cambio pesos por dólar FIX")]
        return [CatalogEntry("444456", "Producto interno bruto / Total")]


def _client() -> TestClient:
    app.dependency_overrides[get_tool_registry] = lambda: object()
    app.dependency_overrides[get_credential_store] = lambda: StaticCredentialStore({})
    app.dependency_overrides[get_catalog_cache] = lambda: CatalogCache(_Store())
    return TestClient(app)


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self):
        response = _client().get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestChatEndpoint:

    def test_message_only(self):
        result = AgentResult(AgentOutcome.DONE, "Hola")
        with patch("econagent.api.chat.run_agent", new=AsyncMock(return_value=result)) as run:
            response = _client().post(
                "/chat", json={"message": "hola"}, headers={"X-User-Id": "u42"},
            )

        assert response.status_code == 200
        assert response.json() == {"message": "Hola", "data": None}
        assert run.call_args.kwargs["user_id"] == "u42"

    def test_with_data(self):
        data = {
            "table": [["Fecha", "Valor"], ["2024-01-01", "17.50"]],
            "csv": '"Fecha","Valor"\n"2024-01-01","17.50"',
            "source": "Banxico - Tipo de cambio",
        }
        result = AgentResult(AgentOutcome.DONE, "Aquí están los datos", data=data)
        with patch("econagent.api.chat.run_agent", new=AsyncMock(return_value=result)):
            response = _client().post("/chat", json={"message": "tipo de cambio"})

        assert response.status_code == 200
        assert response.json()["data"] == data

    def test_default_user_when_header_missing(self):
        result = AgentResult(AgentOutcome.DONE, "ok")
        with patch("econagent.api.chat.run_agent", new=AsyncMock(return_value=result)) as run:
            _client().post("/chat", json={"message": "hola"})
        assert run.call_args.kwargs["user_id"] == "local"

    def test_empty_message_rejected(self):
        response = _client().post("/chat", json={"message": ""})
        assert response.status_code == 422

    def test_unexpected_failure_is_502(self):
        with patch("econagent.api.chat.run_agent", new=AsyncMock(side_effect=RuntimeError("x"))):
            response = _client().post("/chat", json={"message": "hola"})
        assert response.status_code == 502


class TestSearchIndicatorsEndpoint:

    def test_substring_match(self):
        response = _client().get(
            "/search-indicators", params={"q": "dolar", "source": "banxico"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "results": [{"id": "SF43718", "description": "Tipo de cambio pesos por dólar FIX"}],
        }

    def test_empty_query(self):
        response = _client().get("/search-indicators", params={"q": ""})
        assert response.json() == {"results": []}

    def test_invalid_source(self):
        response = _client().get("/search-indicators", params={"q": "x", "source": "shcp"})
        assert response.status_code == 422

    def test_identity_dependency_overridable(self):
        app.dependency_overrides[get_current_user_id] = lambda: "someone"
        response = _client().get("/search-indicators", params={"q": "producto"})
        assert response.json()["results"][0]["id"] == "444456"
