"""
HTTP Route Tests
================
Full application built through the startup composition root, with the
in-memory session store and hashing embeddings.

Run with: pytest tests/test_routes.py -v
"""

import pytest
from fastapi.testclient import TestClient

from agent_core.config import AgentSettings
from agent_core.context_assembler import DEGRADED_REPLY
from agent_core.llm_service import LLMService
from agent_core.main import create_app


def make_settings(docs_path, **overrides) -> AgentSettings:
    values = dict(
        openai_api_key=None,
        embedding_provider="hashing",
        embedding_dimension=1024,
        docs_path=str(docs_path),
        chunk_size=80,
        chunk_overlap=0,
        session_backend="memory",
    )
    values.update(overrides)
    return AgentSettings(**values)


@pytest.fixture
def client(docs_dir):
    app = create_app(settings=make_settings(docs_dir))
    with TestClient(app) as test_client:
        yield test_client


class TestRoot:

    def test_banner(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["message"] == "POST /agent/message"

    def test_unknown_route(self, client):
        response = client.get("/nowhere")
        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"


class TestMessageEndpoint:
    """POST /agent/message"""

    def test_reply_with_llm(self, client, mock_openai_client):
        client.app.state.agent.assembler.llm_service = LLMService(client=mock_openai_client)

        response = client.post("/agent/message", json={"message": "  Hello  ", "sessionId": "user-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["reply"] == "This is a test response"
        assert body["session_id"] == "user-1"
        assert body["timestamp"]

        sent = mock_openai_client.chat.completions.create.await_args.kwargs["messages"]
        assert sent[-1] == {"role": "user", "content": "Hello"}

    def test_degraded_without_api_key(self, client):
        response = client.post(
            "/agent/message",
            json={"message": "Calculate 15 * 8 + sqrt(144)", "sessionId": "math_1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["reply"] == DEGRADED_REPLY
        assert body["plugins_used"] == ["math"]

    def test_short_circuit_returns_plugin_text(self, docs_dir):
        app = create_app(settings=make_settings(docs_dir, plugin_short_circuit=True))
        with TestClient(app) as test_client:
            response = test_client.post(
                "/agent/message",
                json={"message": "Calculate 15 * 8 + sqrt(144)", "sessionId": "math_1"},
            )

        assert response.status_code == 200
        assert "**Result:** 132" in response.json()["reply"]

    @pytest.mark.parametrize("payload", [
        {"message": "", "sessionId": "abc"},
        {"message": "   ", "sessionId": "abc"},
        {"message": "x" * 4001, "sessionId": "abc"},
        {"message": "hi", "sessionId": "bad id!"},
        {"message": "hi", "sessionId": "a" * 101},
        {"message": "hi"},
    ])
    def test_validation_errors(self, client, payload):
        response = client.post("/agent/message", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Bad Request"
        assert body["message"].startswith("Validation failed: ")
        assert body["timestamp"]


class TestSessionEndpoint:
    """GET /agent/session/{session_id}"""

    def test_unknown_session(self, client):
        response = client.get("/agent/session/nobody")

        assert response.status_code == 200
        body = response.json()
        assert body["session_id"] == "nobody"
        assert body["exists"] is False
        assert body["message_count"] == 0

    def test_session_after_message(self, client):
        client.post("/agent/message", json={"message": "Hello", "sessionId": "user-2"})

        body = client.get("/agent/session/user-2").json()

        assert body["exists"] is True
        assert body["message_count"] == 2

    def test_invalid_session_id(self, client):
        response = client.get("/agent/session/bad.id")
        assert response.status_code == 400


class TestSearchEndpoint:
    """GET /agent/search"""

    def test_search(self, client):
        response = client.get("/agent/search", params={"q": "markdown syntax", "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "markdown syntax"
        assert len(body["results"]) == 2
        assert all(r["source"] == "Markdown Guide" for r in body["results"])
        assert {"content", "similarity", "source", "chunk_index"} <= set(body["results"][0])

    @pytest.mark.parametrize("params", [
        {"q": ""},
        {"q": "   "},
        {"q": "x" * 201},
        {"q": "markdown", "limit": 0},
        {"q": "markdown", "limit": 21},
    ])
    def test_search_validation(self, client, params):
        response = client.get("/agent/search", params=params)
        assert response.status_code == 400

    def test_search_unavailable_before_index(self, tmp_path):
        app = create_app(settings=make_settings(tmp_path / "missing"))
        with TestClient(app) as test_client:
            response = test_client.get("/agent/search", params={"q": "markdown"})
            health = test_client.get("/agent/health").json()

        assert response.status_code == 503
        assert response.json()["error"] == "Service Unavailable"
        assert health["retrieval_initialized"] is False


class TestInfoEndpoints:

    def test_health(self, client):
        body = client.get("/agent/health").json()

        assert body["status"] == "healthy"
        assert body["version"] == "1.0.0"
        assert body["retrieval_initialized"] is True
        assert body["session_store_connected"] is True

    def test_plugins(self, client):
        body = client.get("/agent/plugins").json()

        assert body["count"] == 2
        assert [p["name"] for p in body["plugins"]] == ["weather", "math"]
