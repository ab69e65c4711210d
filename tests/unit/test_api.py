"""Tests for the HTTP API."""
import io

import pytest
from werkzeug.datastructures import FileStorage

from knowhub import config
from knowhub.documents import DocumentService
from knowhub.errors import ProviderError
from knowhub.main import Services, create_app
from knowhub.rag.answerer import RAGOrchestrator
from knowhub.rag.retriever import Retriever


@pytest.fixture
def services(store, coordinator, embedder, generator, history, tmp_path):
    return Services(
        documents=DocumentService(store, coordinator, upload_dir=tmp_path / "uploads"),
        orchestrator=RAGOrchestrator(Retriever(store, embedder), generator, history),
        history=history,
        ingestion=coordinator,
    )


@pytest.fixture
def client(services):
    return create_app(services).test_client()


async def _upload(client, name="a.txt", body=b"The sky is blue. Grass is green.", content_type="text/plain"):
    return await client.post(
        "/api/v1/documents/upload",
        files={"file": FileStorage(stream=io.BytesIO(body), filename=name, content_type=content_type)},
    )


class TestQueryEndpoint:
    """Tests for POST /api/v1/query."""

    async def test_empty_store_returns_fallback(self, client):
        response = await client.post("/api/v1/query", json={"question": "Anything?"})
        body = await response.get_json()

        assert response.status_code == 200
        assert body["success"] is True
        assert body["error"] is None
        assert body["data"] == {"answer": config.NO_CONTEXT_ANSWER, "context_documents": []}

    @pytest.mark.parametrize("payload", [{}, {"question": ""}, {"question": 42}])
    async def test_invalid_request_rejected(self, client, payload):
        response = await client.post("/api/v1/query", json=payload)
        body = await response.get_json()

        assert response.status_code == 400
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]

    async def test_blank_question_rejected(self, client, history):
        response = await client.post("/api/v1/query", json={"question": "   "})

        assert response.status_code == 400
        assert history.recent() == []

    async def test_answers_from_uploaded_document(self, client, services):
        response = await _upload(client)
        assert response.status_code == 201
        await services.ingestion.drain()

        response = await client.post("/api/v1/query", json={"question": "What color is the sky?"})
        body = await response.get_json()

        assert body["data"]["context_documents"] == ["a.txt"]
        assert body["data"]["answer"] == "The sky is blue."

    async def test_provider_failure_is_bad_gateway(self, client, services, generator):
        await _upload(client)
        await services.ingestion.drain()
        generator.error = ProviderError("Generation request failed: invalid JSON")

        response = await client.post("/api/v1/query", json={"question": "What color is the sky?"})
        body = await response.get_json()

        assert response.status_code == 502
        assert body["success"] is False

    async def test_history_lists_newest_first(self, client):
        await client.post("/api/v1/query", json={"question": "First?"})
        await client.post("/api/v1/query", json={"question": "Second?"})

        response = await client.get("/api/v1/query/history")
        body = await response.get_json()

        assert response.status_code == 200
        assert [r["question"] for r in body["data"]] == ["Second?", "First?"]


class TestDocumentEndpoints:
    """Tests for the document routes."""

    async def test_upload_and_list(self, client, services):
        response = await _upload(client)
        body = await response.get_json()
        await services.ingestion.drain()

        assert response.status_code == 201
        assert body["data"]["filename"] == "a.txt"
        assert body["data"]["content_type"] == "text/plain"

        response = await client.get("/api/v1/documents")
        listing = await response.get_json()
        assert [d["id"] for d in listing["data"]] == [body["data"]["id"]]

    async def test_upload_unsupported_type(self, client):
        response = await _upload(client, name="a.png", body=b"\x89PNG", content_type="image/png")
        body = await response.get_json()

        assert response.status_code == 400
        assert body["success"] is False

    async def test_upload_without_file(self, client):
        response = await client.post("/api/v1/documents/upload", form={"other": "value"})
        assert response.status_code == 400

    async def test_delete_document(self, client, services):
        response = await _upload(client)
        document_id = (await response.get_json())["data"]["id"]
        await services.ingestion.drain()

        response = await client.delete(f"/api/v1/documents/{document_id}")
        assert response.status_code == 204

        response = await client.delete(f"/api/v1/documents/{document_id}")
        body = await response.get_json()
        assert response.status_code == 404
        assert body["success"] is False


class TestHealth:
    """Tests for health probes."""

    async def test_liveness(self, client):
        response = await client.get("/health/live")
        assert response.status_code == 200

    async def test_readiness_without_llm(self, client):
        response = await client.get("/health/ready")
        body = await response.get_json()

        assert response.status_code == 200
        assert body["vector_store"]["vector_count"] == 0

    async def test_unknown_route_uses_envelope(self, client):
        response = await client.get("/api/v1/nothing-here")
        body = await response.get_json()

        assert response.status_code == 404
        assert body["success"] is False
