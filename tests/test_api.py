"""Tests for the FastAPI REST endpoints."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from invoice_chat.api.app import create_app
from invoice_chat.errors import LLMError
from invoice_chat.services.chat import FALLBACK_REPLY
from invoice_chat.utils.config import AppConfig


@pytest.fixture
def client(config: AppConfig, ocr_engine, answer_client) -> Iterator[TestClient]:
    """Create a FastAPI test client backed by fake OCR and model collaborators."""
    app = create_app(config, ocr_engine=ocr_engine, answer_client=answer_client)
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, email: str) -> dict[str, str]:
    response = client.post(
        "/auth/register", json={"email": email, "password": "password123"}
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def alice_headers(client: TestClient) -> dict[str, str]:
    return _register(client, "alice@example.com")


@pytest.fixture
def bob_headers(client: TestClient) -> dict[str, str]:
    return _register(client, "bob@example.com")


def _upload(client: TestClient, headers: dict[str, str], data: bytes, **kwargs) -> dict:
    name = kwargs.get("name", "invoice.png")
    mime = kwargs.get("mime", "image/png")
    response = client.post(
        "/documents/upload", files={"file": (name, data, mime)}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_returns_ok(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert isinstance(data["tesseract_available"], bool)


class TestAuthEndpoints:
    """Tests for /auth/register and /auth/login."""

    def test_register_and_login(self, client: TestClient) -> None:
        _register(client, "alice@example.com")
        response = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": "password123"}
        )
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    def test_duplicate_email(self, client: TestClient) -> None:
        _register(client, "alice@example.com")
        response = client.post(
            "/auth/register", json={"email": "alice@example.com", "password": "password123"}
        )
        assert response.status_code == 409

    def test_wrong_password(self, client: TestClient) -> None:
        _register(client, "alice@example.com")
        response = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": "nope-nope"}
        )
        assert response.status_code == 401

    def test_invalid_payload(self, client: TestClient) -> None:
        response = client.post("/auth/register", json={"email": "x", "password": "short"})
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer not-a-token"}, {"Authorization": "Basic abc"}],
    )
    def test_protected_routes_require_token(
        self, client: TestClient, headers: dict[str, str]
    ) -> None:
        assert client.get("/documents", headers=headers).status_code == 401


class TestUploadEndpoint:
    """Tests for POST /documents/upload."""

    def test_upload_runs_ocr(
        self,
        client: TestClient,
        alice_headers: dict[str, str],
        image_bytes,
        invoice_text: str,
    ) -> None:
        data = _upload(client, alice_headers, image_bytes())
        assert data["original_name"] == "invoice.png"
        assert data["mime_type"] == "image/png"
        assert data["ocr"]["text"] == invoice_text
        assert "storage_path" not in data

    def test_rejects_pdf(self, client: TestClient, alice_headers: dict[str, str]) -> None:
        response = client.post(
            "/documents/upload",
            files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")},
            headers=alice_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only PNG/JPG images are allowed"

    def test_rejects_oversized_file(
        self, client: TestClient, config: AppConfig, alice_headers: dict[str, str]
    ) -> None:
        config.storage.max_upload_bytes = 1024
        payload = b"x" * 1025
        response = client.post(
            "/documents/upload",
            files={"file": ("huge.png", payload, "image/png")},
            headers=alice_headers,
        )
        assert response.status_code == 413

    def test_missing_file(self, client: TestClient, alice_headers: dict[str, str]) -> None:
        response = client.post("/documents/upload", headers=alice_headers)
        assert response.status_code == 422

    def test_ocr_failure(
        self, client: TestClient, alice_headers: dict[str, str], ocr_engine, image_bytes
    ) -> None:
        ocr_engine.fail = True
        response = client.post(
            "/documents/upload",
            files={"file": ("invoice.png", image_bytes(), "image/png")},
            headers=alice_headers,
        )
        assert response.status_code == 502
        assert client.get("/documents", headers=alice_headers).json() == []


class TestDocumentEndpoints:
    """Tests for reading, downloading and exporting documents."""

    def test_list_and_get(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        uploaded = _upload(
            client, alice_headers, image_bytes(fmt="JPEG"), name="a.jpg", mime="image/jpeg"
        )

        listing = client.get("/documents", headers=alice_headers).json()
        assert [d["id"] for d in listing] == [uploaded["id"]]
        assert listing[0]["threads"] == []

        detail = client.get(f"/documents/{uploaded['id']}", headers=alice_headers)
        assert detail.status_code == 200
        assert detail.json()["ocr"]["text"] == uploaded["ocr"]["text"]

    def test_other_users_cannot_see_document(
        self,
        client: TestClient,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
        image_bytes,
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]

        assert client.get("/documents", headers=bob_headers).json() == []
        assert client.get(f"/documents/{doc_id}", headers=bob_headers).status_code == 403
        assert client.get(f"/documents/{doc_id}/file", headers=bob_headers).status_code == 403
        assert client.get(f"/documents/{doc_id}/export", headers=bob_headers).status_code == 403
        assert client.get("/documents/9999", headers=bob_headers).status_code == 404

    def test_download_file(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        raw = image_bytes()
        doc_id = _upload(client, alice_headers, raw)["id"]

        response = client.get(f"/documents/{doc_id}/file", headers=alice_headers)
        assert response.status_code == 200
        assert response.content == raw
        assert response.headers["content-type"] == "image/png"

    def test_export_pdf(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]

        response = client.get(f"/documents/{doc_id}/export", headers=alice_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert (
            response.headers["content-disposition"]
            == 'attachment; filename="document-export.pdf"'
        )
        assert response.content.startswith(b"%PDF")

    def test_export_with_mismatched_image(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        doc_id = _upload(
            client, alice_headers, image_bytes(fmt="PNG"), name="x.jpg", mime="image/jpeg"
        )["id"]
        response = client.get(f"/documents/{doc_id}/export", headers=alice_headers)
        assert response.status_code == 500


class TestChatEndpoints:
    """Tests for threads, messages and deletion."""

    def _thread(self, client: TestClient, headers: dict[str, str], doc_id: int) -> int:
        response = client.post(f"/chats/{doc_id}/threads", headers=headers)
        assert response.status_code == 201
        return response.json()["id"]

    def test_question_and_answer(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]
        thread_id = self._thread(client, alice_headers, doc_id)

        response = client.post(
            f"/chats/{thread_id}/messages",
            json={"content": "What is the total?"},
            headers=alice_headers,
        )
        assert response.status_code == 200
        turn = response.json()
        assert turn["user_message"]["role"] == "user"
        assert turn["assistant_message"]["content"] == "The total is $500.00."

        thread = client.get(f"/chats/{thread_id}", headers=alice_headers).json()
        assert [m["role"] for m in thread["messages"]] == ["user", "assistant"]
        assert thread["document"]["id"] == doc_id

        detail = client.get(f"/documents/{doc_id}", headers=alice_headers).json()
        assert len(detail["threads"][0]["messages"]) == 2

    def test_model_failure_returns_fallback(
        self,
        client: TestClient,
        alice_headers: dict[str, str],
        answer_client,
        image_bytes,
    ) -> None:
        answer_client.error = LLMError("timeout")
        doc_id = _upload(client, alice_headers, image_bytes())["id"]
        thread_id = self._thread(client, alice_headers, doc_id)

        response = client.post(
            f"/chats/{thread_id}/messages",
            json={"content": "What is the total?"},
            headers=alice_headers,
        )
        assert response.status_code == 200
        assert response.json()["assistant_message"]["content"] == FALLBACK_REPLY

    @pytest.mark.parametrize("content", ["", "   ", "x" * 4001])
    def test_invalid_message(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes, content: str
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]
        thread_id = self._thread(client, alice_headers, doc_id)
        response = client.post(
            f"/chats/{thread_id}/messages", json={"content": content}, headers=alice_headers
        )
        assert response.status_code == 422

    def test_foreign_thread(
        self,
        client: TestClient,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
        image_bytes,
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]
        thread_id = self._thread(client, alice_headers, doc_id)

        assert client.post(f"/chats/{doc_id}/threads", headers=bob_headers).status_code == 403
        assert (
            client.post(
                f"/chats/{thread_id}/messages", json={"content": "hi"}, headers=bob_headers
            ).status_code
            == 403
        )
        assert client.get(f"/chats/{thread_id}", headers=bob_headers).status_code == 403
        assert client.delete(f"/chats/{thread_id}", headers=bob_headers).status_code == 403
        assert client.get("/chats/9999", headers=alice_headers).status_code == 404

    def test_delete_thread_and_document_chat(
        self, client: TestClient, alice_headers: dict[str, str], image_bytes
    ) -> None:
        doc_id = _upload(client, alice_headers, image_bytes())["id"]
        first = self._thread(client, alice_headers, doc_id)
        self._thread(client, alice_headers, doc_id)
        client.post(f"/chats/{first}/messages", json={"content": "q"}, headers=alice_headers)

        response = client.delete(f"/chats/{first}", headers=alice_headers)
        assert response.json() == {"deleted_threads": 1, "deleted_messages": 2}

        response = client.delete(f"/documents/{doc_id}/chat", headers=alice_headers)
        assert response.json() == {"deleted_threads": 1, "deleted_messages": 0}

    def test_delete_all_documents(
        self,
        client: TestClient,
        alice_headers: dict[str, str],
        bob_headers: dict[str, str],
        image_bytes,
    ) -> None:
        for _ in range(2):
            doc_id = _upload(client, alice_headers, image_bytes())["id"]
        self._thread(client, alice_headers, doc_id)
        _upload(client, bob_headers, image_bytes())

        response = client.delete("/documents", headers=alice_headers)
        assert response.json() == {"deleted": 2}
        assert client.get("/documents", headers=alice_headers).json() == []
        assert len(client.get("/documents", headers=bob_headers).json()) == 1
        assert client.delete("/documents", headers=alice_headers).json() == {"deleted": 0}
