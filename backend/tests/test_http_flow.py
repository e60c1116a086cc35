import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from docchat.core.container import build_services
from docchat.core.errors import PersistenceError
from docchat.db.memdb import InMemoryRepository
from docchat.db.records import NewDocument
from docchat.main import create_app

NINE_WORDS = b"Alpha beta gamma delta epsilon zeta eta theta iota."


@pytest.fixture
def services(settings, llm):
    return build_services(settings, llm=llm)


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


def _upload(client, headers, content=NINE_WORDS, name="sample.txt", media_type="text/plain"):
    return client.post("/api/documents/upload", files={"file": (name, content, media_type)}, headers=headers)


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/documents").status_code == 401
    r = client.get("/api/documents", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_user_is_created_on_first_request(client, auth_headers):
    first = client.get("/api/user", headers=auth_headers).json()
    second = client.get("/api/user", headers=auth_headers).json()
    assert first["subject_id"] == "firebase-uid-1"
    assert first["id"] == second["id"]


def test_upload_small_text_completes_with_one_chunk(client, services, auth_headers):
    r = _upload(client, auth_headers)
    assert r.status_code == 200, r.text
    doc = r.json()
    assert doc["processing_status"] == "completed"
    assert doc["original_name"] == "sample.txt"
    assert doc["file_size"] == len(NINE_WORDS)
    assert doc["storage_path"].startswith("documents/firebase-uid-1/")

    chunks = asyncio.run(services.repository.get_chunks(doc["id"]))
    assert len(chunks) == 1
    assert chunks[0].word_count == 9

    listed = client.get("/api/documents", headers=auth_headers).json()
    assert [d["id"] for d in listed] == [doc["id"]]


def test_upload_rejects_unsupported_type(client, auth_headers):
    r = _upload(client, auth_headers, content=b"\x89PNG", name="x.png", media_type="image/png")
    assert r.status_code == 400


def test_upload_rejects_oversized_file(client, services, auth_headers):
    services.settings.max_upload_bytes = 16
    r = _upload(client, auth_headers)
    assert r.status_code == 413


def test_empty_text_upload_ends_failed(client, auth_headers):
    r = _upload(client, auth_headers, content=b"   ")
    assert r.json()["processing_status"] == "failed"


def test_session_on_processing_document_is_rejected(client, services, auth_headers):
    user_id = client.get("/api/user", headers=auth_headers).json()["id"]
    doc = asyncio.run(
        services.repository.create_document(
            NewDocument(user_id=user_id, file_name="1_p.pdf", original_name="p.pdf", file_type="application/pdf", file_size=1, storage_path="documents/x/1_p.pdf")
        )
    )

    r = client.post("/api/chat/sessions", json={"document_id": doc.id}, headers=auth_headers)

    assert r.status_code == 400
    assert "still being processed" in r.json()["detail"]
    assert client.get("/api/chat/sessions", headers=auth_headers).json() == []


def test_chat_round_trip(client, llm, auth_headers):
    doc_id = _upload(client, auth_headers).json()["id"]
    session = client.post("/api/chat/sessions", json={"document_id": doc_id}, headers=auth_headers).json()

    r = client.post(f"/api/chat/sessions/{session['id']}/messages", json={"content": "What comes first?"}, headers=auth_headers)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user_message"]["role"] == "user"
    assert body["ai_message"]["content"] == llm.reply
    assert NINE_WORDS.decode() in llm.prompts[0]
    history = client.get(f"/api/chat/sessions/{session['id']}/messages", headers=auth_headers).json()
    assert [m["role"] for m in history] == ["user", "assistant"]


def test_model_failure_returns_502_and_keeps_question(client, llm, auth_headers):
    doc_id = _upload(client, auth_headers).json()["id"]
    session_id = client.post("/api/chat/sessions", json={"document_id": doc_id}, headers=auth_headers).json()["id"]
    llm.fail = True

    r = client.post(f"/api/chat/sessions/{session_id}/messages", json={"content": "Anyone?"}, headers=auth_headers)

    assert r.status_code == 502
    history = client.get(f"/api/chat/sessions/{session_id}/messages", headers=auth_headers).json()
    assert [(m["role"], m["content"]) for m in history] == [("user", "Anyone?")]


def test_blank_message_is_rejected(client, auth_headers):
    doc_id = _upload(client, auth_headers).json()["id"]
    session_id = client.post("/api/chat/sessions", json={"document_id": doc_id}, headers=auth_headers).json()["id"]
    r = client.post(f"/api/chat/sessions/{session_id}/messages", json={"content": "   "}, headers=auth_headers)
    assert r.status_code == 400


def test_other_users_cannot_reach_documents_or_sessions(client, auth_headers, make_token):
    doc_id = _upload(client, auth_headers).json()["id"]
    session_id = client.post("/api/chat/sessions", json={"document_id": doc_id}, headers=auth_headers).json()["id"]
    stranger = {"Authorization": f"Bearer {make_token(subject='someone-else')}"}

    assert client.get("/api/documents", headers=stranger).json() == []
    assert client.delete(f"/api/documents/{doc_id}", headers=stranger).status_code == 404
    assert client.post("/api/chat/sessions", json={"document_id": doc_id}, headers=stranger).status_code == 404
    assert client.get(f"/api/chat/sessions/{session_id}/messages", headers=stranger).status_code == 404


def test_delete_document_cascades_to_sessions(client, services, auth_headers, settings):
    doc = _upload(client, auth_headers).json()
    session_id = client.post("/api/chat/sessions", json={"document_id": doc["id"]}, headers=auth_headers).json()["id"]
    client.post(f"/api/chat/sessions/{session_id}/messages", json={"content": "Hi"}, headers=auth_headers)

    r = client.delete(f"/api/documents/{doc['id']}", headers=auth_headers)

    assert r.status_code == 200
    assert client.get("/api/documents", headers=auth_headers).json() == []
    assert client.get(f"/api/chat/sessions/{session_id}/messages", headers=auth_headers).status_code == 404
    assert asyncio.run(services.repository.get_chunks(doc["id"])) == []


def test_summary_requires_completed_document(client, auth_headers):
    doc_id = _upload(client, auth_headers).json()["id"]
    r = client.get(f"/api/documents/{doc_id}/summary", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"document_id": doc_id, "summary": "Summary of 9 words."}

    failed_id = _upload(client, auth_headers, content=b"").json()["id"]
    assert client.get(f"/api/documents/{failed_id}/summary", headers=auth_headers).status_code == 400


def test_background_ingestion_is_observable_by_polling(settings, llm, auth_headers):
    settings.sync_ingest = False
    services = build_services(settings, llm=llm)
    with TestClient(create_app(services=services)) as client:
        r = _upload(client, auth_headers)
        assert r.status_code == 200
        assert r.json()["processing_status"] in ("processing", "completed")
        doc_id = r.json()["id"]

        deadline = time.time() + 5
        status = None
        while time.time() < deadline:
            status = client.get("/api/documents", headers=auth_headers).json()[0]["processing_status"]
            if status != "processing":
                break
            time.sleep(0.05)
        assert status == "completed"

        diag = client.get("/api/diagnostics", headers=auth_headers).json()
        assert diag["runner_active"] is True
        assert diag["recent"][0]["document_id"] == doc_id
        assert diag["recent"][0]["chunks"] == 1


class DocumentWriteFailingRepository(InMemoryRepository):
    async def create_document(self, meta):
        raise PersistenceError("create_document failed: database is locked")


def test_upload_removes_blob_when_document_row_fails(settings, llm, auth_headers, tmp_path):
    services = build_services(settings, repository=DocumentWriteFailingRepository(), llm=llm)
    with TestClient(create_app(services=services)) as client:
        r = _upload(client, auth_headers)

    assert r.status_code == 500
    assert r.json() == {"detail": "Internal storage error"}
    stored = [p for p in (tmp_path / "uploads").rglob("*") if p.is_file()]
    assert stored == []
