from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.personachat.api.main import app
from src.personachat.infrastructure.chat_store import get_chat_store
from src.personachat.services.completion import get_completion_backend
from .utils import FakeBackend, auth_headers


client = TestClient(app)


@pytest.fixture
def backend():
    fake = FakeBackend(reply="Hello from the persona")
    app.dependency_overrides[get_completion_backend] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_completion_backend, None)


def _project_and_session(user_id: str, system_prompt: str = "You are a sales bot"):
    hdrs = auth_headers(user_id)
    r = client.post("/projects", json={"name": "Sales", "system_prompt": system_prompt}, headers=hdrs)
    assert r.status_code == 201, r.text
    pid = r.json()["id"]
    r = client.post(f"/projects/{pid}/sessions", json={}, headers=hdrs)
    assert r.status_code == 201, r.text
    return pid, r.json()["id"]


def test_exchange_returns_reply_and_usage(backend):
    pid, sid = _project_and_session("u-1")
    r = client.post(
        "/chat-completion",
        json={"message": "what's the price?", "chatSessionId": sid, "projectId": pid},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"message": "Hello from the persona", "usage": {"total_tokens": 42}}
    assert r.headers["access-control-allow-origin"] == "*"
    assert backend.calls[0]["messages"][0] == {"role": "system", "content": "You are a sales bot"}

    msgs = client.get(f"/sessions/{sid}/messages", headers=auth_headers("u-1")).json()
    assert [m["role"] for m in msgs] == ["user", "assistant"]


def test_exchange_is_also_served_under_api_prefix(backend):
    pid, sid = _project_and_session("u-1")
    r = client.post(
        "/api/chat-completion",
        json={"message": "hi", "chatSessionId": sid, "projectId": pid},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 200


def test_missing_token_is_401_with_flat_error(backend):
    pid, sid = _project_and_session("u-1")
    r = client.post("/chat-completion", json={"message": "hi", "chatSessionId": sid, "projectId": pid})
    assert r.status_code == 401
    assert r.json() == {"error": "No authorization header"}
    assert backend.calls == []


def test_empty_message_is_400(backend):
    pid, sid = _project_and_session("u-1")
    r = client.post(
        "/chat-completion",
        json={"message": "  ", "chatSessionId": sid, "projectId": pid},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 400
    assert "error" in r.json()
    assert get_chat_store().list_messages(sid, "u-1") == []


def test_foreign_project_is_404_and_writes_nothing(backend):
    pid, sid = _project_and_session("owner")
    r = client.post(
        "/chat-completion",
        json={"message": "let me in", "chatSessionId": sid, "projectId": pid},
        headers=auth_headers("someone-else"),
    )
    assert r.status_code == 404
    assert r.json()["error"] == "Project not found or access denied"
    assert backend.calls == []
    assert get_chat_store().list_messages(sid, "owner") == []


def test_upstream_failure_is_502_and_keeps_user_turn(backend):
    backend.fail_status = 500
    pid, sid = _project_and_session("u-1")
    r = client.post(
        "/chat-completion",
        json={"message": "hello?", "chatSessionId": sid, "projectId": pid},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 502
    assert r.json() == {"error": "OpenAI API error: 500"}
    roles = [m.role for m in get_chat_store().list_messages(sid, "u-1")]
    assert roles == ["user"]


def test_server_rate_limit_returns_429(backend, monkeypatch):
    monkeypatch.setenv("PERSONACHAT_RATE_LIMIT_DISABLED", "0")
    monkeypatch.setenv("PERSONACHAT_EXCHANGE_LIMIT", "1")
    pid, sid = _project_and_session("u-1")
    body = {"message": "hi", "chatSessionId": sid, "projectId": pid}
    assert client.post("/chat-completion", json=body, headers=auth_headers("u-1")).status_code == 200
    r = client.post("/chat-completion", json=body, headers=auth_headers("u-1"))
    assert r.status_code == 429
    assert "Retry-After" in r.headers
    assert len(backend.calls) == 1
    assert len(get_chat_store().list_messages(sid, "u-1")) == 2


def test_preflight_returns_empty_body_with_cors_headers():
    for path in ("/chat-completion", "/upload-file"):
        r = client.options(path)
        assert r.status_code == 200
        assert r.content == b""
        assert r.headers["access-control-allow-origin"] == "*"
        assert "authorization" in r.headers["access-control-allow-headers"]


def test_browser_preflight_is_answered_with_empty_body():
    headers = {
        "Origin": "https://app.example.com",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "authorization, x-client-info, apikey, content-type, x-custom",
    }
    for path in ("/chat-completion", "/upload-file", "/api/chat-completion"):
        r = client.options(path, headers=headers)
        assert r.status_code == 200
        assert r.content == b""
        assert r.headers["access-control-allow-origin"] == "*"
        assert "apikey" in r.headers["access-control-allow-headers"]


def test_gateway_preflight_allows_any_header():
    r = client.options(
        "/projects",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "PATCH",
            "Access-Control-Request-Headers": "authorization, x-custom",
        },
    )
    assert r.status_code == 200


def test_unparseable_json_body_is_400_with_flat_error(backend):
    r = client.post(
        "/chat-completion",
        content=b"{not json",
        headers={**auth_headers("u-1"), "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Malformed request body"}
    assert r.headers["access-control-allow-origin"] == "*"
    assert backend.calls == []


def test_gateway_routes_keep_validation_detail():
    r = client.post("/projects", json={"name": ""}, headers=auth_headers("u-1"))
    assert r.status_code == 422
    assert "detail" in r.json()


def test_upload_file_forwards_to_vendor(backend):
    r = client.post(
        "/upload-file",
        files={"file": ("brief.txt", b"persona reference", "text/plain")},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 200, r.text
    assert r.json() == {
        "success": True,
        "fileId": "file-abc123",
        "filename": "brief.txt",
        "bytes": 17,
        "status": "processed",
    }
    assert backend.uploads[0]["purpose"] == "assistants"


def test_upload_file_custom_purpose_and_missing_file(backend):
    r = client.post(
        "/upload-file",
        files={"file": ("data.jsonl", b"{}", "application/json")},
        data={"purpose": "fine-tune"},
        headers=auth_headers("u-1"),
    )
    assert r.status_code == 200
    assert backend.uploads[0]["purpose"] == "fine-tune"

    r = client.post("/upload-file", data={"purpose": "assistants"}, headers=auth_headers("u-1"))
    assert r.status_code == 400
    assert r.json() == {"error": "No file provided"}


def test_upload_file_requires_token(backend):
    r = client.post("/upload-file", files={"file": ("a.txt", b"x", "text/plain")})
    assert r.status_code == 401
    assert backend.uploads == []
