from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from ..domain.chat_models import ChatMessage, ChatSession
from ..domain.errors import ExchangeError
from ..domain.models import Project
from ..infrastructure.http import build_session


logger = logging.getLogger(__name__)


class ApiError(ExchangeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_message(resp: Any) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("error", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class PersonaChatClient:
    """HTTP client for the exchange endpoint and the persistence gateway routes.

    ``session`` may be any requests-compatible client (a ``requests.Session``
    or an httpx/TestClient instance).
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        session: Any = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._session = session or build_session(allowed_methods=("GET",))
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        if self._timeout is not None:
            kwargs.setdefault("timeout", self._timeout)
        try:
            resp = self._session.request(method, url, headers=self._headers(), **kwargs)
        except requests.exceptions.RequestException as exc:
            logger.warning("Request %s %s failed: %s", method, path, exc)
            raise ApiError(503, f"Network error: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise ApiError(resp.status_code, _error_message(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # Exchange endpoints
    def exchange(self, message: str, chat_session_id: str, project_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/chat-completion",
            json={"message": message, "chatSessionId": chat_session_id, "projectId": project_id},
        )

    def upload_file(self, filename: str, content: bytes, purpose: str = "assistants") -> Dict[str, Any]:
        return self._request(
            "POST",
            "/upload-file",
            files={"file": (filename, content)},
            data={"purpose": purpose},
        )

    # Gateway
    def get_project(self, project_id: str) -> Project:
        return Project(**self._request("GET", f"/projects/{project_id}"))

    def list_sessions(self, project_id: str) -> List[ChatSession]:
        rows = self._request("GET", f"/projects/{project_id}/sessions") or []
        return [ChatSession(**row) for row in rows]

    def create_session(self, project_id: str, name: Optional[str] = None) -> ChatSession:
        row = self._request("POST", f"/projects/{project_id}/sessions", json={"name": name})
        return ChatSession(**row)

    def delete_session(self, session_id: str) -> None:
        self._request("DELETE", f"/sessions/{session_id}")

    def list_messages(self, session_id: str) -> List[ChatMessage]:
        rows = self._request("GET", f"/sessions/{session_id}/messages") or []
        return [ChatMessage(**row) for row in rows]
