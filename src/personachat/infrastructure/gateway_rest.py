"""Persistence gateway backed by a PostgREST-style HTTP service.

Tables: ``projects``, ``chat_sessions``, ``messages``. Rows are filtered with
``column=eq.value`` query parameters and ordered with ``order=col.asc|desc``.
The service credential is sent both as ``apikey`` and as a bearer token.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..domain.chat_models import ChatMessage, ChatSession, default_session_name
from ..domain.models import Project, ProjectCreate, ProjectUpdate
from .http import build_session


logger = logging.getLogger(__name__)


class RestGateway:
    def __init__(self, base_url: str, service_key: str, session: Optional[requests.Session] = None) -> None:
        if not base_url:
            raise RuntimeError("GATEWAY_URL is required for the REST persistence gateway")
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        # Writes are not retried: a replayed insert would duplicate rows
        self._session = session or build_session(allowed_methods=("GET",))

    def _headers(self, returning: bool = False) -> Dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def select(self, table: str, filters: Dict[str, str], order: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {col: f"eq.{val}" for col, val in filters.items()}
        params["select"] = "*"
        if order:
            params["order"] = order
        resp = self._session.get(self._url(table), params=params, headers=self._headers())
        resp.raise_for_status()
        return list(resp.json() or [])

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._session.post(self._url(table), json=row, headers=self._headers(returning=True))
        resp.raise_for_status()
        rows = resp.json() or []
        if not rows:
            raise RuntimeError(f"Insert into {table} returned no rows")
        return rows[0]

    def update(self, table: str, filters: Dict[str, str], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        params = {col: f"eq.{val}" for col, val in filters.items()}
        resp = self._session.patch(self._url(table), params=params, json=changes, headers=self._headers(returning=True))
        resp.raise_for_status()
        return list(resp.json() or [])

    def delete(self, table: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        params = {col: f"eq.{val}" for col, val in filters.items()}
        resp = self._session.delete(self._url(table), params=params, headers=self._headers(returning=True))
        resp.raise_for_status()
        return list(resp.json() or [])


class RestProjectRepository:
    def __init__(self, base_url: str, service_key: str, session: Optional[requests.Session] = None) -> None:
        self._gw = RestGateway(base_url, service_key, session=session)

    def list(self, user_id: str) -> List[Project]:
        rows = self._gw.select("projects", {"user_id": user_id}, order="created_at.desc")
        return [Project(**row) for row in rows]

    def get(self, project_id: str, user_id: str) -> Optional[Project]:
        rows = self._gw.select("projects", {"id": project_id, "user_id": user_id})
        return Project(**rows[0]) if rows else None

    def create(self, user_id: str, payload: ProjectCreate) -> Project:
        row = self._gw.insert("projects", {"user_id": user_id, **payload.model_dump()})
        return Project(**row)

    def update(self, project_id: str, user_id: str, payload: ProjectUpdate) -> Optional[Project]:
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            return self.get(project_id, user_id)
        rows = self._gw.update("projects", {"id": project_id, "user_id": user_id}, changes)
        return Project(**rows[0]) if rows else None

    def delete(self, project_id: str, user_id: str) -> bool:
        # Sessions and messages cascade through the gateway's foreign keys
        return bool(self._gw.delete("projects", {"id": project_id, "user_id": user_id}))


class RestChatStore:
    def __init__(self, base_url: str, service_key: str, session: Optional[requests.Session] = None) -> None:
        self._gw = RestGateway(base_url, service_key, session=session)

    def create_session(self, project_id: str, user_id: str, name: Optional[str] = None) -> ChatSession:
        row = self._gw.insert(
            "chat_sessions",
            {"project_id": project_id, "user_id": user_id, "name": name or default_session_name()},
        )
        return ChatSession(**row)

    def list_sessions(self, project_id: str, user_id: str) -> List[ChatSession]:
        rows = self._gw.select(
            "chat_sessions",
            {"project_id": project_id, "user_id": user_id},
            order="created_at.desc",
        )
        return [ChatSession(**row) for row in rows]

    def get_session(self, session_id: str, user_id: str) -> Optional[ChatSession]:
        rows = self._gw.select("chat_sessions", {"id": session_id, "user_id": user_id})
        return ChatSession(**rows[0]) if rows else None

    def delete_session(self, session_id: str, user_id: str) -> bool:
        return bool(self._gw.delete("chat_sessions", {"id": session_id, "user_id": user_id}))

    def delete_project_sessions(self, project_id: str) -> int:
        return len(self._gw.delete("chat_sessions", {"project_id": project_id}))

    def add_message(self, session_id: str, user_id: str, role: str, content: str) -> ChatMessage:
        row = self._gw.insert(
            "messages",
            {"chat_session_id": session_id, "user_id": user_id, "role": role, "content": content},
        )
        return ChatMessage(**row)

    def list_messages(self, session_id: str, user_id: str) -> List[ChatMessage]:
        rows = self._gw.select(
            "messages",
            {"chat_session_id": session_id, "user_id": user_id},
            order="created_at.asc",
        )
        return [ChatMessage(**row) for row in rows]
