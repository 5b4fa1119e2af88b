from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Dict, List, Optional, Protocol
import uuid

from ..domain.chat_models import ChatSession, ChatMessage, default_session_name
from ..settings import get_settings


class ChatStore(Protocol):
    def create_session(self, project_id: str, user_id: str, name: Optional[str] = None) -> ChatSession: ...

    def list_sessions(self, project_id: str, user_id: str) -> List[ChatSession]: ...

    def get_session(self, session_id: str, user_id: str) -> Optional[ChatSession]: ...

    def delete_session(self, session_id: str, user_id: str) -> bool: ...

    def delete_project_sessions(self, project_id: str) -> int: ...

    def add_message(self, session_id: str, user_id: str, role: str, content: str) -> ChatMessage: ...

    def list_messages(self, session_id: str, user_id: str) -> List[ChatMessage]: ...


@dataclass
class _Session:
    id: str
    project_id: str
    user_id: str
    name: str
    created_at: datetime


@dataclass
class _Message:
    id: str
    chat_session_id: str
    user_id: str
    role: str
    content: str
    created_at: datetime


class InMemoryChatStore:
    def __init__(self) -> None:
        self._sessions: Dict[str, _Session] = {}
        self._by_project: Dict[str, List[str]] = {}
        self._messages: Dict[str, List[_Message]] = {}
        self._lock = RLock()

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _owned(self, session_id: str, user_id: str) -> Optional[_Session]:
        sess = self._sessions.get(session_id)
        if not sess or sess.user_id != user_id:
            return None
        return sess

    def create_session(self, project_id: str, user_id: str, name: Optional[str] = None) -> ChatSession:
        with self._lock:
            now = self._now()
            sess = _Session(
                id=str(uuid.uuid4()),
                project_id=project_id,
                user_id=user_id,
                name=name or default_session_name(now),
                created_at=now,
            )
            self._sessions[sess.id] = sess
            self._by_project.setdefault(project_id, []).append(sess.id)
            self._messages[sess.id] = []
            return ChatSession(**sess.__dict__)

    def list_sessions(self, project_id: str, user_id: str) -> List[ChatSession]:
        with self._lock:
            out: List[ChatSession] = []
            for sid in self._by_project.get(project_id, []):
                sess = self._owned(sid, user_id)
                if not sess:
                    continue
                out.append(ChatSession(**sess.__dict__))
            # Newest first; reversed insertion order breaks timestamp ties
            out.reverse()
            return sorted(out, key=lambda s: s.created_at, reverse=True)

    def get_session(self, session_id: str, user_id: str) -> Optional[ChatSession]:
        with self._lock:
            sess = self._owned(session_id, user_id)
            if not sess:
                return None
            return ChatSession(**sess.__dict__)

    def delete_session(self, session_id: str, user_id: str) -> bool:
        with self._lock:
            sess = self._owned(session_id, user_id)
            if not sess:
                return False
            self._sessions.pop(session_id, None)
            self._messages.pop(session_id, None)
            ids = self._by_project.get(sess.project_id, [])
            if session_id in ids:
                ids.remove(session_id)
            return True

    def delete_project_sessions(self, project_id: str) -> int:
        with self._lock:
            ids = self._by_project.pop(project_id, [])
            for sid in ids:
                self._sessions.pop(sid, None)
                self._messages.pop(sid, None)
            return len(ids)

    def add_message(self, session_id: str, user_id: str, role: str, content: str) -> ChatMessage:
        with self._lock:
            if not self._owned(session_id, user_id):
                raise KeyError("Session not found")
            msg = _Message(
                id=str(uuid.uuid4()),
                chat_session_id=session_id,
                user_id=user_id,
                role=role,
                content=content,
                created_at=self._now(),
            )
            self._messages.setdefault(session_id, []).append(msg)
            return ChatMessage(**msg.__dict__)

    def list_messages(self, session_id: str, user_id: str) -> List[ChatMessage]:
        with self._lock:
            if not self._owned(session_id, user_id):
                return []
            msgs = self._messages.get(session_id, [])
            # Stable sort keeps insertion order for identical timestamps
            ordered = sorted(msgs, key=lambda m: m.created_at)
            return [ChatMessage(**m.__dict__) for m in ordered]


_store: ChatStore | None = None


def get_chat_store() -> ChatStore:
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.store_impl == "rest":
        from .gateway_rest import RestChatStore

        _store = RestChatStore(settings.gateway_url or "", settings.gateway_service_key or "")
        return _store
    _store = InMemoryChatStore()
    return _store
