from __future__ import annotations

from typing import Callable, List, Optional, Protocol
import logging

from ..domain.chat_models import ChatSession, default_session_name


logger = logging.getLogger(__name__)


class SessionGateway(Protocol):
    def list_sessions(self, project_id: str) -> List[ChatSession]: ...
    def create_session(self, project_id: str, name: Optional[str] = None) -> ChatSession: ...
    def delete_session(self, session_id: str) -> None: ...


# (active session, newly created) -> None
ActiveChanged = Callable[[Optional[ChatSession], bool], None]


class SessionStore:
    """Chat sessions of one project, newest first, with one active session.

    Once loaded, a project always has exactly one active session: deleting the
    active one promotes the newest remaining session or creates a fresh one.
    """

    def __init__(
        self,
        gateway: SessionGateway,
        project_id: str,
        on_active_changed: Optional[ActiveChanged] = None,
    ) -> None:
        self._gateway = gateway
        self.project_id = project_id
        self._on_active_changed = on_active_changed
        self.sessions: List[ChatSession] = []
        self.active: Optional[ChatSession] = None
        self.loaded = False

    def _activate(self, session: Optional[ChatSession], created: bool = False) -> None:
        self.active = session
        if self._on_active_changed is not None:
            self._on_active_changed(session, created)

    def load(self) -> Optional[ChatSession]:
        self.sessions = list(self._gateway.list_sessions(self.project_id))
        self.loaded = True
        if not self.sessions:
            return self.create_session()
        self._activate(self.sessions[0])
        return self.active

    def create_session(self) -> ChatSession:
        session = self._gateway.create_session(self.project_id, name=default_session_name())
        self.sessions.insert(0, session)
        self._activate(session, created=True)
        return session

    def delete_session(self, session_id: str) -> None:
        self._gateway.delete_session(session_id)
        self.sessions = [s for s in self.sessions if s.id != session_id]
        if self.active is None or self.active.id != session_id:
            return
        if self.sessions:
            self._activate(self.sessions[0])
        else:
            self.create_session()

    def select_session(self, session: ChatSession) -> None:
        self._activate(session)

    def reset(self) -> None:
        self.sessions = []
        self.active = None
        self.loaded = False
