"""Client chat controller.

Composes the rate governor, the session store and the remote exchange call,
and keeps the local transcript in line with what the gateway has stored.

Send lifecycle: ``PENDING_INPUT -> IN_FLIGHT -> SETTLED``. The input box is
cleared when a send is accepted and restored if the exchange fails. The
quota unit spent on a failed send is not given back.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..domain.chat_models import ChatMessage, ChatSession
from ..domain.errors import ExchangeError, RateLimited, Unauthorized, ValidationFailed
from ..domain.models import Project
from .api_client import PersonaChatClient
from .identity import Identity, IdentityState, get_identity_state
from .rate_governor import RateGovernor
from .session_store import SessionStore


logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Failed to send message"


class SendState(str, Enum):
    PENDING_INPUT = "pending_input"
    IN_FLIGHT = "in_flight"
    SETTLED = "settled"


class SendInProgress(ExchangeError):
    status_code = 409


@dataclass
class SendOutcome:
    ok: bool
    reply: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ChatController:
    def __init__(
        self,
        api: PersonaChatClient,
        project_id: str,
        governor: Optional[RateGovernor] = None,
        identity: Optional[IdentityState] = None,
    ) -> None:
        self.api = api
        self.project_id = project_id
        self.project: Optional[Project] = None
        self.governor = governor or RateGovernor()
        self.identity = identity or get_identity_state()
        self.sessions = SessionStore(api, project_id, on_active_changed=self._on_active_changed)
        self.messages: List[ChatMessage] = []
        self.notices: List[str] = []
        self.input_text = ""
        self.state = SendState.PENDING_INPUT
        self._send_lock = threading.Lock()
        self._unsubscribe = self.identity.subscribe(self._on_identity_changed)
        self._closed = False

    # Lifecycle
    def open(self) -> Optional[ChatSession]:
        """Load the project and its sessions, creating the first session if needed."""
        if self.identity.current is None:
            raise Unauthorized("Not signed in")
        self.project = self.api.get_project(self.project_id)
        return self.sessions.load()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self.governor.close()

    @property
    def sending(self) -> bool:
        return self.state is SendState.IN_FLIGHT

    # Sessions
    def new_session(self) -> ChatSession:
        return self.sessions.create_session()

    def delete_session(self, session_id: str) -> None:
        self.sessions.delete_session(session_id)

    def select_session(self, session: ChatSession) -> None:
        self.sessions.select_session(session)

    def reload_transcript(self) -> List[ChatMessage]:
        active = self.sessions.active
        self.messages = self.api.list_messages(active.id) if active else []
        return self.messages

    def _on_active_changed(self, session: Optional[ChatSession], created: bool) -> None:
        if session is None or created:
            self.messages = []
            return
        self.reload_transcript()

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        if identity is not None:
            return
        logger.info("Signed out; clearing chat state for project %s", self.project_id)
        self.sessions.reset()
        self.project = None
        self.messages = []
        self.input_text = ""

    # Sending
    def send(self, text: Optional[str] = None) -> SendOutcome:
        original = self.input_text if text is None else text
        if not original or not original.strip():
            raise ValidationFailed("Message is empty")
        if not self._send_lock.acquire(blocking=False):
            raise SendInProgress("A message is already being sent")
        try:
            return self._send(original)
        finally:
            self._send_lock.release()

    def _send(self, original: str) -> SendOutcome:
        if self.identity.current is None:
            raise Unauthorized("Not signed in")
        session = self.sessions.active
        if session is None:
            raise ValidationFailed("No active chat session")

        now = self.governor.clock()
        decision = self.governor.can_send(now)
        if not decision.allowed:
            reason = decision.reason or "Rate limited"
            self.notices.append(reason)
            raise RateLimited(reason, retry_after_seconds=decision.retry_after or 0)

        self.input_text = ""
        self.governor.record_send(now)
        self.state = SendState.IN_FLIGHT
        try:
            try:
                data = self.api.exchange(original.strip(), session.id, self.project_id) or {}
            except ExchangeError as exc:
                logger.warning("Exchange failed for session %s: %s", session.id, exc)
                self.input_text = original
                self.notices.append(FAILURE_NOTICE)
                outcome = SendOutcome(ok=False, error=str(exc))
            else:
                self.governor.schedule_replenish()
                outcome = SendOutcome(ok=True, reply=data.get("message"), usage=data.get("usage"))

            # Always re-read the stored transcript, even after a failure
            try:
                self.reload_transcript()
            except ExchangeError:
                logger.exception("Failed to refresh transcript for session %s", session.id)
                self.notices.append("Failed to fetch messages")
        finally:
            self.state = SendState.SETTLED
        return outcome
