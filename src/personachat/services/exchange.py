"""Server-side message exchange.

One call turns a user message into two transcript turns and a model reply:

1. resolve the caller from the bearer token
2. load the caller's project (system prompt) and check session ownership
3. load the full transcript, oldest first
4. persist the user turn (best effort)
5. call the completion backend with ``[system] + history + [user]``
6. persist the assistant turn (best effort)

Writes in steps 4 and 6 are logged and swallowed when they fail; the reply
is still returned. Calls are not idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

from ..domain.chat_models import ChatMessage
from ..domain.errors import ExchangeError, NotFound, RateLimited, UpstreamError, ValidationFailed, Unauthorized
from ..infrastructure.chat_store import ChatStore
from ..infrastructure.repository import ProjectRepository
from ..observability.metrics import record_exchange
from ..security.auth import User, resolve_identity
from ..settings import Settings, get_settings
from .completion import CompletionBackend


logger = logging.getLogger(__name__)


@dataclass
class ExchangeResult:
    reply_text: str
    usage: Optional[Dict[str, Any]] = None


def build_completion_messages(
    system_prompt: Optional[str],
    history: List[ChatMessage],
    message: str,
) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend({"role": m.role, "content": m.content} for m in history)
    out.append({"role": "user", "content": message})
    return out


_OUTCOMES = {
    Unauthorized: "unauthorized",
    NotFound: "not_found",
    ValidationFailed: "invalid",
    UpstreamError: "upstream_error",
    RateLimited: "rate_limited",
}


class ExchangeOrchestrator:
    def __init__(
        self,
        repo: ProjectRepository,
        store: ChatStore,
        backend: CompletionBackend,
        resolve: Callable[[Optional[str]], User] = resolve_identity,
        guard: Optional[Callable[[User], None]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repo = repo
        self._store = store
        self._backend = backend
        self._resolve = resolve
        self._guard = guard
        self._settings = settings or get_settings()

    def exchange(
        self,
        auth_token: Optional[str],
        message: str,
        chat_session_id: str,
        project_id: str,
    ) -> ExchangeResult:
        try:
            result = self._exchange(auth_token, message, chat_session_id, project_id)
        except ExchangeError as exc:
            record_exchange(_OUTCOMES.get(type(exc), "error"))
            raise
        record_exchange("ok")
        return result

    def _exchange(
        self,
        auth_token: Optional[str],
        message: str,
        chat_session_id: str,
        project_id: str,
    ) -> ExchangeResult:
        user = self._resolve(auth_token)

        if not message or not message.strip():
            raise ValidationFailed("No message provided")

        logger.info("Processing message for user: %s", user.id)

        project = self._repo.get(project_id, user.id)
        if project is None:
            raise NotFound("Project not found or access denied")

        session = self._store.get_session(chat_session_id, user.id)
        if session is None or session.project_id != project.id:
            raise NotFound("Chat session not found or access denied")

        if self._guard is not None:
            self._guard(user)

        try:
            history = self._store.list_messages(chat_session_id, user.id)
        except Exception:
            logger.exception("Error fetching messages for session %s", chat_session_id)
            history = []

        self._save_turn(chat_session_id, user.id, "user", message)

        messages = build_completion_messages(project.system_prompt, history, message)
        logger.info("Sending completion request with %d messages", len(messages))

        completion = self._backend.complete(
            messages,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
        )

        self._save_turn(chat_session_id, user.id, "assistant", completion.text)
        return ExchangeResult(reply_text=completion.text, usage=completion.usage)

    def _save_turn(self, session_id: str, user_id: str, role: str, content: str) -> None:
        try:
            self._store.add_message(session_id, user_id, role, content)
        except Exception:
            logger.exception("Error saving %s message for session %s", role, session_id)
