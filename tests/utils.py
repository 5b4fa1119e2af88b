from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from src.personachat.domain.errors import UpstreamError
from src.personachat.security.auth import User, create_access_token
from src.personachat.services.completion import CompletionResult


def token_for(user_id: str, email: Optional[str] = None) -> str:
    return create_access_token(User(id=user_id, email=email or f"{user_id}@example.com"))


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


class FakeBackend:
    """Records completion calls and answers with a canned reply."""

    def __init__(self, reply: str = "stubbed reply", fail_status: Optional[int] = None) -> None:
        self.reply = reply
        self.fail_status = fail_status
        self.calls: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []

    def complete(self, messages, *, max_tokens: int = 1000, temperature: float = 0.7) -> CompletionResult:
        self.calls.append({"messages": list(messages), "max_tokens": max_tokens, "temperature": temperature})
        if self.fail_status is not None:
            raise UpstreamError(f"OpenAI API error: {self.fail_status}", upstream_status=self.fail_status)
        return CompletionResult(text=self.reply, usage={"total_tokens": 42})

    def upload_file(self, filename, content, content_type=None, purpose="assistants"):
        self.uploads.append({"filename": filename, "size": len(content), "purpose": purpose})
        return {"id": "file-abc123", "filename": filename, "bytes": len(content), "status": "processed"}


class FakeScheduler:
    """Collects one-shot timers instead of starting threads."""

    def __init__(self) -> None:
        self.jobs = []

    def __call__(self, delay, fn):
        job = SimpleNamespace(delay=delay, fn=fn, cancelled=False)
        job.cancel = lambda: setattr(job, "cancelled", True)
        self.jobs.append(job)
        return job

    def fire_all(self) -> None:
        jobs, self.jobs = self.jobs, []
        for job in jobs:
            if not job.cancelled:
                job.fn()
