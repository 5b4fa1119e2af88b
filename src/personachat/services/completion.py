from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
import logging

import requests

from ..domain.errors import UpstreamError
from ..infrastructure.http import build_session
from ..settings import Settings, get_settings


LOG = logging.getLogger("personachat.llm")


@dataclass
class CompletionResult:
    text: str
    usage: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class CompletionBackend(Protocol):
    def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
    ) -> CompletionResult: ...


class OpenAICompletionClient:
    """Chat-completions client for the hosted model vendor.

    Also forwards uploads to the vendor's file store.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._api_key = api_key
        self._timeout = timeout
        # One backend call per completion: POST is never replayed
        self._session = session or build_session(allowed_methods=("GET",))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OpenAICompletionClient":
        settings = settings or get_settings()
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=settings.completion_timeout,
        )

    def _auth_headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise UpstreamError("Completion backend is not configured")
        return {"Authorization": f"Bearer {self._api_key}"}

    def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> CompletionResult:
        headers = self._auth_headers()
        LOG.info("completion_request", extra={"model": self.model, "messages": len(messages)})
        try:
            resp = self._session.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                },
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            LOG.error("completion_transport_error", extra={"err": str(exc)})
            raise UpstreamError(f"Completion backend unreachable: {exc}") from exc

        if not resp.ok:
            LOG.error("completion_error", extra={"status": resp.status_code, "body": resp.text[:500]})
            raise UpstreamError(f"OpenAI API error: {resp.status_code}", upstream_status=resp.status_code)

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise UpstreamError("Completion backend returned no choices", upstream_status=resp.status_code)
        content = (choices[0].get("message") or {}).get("content") or ""
        LOG.info("completion_response", extra={"usage": data.get("usage")})
        return CompletionResult(text=content, usage=data.get("usage"), raw=data)

    def upload_file(
        self,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        purpose: str = "assistants",
    ) -> Dict[str, Any]:
        headers = self._auth_headers()
        LOG.info("file_upload_request", extra={"upload_name": filename, "size": len(content)})
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        try:
            resp = self._session.post(
                f"{self.base_url}/files",
                data={"purpose": purpose},
                files=files,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"File store unreachable: {exc}") from exc
        if not resp.ok:
            LOG.error("file_upload_error", extra={"status": resp.status_code, "body": resp.text[:500]})
            raise UpstreamError(f"OpenAI API error: {resp.status_code}", upstream_status=resp.status_code)
        data = resp.json()
        LOG.info("file_upload_done", extra={"file_id": data.get("id")})
        return data


_backend: OpenAICompletionClient | None = None


def get_completion_backend() -> OpenAICompletionClient:
    global _backend
    if _backend is None:
        _backend = OpenAICompletionClient.from_settings()
    return _backend
