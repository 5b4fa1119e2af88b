"""Process-wide configuration read once from the environment.

Env vars:
- OPENAI_API_KEY (completion backend key)
- OPENAI_BASE_URL (default https://api.openai.com/v1)
- OPENAI_MODEL (default gpt-4o-mini)
- PERSONACHAT_MAX_TOKENS / PERSONACHAT_TEMPERATURE
- PERSONACHAT_COMPLETION_TIMEOUT (seconds; unset means wait indefinitely)
- GATEWAY_URL / GATEWAY_SERVICE_KEY (REST persistence gateway)
- PERSONACHAT_STORE_IMPL (memory | rest)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str]
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.7
    completion_timeout: Optional[float] = None
    gateway_url: Optional[str] = None
    gateway_service_key: Optional[str] = None
    store_impl: str = "memory"

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=(os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1").rstrip("/"),
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            max_tokens=_env_int("PERSONACHAT_MAX_TOKENS", 1000),
            temperature=_env_float("PERSONACHAT_TEMPERATURE", 0.7) or 0.0,
            completion_timeout=_env_float("PERSONACHAT_COMPLETION_TIMEOUT", None),
            gateway_url=(os.getenv("GATEWAY_URL") or "").rstrip("/") or None,
            gateway_service_key=os.getenv("GATEWAY_SERVICE_KEY") or None,
            store_impl=(os.getenv("PERSONACHAT_STORE_IMPL") or "memory").lower(),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""

    global _settings
    _settings = None
