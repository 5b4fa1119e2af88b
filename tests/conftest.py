import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

os.environ.setdefault("JWT_SECRET", "personachat-test-secret-0123456789abcdef")


@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """Each test gets fresh stores, settings and no live completion backend."""
    from src.personachat import settings
    from src.personachat.infrastructure import chat_store, repository
    from src.personachat.security import rate_limit
    from src.personachat.services import completion

    monkeypatch.delenv("PERSONACHAT_STORE_IMPL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings.reset_settings()
    monkeypatch.setattr(repository, "_repo", None, raising=False)
    monkeypatch.setattr(chat_store, "_store", None, raising=False)
    monkeypatch.setattr(completion, "_backend", None, raising=False)
    rate_limit.reset_rate_limits()
    yield
    settings.reset_settings()
