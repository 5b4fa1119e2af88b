from __future__ import annotations

import pytest

from src.personachat.domain.errors import NotFound, RateLimited, Unauthorized, UpstreamError, ValidationFailed
from src.personachat.domain.models import ProjectCreate
from src.personachat.infrastructure.chat_store import InMemoryChatStore
from src.personachat.infrastructure.repository import InMemoryProjectRepository
from src.personachat.services.exchange import ExchangeOrchestrator, build_completion_messages
from src.personachat.settings import Settings
from .utils import FakeBackend, token_for


@pytest.fixture
def world():
    repo = InMemoryProjectRepository()
    store = InMemoryChatStore()
    backend = FakeBackend(reply="Our plans start at $10.")
    project = repo.create("owner-1", ProjectCreate(name="Sales", system_prompt="You are a sales bot"))
    session = store.create_session(project.id, "owner-1")
    orchestrator = ExchangeOrchestrator(repo, store, backend, settings=Settings(openai_api_key=None))
    return orchestrator, repo, store, backend, project, session


def test_exchange_replays_full_history_in_order(world):
    orchestrator, _repo, store, backend, project, session = world
    store.add_message(session.id, "owner-1", "user", "hi")
    store.add_message(session.id, "owner-1", "assistant", "hello")

    result = orchestrator.exchange(token_for("owner-1"), "what's the price?", session.id, project.id)

    assert result.reply_text == "Our plans start at $10."
    assert result.usage == {"total_tokens": 42}
    assert backend.calls[0]["messages"] == [
        {"role": "system", "content": "You are a sales bot"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "what's the price?"},
    ]
    assert backend.calls[0]["max_tokens"] == 1000
    assert backend.calls[0]["temperature"] == 0.7


def test_exchange_persists_both_turns(world):
    orchestrator, _repo, store, _backend, project, session = world
    orchestrator.exchange(token_for("owner-1"), "hello there", session.id, project.id)
    msgs = store.list_messages(session.id, "owner-1")
    assert [(m.role, m.content) for m in msgs] == [
        ("user", "hello there"),
        ("assistant", "Our plans start at $10."),
    ]


def test_empty_system_prompt_is_omitted():
    messages = build_completion_messages("", [], "hi")
    assert messages == [{"role": "user", "content": "hi"}]


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_unresolvable_token_is_unauthorized(world, token):
    orchestrator, _repo, store, backend, project, session = world
    with pytest.raises(Unauthorized):
        orchestrator.exchange(token, "hello", session.id, project.id)
    assert backend.calls == []
    assert store.list_messages(session.id, "owner-1") == []


@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
def test_blank_message_rejected_without_side_effects(world, message):
    orchestrator, _repo, store, backend, project, session = world
    with pytest.raises(ValidationFailed):
        orchestrator.exchange(token_for("owner-1"), message, session.id, project.id)
    assert backend.calls == []
    assert store.list_messages(session.id, "owner-1") == []


def test_non_owner_gets_not_found_and_no_writes(world):
    orchestrator, _repo, store, backend, project, session = world
    with pytest.raises(NotFound):
        orchestrator.exchange(token_for("intruder"), "hello", session.id, project.id)
    assert backend.calls == []
    assert store.list_messages(session.id, "owner-1") == []


def test_session_from_another_project_is_rejected(world):
    orchestrator, repo, store, backend, project, _session = world
    other = repo.create("owner-1", ProjectCreate(name="Support"))
    foreign = store.create_session(other.id, "owner-1")
    with pytest.raises(NotFound):
        orchestrator.exchange(token_for("owner-1"), "hello", foreign.id, project.id)
    assert backend.calls == []
    assert store.list_messages(foreign.id, "owner-1") == []


def test_upstream_failure_leaves_orphaned_user_turn(world):
    orchestrator, _repo, store, backend, project, session = world
    backend.fail_status = 503
    with pytest.raises(UpstreamError) as excinfo:
        orchestrator.exchange(token_for("owner-1"), "anyone there?", session.id, project.id)
    assert excinfo.value.upstream_status == 503
    msgs = store.list_messages(session.id, "owner-1")
    assert [(m.role, m.content) for m in msgs] == [("user", "anyone there?")]


def test_persistence_failures_do_not_fail_exchange(world, monkeypatch):
    orchestrator, _repo, store, backend, project, session = world

    def broken_add(*_args, **_kwargs):
        raise RuntimeError("gateway down")

    monkeypatch.setattr(store, "add_message", broken_add)
    result = orchestrator.exchange(token_for("owner-1"), "hello", session.id, project.id)
    assert result.reply_text == "Our plans start at $10."
    assert len(backend.calls) == 1


def test_history_read_failure_falls_back_to_empty(world, monkeypatch):
    orchestrator, _repo, store, backend, project, session = world

    def broken_list(*_args, **_kwargs):
        raise RuntimeError("read timeout")

    monkeypatch.setattr(store, "list_messages", broken_list)
    orchestrator.exchange(token_for("owner-1"), "hello", session.id, project.id)
    assert backend.calls[0]["messages"][-1] == {"role": "user", "content": "hello"}
    assert len(backend.calls[0]["messages"]) == 2


def test_guard_runs_before_any_write(world):
    _orchestrator, repo, store, backend, project, session = world

    def deny(_user):
        raise RateLimited("Too many requests", retry_after_seconds=5)

    guarded = ExchangeOrchestrator(repo, store, backend, guard=deny, settings=Settings(openai_api_key=None))
    with pytest.raises(RateLimited):
        guarded.exchange(token_for("owner-1"), "hello", session.id, project.id)
    assert backend.calls == []
    assert store.list_messages(session.id, "owner-1") == []


def test_exchange_is_not_idempotent(world):
    orchestrator, _repo, store, backend, project, session = world
    for _ in range(2):
        orchestrator.exchange(token_for("owner-1"), "same text", session.id, project.id)
    assert len(backend.calls) == 2
    assert len(store.list_messages(session.id, "owner-1")) == 4
