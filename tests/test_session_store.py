from __future__ import annotations

import threading
import time

import pytest

from fakes import FakeClock

from src.orchestrator.intents import Language, Role
from src.orchestrator.state import AuthContext, BookingAssistantState, ChatSession
from src.services.session_store import SessionStore, resolve_session_key


def _session(*contents: str) -> ChatSession:
    history = []
    for index, content in enumerate(contents):
        history.append({"role": "user" if index % 2 == 0 else "assistant", "content": content})
    return ChatSession(history=history, language=Language.SI)


def test_session_key_for_authenticated_user_ignores_client():
    auth = AuthContext(is_authenticated=True, user_id="u-1", role=Role.CUSTOMER)

    assert resolve_session_key("tab-9", auth, "10.0.0.1") == "user:u-1:tab-9"
    assert resolve_session_key(None, auth, "10.0.0.1") == "user:u-1:default"


def test_session_key_for_guest_falls_back_to_client_id():
    guest = AuthContext.guest()

    assert resolve_session_key("  abc  ", guest, "10.0.0.1") == "anon:abc"
    assert resolve_session_key("", guest, "10.0.0.1") == "anon:10.0.0.1"
    assert resolve_session_key(None, guest, "") == "anon:unknown"


def test_session_key_truncates_long_session_ids():
    key = resolve_session_key("x" * 200, AuthContext.guest(), "client")

    assert key == "anon:" + "x" * 80


def test_put_and_get_return_isolated_copies():
    store = SessionStore(clock=FakeClock())
    store.put("anon:a", _session("hi", "hello"))

    loaded = store.get("anon:a")
    loaded.history.append({"role": "user", "content": "mutated"})

    assert len(store.get("anon:a").history) == 2
    assert store.get("anon:a").language is Language.SI


def test_history_is_trimmed_to_max_messages():
    store = SessionStore(max_messages=4, clock=FakeClock())
    store.put("anon:a", _session("1", "2", "3", "4", "5", "6"))

    assert [m["content"] for m in store.get("anon:a").history] == ["3", "4", "5", "6"]


def test_sessions_expire_after_ttl():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("anon:a", _session("hi"))

    clock.advance(59)
    assert store.get("anon:a") is not None

    clock.advance(61)
    assert store.get("anon:a") is None


def test_sweep_removes_only_expired_sessions():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("anon:old", _session("old"))
    clock.advance(45)
    store.put("anon:new", _session("new"))
    clock.advance(30)

    removed = store.sweep_expired()

    assert removed == 1
    assert store.get("anon:old") is None
    assert store.get("anon:new") is not None


def test_store_evicts_least_recently_written_when_full():
    store = SessionStore(max_sessions=2, clock=FakeClock())
    store.put("anon:a", _session("a"))
    store.put("anon:b", _session("b"))
    store.put("anon:a", _session("a2"))
    store.put("anon:c", _session("c"))

    assert len(store) == 2
    assert store.get("anon:b") is None
    assert store.get("anon:a").history[0]["content"] == "a2"


def test_key_locks_are_dropped_once_released():
    store = SessionStore(max_sessions=1, clock=FakeClock())
    for key in ("anon:a", "anon:b", "anon:c"):
        with store.lock(key):
            store.put(key, _session(key))

    assert len(store) == 1
    assert store._key_locks == {}


def test_waiting_turn_shares_the_running_turns_lock():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("anon:a", _session("a"))
    order = []

    def second_turn():
        with store.lock("anon:a"):
            order.append("second")

    with store.lock("anon:a"):
        worker = threading.Thread(target=second_turn)
        worker.start()
        for _ in range(2000):
            if store._key_locks["anon:a"].holders == 2:
                break
            time.sleep(0.001)
        clock.advance(120)
        store.sweep_expired()
        assert store._key_locks["anon:a"].holders == 2
        order.append("first")

    worker.join(timeout=5)

    assert order == ["first", "second"]
    assert store._key_locks == {}

def test_booking_state_survives_round_trip():
    store = SessionStore(clock=FakeClock())
    state = BookingAssistantState(active=True, awaiting_field="city")
    state.draft.address_line1 = "12 Temple Road"
    store.put("user:u:default", ChatSession(history=[], booking_assistant=state))

    state.draft.address_line1 = "changed"
    loaded = store.get("user:u:default").booking_assistant

    assert loaded.active is True
    assert loaded.awaiting_field == "city"
    assert loaded.draft.address_line1 == "12 Temple Road"


def test_invalid_configuration_is_rejected():
    with pytest.raises(ValueError):
        SessionStore(ttl_seconds=0)
    with pytest.raises(ValueError):
        SessionStore(max_messages=1)
