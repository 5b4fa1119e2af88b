from src.personachat.client.identity import Identity, IdentityState, get_identity_state


def test_sign_in_and_out_notify_subscribers():
    state = IdentityState()
    seen = []
    state.subscribe(seen.append)

    state.sign_in("tok", "u-1")
    state.sign_out()

    assert seen == [Identity(token="tok", user_id="u-1"), None]
    assert state.current is None
    assert state.token is None


def test_accessors_reflect_current_identity():
    state = IdentityState()
    state.sign_in("tok", "u-9")
    assert state.token == "tok"
    assert state.user_id == "u-9"


def test_unsubscribe_stops_notifications():
    state = IdentityState()
    seen = []
    unsubscribe = state.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    state.sign_in("tok", "u-1")
    assert seen == []


def test_failing_listener_does_not_block_others():
    state = IdentityState()
    seen = []

    def broken(_identity):
        raise RuntimeError("listener bug")

    state.subscribe(broken)
    state.subscribe(seen.append)
    state.sign_in("tok", "u-1")
    assert seen == [Identity(token="tok", user_id="u-1")]


def test_process_wide_state_is_shared():
    assert get_identity_state() is get_identity_state()
