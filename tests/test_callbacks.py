import pytest

from mediabot.callbacks import MAX_CALLBACK_LENGTH, CallbackRegistry, short_key
from mediabot.errors import SessionExpired
from mediabot.state import TTLStore


@pytest.fixture
def registry(clock):
    return CallbackRegistry("a", TTLStore(60, clock))


def test_short_key_is_stable_and_short():
    assert short_key("session-1") == short_key("session-1")
    assert short_key("session-1") != short_key("session-2")
    assert len(short_key("x" * 500)) == 8
    assert len(short_key()) == 8


def test_encode_without_payload(registry):
    assert registry.encode("main") == "a_main"
    assert registry.decode("a_main") == ("main", None)


def test_payload_round_trips_through_store(registry):
    payload = {"info": "k" * 40, "episode": "ep-" + "9" * 40, "kind": "sub"}
    data = registry.encode("download", payload)
    assert len(data.encode("utf-8")) <= MAX_CALLBACK_LENGTH
    assert registry.decode(data) == ("download", payload)


def test_expired_payload_raises(registry, clock):
    data = registry.encode("select", {"session": "abc"})
    clock.advance(61)
    with pytest.raises(SessionExpired):
        registry.decode(data)


def test_matches_only_own_prefix(registry):
    assert registry.matches("a_search")
    assert not registry.matches("anime_main")
    assert not registry.matches("tiktok_main")
    assert not registry.matches(None)
    with pytest.raises(ValueError):
        registry.decode("tiktok_main")


def test_action_with_separator_rejected(registry):
    with pytest.raises(ValueError):
        registry.encode("set_style", {"x": 1})


def test_action_does_not_need_a_live_payload(registry):
    assert registry.action("a_select_deadbeef") == "select"
    assert registry.action("a_main") == "main"
    with pytest.raises(ValueError):
        registry.action("tiktok_main")
