"""Test suite for the presence registry."""

from pair_chat.services.presence import PresenceRegistry


class Handle:
    """Stand-in connection handle; compared by identity only."""

    def __eq__(self, other):
        return True

    __hash__ = object.__hash__


def test_set_online_and_lookup():
    registry = PresenceRegistry()
    h1 = Handle()

    registry.set_online("u", h1)

    assert registry.get_handle("u") is h1
    assert registry.get_handle("other") is None
    assert registry.list_online_user_ids() == {"u"}


def test_last_connect_wins_and_stale_disconnect_is_ignored():
    """Test that a superseded handle cannot evict the newer mapping."""
    registry = PresenceRegistry()
    h1, h2 = Handle(), Handle()

    registry.set_online("U", h1)
    registry.set_online("U", h2)

    assert registry.remove_if_current("U", h1) is False
    assert registry.get_handle("U") is h2
    assert "U" in registry.list_online_user_ids()

    assert registry.remove_if_current("U", h2) is True
    assert "U" not in registry.list_online_user_ids()
    assert registry.get_handle("U") is None


def test_remove_unknown_user():
    registry = PresenceRegistry()
    assert registry.remove_if_current("ghost", Handle()) is False


def test_online_ids_are_a_snapshot():
    registry = PresenceRegistry()
    registry.set_online("a", Handle())
    snapshot = registry.list_online_user_ids()

    registry.set_online("b", Handle())

    assert snapshot == {"a"}
    assert registry.list_online_user_ids() == {"a", "b"}
    assert len(registry) == 2
