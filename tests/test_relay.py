"""Test suite for the realtime relay state machine and fan-out."""

from typing import Any, List, Tuple

import pytest

from pair_chat.services.presence import PresenceRegistry
from pair_chat.services.relay import Connection, ConnectionState, RealtimeRelay


class FakeConnection(Connection):
    """Records every event pushed to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Tuple[str, Any]] = []
        self.fail = fail

    async def send(self, event: str, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket is gone")
        self.sent.append((event, data))

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.sent if event == name]


@pytest.fixture
def relay():
    return RealtimeRelay(PresenceRegistry())


@pytest.mark.asyncio
async def test_identify_broadcasts_to_everyone(relay):
    """Test that identify marks the user online and tells every connection."""
    anonymous, alice = FakeConnection(), FakeConnection()
    relay.connect(anonymous)
    relay.connect(alice)

    await relay.handle_event(alice, "identify", "1")

    assert relay.session(alice).state is ConnectionState.IDENTIFIED
    assert relay.presence.get_handle("1") is alice
    assert alice.events("onlineUsers") == [["1"]]
    assert anonymous.events("onlineUsers") == [["1"]]


@pytest.mark.asyncio
async def test_identify_accepts_user_id_object(relay):
    alice = FakeConnection()
    relay.connect(alice)

    await relay.handle_event(alice, "identify", {"userId": "1"})

    assert relay.presence.list_online_user_ids() == {"1"}


@pytest.mark.asyncio
async def test_only_documented_event_names_are_accepted(relay):
    """Test that names outside identify/sendRealtime/typing get an error, not a dispatch."""
    alice = FakeConnection()
    relay.connect(alice)

    await relay.handle_event(alice, "userOnline", "1")
    await relay.handle_event(alice, "sendMessage", {"receiverId": "1", "message": "hi"})

    assert [e["event"] for e in alice.events("error")] == ["userOnline", "sendMessage"]
    assert alice.events("messageSent") == []
    assert relay.presence.list_online_user_ids() == set()


@pytest.mark.asyncio
async def test_relay_message_to_online_receiver(relay):
    """Test that the receiver gets messageReceived and the sender an acknowledgment."""
    alice, bob = FakeConnection(), FakeConnection()
    relay.connect(alice)
    relay.connect(bob)
    await relay.handle_event(alice, "identify", "1")
    await relay.handle_event(bob, "identify", "2")

    message = {"_id": "m1", "message": "Hello"}
    await relay.handle_event(alice, "sendRealtime", {"receiverId": "2", "message": message})

    assert bob.events("messageReceived") == [message]
    assert alice.events("messageSent") == [message]
    assert alice.events("messageReceived") == []


@pytest.mark.asyncio
async def test_relay_message_to_offline_receiver(relay):
    """Test that an offline receiver is a silent no-op but the sender is still acknowledged."""
    alice = FakeConnection()
    relay.connect(alice)
    await relay.handle_event(alice, "identify", "1")

    await relay.handle_event(alice, "sendRealtime", {"receiverId": "2", "message": {"message": "hi"}})

    assert alice.events("messageSent") == [{"message": "hi"}]
    assert alice.events("error") == []


@pytest.mark.asyncio
async def test_typing_is_forwarded_or_dropped(relay):
    alice, bob = FakeConnection(), FakeConnection()
    relay.connect(alice)
    relay.connect(bob)
    await relay.handle_event(bob, "identify", "2")

    payload = {"receiverId": "2", "senderId": "1", "isTyping": True}
    await relay.handle_event(alice, "typing", payload)
    await relay.handle_event(bob, "typing", {"receiverId": "1"})

    assert bob.events("userTyping") == [payload]
    assert alice.events("userTyping") == []
    assert bob.events("error") == []


@pytest.mark.asyncio
async def test_malformed_events_answer_with_error(relay):
    alice = FakeConnection()
    relay.connect(alice)

    await relay.handle_event(alice, "identify", "")
    await relay.handle_event(alice, "sendRealtime", {"message": "no receiver"})
    await relay.handle_event(alice, "shout", {})

    assert len(alice.events("error")) == 3
    assert relay.session(alice).state is ConnectionState.CONNECTED
    assert relay.presence.list_online_user_ids() == set()


@pytest.mark.asyncio
async def test_disconnect_removes_presence_and_broadcasts(relay):
    alice, bob = FakeConnection(), FakeConnection()
    relay.connect(alice)
    relay.connect(bob)
    await relay.handle_event(alice, "identify", "1")
    await relay.handle_event(bob, "identify", "2")

    await relay.disconnect(bob)

    assert relay.presence.list_online_user_ids() == {"1"}
    assert alice.events("onlineUsers")[-1] == ["1"]
    assert relay.session(bob) is None

    # Events after disconnect are ignored
    await relay.handle_event(bob, "identify", "2")
    assert relay.presence.list_online_user_ids() == {"1"}


@pytest.mark.asyncio
async def test_stale_disconnect_keeps_newer_connection(relay):
    """Test that a quick reconnect survives the old connection's belated close."""
    old, new, watcher = FakeConnection(), FakeConnection(), FakeConnection()
    for handle in (old, new, watcher):
        relay.connect(handle)
    await relay.handle_event(old, "identify", "1")
    await relay.handle_event(new, "identify", "1")

    await relay.disconnect(old)

    assert relay.presence.get_handle("1") is new
    assert watcher.events("onlineUsers")[-1] == ["1"]

    await relay.handle_event(watcher, "sendRealtime", {"receiverId": "1", "message": "ping"})
    assert new.events("messageReceived") == ["ping"]
    assert old.events("messageReceived") == []


@pytest.mark.asyncio
async def test_reidentify_rebinds_connection(relay):
    handle = FakeConnection()
    relay.connect(handle)
    await relay.handle_event(handle, "identify", "1")
    await relay.handle_event(handle, "identify", "2")

    assert relay.presence.list_online_user_ids() == {"2"}
    assert handle.events("onlineUsers")[-1] == ["2"]


@pytest.mark.asyncio
async def test_failing_connection_does_not_break_broadcast(relay):
    dead, alice = FakeConnection(fail=True), FakeConnection()
    relay.connect(dead)
    relay.connect(alice)

    await relay.handle_event(alice, "identify", "1")

    assert alice.events("onlineUsers") == [["1"]]


@pytest.mark.asyncio
async def test_disconnect_with_dead_peer_still_broadcasts(relay):
    """Test that a failed send during the disconnect broadcast is logged, not raised."""
    alice, dead, bob = FakeConnection(), FakeConnection(), FakeConnection()
    for handle in (alice, dead, bob):
        relay.connect(handle)
    await relay.handle_event(alice, "identify", "1")
    await relay.handle_event(dead, "identify", "2")
    await relay.handle_event(bob, "identify", "3")
    dead.fail = True

    await relay.disconnect(bob)

    assert relay.presence.list_online_user_ids() == {"1", "2"}
    assert alice.events("onlineUsers")[-1] == ["1", "2"]
    assert relay.session(bob) is None
