"""Realtime relay: presence broadcasts and live message hints over long-lived connections.

The relay is a notification path only. Messages are persisted through the
API before a client relays them here, and delivery is at-most-once with no
queuing for offline receivers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from ..domain.errors import InvalidArgument
from ..domain.models import is_valid_id
from ..metrics import ONLINE_USERS, REALTIME_DELIVERIES, REALTIME_EVENTS
from .presence import PresenceRegistry

logger = structlog.get_logger()

class Connection(ABC):
    """Transport handle for one client connection."""

    @abstractmethod
    async def send(self, event: str, data: Any) -> None:
        """Push one event to the client."""
        pass


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    IDENTIFIED = "identified"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """Relay-side state of one connection."""

    handle: Connection
    state: ConnectionState = ConnectionState.CONNECTED
    user_id: Optional[str] = None


class RealtimeRelay:
    """Single event-loop relay for every live connection in this process."""

    def __init__(self, presence: PresenceRegistry) -> None:
        self.presence = presence
        self._sessions: Dict[Connection, Session] = {}

    def connect(self, handle: Connection) -> Session:
        session = Session(handle=handle)
        self._sessions[handle] = session
        logger.info("realtime_connected", connections=len(self._sessions))
        return session

    def session(self, handle: Connection) -> Optional[Session]:
        return self._sessions.get(handle)

    async def handle_event(self, handle: Connection, event: str, data: Any) -> None:
        """Dispatch one inbound event from a connection.

        Malformed events are answered with an ``error`` event to the
        sender; they never propagate.
        """
        session = self._sessions.get(handle)
        if session is None or session.state is ConnectionState.DISCONNECTED:
            logger.debug("realtime_event_ignored", relay_event=event)
            return

        handler = {
            "identify": self._on_identify,
            "sendRealtime": self._on_send_realtime,
            "typing": self._on_typing,
        }.get(event)
        REALTIME_EVENTS.labels(event=event if handler else "unknown").inc()

        try:
            if handler is None:
                raise InvalidArgument(f"Unknown event: {event}")
            await handler(session, data)
        except InvalidArgument as e:
            logger.warning("realtime_event_rejected", relay_event=event, error=e.message)
            await self._safe_send(handle, "error", {"event": event, "message": e.message})

    async def disconnect(self, handle: Connection) -> None:
        session = self._sessions.pop(handle, None)
        if session is None:
            return
        was_identified = session.state is ConnectionState.IDENTIFIED
        session.state = ConnectionState.DISCONNECTED
        logger.info(
            "realtime_disconnected",
            user_id=session.user_id,
            connections=len(self._sessions),
        )
        if was_identified:
            self.presence.remove_if_current(session.user_id, handle)
            await self.broadcast_online_users()

    async def broadcast_online_users(self) -> None:
        online = sorted(self.presence.list_online_user_ids())
        ONLINE_USERS.set(len(online))
        await self._broadcast("onlineUsers", online)

    async def _on_identify(self, session: Session, data: Any) -> None:
        user_id = data.get("userId") if isinstance(data, dict) else data
        if not is_valid_id(user_id):
            raise InvalidArgument("identify requires a valid user id")

        if session.state is ConnectionState.IDENTIFIED and session.user_id != user_id:
            self.presence.remove_if_current(session.user_id, session.handle)
        self.presence.set_online(user_id, session.handle)
        session.user_id = user_id
        session.state = ConnectionState.IDENTIFIED
        await self.broadcast_online_users()

    async def _on_send_realtime(self, session: Session, data: Any) -> None:
        receiver_id = self._receiver_id(data)
        message = data.get("message")

        delivered = await self._deliver(receiver_id, "messageReceived", message)
        logger.info(
            "realtime_message_relayed",
            sender_id=session.user_id,
            receiver_id=receiver_id,
            delivered=delivered,
        )
        await self._safe_send(session.handle, "messageSent", message)

    async def _on_typing(self, session: Session, data: Any) -> None:
        receiver_id = self._receiver_id(data)
        await self._deliver(receiver_id, "userTyping", data)

    @staticmethod
    def _receiver_id(data: Any) -> str:
        if not isinstance(data, dict) or not is_valid_id(data.get("receiverId")):
            raise InvalidArgument("receiverId is required")
        return data["receiverId"]

    async def _deliver(self, user_id: str, event: str, data: Any) -> bool:
        """Send to a user's live connection if there is one; offline is a silent no-op."""
        handle = self.presence.get_handle(user_id)
        if handle is None:
            REALTIME_DELIVERIES.labels(outcome="offline").inc()
            return False
        delivered = await self._safe_send(handle, event, data)
        REALTIME_DELIVERIES.labels(outcome="delivered" if delivered else "failed").inc()
        return delivered

    async def _broadcast(self, event: str, data: Any) -> None:
        # Snapshot first; sessions may come and go while sends are awaited
        handles: List[Connection] = list(self._sessions)
        for handle in handles:
            await self._safe_send(handle, event, data)

    async def _safe_send(self, handle: Connection, event: str, data: Any) -> bool:
        """Send with error handling"""
        try:
            await handle.send(event, data)
            return True
        except Exception as e:
            logger.error("realtime_send_failed", relay_event=event, error=str(e))
            return False
