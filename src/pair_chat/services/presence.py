"""Presence registry mapping a user id to its single live connection."""

from typing import Any, Dict, Optional, Set

import structlog

logger = structlog.get_logger()


class PresenceRegistry:
    """Tracks who is online in this server process.

    At most one handle is kept per user; a later connection replaces the
    earlier one without closing it. All mutations run on the event loop
    thread and never await, so no lock is taken. The registry is local to
    one process; a multi-instance deployment would need a shared store here.
    """

    def __init__(self) -> None:
        self._handles: Dict[str, Any] = {}

    def set_online(self, user_id: str, handle: Any) -> None:
        replaced = self._handles.get(user_id)
        self._handles[user_id] = handle
        logger.info("user_online", user_id=user_id, replaced=replaced is not None)

    def get_handle(self, user_id: str) -> Optional[Any]:
        return self._handles.get(user_id)

    def remove_if_current(self, user_id: str, handle: Any) -> bool:
        """Drop the mapping only if it still points at this exact handle.

        A belated disconnect from a superseded connection must leave the
        newer mapping in place.
        """
        if self._handles.get(user_id) is not handle:
            logger.debug("stale_disconnect_ignored", user_id=user_id)
            return False
        del self._handles[user_id]
        logger.info("user_offline", user_id=user_id)
        return True

    def list_online_user_ids(self) -> Set[str]:
        return set(self._handles)

    def __len__(self) -> int:
        return len(self._handles)
