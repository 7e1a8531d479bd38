"""WebSocket transport for the realtime relay.

Frames in both directions are JSON objects of the form
``{"event": <name>, "data": <payload>}``.
"""

from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from structlog import get_logger

from ..services.relay import Connection, RealtimeRelay

logger = get_logger()

router = APIRouter()


class WebSocketConnection(Connection):
    """Relay handle backed by a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket) -> None:
    relay: RealtimeRelay = websocket.app.state.relay
    await websocket.accept()
    handle = WebSocketConnection(websocket)
    relay.connect(handle)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: a binary frame has no text to decode
                await handle.send("error", {"message": "Frames must be JSON text"})
                continue

            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await handle.send("error", {"message": "Frames must have an event name"})
                continue

            await relay.handle_event(handle, frame["event"], frame.get("data"))
    except WebSocketDisconnect as e:
        logger.info("websocket_closed", code=e.code)
    finally:
        await relay.disconnect(handle)
