"""WebSocket fan-out hub and the viewer subscription endpoint.

Viewers connect to ``/ws/{event_id}`` and receive every message published on
that event's channel.  They are read-only: the only frame they may send is a
heartbeat.
"""
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from showclock.engine import repository
from showclock.engine.errors import TransportError
from showclock.ws import protocol as P

log = logging.getLogger(__name__)


class WebSocketHub:
    """Tracks subscribed sockets per channel and implements ``Transport``."""

    def __init__(self):
        self.subscribers: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.subscribers.setdefault(channel, set()).add(websocket)
        log.info("Viewer subscribed to %s (%d total)", channel, len(self.subscribers[channel]))

    def disconnect(self, websocket: WebSocket, channel: str):
        sockets = self.subscribers.get(channel)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            self.subscribers.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self.subscribers.get(channel, ()))

    async def publish(self, channel: str, event_name: str, payload: dict) -> None:
        message = {
            "type": P.MSG_EVENT,
            "channel": channel,
            "event": event_name,
            "data": payload,
        }
        failed: list[WebSocket] = []
        for ws in list(self.subscribers.get(channel, ())):
            try:
                await ws.send_json(message)
            except Exception:
                failed.append(ws)
        for ws in failed:
            self.disconnect(ws, channel)
        if failed:
            raise TransportError(
                f"{len(failed)} subscriber(s) on {channel} unreachable; dropped"
            )

    async def close(self) -> None:
        """Close every socket (application shutdown)."""
        for channel, sockets in list(self.subscribers.items()):
            for ws in list(sockets):
                try:
                    await ws.close(code=1001)
                except Exception:
                    log.debug("Socket on %s already closed", channel)
        self.subscribers.clear()
        log.info("Realtime hub closed")


async def websocket_handler(websocket: WebSocket, event_id: str):
    state = websocket.app.state
    hub: WebSocketHub = state.hub

    # ---- the event must exist ----
    async with state.session_factory() as db:
        event = await repository.find_event(db, event_id)
    if event is None:
        await websocket.close(code=4004, reason="Unknown event")
        return

    channel = state.notifier.channel_for(event_id)
    await hub.connect(websocket, channel)

    try:
        await websocket.send_json({"type": P.MSG_SUBSCRIBED, "channel": channel})
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": P.MSG_ERROR, "detail": "Invalid JSON"})
                continue

            msg_type = message.get("type") if isinstance(message, dict) else None
            if msg_type == P.MSG_HEARTBEAT:
                await websocket.send_json({"type": P.MSG_HEARTBEAT_ACK})
            else:
                await websocket.send_json(
                    {
                        "type": P.MSG_ERROR,
                        "detail": f"Unsupported message type: {msg_type}",
                    }
                )
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket, channel)
