"""Realtime notifier -- fire-and-forget fan-out of lifecycle transitions.

Delivery is at-least-once and best effort: callers commit state *before*
publishing, and a failed publish is logged and dropped.  Viewers recover
from a lost message on their next fallback re-fetch.
"""
import logging
from datetime import datetime, timedelta
from typing import Protocol

from showclock.config import settings
from showclock.engine import clock
from showclock.engine.errors import TransportError
from showclock.ws import protocol as P

log = logging.getLogger(__name__)


class Transport(Protocol):
    async def publish(self, channel: str, event_name: str, payload: dict) -> None:
        """Deliver one message; raise ``TransportError`` on failure."""


class Notifier:
    """Stamps and publishes engine events through a transport handle.

    The transport is constructed once by the application and injected here;
    the notifier never creates or owns a client of its own.
    """

    def __init__(self, transport: Transport, channel_prefix: str | None = None):
        self.transport = transport
        self.channel_prefix = channel_prefix or settings.CHANNEL_PREFIX
        self._last_stamp: dict[str, datetime] = {}

    def channel_for(self, event_id: str) -> str:
        return f"{self.channel_prefix}.{event_id}"

    def _next_stamp(self, channel: str) -> str:
        stamp = clock.now().value
        last = self._last_stamp.get(channel)
        if last is not None and stamp <= last:
            stamp = last + timedelta(microseconds=1)
        self._last_stamp[channel] = stamp
        return stamp.isoformat()

    async def publish(self, channel: str, event_name: str, payload: dict) -> dict:
        """Publish *payload* under *event_name*; never raises."""
        message = dict(payload)
        message[P.UPDATED_AT] = self._next_stamp(channel)
        try:
            await self.transport.publish(channel, event_name, message)
        except TransportError as exc:
            log.warning("Realtime publish failed on %s (%s): %s", channel, event_name, exc)
        except Exception:
            log.exception("Unexpected error publishing %s on %s", event_name, channel)
        else:
            log.debug("Published %s on %s", event_name, channel)
        return message

    async def publish_for_event(self, event_id: str, event_name: str, payload: dict) -> dict:
        return await self.publish(self.channel_for(event_id), event_name, payload)
