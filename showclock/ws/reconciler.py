"""Viewer-side reconciliation with server-authoritative state.

Viewers never mutate canonical state.  They hold a locally predicted view of
the current timer (countdown, which action is due) and re-fetch the
authoritative snapshot whenever a realtime message with a *new* ``updatedAt``
stamp arrives, plus periodically as a fallback for lost messages.
"""
import asyncio
import logging
from dataclasses import dataclass

import httpx

from showclock.engine import clock, triggers
from showclock.engine.clock import LocalInstant
from showclock.engine.errors import ParseError
from showclock.ws import protocol as P

log = logging.getLogger(__name__)


class UpdateDeduplicator:
    """Remembers the last ``updatedAt`` seen per channel.

    Delivery is at-least-once and may be reordered, so arrival order alone
    never decides; only a strictly newer stamp does.
    """

    def __init__(self):
        self._last_seen: dict[str, LocalInstant] = {}

    def is_new(self, channel: str, payload) -> bool:
        stamp_text = payload.get(P.UPDATED_AT) if isinstance(payload, dict) else None
        if not stamp_text:
            return True
        try:
            stamp = clock.parse(stamp_text)
        except ParseError:
            return True
        last = self._last_seen.get(channel)
        if last is not None and stamp <= last:
            return False
        self._last_seen[channel] = stamp
        return True

    def last_seen(self, channel: str) -> str | None:
        return clock.isoformat(self._last_seen.get(channel))


@dataclass(frozen=True)
class TimeLeft:
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    total_seconds: int = 0

    @classmethod
    def from_milliseconds(cls, ms: int) -> "TimeLeft":
        if ms <= 0:
            return cls()
        total = ms // 1000
        return cls(
            days=total // 86400,
            hours=(total % 86400) // 3600,
            minutes=(total % 3600) // 60,
            seconds=total % 60,
            total_seconds=total,
        )


@dataclass(frozen=True)
class ActionStates:
    current: dict | None = None
    next: dict | None = None
    should_notify: dict | None = None


class TimerView:
    """Local prediction over a timer snapshot as returned by the API."""

    def __init__(self, snapshot: dict | None = None):
        self.snapshot: dict | None = None
        self._completing: set[str] = set()
        self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: dict | None) -> None:
        self.snapshot = snapshot
        if snapshot is None:
            self._completing.clear()
            return
        done = {a["id"] for a in snapshot.get("actions", []) if a.get("status") == "COMPLETED"}
        self._completing -= done

    def mark_completing(self, action_id: str) -> None:
        """Hide an action locally while its completion is in flight."""
        self._completing.add(action_id)

    @property
    def start(self) -> LocalInstant | None:
        if self.snapshot is None:
            return None
        text = self.snapshot.get("started_at") or self.snapshot.get("scheduled_start_time")
        return clock.parse(text) if text else None

    @property
    def duration_minutes(self) -> int:
        return (self.snapshot or {}).get("duration_minutes") or 0

    def target_time(self) -> LocalInstant | None:
        """Countdown target: the start for durationless timers, else the end."""
        start = self.start
        if start is None:
            return None
        return start.add_minutes(self.duration_minutes)

    def time_left(self) -> TimeLeft:
        target = self.target_time()
        if target is None:
            return TimeLeft()
        return TimeLeft.from_milliseconds(clock.diff(target))

    def is_expired(self) -> bool:
        target = self.target_time()
        return target is not None and clock.is_past(target)

    def action_states(self) -> ActionStates:
        start = self.start
        if start is None:
            return ActionStates()
        now = clock.now()
        actions = sorted(
            (
                a for a in self.snapshot.get("actions", [])
                if a.get("status") != "COMPLETED" and a["id"] not in self._completing
            ),
            key=lambda a: a["order_index"],
        )
        current = upcoming = should_notify = None
        for action in actions:
            trigger = triggers.trigger_instant(
                start, self.duration_minutes, action["trigger_offset_minutes"]
            )
            if trigger <= now:
                if action.get("executed_at"):
                    continue
                if action.get("status") == "RUNNING":
                    current = action
                    break
                should_notify = action
            else:
                if not action.get("executed_at") and action.get("status") == "PENDING":
                    upcoming = action
                break
        return ActionStates(current=current, next=upcoming, should_notify=should_notify)


class ViewerSync:
    """Keeps a ``TimerView`` in step with the server for one event."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        event_id: str,
        channel: str,
        fallback_interval: float = 30.0,
    ):
        self.client = client
        self.event_id = event_id
        self.channel = channel
        self.fallback_interval = fallback_interval
        self.dedup = UpdateDeduplicator()
        self.view = TimerView()
        self.refetch_count = 0

    async def refetch(self) -> dict | None:
        resp = await self.client.get(f"/api/events/{self.event_id}/current-timer")
        resp.raise_for_status()
        snapshot = resp.json()
        self.view.apply_snapshot(snapshot)
        self.refetch_count += 1
        return snapshot

    async def handle_message(self, message: dict) -> bool:
        """Handle one hub frame; returns True when it caused a re-fetch."""
        if message.get("type") != P.MSG_EVENT or message.get("channel") != self.channel:
            return False
        if message.get("event") not in P.EVENT_NAMES:
            log.debug("Ignoring unknown event %r on %s", message.get("event"), self.channel)
            return False
        if not self.dedup.is_new(self.channel, message.get("data")):
            log.debug("Duplicate %s on %s ignored", message.get("event"), self.channel)
            return False
        await self.refetch()
        return True

    async def run_fallback(self) -> None:
        """Re-fetch on a fixed period until cancelled."""
        while True:
            await asyncio.sleep(self.fallback_interval)
            try:
                await self.refetch()
            except httpx.HTTPError as exc:
                log.warning("Fallback re-fetch for event %s failed: %s", self.event_id, exc)
