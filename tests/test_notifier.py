"""Tests for the realtime notifier, the WebSocket hub and viewer-side dedupe."""
import logging

import pytest

from showclock.engine import clock, repository, timer_engine
from showclock.engine.errors import TransportError
from showclock.models.status import Status
from showclock.ws import protocol as P
from showclock.ws.hub import WebSocketHub
from showclock.ws.reconciler import UpdateDeduplicator


class FakeSocket:
    def __init__(self, broken=False):
        self.sent = []
        self.broken = broken
        self.closed_with = None

    async def accept(self):
        pass

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket gone")
        self.sent.append(message)

    async def close(self, code=1000):
        self.closed_with = code


# -- Notifier --------------------------------------------------------------------

@pytest.mark.asyncio
async def test_publish_stamps_strictly_increasing_updated_at(notifier, transport, frozen_clock):
    first = await notifier.publish_for_event("e1", P.TIMER_UPDATED, {"action": "started"})
    second = await notifier.publish_for_event("e1", P.TIMER_UPDATED, {"action": "completed"})

    assert clock.parse(second[P.UPDATED_AT]) > clock.parse(first[P.UPDATED_AT])
    assert [channel for channel, _, _ in transport.messages] == ["SHOW_TIMERS.e1"] * 2


@pytest.mark.asyncio
async def test_publish_swallows_transport_failure(notifier, transport, caplog):
    transport.fail = True
    with caplog.at_level(logging.WARNING, logger="showclock.ws.notifier"):
        message = await notifier.publish("SHOW_TIMERS.e1", P.ACTION_STARTED, {"actionId": "a1"})
    assert message["actionId"] == "a1"
    assert "Realtime publish failed" in caplog.text


@pytest.mark.asyncio
async def test_state_commits_even_when_transport_fails(db_session, notifier, transport, build_event, frozen_clock):
    event, (timer,) = await build_event([{"name": "Solo", "duration_minutes": 5}])
    transport.fail = True

    await timer_engine.start_timer(db_session, notifier, timer.id, event.id)

    await db_session.refresh(timer)
    assert timer.status == Status.RUNNING
    assert transport.messages == []


# -- Hub ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_hub_fans_out_to_channel_subscribers():
    hub = WebSocketHub()
    a, b, other = FakeSocket(), FakeSocket(), FakeSocket()
    await hub.connect(a, "SHOW_TIMERS.e1")
    await hub.connect(b, "SHOW_TIMERS.e1")
    await hub.connect(other, "SHOW_TIMERS.e2")

    await hub.publish("SHOW_TIMERS.e1", P.TIMER_UPDATED, {"timerId": "t1"})

    expected = {
        "type": P.MSG_EVENT,
        "channel": "SHOW_TIMERS.e1",
        "event": P.TIMER_UPDATED,
        "data": {"timerId": "t1"},
    }
    assert a.sent == [expected]
    assert b.sent == [expected]
    assert other.sent == []


@pytest.mark.asyncio
async def test_hub_drops_broken_sockets():
    hub = WebSocketHub()
    good, broken = FakeSocket(), FakeSocket(broken=True)
    await hub.connect(good, "SHOW_TIMERS.e1")
    await hub.connect(broken, "SHOW_TIMERS.e1")

    with pytest.raises(TransportError):
        await hub.publish("SHOW_TIMERS.e1", P.TIMER_UPDATED, {})

    assert hub.subscriber_count("SHOW_TIMERS.e1") == 1
    assert len(good.sent) == 1


@pytest.mark.asyncio
async def test_hub_close_closes_sockets():
    hub = WebSocketHub()
    sock = FakeSocket()
    await hub.connect(sock, "SHOW_TIMERS.e1")
    await hub.close()
    assert sock.closed_with == 1001
    assert hub.subscriber_count("SHOW_TIMERS.e1") == 0


# -- Dedupe ------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_deduplicator_rejects_replays_and_stale_stamps(notifier, frozen_clock):
    dedup = UpdateDeduplicator()
    channel = notifier.channel_for("e1")
    older = await notifier.publish(channel, P.TIMER_UPDATED, {"action": "started"})
    newer = await notifier.publish(channel, P.TIMER_UPDATED, {"action": "completed"})

    assert dedup.is_new(channel, newer) is True
    assert dedup.is_new(channel, newer) is False
    # Reordered delivery: the older message arrives late and is ignored.
    assert dedup.is_new(channel, older) is False
    assert dedup.last_seen(channel) == newer[P.UPDATED_AT]
    assert dedup.is_new("SHOW_TIMERS.e2", older) is True


def test_deduplicator_accepts_unstamped_payloads():
    dedup = UpdateDeduplicator()
    assert dedup.is_new("c", {}) is True
    assert dedup.is_new("c", {P.UPDATED_AT: "not a time"}) is True
    assert dedup.is_new("c", None) is True
