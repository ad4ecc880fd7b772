"""Tests for viewer-side prediction and re-fetching."""
import asyncio
from datetime import datetime

import httpx
import pytest

from showclock.engine import action_engine, timer_engine
from showclock.ws import protocol as P
from showclock.ws.reconciler import TimeLeft, TimerView, ViewerSync


# -- Helpers -------------------------------------------------------------------

def _snapshot(**overrides):
    snapshot = {
        "id": "t1",
        "duration_minutes": 60,
        "scheduled_start_time": "2025-01-01T10:00:00",
        "started_at": "2025-01-01T10:00:00",
        "status": "RUNNING",
        "actions": [
            {
                "id": "warn", "order_index": 1, "trigger_offset_minutes": -15,
                "status": "PENDING", "executed_at": None,
            },
            {
                "id": "gong", "order_index": 2, "trigger_offset_minutes": 0,
                "status": "PENDING", "executed_at": None,
            },
        ],
    }
    snapshot.update(overrides)
    return snapshot


# -- TimeLeft / countdown -----------------------------------------------------------

def test_time_left_breakdown():
    left = TimeLeft.from_milliseconds(((26 * 60 + 3) * 60 + 4) * 1000 + 999)
    assert (left.days, left.hours, left.minutes, left.seconds) == (1, 2, 3, 4)
    assert left.total_seconds == 93784
    assert TimeLeft.from_milliseconds(-5000) == TimeLeft()


def test_countdown_targets_end_of_durational_timer(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 59, 30))
    view = TimerView(_snapshot())
    assert view.time_left() == TimeLeft(minutes=0, seconds=30, total_seconds=30)
    assert not view.is_expired()
    frozen_clock.set(datetime(2025, 1, 1, 11, 0, 1))
    assert view.is_expired()


def test_countdown_targets_start_of_durationless_timer(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 9, 0))
    view = TimerView(_snapshot(duration_minutes=0, started_at=None))
    assert view.time_left().hours == 1


def test_empty_view():
    view = TimerView()
    assert view.time_left() == TimeLeft()
    assert view.action_states().current is None
    assert not view.is_expired()


# -- Action classification ---------------------------------------------------------

def test_action_states_before_first_trigger(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 30))
    states = TimerView(_snapshot()).action_states()
    assert states.current is None
    assert states.should_notify is None
    assert states.next["id"] == "warn"


def test_due_pending_action_should_be_notified(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 46))
    states = TimerView(_snapshot()).action_states()
    assert states.should_notify["id"] == "warn"
    assert states.next["id"] == "gong"


def test_running_action_is_current(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 46))
    snapshot = _snapshot()
    snapshot["actions"][0]["status"] = "RUNNING"
    states = TimerView(snapshot).action_states()
    assert states.current["id"] == "warn"
    assert states.next is None


def test_mark_completing_masks_action_until_snapshot_confirms(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 46))
    view = TimerView(_snapshot())
    view.mark_completing("warn")
    assert view.action_states().should_notify is None

    done = _snapshot()
    done["actions"][0].update(status="COMPLETED", executed_at="2025-01-01T10:46:00")
    view.apply_snapshot(done)
    assert view._completing == set()
    assert view.action_states().next["id"] == "gong"


# -- ViewerSync ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_viewer_sync_refetches_once_per_stamp(client, db_session, notifier, transport, build_event, frozen_clock):
    event, (timer,) = await build_event([
        {
            "name": "Keynote",
            "duration_minutes": 60,
            "actions": [{"type": "VIDEO", "trigger_offset_minutes": -15, "urls": ["a.mp4"]}],
        },
    ])
    channel = notifier.channel_for(event.id)
    sync = ViewerSync(client, event.id, channel)

    assert await sync.refetch() is None

    await timer_engine.start_timer(db_session, notifier, timer.id, event.id)
    channel_name, event_name, payload = transport.messages[-1]
    frame = {"type": P.MSG_EVENT, "channel": channel_name, "event": event_name, "data": payload}

    assert await sync.handle_message(frame) is True
    assert await sync.handle_message(frame) is False
    assert sync.refetch_count == 2
    assert sync.view.snapshot["id"] == timer.id
    assert sync.view.snapshot["status"] == "RUNNING"

    action_id = sync.view.snapshot["actions"][0]["id"]
    await action_engine.start_action(db_session, notifier, action_id)
    _, event_name, payload = transport.messages[-1]
    await sync.handle_message({"type": P.MSG_EVENT, "channel": channel, "event": event_name, "data": payload})
    assert sync.view.snapshot["actions"][0]["status"] == "RUNNING"


@pytest.mark.asyncio
async def test_viewer_sync_ignores_other_frames(client):
    sync = ViewerSync(client, "e1", "SHOW_TIMERS.e1")
    assert await sync.handle_message({"type": P.MSG_HEARTBEAT_ACK}) is False
    assert await sync.handle_message(
        {"type": P.MSG_EVENT, "channel": "SHOW_TIMERS.e2", "event": P.TIMER_UPDATED, "data": {}}
    ) is False
    assert await sync.handle_message(
        {"type": P.MSG_EVENT, "channel": "SHOW_TIMERS.e1", "event": "CONFETTI", "data": {}}
    ) is False
    assert sync.refetch_count == 0


@pytest.mark.asyncio
async def test_fallback_loop_survives_http_errors(caplog):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(503 if len(calls) == 1 else 200, content=b"null")

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test"
    ) as http:
        sync = ViewerSync(http, "e1", "SHOW_TIMERS.e1", fallback_interval=0.01)
        task = asyncio.create_task(sync.run_fallback())
        while sync.refetch_count < 1:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert calls[0] == "/api/events/e1/current-timer"
    assert "Fallback re-fetch for event e1 failed" in caplog.text
