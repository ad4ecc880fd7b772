"""Tests for the trigger calculator and media payloads."""
from datetime import datetime

import pytest

from showclock.engine import clock, triggers
from showclock.models.status import ActionType, Status
from showclock.models.timer import Timer
from showclock.models.timer_action import TimerAction


# -- Helpers -------------------------------------------------------------------

def _timer(duration=60, started_at="2025-01-01T10:00:00"):
    return Timer(
        id="t1",
        event_id="e1",
        order_index=1,
        name="Keynote",
        duration_minutes=duration,
        started_at=clock.parse(started_at) if started_at else None,
        status=Status.RUNNING,
    )


def _action(action_id, offset, order_index=1, action_type=ActionType.VIDEO, urls=None, **kw):
    return TimerAction(
        id=action_id,
        timer_id="t1",
        order_index=order_index,
        type=action_type,
        trigger_offset_minutes=offset,
        urls=urls or ["https://cdn.example/clip.mp4"],
        status=Status.PENDING,
        **kw,
    )


# -- Trigger instants ------------------------------------------------------------

def test_negative_offset_counts_back_from_end():
    start = clock.compose(2025, 1, 1, 10)
    assert triggers.trigger_instant(start, 60, -15) == clock.compose(2025, 1, 1, 10, 45)


def test_zero_offset_fires_at_end():
    start = clock.compose(2025, 1, 1, 10)
    assert triggers.trigger_instant(start, 60, 0) == clock.compose(2025, 1, 1, 11)


def test_positive_offset_counts_from_start():
    start = clock.compose(2025, 1, 1, 10)
    assert triggers.trigger_instant(start, 60, 5) == clock.compose(2025, 1, 1, 10, 5)


def test_durationless_timer_fires_relative_to_start():
    start = clock.compose(2025, 1, 1, 10)
    assert triggers.trigger_instant(start, 0, 0) == start
    assert triggers.trigger_instant(start, 0, -2) == clock.compose(2025, 1, 1, 9, 58)


def test_trigger_is_monotonic_in_offset():
    start = clock.compose(2025, 1, 1, 10)
    offsets = [-30, -15, -1, 0]
    instants = [triggers.trigger_instant(start, 60, o) for o in offsets]
    assert instants == sorted(instants)
    assert len(set(instants)) == len(instants)


@pytest.mark.parametrize("duration,offset", [(60, -15), (60, 0), (60, 10), (0, 0), (0, -5)])
def test_start_for_trigger_inverts_trigger_instant(duration, offset):
    target = clock.compose(2025, 1, 1, 10, 30, 15)
    start = triggers.start_for_trigger(target, duration, offset)
    assert triggers.trigger_instant(start, duration, offset) == target


# -- Action timing ------------------------------------------------------------------

def test_actions_with_timing(frozen_clock):
    frozen_clock.set(datetime(2025, 1, 1, 10, 30))
    timer = _timer()
    x = _action("x", -15, order_index=1)
    y = _action("y", 0, order_index=2)

    timings = triggers.actions_with_timing(timer, [x, y])

    assert [t.action_id for t in timings] == ["x", "y"]
    assert timings[0].trigger_time == clock.compose(2025, 1, 1, 10, 45)
    assert timings[0].seconds_until_trigger == 15 * 60
    assert timings[1].seconds_until_trigger == 30 * 60
    assert timings[0].as_dict()["trigger_time"] == "2025-01-01T10:45:00"


def test_actions_with_timing_skips_executed_actions(frozen_clock):
    timer = _timer()
    done = _action("done", -15, executed_at=clock.compose(2025, 1, 1, 10, 45))
    todo = _action("todo", 0, order_index=2)
    assert [t.action_id for t in triggers.actions_with_timing(timer, [done, todo])] == ["todo"]


def test_actions_with_timing_empty_before_start():
    timer = _timer(started_at=None)
    assert triggers.actions_with_timing(timer, [_action("x", 0)]) == []


# -- Media payloads ------------------------------------------------------------------

def test_media_payload_shapes():
    assert triggers.media_payload(_action("v", 0, urls=["v.mp4"])) == {
        "video_url": "v.mp4", "kind": "VIDEO",
    }
    assert triggers.media_payload(
        _action("s", 0, action_type=ActionType.SOUND, urls=["s.mp3"])
    ) == {"sound_url": "s.mp3", "kind": "SOUND"}
    combo = triggers.media_payload(
        _action(
            "is", 0, action_type=ActionType.IMAGE_SOUND,
            urls=["i.png", "s.mp3"], display_duration_sec=8,
        )
    )
    assert combo == {
        "image_url": "i.png", "sound_url": "s.mp3",
        "kind": "IMAGE_SOUND", "display_duration_sec": 8,
    }
    gallery = triggers.media_payload(
        _action("g", 0, action_type=ActionType.GALLERY, urls=["a.png", "b.png", "c.png"])
    )
    assert gallery["image_urls"] == ["a.png", "b.png", "c.png"]


def test_every_action_type_has_a_payload():
    for action_type in ActionType:
        low, _ = triggers.URL_ARITY[action_type]
        action = _action("a", 0, action_type=action_type, urls=[f"u{i}" for i in range(low)])
        assert triggers.media_payload(action)["kind"] == action_type.value
