"""Trigger calculator -- turns relative action offsets into absolute instants.

Offset semantics (minutes):

- ``0``  fires exactly at the timer's end (start + duration);
- ``-n`` fires n minutes before the timer's end;
- ``+n`` fires n minutes after the timer's start.

Everything here is a pure function of its inputs.
"""
from dataclasses import dataclass

from showclock.engine import clock
from showclock.engine.clock import LocalInstant
from showclock.models.status import ActionType


@dataclass(frozen=True)
class ActionTiming:
    action_id: str
    trigger_time: LocalInstant
    offset: int
    seconds_until_trigger: float

    def as_dict(self) -> dict:
        return {
            "action_id": self.action_id,
            "trigger_time": self.trigger_time.isoformat(),
            "offset": self.offset,
            "seconds_until_trigger": self.seconds_until_trigger,
        }


def _offset_from_start(duration_minutes: int, offset_minutes: int) -> int:
    if offset_minutes > 0:
        return offset_minutes
    # zero and negative offsets both count back from the end
    return (duration_minutes or 0) + offset_minutes


def trigger_instant(
    timer_start: LocalInstant, duration_minutes: int, offset_minutes: int
) -> LocalInstant:
    return timer_start.add_minutes(_offset_from_start(duration_minutes, offset_minutes))


def start_for_trigger(
    target: LocalInstant, duration_minutes: int, offset_minutes: int
) -> LocalInstant:
    """Inverse of :func:`trigger_instant`: the start that makes the action fire at *target*."""
    return target.add_minutes(-_offset_from_start(duration_minutes, offset_minutes))


def actions_with_timing(timer, actions, at: LocalInstant | None = None) -> list[ActionTiming]:
    """Timing for every not-yet-executed action of *timer*.

    Returns an empty list while the timer has no actual start.
    """
    if timer.started_at is None:
        return []
    at = at or clock.now()
    timings = []
    for action in actions:
        if action.executed_at is not None:
            continue
        trigger = trigger_instant(
            timer.started_at, timer.duration_minutes, action.trigger_offset_minutes
        )
        timings.append(
            ActionTiming(
                action_id=action.id,
                trigger_time=trigger,
                offset=action.trigger_offset_minutes,
                seconds_until_trigger=(trigger - at).total_seconds(),
            )
        )
    return timings


# ---------------------------------------------------------------------------
# Media payloads
# ---------------------------------------------------------------------------

# Number of locators each type accepts: (minimum, maximum or None)
URL_ARITY: dict[ActionType, tuple[int, int | None]] = {
    ActionType.VIDEO: (1, 1),
    ActionType.SOUND: (1, 1),
    ActionType.IMAGE: (1, 1),
    ActionType.IMAGE_SOUND: (2, 2),
    ActionType.GALLERY: (1, None),
}


def media_payload(action) -> dict:
    """Locator payload for *action*, shaped by its type."""
    urls = list(action.urls or [])
    action_type = ActionType(action.type)
    if action_type is ActionType.VIDEO:
        payload = {"video_url": urls[0]}
    elif action_type is ActionType.SOUND:
        payload = {"sound_url": urls[0]}
    elif action_type is ActionType.IMAGE:
        payload = {"image_url": urls[0]}
    elif action_type is ActionType.IMAGE_SOUND:
        payload = {"image_url": urls[0], "sound_url": urls[1]}
    elif action_type is ActionType.GALLERY:
        payload = {"image_urls": urls}
    else:
        raise ValueError(f"Unhandled action type: {action_type}")
    payload["kind"] = action_type.value
    if action.display_duration_sec is not None:
        payload["display_duration_sec"] = action.display_duration_sec
    return payload
