"""Canonical dict shapes for events, timers and actions.

These are what the API returns and what viewers re-fetch after a realtime
notification.
"""
from showclock.engine.clock import isoformat
from showclock.engine.triggers import media_payload


def action_dict(action) -> dict:
    return {
        "id": action.id,
        "timer_id": action.timer_id,
        "order_index": action.order_index,
        "type": action.type.value,
        "trigger_offset_minutes": action.trigger_offset_minutes,
        "urls": list(action.urls or []),
        "media": media_payload(action),
        "display_duration_sec": action.display_duration_sec,
        "title": action.title,
        "content": action.content,
        "executed_at": isoformat(action.executed_at),
        "status": action.status.value,
    }


def timer_dict(timer, actions=None) -> dict:
    data = {
        "id": timer.id,
        "event_id": timer.event_id,
        "order_index": timer.order_index,
        "name": timer.name,
        "duration_minutes": timer.duration_minutes,
        "scheduled_start_time": isoformat(timer.scheduled_start_time),
        "is_manual": timer.is_manual,
        "kind": timer.kind,
        "started_at": isoformat(timer.started_at),
        "completed_at": isoformat(timer.completed_at),
        "status": timer.status.value,
        "updated_at": isoformat(timer.updated_at),
    }
    if actions is not None:
        data["actions"] = [action_dict(a) for a in actions]
    return data


def event_dict(event) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "current_timer_id": event.current_timer_id,
        "completed_at": isoformat(event.completed_at),
        "updated_at": isoformat(event.updated_at),
    }
