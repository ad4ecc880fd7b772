"""Event builder -- seeds an event with its timers and actions.

Takes a plain definition (as posted to ``POST /api/events`` or written in a
fixture) and creates the rows in one flush.  Timers and actions get dense
``order_index`` values in definition order unless the definition gives them.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from showclock.engine import clock
from showclock.engine.errors import DomainError
from showclock.engine.triggers import URL_ARITY
from showclock.models.event import Event
from showclock.models.status import ActionType
from showclock.models.timer import Timer
from showclock.models.timer_action import TimerAction

log = logging.getLogger(__name__)


def _validate_urls(action_type: ActionType, urls: list) -> None:
    minimum, maximum = URL_ARITY[action_type]
    if len(urls) < minimum or (maximum is not None and len(urls) > maximum):
        expected = str(minimum) if minimum == maximum else f"at least {minimum}"
        raise DomainError(
            f"{action_type.value} action takes {expected} url(s), got {len(urls)}"
        )


def build_action(timer_id: str, index: int, data: dict) -> TimerAction:
    try:
        action_type = ActionType(data["type"])
    except (KeyError, ValueError) as exc:
        raise DomainError(f"Invalid action type: {data.get('type')!r}") from exc

    urls = data.get("urls")
    if urls is None:
        urls = [data["url"]] if data.get("url") else []
    urls = list(urls)
    _validate_urls(action_type, urls)

    kwargs = {}
    if data.get("id"):
        kwargs["id"] = data["id"]
    return TimerAction(
        timer_id=timer_id,
        order_index=data.get("order_index", index),
        type=action_type,
        trigger_offset_minutes=int(data.get("trigger_offset_minutes", 0)),
        urls=urls,
        display_duration_sec=data.get("display_duration_sec"),
        title=data.get("title"),
        content=data.get("content"),
        **kwargs,
    )


async def create_event(
    db: AsyncSession,
    name: str,
    timers: list[dict],
    event_id: str | None = None,
) -> Event:
    """Create an event with its timers and actions, returning the Event."""
    now = clock.now()
    event_kwargs = {"id": event_id} if event_id else {}
    event = Event(name=name, updated_at=now, **event_kwargs)
    db.add(event)
    await db.flush()

    seen_ordinals: set[int] = set()
    for index, data in enumerate(timers, start=1):
        order_index = data.get("order_index", index)
        if order_index in seen_ordinals:
            raise DomainError(f"Duplicate timer order_index {order_index}")
        seen_ordinals.add(order_index)

        duration = int(data.get("duration_minutes", 0) or 0)
        if duration < 0:
            raise DomainError("duration_minutes must be zero or positive")

        timer_kwargs = {"id": data["id"]} if data.get("id") else {}
        timer = Timer(
            event_id=event.id,
            order_index=order_index,
            name=data["name"],
            duration_minutes=duration,
            scheduled_start_time=clock.to_local(data.get("scheduled_start_time")),
            is_manual=bool(data.get("is_manual", False)),
            updated_at=now,
            **timer_kwargs,
        )
        db.add(timer)
        await db.flush()

        action_ordinals: set[int] = set()
        for a_index, a_data in enumerate(data.get("actions", []), start=1):
            action = build_action(timer.id, a_index, a_data)
            if action.order_index in action_ordinals:
                raise DomainError(
                    f"Duplicate action order_index {action.order_index} in timer {timer.name}"
                )
            action_ordinals.add(action.order_index)
            db.add(action)

    await db.flush()
    log.info("Created event %s (%s) with %d timers", event.id, name, len(timers))
    return event
