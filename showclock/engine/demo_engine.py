"""Demo-mode operations: reset from a template, start a demo, time travel.

A demo event mirrors a template event timer for timer.  The correspondence
is an explicit mapping of template timer id -> demo timer id, given by the
caller or by the ``DEMO_TIMER_MAP`` setting; with neither, timers pair up by
ordinal position.
"""
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from showclock.config import settings
from showclock.engine import clock, repository, timer_engine, triggers
from showclock.engine.clock import LocalInstant
from showclock.engine.errors import DomainError
from showclock.models.status import Status
from showclock.ws import protocol as P

log = logging.getLogger(__name__)

# Fields copied from a template timer; identity and ownership stay put.
TEMPLATE_FIELDS = ("name", "order_index", "duration_minutes", "scheduled_start_time", "is_manual")


def _pair_timers(source: list, target: list, timer_map: dict[str, str]) -> list[tuple]:
    if len(source) != len(target):
        raise DomainError(
            f"Template has {len(source)} timers but the demo event has {len(target)}"
        )
    if not timer_map:
        return list(zip(source, target))

    source_by_id = {t.id: t for t in source}
    target_by_id = {t.id: t for t in target}
    if set(timer_map) != set(source_by_id):
        missing = sorted(set(source_by_id) - set(timer_map))
        extra = sorted(set(timer_map) - set(source_by_id))
        raise DomainError(
            f"Timer map does not cover the template 1:1 (missing={missing}, unknown={extra})"
        )
    if len(set(timer_map.values())) != len(timer_map) or set(timer_map.values()) != set(target_by_id):
        raise DomainError("Timer map does not reach every demo timer exactly once")
    return [(source_by_id[s], target_by_id[t]) for s, t in timer_map.items()]


async def _apply_template(
    db: AsyncSession,
    event_id: str,
    template_event_id: str,
    timer_map: dict[str, str] | None,
) -> int:
    event = await repository.get_event(db, event_id)
    await repository.get_event(db, template_event_id)

    source = await repository.find_timers_by_event(db, template_event_id)
    target = await repository.find_timers_by_event(db, event_id)
    if not source or not target:
        raise DomainError("No timers found for the template or the demo event")
    pairs = _pair_timers(
        source, target, settings.DEMO_TIMER_MAP if timer_map is None else timer_map
    )

    # Ordinals may be permuted; park them first so the unique index holds.
    for i, timer in enumerate(target, start=1):
        timer.order_index = -i
    await db.flush()

    now = clock.now()
    for src, dst in pairs:
        for field in TEMPLATE_FIELDS:
            setattr(dst, field, getattr(src, field))
        dst.status = Status.PENDING
        dst.started_at = None
        dst.completed_at = None
        dst.updated_at = now
        for action in await repository.find_actions_by_timer(db, dst.id):
            action.executed_at = None
            action.status = Status.PENDING

    event.current_timer_id = None
    event.completed_at = None
    event.updated_at = now
    await db.flush()
    return len(pairs)


async def reset_from_template(
    db: AsyncSession,
    notifier,
    event_id: str,
    template_event_id: str,
    timer_map: dict[str, str] | None = None,
) -> dict:
    """Restore a demo event's timers from its template and reset all state."""
    count = await _apply_template(db, event_id, template_event_id, timer_map)
    await db.commit()
    log.info("Demo event %s reset from %s (%d timers)", event_id, template_event_id, count)

    await notifier.publish_for_event(
        event_id, P.TIMER_UPDATED, {"action": "reset", "eventId": event_id}
    )
    return {"event_id": event_id, "reset_timers": count}


async def start_demo(
    db: AsyncSession,
    notifier,
    event_id: str,
    template_event_id: str,
    timer_map: dict[str, str] | None = None,
) -> dict:
    """Reset the demo, lay its schedule out from now and start it."""
    await _apply_template(db, event_id, template_event_id, timer_map)

    timers = await repository.find_timers_by_event(db, event_id)
    now = clock.now()
    cursor = now
    slot = now
    for timer in timers:
        if timer.is_durational:
            if settings.DEMO_TIMER_DURATION_MINUTES:
                timer.duration_minutes = settings.DEMO_TIMER_DURATION_MINUTES
            timer.scheduled_start_time = cursor
            slot = cursor
            cursor = cursor.add_minutes(timer.duration_minutes)
        elif timer.is_manual_timer:
            timer.scheduled_start_time = None
        else:
            # punctual: shares its predecessor's slot, picked up by polling
            timer.scheduled_start_time = slot
        timer.updated_at = now
    await db.commit()

    first = next((t for t in timers if t.is_durational), None)
    if first is not None:
        await timer_engine.start_timer(db, notifier, first.id, event_id)
    else:
        first = timers[0]
        await timer_engine.start_punctual_or_manual(db, notifier, first.id, event_id)
    log.info("Demo started for event %s with timer %s", event_id, first.id)

    await notifier.publish_for_event(
        event_id,
        P.TIMER_UPDATED,
        {
            "action": "demo-started",
            "eventId": event_id,
            "timerId": first.id,
            "startTime": now.isoformat(),
        },
    )
    return {"timer_id": first.id, "start_time": now.isoformat()}


async def jump_to_timer(
    db: AsyncSession,
    notifier,
    timer_id: str,
    seconds_before_action: int | None = None,
) -> dict:
    """Make *timer_id* the running timer, its first action due shortly.

    Every earlier timer is force-completed and any other running durational
    timer goes back to PENDING.
    """
    if seconds_before_action is None:
        seconds_before_action = settings.DEFAULT_SECONDS_BEFORE

    timer = await repository.get_timer(db, timer_id)
    event = await repository.get_event(db, timer.event_id)
    now = clock.now()

    completed: list[str] = []
    for other in await repository.find_timers_by_event(db, event.id):
        if other.id == timer.id:
            continue
        if other.order_index < timer.order_index:
            if other.status != Status.COMPLETED:
                other.status = Status.COMPLETED
                other.completed_at = now
                other.updated_at = now
                completed.append(other.id)
        elif other.status == Status.RUNNING and other.is_durational:
            other.status = Status.PENDING
            other.started_at = None
            other.updated_at = now

    actions = await repository.find_actions_by_timer(db, timer.id)
    first_action = next((a for a in actions if a.executed_at is None), None)
    if first_action is not None:
        started_at = triggers.start_for_trigger(
            now.add_seconds(seconds_before_action),
            timer.duration_minutes,
            first_action.trigger_offset_minutes,
        )
    else:
        started_at = now

    timer.status = Status.RUNNING
    timer.started_at = started_at
    timer.completed_at = None
    timer.updated_at = now
    event.current_timer_id = timer.id
    event.completed_at = None
    event.updated_at = now
    await db.commit()
    log.info("Jumped event %s to timer %s (%d timers force-completed)", event.id, timer.id, len(completed))

    await notifier.publish_for_event(
        event.id,
        P.TIMER_UPDATED,
        {
            "action": "jumped",
            "timerId": timer.id,
            "eventId": event.id,
            "startedAt": started_at.isoformat(),
            "completedTimerIds": completed,
        },
    )
    return {
        "timer_id": timer.id,
        "started_at": started_at.isoformat(),
        "completed_timer_ids": completed,
        "first_action_id": first_action.id if first_action else None,
    }


async def rebase_schedule_to_today(db: AsyncSession, notifier, event_id: str) -> dict:
    """Move every scheduled start to today's date, keeping its time of day."""
    await repository.get_event(db, event_id)
    now = clock.now()
    today = now.value.date()
    moved = 0
    for timer in await repository.find_timers_by_event(db, event_id):
        if timer.scheduled_start_time is None:
            continue
        timer.scheduled_start_time = LocalInstant(
            datetime.combine(today, timer.scheduled_start_time.value.time())
        )
        timer.updated_at = now
        moved += 1
    await db.commit()
    log.info("Rebased %d scheduled starts of event %s to %s", moved, event_id, today)

    await notifier.publish_for_event(
        event_id, P.TIMER_UPDATED, {"action": "rebased", "eventId": event_id}
    )
    return {"event_id": event_id, "rebased_timers": moved, "date": today.isoformat()}
