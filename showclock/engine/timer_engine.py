"""Timer lifecycle -- start, complete-and-advance, cascade edits and polling.

State machine per timer::

    PENDING --start--> RUNNING --complete--> COMPLETED

Only one *durational* timer (duration > 0) may run per event.  Punctual and
manual timers (duration 0) may run alongside it and never take over the
event's current-timer pointer when they start.

Every operation commits its state change before publishing a
``TIMER_UPDATED`` notification, so a lost notification never leaves the
database and the viewers disagreeing for longer than one re-fetch.
"""
import logging

from sqlalchemy import exists, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from showclock.engine import clock, repository
from showclock.engine.errors import ConflictError, DomainError, NotFoundError
from showclock.engine.views import timer_dict
from showclock.models.status import Status
from showclock.models.timer import Timer
from showclock.ws import protocol as P

log = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"name", "duration_minutes", "scheduled_start_time", "is_manual"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _next_open_timer(db: AsyncSession, event_id: str, after_ordinal: int):
    """Next ordinal timer that has not already completed on its own."""
    nxt = await repository.find_next_timer(db, event_id, after_ordinal)
    while nxt is not None and nxt.status == Status.COMPLETED:
        nxt = await repository.find_next_timer(db, event_id, nxt.order_index)
    return nxt


async def _claim_running(db: AsyncSession, timer: Timer, started_at) -> bool:
    """Atomically move *timer* PENDING -> RUNNING.

    For a durational timer the same statement also checks that no other
    durational timer of the event is running, so two concurrent starts
    cannot both win.
    """
    stmt = update(Timer).where(Timer.id == timer.id, Timer.status == Status.PENDING)
    if timer.is_durational:
        other = aliased(Timer)
        stmt = stmt.where(
            ~exists().where(
                other.event_id == timer.event_id,
                other.id != timer.id,
                other.status == Status.RUNNING,
                other.duration_minutes > 0,
            )
        )
    stmt = stmt.values(
        status=Status.RUNNING, started_at=started_at, updated_at=started_at
    ).execution_options(synchronize_session=False)
    result = await db.execute(stmt)
    await db.refresh(timer)
    return result.rowcount == 1


def _refused_start(timer: Timer) -> dict:
    """Explain why a claim failed: idempotent no-op or a real error."""
    if timer.status == Status.RUNNING:
        log.debug("Timer %s already running", timer.id)
        return {
            "timer_id": timer.id,
            "started_at": clock.isoformat(timer.started_at),
            "already_running": True,
        }
    if timer.status == Status.COMPLETED:
        raise DomainError(f"Timer {timer.id} is already completed")
    raise ConflictError(
        "Another timer with a duration is already running; wait for it to complete"
    )


async def _get_timer_in_event(db: AsyncSession, timer_id: str, event_id: str):
    timer = await repository.get_timer(db, timer_id)
    event = await repository.get_event(db, event_id)
    if timer.event_id != event.id:
        raise NotFoundError(f"Timer {timer_id} not found in event {event_id}")
    return timer, event


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_timer_detail(db: AsyncSession, timer_id: str) -> dict:
    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    return timer_dict(timer, actions)


async def get_timers(db: AsyncSession, event_id: str) -> list[dict]:
    await repository.get_event(db, event_id)
    timers = await repository.find_timers_by_event(db, event_id)
    return [
        timer_dict(t, await repository.find_actions_by_timer(db, t.id)) for t in timers
    ]


async def get_current_timer(db: AsyncSession, event_id: str) -> dict | None:
    event = await repository.get_event(db, event_id)
    if not event.current_timer_id:
        return None
    timer = await repository.find_timer(db, event.current_timer_id)
    if timer is None:
        return None
    return timer_dict(timer, await repository.find_actions_by_timer(db, timer.id))


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def start_timer(db: AsyncSession, notifier, timer_id: str, event_id: str) -> dict:
    """Start a timer and make it the event's current timer.

    Raises ``ConflictError`` when the timer is durational and another
    durational timer of the event is already running.
    """
    timer, event = await _get_timer_in_event(db, timer_id, event_id)
    now = clock.now()
    if not await _claim_running(db, timer, now):
        return _refused_start(timer)

    # Non-durational timers only take the pointer when nothing else holds it.
    if timer.is_durational or event.current_timer_id in (None, timer.id):
        event.current_timer_id = timer.id
        event.updated_at = now
    await db.commit()
    log.info("Timer %s (%s) started in event %s", timer.id, timer.name, event.id)

    await notifier.publish_for_event(
        event.id,
        P.TIMER_UPDATED,
        {
            "action": "started",
            "timerId": timer.id,
            "eventId": event.id,
            "startTime": now.isoformat(),
        },
    )
    return {"timer_id": timer.id, "started_at": now.isoformat(), "already_running": False}


async def start_punctual_or_manual(
    db: AsyncSession, notifier, timer_id: str, event_id: str
) -> dict:
    """Start a durationless timer without touching the current-timer pointer."""
    timer, event = await _get_timer_in_event(db, timer_id, event_id)
    if timer.is_durational:
        raise DomainError(
            f"Timer {timer_id} has a duration; start it as the event's current timer"
        )
    now = clock.now()
    if not await _claim_running(db, timer, now):
        return _refused_start(timer)
    await db.commit()
    log.info("%s timer %s (%s) started", timer.kind.capitalize(), timer.id, timer.name)

    await notifier.publish_for_event(
        event.id,
        P.TIMER_UPDATED,
        {
            "action": "started",
            "timerId": timer.id,
            "eventId": event.id,
            "kind": timer.kind,
            "startTime": now.isoformat(),
        },
    )
    return {"timer_id": timer.id, "started_at": now.isoformat(), "already_running": False}


async def complete_timer(db: AsyncSession, notifier, timer_id: str) -> dict:
    """Complete a timer and advance the event to the next ordinal timer.

    Timers that already completed on their own are skipped.  A durational
    next timer is started straight away; a manual or punctual one becomes
    current but waits for an explicit or polled start.  With no next timer
    the event is finished.
    """
    timer = await repository.get_timer(db, timer_id)
    if timer.status == Status.COMPLETED:
        log.debug("Timer %s already completed", timer_id)
        return {
            "timer_id": timer.id,
            "already_completed": True,
            "completed_at": clock.isoformat(timer.completed_at),
            "next_timer_id": None,
            "next_timer_started": False,
        }

    event = await repository.get_event(db, timer.event_id)
    now = clock.now()
    timer.status = Status.COMPLETED
    timer.completed_at = now
    timer.updated_at = now

    # A punctual timer running alongside the main countdown does not move it.
    advance = timer.is_durational or event.current_timer_id == timer.id
    next_timer = None
    if advance:
        next_timer = await _next_open_timer(db, event.id, timer.order_index)
        if next_timer is not None:
            event.current_timer_id = next_timer.id
        else:
            event.current_timer_id = None
            event.completed_at = now
            log.info("Event %s completed", event.id)
        event.updated_at = now
    await db.commit()
    log.info(
        "Timer %s completed; next timer %s",
        timer.id, next_timer.id if next_timer else None,
    )

    await notifier.publish_for_event(
        event.id,
        P.TIMER_UPDATED,
        {
            "action": "completed",
            "timerId": timer.id,
            "eventId": event.id,
            "nextTimerId": next_timer.id if next_timer else None,
            "completedAt": now.isoformat(),
        },
    )

    next_started = False
    if (
        next_timer is not None
        and next_timer.is_durational
        and next_timer.status == Status.PENDING
    ):
        try:
            await start_timer(db, notifier, next_timer.id, event.id)
            next_started = True
        except ConflictError as exc:
            log.warning("Could not auto-start timer %s: %s", next_timer.id, exc)

    return {
        "timer_id": timer.id,
        "already_completed": False,
        "completed_at": now.isoformat(),
        "next_timer_id": next_timer.id if next_timer else None,
        "next_timer_started": next_started,
    }


async def update_timer_fields(
    db: AsyncSession,
    notifier,
    timer_id: str,
    patch: dict,
    cascade: bool = False,
    original_duration: int | None = None,
) -> dict:
    """Apply *patch* to a timer.

    With *cascade*, a duration change of N minutes shifts the scheduled
    start of every later timer in the event by N minutes, keeping the
    published run-of-show consistent.
    """
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise DomainError(f"Fields not editable: {', '.join(sorted(unknown))}")

    timer = await repository.get_timer(db, timer_id)
    before = timer.duration_minutes if original_duration is None else original_duration
    now = clock.now()

    changes = dict(patch)
    if "scheduled_start_time" in changes:
        changes["scheduled_start_time"] = clock.to_local(changes["scheduled_start_time"])
    if "duration_minutes" in changes:
        if changes["duration_minutes"] is None or changes["duration_minutes"] < 0:
            raise DomainError("duration_minutes must be zero or positive")

    for key, value in changes.items():
        setattr(timer, key, value)
    timer.updated_at = now

    shifted: list[str] = []
    delta = 0
    if cascade and "duration_minutes" in changes:
        delta = changes["duration_minutes"] - before
        if delta != 0:
            for other in await repository.find_timers_by_event(db, timer.event_id):
                if other.order_index <= timer.order_index:
                    continue
                if other.scheduled_start_time is None:
                    continue
                other.scheduled_start_time = other.scheduled_start_time.add_minutes(delta)
                other.updated_at = now
                shifted.append(other.id)
    await db.commit()
    log.info(
        "Timer %s updated (%s); %d later timers shifted by %d min",
        timer.id, ", ".join(sorted(changes)), len(shifted), delta,
    )

    await notifier.publish_for_event(
        timer.event_id,
        P.TIMER_UPDATED,
        {
            "action": "updated",
            "timerId": timer.id,
            "eventId": timer.event_id,
            "updatedFields": sorted(changes),
            "shiftedTimerIds": shifted,
        },
    )
    return {"timer": timer_dict(timer), "shifted_timer_ids": shifted, "minutes_shifted": delta}


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


async def check_and_start_if_due(db: AsyncSession, notifier, event_id: str) -> dict:
    """Start the first due durational timer when the event has none running.

    Safe to call on every polling tick; does nothing once the event has a
    current timer or has completed.
    """
    event = await repository.get_event(db, event_id)
    if event.current_timer_id or event.completed_at is not None:
        return {"started": False}

    for timer in await repository.find_timers_by_event(db, event_id):
        if timer.status != Status.PENDING or not timer.is_durational:
            continue
        if timer.scheduled_start_time is None or not clock.is_past(timer.scheduled_start_time):
            continue
        await start_timer(db, notifier, timer.id, event_id)
        return {"started": True, "timer_id": timer.id, "timer_name": timer.name}
    return {"started": False}


async def check_and_start_punctual(db: AsyncSession, notifier, event_id: str) -> dict:
    """Start at most one due punctual timer (the lowest ordinal) per call."""
    await repository.get_event(db, event_id)
    for timer in await repository.find_timers_by_event(db, event_id):
        if timer.status != Status.PENDING or not timer.is_punctual:
            continue
        if not clock.is_past(timer.scheduled_start_time):
            continue
        await start_punctual_or_manual(db, notifier, timer.id, event_id)
        return {"started": True, "timer_id": timer.id, "timer_name": timer.name}
    return {"started": False}
