"""Action lifecycle -- selecting, starting, completing and resetting media cues.

An action moves PENDING -> RUNNING when a viewer starts playing it and
RUNNING -> COMPLETED once playback is acknowledged.  Both transitions are
idempotent: a repeated call reports ``already_running`` /
``already_completed`` instead of failing, which is what makes concurrent
duplicate calls from several viewers safe.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from showclock.config import settings
from showclock.engine import clock, repository, triggers
from showclock.engine.errors import DomainError
from showclock.engine.views import action_dict
from showclock.models.status import Status
from showclock.ws import protocol as P

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def _paired(actions, timings):
    by_id = {a.id: a for a in actions}
    return [(by_id[t.action_id], t) for t in timings]


def select_next(timer, actions, at=None):
    """(action, timing) with the smallest strictly positive countdown, or None."""
    upcoming = [
        (a, t)
        for a, t in _paired(actions, triggers.actions_with_timing(timer, actions, at))
        if t.seconds_until_trigger > 0
    ]
    if not upcoming:
        return None
    return min(upcoming, key=lambda pair: (pair[1].seconds_until_trigger, pair[0].order_index))


def select_current(timer, actions, at=None):
    """(action, timing) due most recently (countdown <= 0, closest to zero), or None."""
    due = [
        (a, t)
        for a, t in _paired(actions, triggers.actions_with_timing(timer, actions, at))
        if t.seconds_until_trigger <= 0
    ]
    if not due:
        return None
    return min(due, key=lambda pair: (abs(pair[1].seconds_until_trigger), pair[0].order_index))


def _selection_dict(pair) -> dict | None:
    if pair is None:
        return None
    action, timing = pair
    return {"action": action_dict(action), "timing": timing.as_dict()}


async def next_action(db: AsyncSession, timer_id: str) -> dict | None:
    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    return _selection_dict(select_next(timer, actions))


async def current_action(db: AsyncSession, timer_id: str) -> dict | None:
    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    return _selection_dict(select_current(timer, actions))


async def timing(db: AsyncSession, timer_id: str) -> list[dict]:
    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    return [t.as_dict() for t in triggers.actions_with_timing(timer, actions)]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def start_action(db: AsyncSession, notifier, action_id: str) -> dict:
    """Mark an action RUNNING.  Starting a RUNNING action is a no-op."""
    action = await repository.get_action(db, action_id)
    if action.status == Status.RUNNING:
        log.debug("Action %s already running", action_id)
        return {"action": action_dict(action), "already_running": True}

    timer = await repository.get_timer(db, action.timer_id)
    action.status = Status.RUNNING
    await db.commit()
    log.info("Action %s started (timer %s)", action_id, timer.id)

    await notifier.publish_for_event(
        timer.event_id,
        P.ACTION_STARTED,
        {
            "action": "started",
            "actionId": action.id,
            "timerId": timer.id,
            "eventId": timer.event_id,
        },
    )
    return {"action": action_dict(action), "already_running": False}


async def complete_action(db: AsyncSession, notifier, action_id: str) -> dict:
    """Record an action as executed.  Completing it twice is a no-op.

    When this was the timer's last unexecuted action and the timer is
    running, the timer itself is completed (which advances the event).
    """
    action = await repository.get_action(db, action_id)
    if action.executed_at is not None:
        log.debug("Action %s already completed", action_id)
        return {"action": action_dict(action), "already_completed": True}

    timer = await repository.get_timer(db, action.timer_id)
    now = clock.now()
    action.executed_at = now
    action.status = Status.COMPLETED
    await db.commit()
    log.info("Action %s completed (timer %s)", action_id, timer.id)

    actions = await repository.find_actions_by_timer(db, timer.id)
    remaining = [
        a for a in actions
        if a.executed_at is None and a.order_index > action.order_index
    ]
    all_executed = all(a.executed_at is not None for a in actions)

    await notifier.publish_for_event(
        timer.event_id,
        P.ACTION_COMPLETED,
        {
            "action": "completed",
            "actionId": action.id,
            "timerId": timer.id,
            "eventId": timer.event_id,
            "nextActionId": remaining[0].id if remaining else None,
            "allActionsExecuted": all_executed,
        },
    )

    result = {
        "action": action_dict(action),
        "already_completed": False,
        "completed_at": now.isoformat(),
        "all_actions_executed": all_executed,
        "timer_completion": None,
    }
    if all_executed and timer.status == Status.RUNNING and settings.AUTO_COMPLETE_ON_LAST_ACTION:
        from showclock.engine import timer_engine
        result["timer_completion"] = await timer_engine.complete_timer(db, notifier, timer.id)
    return result


async def reset_actions(db: AsyncSession, notifier, timer_id: str) -> dict:
    """Put every action of a timer back to PENDING (demo/test support)."""
    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    for action in actions:
        action.executed_at = None
        action.status = Status.PENDING
    await db.commit()
    log.info("Reset %d actions of timer %s", len(actions), timer_id)

    await notifier.publish_for_event(
        timer.event_id,
        P.TIME_JUMP,
        {"action": "reset", "timerId": timer.id, "eventId": timer.event_id},
    )
    return {"timer_id": timer_id, "reset": len(actions)}


async def jump_to_before_next(
    db: AsyncSession,
    notifier,
    timer_id: str,
    seconds_before: int | None = None,
) -> dict:
    """Shift the timer's start so its next action fires *seconds_before* from now.

    The point ``trigger - seconds_before`` of the old timeline becomes "now";
    re-running the trigger calculator afterwards yields ``now + seconds_before``
    for that action.
    """
    if seconds_before is None:
        seconds_before = settings.DEFAULT_SECONDS_BEFORE

    timer = await repository.get_timer(db, timer_id)
    actions = await repository.find_actions_by_timer(db, timer_id)
    now = clock.now()
    picked = select_next(timer, actions, now)
    if picked is None:
        raise DomainError("no next action")
    action, _ = picked

    new_started_at = triggers.start_for_trigger(
        now.add_seconds(seconds_before),
        timer.duration_minutes,
        action.trigger_offset_minutes,
    )
    timer.started_at = new_started_at
    timer.updated_at = now
    await db.commit()
    log.info(
        "Timer %s jumped: action %s now fires in %ss",
        timer_id, action.id, seconds_before,
    )

    await notifier.publish_for_event(
        timer.event_id,
        P.TIME_JUMP,
        {
            "action": "jump",
            "timerId": timer.id,
            "eventId": timer.event_id,
            "actionId": action.id,
            "newStartedAt": new_started_at.isoformat(),
        },
    )
    return {
        "new_started_at": new_started_at.isoformat(),
        "next_action": action_dict(action),
        "triggers_in": seconds_before,
    }
