"""Persistence access used by the engine.

Thin async helpers over an ``AsyncSession``.  ``update_*`` helpers apply a
patch and flush; committing is left to the caller so that every lifecycle
operation commits once, before it notifies.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from showclock.engine.errors import NotFoundError
from showclock.models.event import Event
from showclock.models.timer import Timer
from showclock.models.timer_action import TimerAction


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


async def find_event(db: AsyncSession, event_id: str) -> Event | None:
    return await db.get(Event, event_id)


async def get_event(db: AsyncSession, event_id: str) -> Event:
    event = await find_event(db, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def update_event(db: AsyncSession, event_id: str, **patch) -> Event:
    event = await get_event(db, event_id)
    for key, value in patch.items():
        setattr(event, key, value)
    await db.flush()
    return event


async def find_active_event_ids(db: AsyncSession) -> list[str]:
    """Ids of every event that has not completed."""
    return list(
        (
            await db.execute(select(Event.id).where(Event.completed_at.is_(None)))
        ).scalars().all()
    )


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


async def find_timer(db: AsyncSession, timer_id: str) -> Timer | None:
    return await db.get(Timer, timer_id)


async def get_timer(db: AsyncSession, timer_id: str) -> Timer:
    timer = await find_timer(db, timer_id)
    if timer is None:
        raise NotFoundError(f"Timer {timer_id} not found")
    return timer


async def find_timers_by_event(
    db: AsyncSession, event_id: str, order_by_ordinal: bool = True
) -> list[Timer]:
    stmt = select(Timer).where(Timer.event_id == event_id)
    if order_by_ordinal:
        stmt = stmt.order_by(Timer.order_index)
    return list((await db.execute(stmt)).scalars().all())


async def find_next_timer(
    db: AsyncSession, event_id: str, after_ordinal: int
) -> Timer | None:
    return (
        await db.execute(
            select(Timer)
            .where(Timer.event_id == event_id, Timer.order_index > after_ordinal)
            .order_by(Timer.order_index)
            .limit(1)
        )
    ).scalar_one_or_none()


async def update_timer(db: AsyncSession, timer_id: str, **patch) -> Timer:
    timer = await get_timer(db, timer_id)
    for key, value in patch.items():
        setattr(timer, key, value)
    await db.flush()
    return timer


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


async def find_action(db: AsyncSession, action_id: str) -> TimerAction | None:
    return await db.get(TimerAction, action_id)


async def get_action(db: AsyncSession, action_id: str) -> TimerAction:
    action = await find_action(db, action_id)
    if action is None:
        raise NotFoundError(f"Action {action_id} not found")
    return action


async def find_actions_by_timer(db: AsyncSession, timer_id: str) -> list[TimerAction]:
    return list(
        (
            await db.execute(
                select(TimerAction)
                .where(TimerAction.timer_id == timer_id)
                .order_by(TimerAction.order_index)
            )
        ).scalars().all()
    )


async def update_action(db: AsyncSession, action_id: str, **patch) -> TimerAction:
    action = await get_action(db, action_id)
    for key, value in patch.items():
        setattr(action, key, value)
    await db.flush()
    return action
