from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from showclock.api.deps import get_notifier
from showclock.auth.deps import require_operator
from showclock.database import get_db
from showclock.engine import action_engine, demo_engine, repository, timer_engine
from showclock.ws.notifier import Notifier

router = APIRouter(prefix="/api/timers", tags=["timers"])

class TimerPatch(BaseModel):
    name: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    scheduled_start_time: datetime | None = None
    is_manual: bool | None = None
    cascade: bool = False
    original_duration: int | None = None

class JumpRequest(BaseModel):
    seconds_before: int | None = Field(default=None, ge=0)

@router.get("/{timer_id}")
async def get_timer(timer_id: str, db: AsyncSession = Depends(get_db)):
    return await timer_engine.get_timer_detail(db, timer_id)

@router.patch("/{timer_id}")
async def update_timer(
    timer_id: str,
    req: TimerPatch,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    patch = req.model_dump(exclude_unset=True, exclude={"cascade", "original_duration"})
    return await timer_engine.update_timer_fields(
        db, notifier, timer_id, patch,
        cascade=req.cascade, original_duration=req.original_duration,
    )

@router.post("/{timer_id}/start")
async def start_timer(
    timer_id: str,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    timer = await repository.get_timer(db, timer_id)
    return await timer_engine.start_timer(db, notifier, timer.id, timer.event_id)

@router.post("/{timer_id}/start-manual")
async def start_manual(
    timer_id: str,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    timer = await repository.get_timer(db, timer_id)
    return await timer_engine.start_punctual_or_manual(db, notifier, timer.id, timer.event_id)

@router.post("/{timer_id}/complete")
async def complete_timer(
    timer_id: str,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await timer_engine.complete_timer(db, notifier, timer_id)

@router.post("/{timer_id}/jump")
async def jump_to_timer(
    timer_id: str,
    req: JumpRequest | None = None,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    seconds = req.seconds_before if req else None
    return await demo_engine.jump_to_timer(db, notifier, timer_id, seconds)

@router.get("/{timer_id}/next-action")
async def next_action(timer_id: str, db: AsyncSession = Depends(get_db)):
    return await action_engine.next_action(db, timer_id)

@router.get("/{timer_id}/current-action")
async def current_action(timer_id: str, db: AsyncSession = Depends(get_db)):
    return await action_engine.current_action(db, timer_id)

@router.get("/{timer_id}/timing")
async def timing(timer_id: str, db: AsyncSession = Depends(get_db)):
    return await action_engine.timing(db, timer_id)

@router.post("/{timer_id}/actions/reset")
async def reset_actions(
    timer_id: str,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await action_engine.reset_actions(db, notifier, timer_id)

@router.post("/{timer_id}/actions/jump-before-next")
async def jump_before_next(
    timer_id: str,
    req: JumpRequest | None = None,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    seconds = req.seconds_before if req else None
    return await action_engine.jump_to_before_next(db, notifier, timer_id, seconds)
