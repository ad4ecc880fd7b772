from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from showclock.api.deps import get_notifier
from showclock.auth.deps import require_operator
from showclock.database import get_db
from showclock.engine import demo_engine, event_builder, repository, timer_engine
from showclock.engine.views import event_dict
from showclock.models.status import ActionType
from showclock.ws.notifier import Notifier

router = APIRouter(prefix="/api/events", tags=["events"])

class ActionDefinition(BaseModel):
    id: str | None = None
    order_index: int | None = None
    type: ActionType
    trigger_offset_minutes: int = 0
    urls: list[str] = Field(default_factory=list)
    display_duration_sec: int | None = None
    title: str | None = None
    content: str | None = None

class TimerDefinition(BaseModel):
    id: str | None = None
    order_index: int | None = None
    name: str
    duration_minutes: int = Field(default=0, ge=0)
    scheduled_start_time: datetime | None = None
    is_manual: bool = False
    actions: list[ActionDefinition] = Field(default_factory=list)

class EventDefinition(BaseModel):
    id: str | None = None
    name: str
    timers: list[TimerDefinition] = Field(default_factory=list)

class TemplateRequest(BaseModel):
    template_event_id: str
    timer_map: dict[str, str] | None = None

@router.post("", status_code=201)
async def create_event(
    req: EventDefinition,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    timers = [t.model_dump(exclude_none=True) for t in req.timers]
    event = await event_builder.create_event(db, req.name, timers, event_id=req.id)
    await db.commit()
    return {
        "event": event_dict(event),
        "timers": await timer_engine.get_timers(db, event.id),
    }

@router.get("/{event_id}")
async def get_event(event_id: str, db: AsyncSession = Depends(get_db)):
    return event_dict(await repository.get_event(db, event_id))

@router.get("/{event_id}/timers")
async def list_timers(event_id: str, db: AsyncSession = Depends(get_db)):
    return await timer_engine.get_timers(db, event_id)

@router.get("/{event_id}/current-timer")
async def current_timer(event_id: str, db: AsyncSession = Depends(get_db)):
    return await timer_engine.get_current_timer(db, event_id)

@router.post("/{event_id}/check-due")
async def check_due(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await timer_engine.check_and_start_if_due(db, notifier, event_id)

@router.post("/{event_id}/check-punctual")
async def check_punctual(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await timer_engine.check_and_start_punctual(db, notifier, event_id)

@router.post("/{event_id}/demo/reset")
async def demo_reset(
    event_id: str,
    req: TemplateRequest,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await demo_engine.reset_from_template(
        db, notifier, event_id, req.template_event_id, req.timer_map
    )

@router.post("/{event_id}/demo/start")
async def demo_start(
    event_id: str,
    req: TemplateRequest,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await demo_engine.start_demo(
        db, notifier, event_id, req.template_event_id, req.timer_map
    )

@router.post("/{event_id}/demo/rebase-today")
async def demo_rebase_today(
    event_id: str,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await demo_engine.rebase_schedule_to_today(db, notifier, event_id)
