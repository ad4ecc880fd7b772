from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from showclock.api.deps import get_notifier
from showclock.database import get_db
from showclock.engine import action_engine, repository
from showclock.engine.views import action_dict
from showclock.ws.notifier import Notifier

router = APIRouter(prefix="/api/actions", tags=["actions"])

@router.get("/{action_id}")
async def get_action(action_id: str, db: AsyncSession = Depends(get_db)):
    return action_dict(await repository.get_action(db, action_id))

@router.post("/{action_id}/start")
async def start_action(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await action_engine.start_action(db, notifier, action_id)

@router.post("/{action_id}/complete")
async def complete_action(
    action_id: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await action_engine.complete_action(db, notifier, action_id)
