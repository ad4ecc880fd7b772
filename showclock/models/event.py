import uuid
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from showclock.engine import clock
from showclock.engine.clock import LocalInstant

from .base import Base, LocalInstantType


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(128), default="")
    # Back-reference to the timer driving the main countdown (not an FK).
    current_timer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    completed_at: Mapped[Optional[LocalInstant]] = mapped_column(LocalInstantType, nullable=True)
    updated_at: Mapped[LocalInstant] = mapped_column(LocalInstantType, default=clock.now)
