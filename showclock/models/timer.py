import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from showclock.engine import clock
from showclock.engine.clock import LocalInstant

from .base import Base, LocalInstantType
from .status import Status


class Timer(Base):
    __tablename__ = "timers"
    __table_args__ = (UniqueConstraint("event_id", "order_index"),)

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    event_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("events.id", ondelete="CASCADE"), index=True
    )
    order_index: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(128))
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    scheduled_start_time: Mapped[Optional[LocalInstant]] = mapped_column(
        LocalInstantType, nullable=True
    )
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False)
    started_at: Mapped[Optional[LocalInstant]] = mapped_column(LocalInstantType, nullable=True)
    completed_at: Mapped[Optional[LocalInstant]] = mapped_column(LocalInstantType, nullable=True)
    status: Mapped[Status] = mapped_column(
        Enum(Status, native_enum=False, length=16), default=Status.PENDING
    )
    updated_at: Mapped[LocalInstant] = mapped_column(LocalInstantType, default=clock.now)

    @property
    def is_durational(self) -> bool:
        return (self.duration_minutes or 0) > 0

    @property
    def is_punctual(self) -> bool:
        """Durationless with a schedule: auto-starts once the schedule passes."""
        return (
            not self.is_durational
            and not self.is_manual
            and self.scheduled_start_time is not None
        )

    @property
    def is_manual_timer(self) -> bool:
        """Durationless without a usable schedule: needs an explicit start."""
        return not self.is_durational and not self.is_punctual

    @property
    def kind(self) -> str:
        if self.is_durational:
            return "durational"
        return "punctual" if self.is_punctual else "manual"
