import uuid
from typing import Optional

from sqlalchemy import JSON, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from showclock.engine.clock import LocalInstant

from .base import Base, LocalInstantType
from .status import ActionType, Status


class TimerAction(Base):
    __tablename__ = "timer_actions"
    __table_args__ = (UniqueConstraint("timer_id", "order_index"),)

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    timer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("timers.id", ondelete="CASCADE"), index=True
    )
    order_index: Mapped[int] = mapped_column(Integer)
    type: Mapped[ActionType] = mapped_column(Enum(ActionType, native_enum=False, length=16))
    # 0 = at timer end, -n = n minutes before end, +n = n minutes after start
    trigger_offset_minutes: Mapped[int] = mapped_column(Integer, default=0)
    urls: Mapped[list] = mapped_column(JSON, default=list)
    display_duration_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    executed_at: Mapped[Optional[LocalInstant]] = mapped_column(LocalInstantType, nullable=True)
    status: Mapped[Status] = mapped_column(
        Enum(Status, native_enum=False, length=16), default=Status.PENDING
    )
