from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from showclock.engine.clock import LocalInstant


class LocalInstantType(TypeDecorator):
    """Stores a ``LocalInstant`` as a timezone-less DATETIME column."""

    impl = DateTime(timezone=False)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, LocalInstant):
            return value.value
        if isinstance(value, datetime):
            return value.replace(tzinfo=None)
        raise TypeError(f"Expected LocalInstant, got {type(value).__name__}")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return LocalInstant.from_wall_clock(value)


class Base(DeclarativeBase):
    pass
