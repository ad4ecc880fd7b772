"""Naive local wall-clock instants.

Every stored instant encodes a *wall-clock reading* rather than a true UTC
point: "17:05" is stored as 17:05 whatever the timezone of the server or of
any viewer.  Every party computes the same offset-from-now without timezone
negotiation, provided they all share one intended local zone (see
DESIGN.md for that limitation).

``LocalInstant`` keeps these readings apart from timezone-aware values: it
refuses aware datetimes, does not compare against plain ``datetime``
objects, and "now" is only ever obtained through :func:`now`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NamedTuple

from showclock.engine.errors import ParseError


@dataclass(frozen=True, order=True)
class LocalInstant:
    value: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.value, datetime):
            raise TypeError(f"LocalInstant wraps a datetime, got {type(self.value).__name__}")
        if self.value.tzinfo is not None:
            raise TypeError(
                "LocalInstant only holds naive wall-clock readings; "
                "use LocalInstant.from_wall_clock() for aware values"
            )

    @classmethod
    def from_wall_clock(cls, dt: datetime) -> LocalInstant:
        """Keep the wall-clock fields of *dt* and drop its timezone."""
        return cls(dt.replace(tzinfo=None))

    def __add__(self, other: timedelta) -> LocalInstant:
        if not isinstance(other, timedelta):
            return NotImplemented
        return LocalInstant(self.value + other)

    def __sub__(self, other):
        if isinstance(other, timedelta):
            return LocalInstant(self.value - other)
        if isinstance(other, LocalInstant):
            return self.value - other.value
        return NotImplemented

    def add_minutes(self, minutes: float) -> LocalInstant:
        return self + timedelta(minutes=minutes)

    def add_seconds(self, seconds: float) -> LocalInstant:
        return self + timedelta(seconds=seconds)

    def isoformat(self) -> str:
        return self.value.isoformat()

    def __str__(self) -> str:
        return self.isoformat()


class Components(NamedTuple):
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int


def _read_wall_clock() -> datetime:
    return datetime.now()


def now() -> LocalInstant:
    """The caller's current wall-clock reading."""
    return LocalInstant.from_wall_clock(_read_wall_clock())


def diff(instant: LocalInstant) -> int:
    """Signed milliseconds from now until *instant* (negative once past)."""
    delta = instant - now()
    return int(delta / timedelta(milliseconds=1))


def is_past(instant: LocalInstant) -> bool:
    return diff(instant) < 0


def compose(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> LocalInstant:
    try:
        return LocalInstant(datetime(year, month, day, hour, minute, second))
    except ValueError as exc:
        raise ParseError(f"Invalid date/time components: {exc}") from exc


def decompose(instant: LocalInstant) -> Components:
    v = instant.value
    return Components(v.year, v.month, v.day, v.hour, v.minute, v.second)


def parse(text: str) -> LocalInstant:
    """Parse ISO-8601 text; a zone suffix is dropped, keeping the wall reading."""
    if not isinstance(text, str) or not text.strip():
        raise ParseError(f"Not an instant: {text!r}")
    try:
        dt = datetime.fromisoformat(text.strip())
    except ValueError as exc:
        raise ParseError(f"Malformed instant {text!r}") from exc
    return LocalInstant.from_wall_clock(dt)


def to_local(value) -> LocalInstant | None:
    """Coerce API/DB input (LocalInstant, datetime, ISO text or None)."""
    if value is None or isinstance(value, LocalInstant):
        return value
    if isinstance(value, datetime):
        return LocalInstant.from_wall_clock(value)
    if isinstance(value, str):
        return parse(value)
    raise ParseError(f"Cannot interpret {value!r} as an instant")


def isoformat(instant: LocalInstant | None) -> str | None:
    return instant.isoformat() if instant is not None else None
