"""Time sources shared by the planner, scheduler and memory index."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_datetime(value: datetime | str) -> datetime:
    """Parse ISO strings (``Z`` suffix allowed) and pin naive values to UTC."""

    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise TypeError(f"Unsupported datetime value: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ManualClock:
    """Deterministic clock advanced explicitly by the caller."""

    current: datetime = field(default_factory=utcnow)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, *, days: float = 0, minutes: float = 0, seconds: float = 0) -> datetime:
        self.current = self.current + timedelta(days=days, minutes=minutes, seconds=seconds)
        return self.current


__all__ = ["Clock", "ManualClock", "coerce_datetime", "utcnow"]
