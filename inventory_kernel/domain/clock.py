"""
Injectable time source.

Services take a Clock instead of calling ``datetime.now()`` so that audit
timestamps, restock dates and alert times are reproducible in tests.
All clocks return timezone-aware UTC datetimes.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Frozen at ``start`` until moved forward with ``advance()``."""

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._now = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now
