"""Clock abstraction. All engine times are naive local datetimes."""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

import pytz


class Clock(ABC):
    """Single source of current time."""

    @abstractmethod
    def now(self) -> datetime:
        pass

    def today(self):
        return self.now().date()


class SystemClock(Clock):
    """Wall clock, optionally pinned to a named timezone."""

    def __init__(self, timezone_name: Optional[str] = None):
        self.timezone = pytz.timezone(timezone_name) if timezone_name else None

    def now(self) -> datetime:
        if self.timezone is None:
            return datetime.now().replace(microsecond=0)
        # Drop tzinfo after conversion: scheduling math is local wall-clock time
        return datetime.now(self.timezone).replace(tzinfo=None, microsecond=0)


class FixedClock(Clock):
    """Manually controlled clock for tests and replay."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current

    def advance(self, **delta) -> datetime:
        """Move forward by timedelta keyword arguments, e.g. advance(minutes=90)."""
        self.current = self.current + timedelta(**delta)
        return self.current
