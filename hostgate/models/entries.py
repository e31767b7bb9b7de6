"""Data models for entries and their restriction rules."""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional, Union


@dataclass(frozen=True)
class TimeWindow:
    """Daily time-of-day window during which an entry is unlocked.

    Attributes:
        begin: Start of the window (inclusive)
        end: End of the window (exclusive). A window with begin >= end
            wraps past midnight.
    """

    begin: time
    end: time

    def contains(self, moment: Union[datetime, time]) -> bool:
        """Check whether a moment falls inside this window.

        Only the time of day matters, truncated to the minute.
        """
        t = moment.time() if isinstance(moment, datetime) else moment
        t = t.replace(second=0, microsecond=0, tzinfo=None)

        if self.begin < self.end:
            return self.begin <= t < self.end
        # Wraps midnight
        return t >= self.begin or t < self.end

    def __str__(self) -> str:
        return f"{self.begin:%H:%M}-{self.end:%H:%M}"


@dataclass(frozen=True)
class StaticWindows:
    """Restriction that unlocks an entry during fixed daily windows."""

    windows: tuple[TimeWindow, ...] = ()

    def allows(self, now: datetime) -> bool:
        """True if any window contains now."""
        return any(window.contains(now) for window in self.windows)


@dataclass(frozen=True)
class DynamicUsage:
    """Restriction that bounds continuous usage and enforces a cooldown.

    Attributes:
        period: Maximum continuous unlocked duration
        cool_time: Minimum time after an unlock before the next unlock
    """

    period: timedelta
    cool_time: timedelta


Restriction = Union[StaticWindows, DynamicUsage]


@dataclass
class Entry:
    """A named group of domains sharing one restriction.

    Attributes:
        name: Entry identifier (the config table name, e.g. "video")
        domains: Domains blocked while the entry is locked
        restriction: Rule deciding when the entry may be unlocked
    """

    name: str
    domains: list[str] = field(default_factory=list)
    restriction: Restriction = field(default_factory=StaticWindows)


@dataclass
class Config:
    """Loaded configuration.

    Attributes:
        entries: Entries keyed by name, in file order
        after_lock: Shell command run after an entry is locked
        after_unlock: Shell command run after an entry is unlocked
        interval: Seconds between re-evaluations
    """

    entries: dict[str, Entry] = field(default_factory=dict)
    after_lock: Optional[str] = None
    after_unlock: Optional[str] = None
    interval: int = 60
