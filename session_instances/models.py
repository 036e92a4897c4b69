"""Data models for schedule periods and session instances."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import FrozenSet, List, Optional
from zoneinfo import ZoneInfo


def _clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


@dataclass
class SessionTemplate:
    id: str
    name: str
    sport: str = ""
    demo: str = ""
    description: str = ""
    roster_limit: int = 0
    price: float = 0.0
    is_active: bool = True


@dataclass
class SchedulePeriod:
    id: str
    template_id: str
    name: str
    start_date: date
    end_date: date
    capacity: int
    coaches: List[str] = field(default_factory=list)  # empty means TBD
    is_active: bool = True

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def is_currently_active(self, today: date) -> bool:
        return self.is_active and self.contains(today)

    def is_upcoming(self, today: date) -> bool:
        return self.is_active and today < self.start_date

    def is_past(self, today: date) -> bool:
        return today > self.end_date


@dataclass
class SessionInstance:
    period_id: str
    template_id: str
    name: str
    date: date
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    capacity: int
    coaches: List[str] = field(default_factory=list)
    booked_count: int = 0
    is_active: bool = True
    is_cancelled: bool = False
    notes: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_full(self) -> bool:
        return self.booked_count >= self.capacity

    @property
    def is_available(self) -> bool:
        return self.is_active and not self.is_cancelled and not self.is_full

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.booked_count)

    @property
    def booking_percentage(self) -> int:
        if self.capacity == 0:
            return 0
        # half-up, so 12.5 reports as 13
        return math.floor(self.booked_count * 100 / self.capacity + 0.5)

    def starts_at(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.date, _clock(self.start_time), tz)

    def ends_at(self, tz: ZoneInfo) -> datetime:
        return datetime.combine(self.date, _clock(self.end_time), tz)

    def is_past(self, now: datetime, tz: ZoneInfo) -> bool:
        """True once the session has finished; ``now`` must be timezone aware."""
        return now > self.ends_at(tz)

    def is_today(self, today: date) -> bool:
        return self.date == today


@dataclass(frozen=True)
class GenerationRequest:
    """A validated generation call. ``start``/``end`` keep any offset the caller gave."""

    period_id: str
    start: datetime
    end: datetime
    weekdays: FrozenSet[int]
    start_time: str
    end_time: str
