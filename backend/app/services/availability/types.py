"""
Value types shared by the availability engine.

All of them are immutable and live for a single query at most.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Mapping


class PlanType(str, Enum):
    DIY = "DIY"
    FULL_SERVICE = "FULL_SERVICE"


class AvailabilityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResourceKind(str, Enum):
    MOVER = "mover"
    DRIVER = "driver"


class WindowVerdict(str, Enum):
    """Outcome of checking one resource against one window."""
    FREE = "free"
    OUTSIDE_HOURS = "outside_hours"
    BOOKED = "booked"
    EXTERNAL_TASK = "external_task"


@dataclass(frozen=True)
class TimeRange:
    """Time-of-day range [start, end) inside a weekday."""
    start: time
    end: time

    @property
    def start_minutes(self) -> int:
        return self.start.hour * 60 + self.start.minute

    @property
    def end_minutes(self) -> int:
        return self.end.hour * 60 + self.end.minute


@dataclass(frozen=True)
class Resource:
    """A mover or driver with its weekly availability pattern."""
    id: int
    kind: ResourceKind
    availability: Mapping[str, tuple[TimeRange, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingConflict:
    """Committed appointment occupying a resource (service window, no buffers)."""
    resource_id: int
    service_start: datetime
    service_end: datetime


@dataclass(frozen=True)
class ExternalTaskConflict:
    """Blocking window of an external logistics task assigned to a driver."""
    driver_id: int
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class CandidateSlot:
    slot_start: datetime
    slot_end: datetime
    start_label: str    # "09:00"
    end_label: str      # "10:00"
    display_label: str  # "9am-10am"


@dataclass(frozen=True)
class DriverRequirement:
    drivers_needed: int
    reason: str


@dataclass(frozen=True)
class WeeklyResourceCounts:
    """Resources having availability on each weekday label."""
    movers_by_day: dict[str, int]
    drivers_by_day: dict[str, int]


@dataclass(frozen=True)
class DailyResourceData:
    """Everything needed to evaluate one date, fetched in one batch."""
    target_date: date
    movers: list[Resource]
    drivers: list[Resource]
    blocked_mover_ids: frozenset[int] = frozenset()
    blocked_driver_ids: frozenset[int] = frozenset()
    mover_bookings: list[BookingConflict] = field(default_factory=list)
    driver_bookings: list[BookingConflict] = field(default_factory=list)
    external_tasks: list[ExternalTaskConflict] = field(default_factory=list)
