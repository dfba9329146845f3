"""
Conflict evaluation: is a resource free for a window, and how much slack is left.

A resource is free in [window_start, window_end) when:
1. one of its availability ranges for the weekday fully contains the window;
2. no booking of the resource, expanded by the before/after buffers, overlaps it;
3. (drivers) no external task window overlaps it.
Bookings and external tasks are separate sources and are checked separately.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable

from .config import AvailabilityConfig, get_availability_config
from .timeutils import intervals_overlap
from .types import (
    AvailabilityLevel,
    BookingConflict,
    ExternalTaskConflict,
    Resource,
    ResourceKind,
    WindowVerdict,
)


def effective_blocked_window(
    booking: BookingConflict,
    config: AvailabilityConfig | None = None,
) -> tuple[datetime, datetime]:
    """Service window of a booking expanded by the fixed buffers."""
    config = config or get_availability_config()
    return (
        booking.service_start - timedelta(minutes=config.buffer_before_minutes),
        booking.service_end + timedelta(minutes=config.buffer_after_minutes),
    )


def is_within_availability(
    resource: Resource,
    weekday: str,
    window_start: datetime,
    window_end: datetime,
) -> bool:
    """Whether some availability range of the weekday fully contains the window."""
    start_min = window_start.hour * 60 + window_start.minute
    end_min = start_min + int((window_end - window_start).total_seconds() // 60)

    return any(
        rng.start_minutes <= start_min and end_min <= rng.end_minutes
        for rng in resource.availability.get(weekday, ())
    )


def evaluate_resource_window(
    resource: Resource,
    weekday: str,
    window_start: datetime,
    window_end: datetime,
    booking_conflicts: Iterable[BookingConflict] = (),
    external_task_conflicts: Iterable[ExternalTaskConflict] = (),
    config: AvailabilityConfig | None = None,
) -> WindowVerdict:
    """Check a resource against a window and tell why it is not free, if so."""
    config = config or get_availability_config()

    if not is_within_availability(resource, weekday, window_start, window_end):
        return WindowVerdict.OUTSIDE_HOURS

    for booking in booking_conflicts:
        if booking.resource_id != resource.id:
            continue
        blocked_start, blocked_end = effective_blocked_window(booking, config)
        if intervals_overlap(window_start, window_end, blocked_start, blocked_end):
            return WindowVerdict.BOOKED

    if resource.kind is ResourceKind.DRIVER:
        for task in external_task_conflicts:
            if task.driver_id != resource.id:
                continue
            if intervals_overlap(window_start, window_end, task.window_start, task.window_end):
                return WindowVerdict.EXTERNAL_TASK

    return WindowVerdict.FREE


def is_resource_free_in_window(
    resource: Resource,
    weekday: str,
    window_start: datetime,
    window_end: datetime,
    booking_conflicts: Iterable[BookingConflict] = (),
    external_task_conflicts: Iterable[ExternalTaskConflict] = (),
    config: AvailabilityConfig | None = None,
) -> bool:
    return evaluate_resource_window(
        resource,
        weekday,
        window_start,
        window_end,
        booking_conflicts,
        external_task_conflicts,
        config,
    ) is WindowVerdict.FREE


def determine_availability_level(
    available_movers: int,
    available_drivers: int,
    required_movers: int,
    required_drivers: int,
    config: AvailabilityConfig | None = None,
) -> AvailabilityLevel:
    """
    Coarse confidence tier from the scarcest resource's ratio to its requirement.

    A type with zero requirement imposes no limit. Ratio below medium_ratio
    (i.e. requirement not met) is "low". More slack never lowers the tier.
    """
    config = config or get_availability_config()

    def ratio(available: int, required: int) -> float:
        if required <= 0:
            return math.inf
        return max(available, 0) / required

    min_ratio = min(
        ratio(available_movers, required_movers),
        ratio(available_drivers, required_drivers),
    )

    if min_ratio >= config.high_ratio:
        return AvailabilityLevel.HIGH
    if min_ratio >= config.medium_ratio:
        return AvailabilityLevel.MEDIUM
    return AvailabilityLevel.LOW
