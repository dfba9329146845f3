"""
Slot and time helpers.

Pure functions: no I/O, no clock reads unless "today" is omitted.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone

from .config import AvailabilityConfig, get_availability_config
from .types import CandidateSlot


DAY_NAMES = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
]


def day_of_week(target_date: date) -> str:
    """Weekday label of a calendar date ("Monday" ... "Sunday")."""
    # date.weekday() is calendar arithmetic only, no local-time conversion
    return DAY_NAMES[target_date.weekday()]


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """
    True iff half-open intervals [a_start, a_end) and [b_start, b_end) share a point.

    Every conflict check goes through this function.
    """
    return a_start < b_end and b_start < a_end


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def is_past_date(target_date: date, today: date | None = None) -> bool:
    """Whether target_date is strictly before today (UTC midnight)."""
    today = today or utc_today()
    return target_date < today


def days_in_month(year: int, month: int) -> list[date]:
    """All calendar dates of a month."""
    count = calendar.monthrange(year, month)[1]
    return [date(year, month, day) for day in range(1, count + 1)]


def distinct_days_of_week(year: int, month: int) -> list[str]:
    """Weekday labels present in a month, in first-occurrence order."""
    labels: list[str] = []
    for dt in days_in_month(year, month)[:7]:
        labels.append(day_of_week(dt))
    return labels


def minutes_to_time_str(minutes: int) -> str:
    """Minutes since midnight -> "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_str_to_minutes(time_str: str) -> int:
    """"HH:MM" -> minutes since midnight."""
    hours, minutes = time_str.split(":")
    return int(hours) * 60 + int(minutes)


def parse_time(time_str: str) -> time:
    """"HH:MM" -> datetime.time."""
    minutes = time_str_to_minutes(time_str)
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"Time out of range: {time_str}")
    return time(minutes // 60, minutes % 60)


def format_display_time(minutes: int) -> str:
    """Minutes since midnight -> "9am" / "12pm" / "4:30pm"."""
    hour, minute = divmod(minutes % (24 * 60), 60)
    suffix = "am" if hour < 12 else "pm"
    hour12 = hour % 12 or 12
    if minute:
        return f"{hour12}:{minute:02d}{suffix}"
    return f"{hour12}{suffix}"


class BusinessHourSlots:
    """
    Candidate slots of a date within business hours.

    Lazy and restartable: every iteration regenerates the same slots.
    """

    def __init__(self, target_date: date, config: AvailabilityConfig | None = None):
        self.target_date = target_date
        self.config = config or get_availability_config()

    def __iter__(self):
        config = self.config
        step = config.slot_duration_minutes
        day_start = datetime.combine(self.target_date, time.min, tzinfo=config.tz)
        end_min = config.end_hour * 60

        t = config.start_hour * 60
        while t + step <= end_min:
            yield CandidateSlot(
                slot_start=day_start + timedelta(minutes=t),
                slot_end=day_start + timedelta(minutes=t + step),
                start_label=minutes_to_time_str(t),
                end_label=minutes_to_time_str(t + step),
                display_label=f"{format_display_time(t)}-{format_display_time(t + step)}",
            )
            t += step

    def __len__(self) -> int:
        return self.config.slots_per_day


def generate_business_hour_slots(
    target_date: date,
    config: AvailabilityConfig | None = None,
) -> BusinessHourSlots:
    """Candidate slots for target_date (see BusinessHourSlots)."""
    return BusinessHourSlots(target_date, config)
