"""
Availability engine configuration.
"""

from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class AvailabilityConfig:
    """
    Configuration for the availability engine.

    Attributes:
        start_hour: First business hour (inclusive)
        end_hour: Business closing hour (exclusive)
        slot_duration_minutes: Candidate slot length (15/30/60)
        timezone: IANA zone the business hours are expressed in
        buffer_before_minutes: Blocked time before a booked service window
        buffer_after_minutes: Blocked time after a booked service window
        task_buffer_before_minutes: Blocked time before an external task
        task_service_minutes: Assumed duration of an external task
        task_buffer_after_minutes: Blocked time after an external task
        monthly_ttl_seconds: Cache TTL for monthly overviews
        daily_ttl_seconds: Cache TTL for daily time slots
        default_ttl_seconds: Cache TTL when none is given
        cache_max_size: Capacity of the process-local cache
        cache_sweep_interval_seconds: Period of the expiry sweep
        high_ratio: Resource/requirement ratio from which a slot is "high"
        medium_ratio: Resource/requirement ratio from which a slot is "medium"
    """
    start_hour: int = 9
    end_hour: int = 18
    slot_duration_minutes: int = 60
    timezone: str = "UTC"

    buffer_before_minutes: int = 15
    buffer_after_minutes: int = 15

    task_buffer_before_minutes: int = 60
    task_service_minutes: int = 60
    task_buffer_after_minutes: int = 60

    monthly_ttl_seconds: int = 300
    daily_ttl_seconds: int = 120
    default_ttl_seconds: int = 300
    cache_max_size: int = 1000
    cache_sweep_interval_seconds: int = 60

    high_ratio: float = 3.0
    medium_ratio: float = 1.0

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_duration_minutes not in (15, 30, 60):
            raise ValueError(
                f"slot_duration_minutes must be 15, 30, or 60, got {self.slot_duration_minutes}"
            )
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError(
                f"Invalid business hours: {self.start_hour}-{self.end_hour}"
            )
        if min(self.buffer_before_minutes, self.buffer_after_minutes) < 0:
            raise ValueError("Booking buffers must not be negative")
        if self.cache_max_size < 1:
            raise ValueError("cache_max_size must be at least 1")
        if self.high_ratio < self.medium_ratio:
            raise ValueError("high_ratio must not be lower than medium_ratio")
        try:
            ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            raise ValueError(f"Unknown timezone: {self.timezone}") from None

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def slots_per_day(self) -> int:
        """Number of candidate slots inside business hours."""
        return (self.end_hour - self.start_hour) * 60 // self.slot_duration_minutes


@lru_cache
def get_availability_config() -> AvailabilityConfig:
    """Get availability configuration (singleton), seeded from settings."""
    from ...config import settings

    return AvailabilityConfig(
        start_hour=settings.availability_start_hour,
        end_hour=settings.availability_end_hour,
        timezone=settings.availability_timezone,
        default_ttl_seconds=settings.availability_cache_default_ttl,
        cache_max_size=settings.availability_cache_max_size,
        cache_sweep_interval_seconds=settings.availability_cache_sweep_interval,
    )
