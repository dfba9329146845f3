"""
Availability engine.

Pure helpers (slots, requirements, conflicts), the TTL cache with its
invalidation façade, and the errors are exported here. The service and the
SQLAlchemy repository are imported from their modules:

    from app.services.availability.service import AvailabilityService
    from app.services.availability.repository import SqlAvailabilityRepository
"""

from .config import AvailabilityConfig, get_availability_config
from .errors import AvailabilityError, UpstreamDataError, ValidationError
from .types import (
    AvailabilityLevel,
    BookingConflict,
    CandidateSlot,
    DailyResourceData,
    DriverRequirement,
    ExternalTaskConflict,
    PlanType,
    Resource,
    ResourceKind,
    TimeRange,
    WeeklyResourceCounts,
)
from .timeutils import day_of_week, generate_business_hour_slots, intervals_overlap, is_past_date
from .requirements import calculate_driver_requirement
from .conflicts import determine_availability_level, is_resource_free_in_window
from .cache import MemoryCache, RedisCache, build_cache
from .invalidator import AvailabilityCacheInvalidator

__all__ = [
    "AvailabilityConfig",
    "get_availability_config",
    "AvailabilityError",
    "UpstreamDataError",
    "ValidationError",
    "AvailabilityLevel",
    "BookingConflict",
    "CandidateSlot",
    "DailyResourceData",
    "DriverRequirement",
    "ExternalTaskConflict",
    "PlanType",
    "Resource",
    "ResourceKind",
    "TimeRange",
    "WeeklyResourceCounts",
    "day_of_week",
    "generate_business_hour_slots",
    "intervals_overlap",
    "is_past_date",
    "calculate_driver_requirement",
    "determine_availability_level",
    "is_resource_free_in_window",
    "MemoryCache",
    "RedisCache",
    "build_cache",
    "AvailabilityCacheInvalidator",
]
