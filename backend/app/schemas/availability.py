"""
Pydantic schemas for the availability API.
"""

from datetime import date
from pydantic import BaseModel, Field, field_validator, model_validator

from ..services.availability.types import AvailabilityLevel, PlanType


# ── Queries ──────────────────────────────────────────────────────────────


class MonthlyAvailabilityQuery(BaseModel):
    """Monthly overview request."""
    year: int = Field(ge=1970, le=9999)
    month: int = Field(ge=1, le=12)
    plan_type: PlanType
    unit_count: int = Field(ge=0, le=100)

    model_config = {"frozen": True}


class DailyAvailabilityQuery(BaseModel):
    """Daily time-slot request."""
    date: date
    plan_type: PlanType
    unit_count: int = Field(ge=0, le=100)
    exclude_appointment_id: int | None = Field(default=None, gt=0)

    model_config = {"frozen": True}

    @field_validator("date", mode="before")
    @classmethod
    def strict_iso_date(cls, v):
        """Accept date objects or "YYYY-MM-DD" strings only."""
        if isinstance(v, str):
            return date.fromisoformat(v)
        return v


class CacheWarmRequest(BaseModel):
    dates: list[date]
    plan_types: list[PlanType] = [PlanType.DIY, PlanType.FULL_SERVICE]
    unit_count: int = Field(default=1, ge=0, le=100)


class CacheInvalidateRequest(BaseModel):
    """Manual invalidation: explicit dates, an inclusive date_from/date_to range, or neither for everything."""
    dates: list[date] | None = None
    date_from: date | None = None
    date_to: date | None = None

    @model_validator(mode="after")
    def complete_range(self):
        if (self.date_from is None) != (self.date_to is None):
            raise ValueError("date_from and date_to must be given together")
        return self


# ── Responses ────────────────────────────────────────────────────────────


class ResourceCounts(BaseModel):
    available_movers: int
    available_drivers: int


class ResourcesChecked(BaseModel):
    movers: int = 0
    drivers: int = 0


class ConflictsFound(BaseModel):
    blocked_dates: int = 0
    existing_bookings: int = 0
    external_tasks: int = 0


class MonthlyMetadata(BaseModel):
    query_time_ms: int
    total_days_checked: int
    resources_checked: ResourcesChecked
    conflicts_found: ConflictsFound
    cache_hit: bool = False


class DailyMetadata(BaseModel):
    query_time_ms: int
    total_slots_checked: int
    resources_checked: ResourcesChecked
    conflicts_found: ConflictsFound
    cache_hit: bool = False


class MonthlyAvailabilityDate(BaseModel):
    """Status of a single day in the monthly overview."""
    date: date
    has_availability: bool
    availability_level: AvailabilityLevel | None = None
    resource_counts: ResourceCounts | None = None


class MonthlyAvailabilityResponse(BaseModel):
    dates: list[MonthlyAvailabilityDate]
    metadata: MonthlyMetadata


class TimeSlot(BaseModel):
    """A candidate slot with its availability verdict."""
    start_time: str = Field(description='"HH:MM"')
    end_time: str = Field(description='"HH:MM"')
    display: str = Field(description='e.g. "9am-10am"')
    available: bool
    availability_level: AvailabilityLevel | None = None
    resource_counts: ResourceCounts | None = None


class DailyAvailabilityResponse(BaseModel):
    date: date
    time_slots: list[TimeSlot]
    metadata: DailyMetadata


class CacheEntryStats(BaseModel):
    key: str
    age_seconds: float
    ttl_seconds: int


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int | None = None
    entries: list[CacheEntryStats]
