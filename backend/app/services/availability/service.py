"""
Availability service: monthly overview and daily time slots.

Both entry points follow the same template:
    validate → cache key → cache lookup → (miss) fetch + compute → cache store → return

The cache is an optimization only: if it misbehaves the answer is computed
fresh. Persistence failures are raised as UpstreamDataError and never turned
into an "everything unavailable" answer.
"""

import logging
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Callable, Iterable

import pydantic

from ...schemas.availability import (
    ConflictsFound,
    DailyAvailabilityQuery,
    DailyAvailabilityResponse,
    DailyMetadata,
    MonthlyAvailabilityDate,
    MonthlyAvailabilityQuery,
    MonthlyAvailabilityResponse,
    MonthlyMetadata,
    ResourceCounts,
    ResourcesChecked,
    TimeSlot,
)
from .config import AvailabilityConfig, get_availability_config
from .conflicts import determine_availability_level, evaluate_resource_window
from .errors import AvailabilityError, UpstreamDataError, ValidationError
from .invalidator import AvailabilityCacheInvalidator
from .keys import DAILY, MONTHLY, generate_cache_key
from .repository import AvailabilityRepository
from .requirements import calculate_driver_requirement, required_movers
from .timeutils import (
    day_of_week,
    days_in_month,
    distinct_days_of_week,
    generate_business_hour_slots,
    is_past_date,
)
from .types import (
    AvailabilityLevel,
    BookingConflict,
    CandidateSlot,
    DailyResourceData,
    ExternalTaskConflict,
    PlanType,
    Resource,
    WeeklyResourceCounts,
    WindowVerdict,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityService:
    """
    Answers "is there enough labor and vehicle capacity" for a month or a day.

    Args:
        repository: Persistence collaborator (read-only)
        cache: Cache backend (MemoryCache / RedisCache); lifecycle is owned by the caller
        config: Engine configuration
        clock: Returns the current aware datetime; "today" is its UTC date
    """

    def __init__(
        self,
        repository: AvailabilityRepository,
        cache,
        config: AvailabilityConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.repository = repository
        self.cache = cache
        self.config = config or get_availability_config()
        self.clock = clock
        self.invalidator = AvailabilityCacheInvalidator(cache)

    def _today(self) -> date:
        return self.clock().astimezone(timezone.utc).date()

    # ── Monthly ──────────────────────────────────────────────────────────

    def get_monthly_availability(
        self,
        year: int,
        month: int,
        plan_type: PlanType | str,
        unit_count: int,
    ) -> MonthlyAvailabilityResponse:
        query = _parse_query(
            MonthlyAvailabilityQuery,
            year=year,
            month=month,
            plan_type=plan_type,
            unit_count=unit_count,
        )
        cache_key = generate_cache_key(MONTHLY, query.model_dump())

        cached = self._cache_lookup(cache_key, MonthlyAvailabilityResponse)
        if cached is not None:
            return cached

        started = time.perf_counter()
        logger.info(f"Computing monthly availability for {query.year}-{query.month:02d} ({query.plan_type.value})")

        today = self._today()
        dates = days_in_month(query.year, query.month)
        counts = WeeklyResourceCounts(movers_by_day={}, drivers_by_day={})
        if any(not is_past_date(dt, today) for dt in dates):
            weekdays = distinct_days_of_week(query.year, query.month)
            counts = self._fetch(
                self.repository.get_resource_counts_by_weekday, weekdays, query.plan_type
            )
            _check_weekly_counts(counts)

        movers_needed = required_movers(query.plan_type)
        days: list[MonthlyAvailabilityDate] = []
        for dt in dates:
            if is_past_date(dt, today):
                days.append(MonthlyAvailabilityDate(date=dt, has_availability=False))
                continue

            weekday = day_of_week(dt)
            mover_count = counts.movers_by_day.get(weekday, 0)
            driver_count = counts.drivers_by_day.get(weekday, 0)

            mover_ok = query.plan_type is PlanType.DIY or mover_count >= movers_needed
            requirement = calculate_driver_requirement(query.plan_type, query.unit_count, mover_ok)
            driver_ok = driver_count >= requirement.drivers_needed
            has_availability = mover_ok and driver_ok

            level = None
            if has_availability:
                level = determine_availability_level(
                    mover_count, driver_count, movers_needed, requirement.drivers_needed, self.config
                )

            days.append(MonthlyAvailabilityDate(
                date=dt,
                has_availability=has_availability,
                availability_level=level,
                resource_counts=ResourceCounts(
                    available_movers=mover_count,
                    available_drivers=driver_count,
                ),
            ))

        response = MonthlyAvailabilityResponse(
            dates=days,
            metadata=MonthlyMetadata(
                query_time_ms=_elapsed_ms(started),
                total_days_checked=len(dates),
                resources_checked=ResourcesChecked(
                    movers=sum(counts.movers_by_day.values()),
                    drivers=sum(counts.drivers_by_day.values()),
                ),
                conflicts_found=ConflictsFound(),
                cache_hit=False,
            ),
        )

        self._cache_store(cache_key, response, self.config.monthly_ttl_seconds)
        return response

    # ── Daily ────────────────────────────────────────────────────────────

    def get_daily_time_slots(
        self,
        target_date: date | str,
        plan_type: PlanType | str,
        unit_count: int,
        exclude_appointment_id: int | None = None,
    ) -> DailyAvailabilityResponse:
        query = _parse_query(
            DailyAvailabilityQuery,
            date=target_date,
            plan_type=plan_type,
            unit_count=unit_count,
            exclude_appointment_id=exclude_appointment_id,
        )
        started = time.perf_counter()
        slots = generate_business_hour_slots(query.date, self.config)

        # Past dates: full slot list, all unavailable, no lookups at all
        if is_past_date(query.date, self._today()):
            return DailyAvailabilityResponse(
                date=query.date,
                time_slots=[_time_slot(slot, available=False) for slot in slots],
                metadata=DailyMetadata(
                    query_time_ms=_elapsed_ms(started),
                    total_slots_checked=len(slots),
                    resources_checked=ResourcesChecked(),
                    conflicts_found=ConflictsFound(),
                    cache_hit=False,
                ),
            )

        cache_key = generate_cache_key(DAILY, query.model_dump())
        cached = self._cache_lookup(cache_key, DailyAvailabilityResponse)
        if cached is not None:
            return cached

        logger.info(f"Computing daily availability for {query.date} ({query.plan_type.value}, units={query.unit_count})")

        weekday = day_of_week(query.date)
        data = self._fetch(
            self.repository.get_daily_resource_data,
            query.date,
            weekday,
            query.plan_type,
            query.exclude_appointment_id,
        )
        _check_daily_data(data)

        logger.debug(
            f"[Daily] {len(data.movers)} movers, {len(data.drivers)} drivers, "
            f"blocked {len(data.blocked_mover_ids)}/{len(data.blocked_driver_ids)}"
        )

        conflicts = ConflictsFound(
            blocked_dates=len(data.blocked_mover_ids) + len(data.blocked_driver_ids),
        )
        mover_bookings = _group_by_resource(data.mover_bookings, "resource_id")
        driver_bookings = _group_by_resource(data.driver_bookings, "resource_id")
        driver_tasks = _group_by_resource(data.external_tasks, "driver_id")
        movers_needed = required_movers(query.plan_type)

        time_slots: list[TimeSlot] = []
        for slot in slots:
            available_movers = 0
            if query.plan_type is PlanType.FULL_SERVICE:
                available_movers = self._count_free(
                    data.movers, weekday, slot, mover_bookings, {}, conflicts
                )
            mover_ok = available_movers >= movers_needed

            requirement = calculate_driver_requirement(query.plan_type, query.unit_count, mover_ok)
            # Counted exactly: the true number is part of the response
            available_drivers = self._count_free(
                data.drivers, weekday, slot, driver_bookings, driver_tasks, conflicts
            )
            drivers_ok = available_drivers >= requirement.drivers_needed

            available = mover_ok and drivers_ok
            level = AvailabilityLevel.LOW
            if available:
                level = determine_availability_level(
                    available_movers,
                    available_drivers,
                    movers_needed,
                    requirement.drivers_needed,
                    self.config,
                )

            time_slots.append(_time_slot(
                slot,
                available=available,
                level=level,
                counts=ResourceCounts(
                    available_movers=available_movers,
                    available_drivers=available_drivers,
                ),
            ))

        response = DailyAvailabilityResponse(
            date=query.date,
            time_slots=time_slots,
            metadata=DailyMetadata(
                query_time_ms=_elapsed_ms(started),
                total_slots_checked=len(time_slots),
                resources_checked=ResourcesChecked(
                    movers=len(data.movers),
                    drivers=len(data.drivers),
                ),
                conflicts_found=conflicts,
                cache_hit=False,
            ),
        )

        self._cache_store(cache_key, response, self.config.daily_ttl_seconds)
        return response

    def _count_free(
        self,
        resources: Iterable[Resource],
        weekday: str,
        slot: CandidateSlot,
        bookings_by_id: dict,
        tasks_by_id: dict,
        conflicts: ConflictsFound,
    ) -> int:
        """Resources free for the slot; rejected ones are tallied into conflicts."""
        free = 0
        for resource in resources:
            verdict = evaluate_resource_window(
                resource,
                weekday,
                slot.slot_start,
                slot.slot_end,
                bookings_by_id.get(resource.id, ()),
                tasks_by_id.get(resource.id, ()),
                self.config,
            )
            if verdict is WindowVerdict.FREE:
                free += 1
            elif verdict is WindowVerdict.BOOKED:
                conflicts.existing_bookings += 1
            elif verdict is WindowVerdict.EXTERNAL_TASK:
                conflicts.external_tasks += 1
        return free

    # ── Maintenance ──────────────────────────────────────────────────────

    def get_cache_stats(self) -> dict:
        return self.cache.stats()

    def warm_cache(
        self,
        dates: Iterable[date | str],
        plan_types: Iterable[PlanType | str] = (PlanType.DIY, PlanType.FULL_SERVICE),
        unit_count: int = 1,
    ) -> int:
        """
        Pre-compute daily slots for anticipated hot queries.

        Failures are logged per (date, plan) and do not stop the run.

        Returns:
            Number of successfully warmed entries
        """
        dates = list(dates)
        plan_types = list(plan_types)
        logger.info(f"Warming availability cache for {len(dates)} dates")

        warmed = 0
        for dt in dates:
            for plan_type in plan_types:
                try:
                    self.get_daily_time_slots(dt, plan_type, unit_count)
                    warmed += 1
                except Exception:
                    logger.exception(f"Failed to warm availability cache for {dt} {plan_type}")
        return warmed

    # ── Cache & upstream helpers ─────────────────────────────────────────

    def _cache_lookup(self, key: str, model: type[pydantic.BaseModel]):
        """Fresh response object from cache with cache_hit set, or None."""
        try:
            cached = self.cache.get(key)
        except Exception:
            logger.warning(f"Cache read failed for {key}, computing fresh", exc_info=True)
            return None

        if cached is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            response = model.model_validate(cached)
        except pydantic.ValidationError:
            logger.warning(f"Discarding malformed cache entry {key}")
            self._cache_delete(key)
            return None

        logger.debug(f"Cache hit: {key}")
        response.metadata.cache_hit = True
        return response

    def _cache_store(self, key: str, response: pydantic.BaseModel, ttl: int) -> None:
        try:
            self.cache.set(key, response.model_dump(mode="json"), ttl)
        except Exception:
            logger.warning(f"Cache write failed for {key}", exc_info=True)

    def _cache_delete(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except Exception:
            logger.warning(f"Cache delete failed for {key}", exc_info=True)

    @staticmethod
    def _fetch(func, *args):
        try:
            return func(*args)
        except AvailabilityError:
            raise
        except Exception as e:
            raise UpstreamDataError(f"Resource data unavailable: {e}") from e


# ── Module helpers ───────────────────────────────────────────────────────


def _parse_query(model: type[pydantic.BaseModel], **params):
    try:
        return model(**params)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _time_slot(
    slot: CandidateSlot,
    available: bool,
    level: AvailabilityLevel | None = None,
    counts: ResourceCounts | None = None,
) -> TimeSlot:
    return TimeSlot(
        start_time=slot.start_label,
        end_time=slot.end_label,
        display=slot.display_label,
        available=available,
        availability_level=level,
        resource_counts=counts,
    )


def _group_by_resource(items: Iterable, attr: str) -> dict[int, list]:
    grouped: dict[int, list] = defaultdict(list)
    for item in items:
        grouped[getattr(item, attr)].append(item)
    return grouped


def _check_weekly_counts(counts) -> None:
    if not isinstance(counts, WeeklyResourceCounts):
        raise UpstreamDataError(f"Unexpected weekly counts payload: {type(counts).__name__}")
    for by_day in (counts.movers_by_day, counts.drivers_by_day):
        if not isinstance(by_day, dict) or any(
            not isinstance(v, int) or isinstance(v, bool) or v < 0 for v in by_day.values()
        ):
            raise UpstreamDataError("Weekly resource counts must be non-negative integers")


def _check_daily_data(data) -> None:
    if not isinstance(data, DailyResourceData):
        raise UpstreamDataError(f"Unexpected daily resource payload: {type(data).__name__}")
    for resource in (*data.movers, *data.drivers):
        if not isinstance(resource, Resource):
            raise UpstreamDataError(f"Unexpected resource entry: {type(resource).__name__}")
    for booking in (*data.mover_bookings, *data.driver_bookings):
        if not isinstance(booking, BookingConflict):
            raise UpstreamDataError(f"Unexpected booking entry: {type(booking).__name__}")
        _check_window(booking.service_start, booking.service_end, f"booking of resource {booking.resource_id}")
    for task in data.external_tasks:
        if not isinstance(task, ExternalTaskConflict):
            raise UpstreamDataError(f"Unexpected external task entry: {type(task).__name__}")
        _check_window(task.window_start, task.window_end, f"external task of driver {task.driver_id}")


def _check_window(start, end, label: str) -> None:
    """Aware datetimes with start < end."""
    for value in (start, end):
        if not isinstance(value, datetime) or value.tzinfo is None or value.utcoffset() is None:
            raise UpstreamDataError(f"Timezone-aware datetimes required for {label}, got {value!r}")
    if not start < end:
        raise UpstreamDataError(f"Empty or inverted window for {label}: {start} - {end}")
