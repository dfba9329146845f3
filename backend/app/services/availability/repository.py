"""
Persistence collaborator for the availability engine.

AvailabilityRepository is the read-only interface the service depends on;
SqlAvailabilityRepository implements it over the SQLAlchemy models.
Any database failure surfaces as UpstreamDataError.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Protocol

from sqlalchemy import distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import AvailabilityConfig, get_availability_config
from .errors import UpstreamDataError
from .timeutils import parse_time
from .types import (
    BookingConflict,
    DailyResourceData,
    ExternalTaskConflict,
    PlanType,
    Resource,
    ResourceKind,
    TimeRange,
    WeeklyResourceCounts,
)

logger = logging.getLogger(__name__)

MOVER_ACTIVE_STATUS = "ACTIVE"
DRIVER_ACTIVE_STATUS = "Active"
CLOSED_APPOINTMENT_STATUSES = ("Completed", "Canceled")


class AvailabilityRepository(Protocol):
    def get_resource_counts_by_weekday(
        self,
        weekdays: list[str],
        plan_type: PlanType,
    ) -> WeeklyResourceCounts:
        ...

    def get_daily_resource_data(
        self,
        target_date: date,
        weekday: str,
        plan_type: PlanType,
        exclude_appointment_id: int | None = None,
    ) -> DailyResourceData:
        ...


class SqlAvailabilityRepository:
    """Batched reads over movers, drivers, bookings and external tasks."""

    def __init__(self, db: Session, config: AvailabilityConfig | None = None):
        self.db = db
        self.config = config or get_availability_config()

    # ── Monthly ──────────────────────────────────────────────────────────

    def get_resource_counts_by_weekday(
        self,
        weekdays: list[str],
        plan_type: PlanType,
    ) -> WeeklyResourceCounts:
        """Count active resources with availability on each weekday (one query per type)."""
        from ...models.generated import DriverAvailability, Drivers, MovingPartnerAvailability, MovingPartners

        try:
            movers_by_day = {day: 0 for day in weekdays}
            if plan_type is PlanType.FULL_SERVICE:
                rows = (
                    self.db.query(
                        MovingPartnerAvailability.day_of_week,
                        func.count(distinct(MovingPartnerAvailability.moving_partner_id)),
                    )
                    .join(MovingPartners, MovingPartners.id == MovingPartnerAvailability.moving_partner_id)
                    .filter(
                        MovingPartners.status == MOVER_ACTIVE_STATUS,
                        MovingPartnerAvailability.day_of_week.in_(weekdays),
                        MovingPartnerAvailability.is_blocked.is_(False),
                    )
                    .group_by(MovingPartnerAvailability.day_of_week)
                    .all()
                )
                movers_by_day.update({day: count for day, count in rows})

            rows = (
                self.db.query(
                    DriverAvailability.day_of_week,
                    func.count(distinct(DriverAvailability.driver_id)),
                )
                .join(Drivers, Drivers.id == DriverAvailability.driver_id)
                .filter(
                    Drivers.status == DRIVER_ACTIVE_STATUS,
                    DriverAvailability.day_of_week.in_(weekdays),
                    DriverAvailability.is_blocked.is_(False),
                )
                .group_by(DriverAvailability.day_of_week)
                .all()
            )
            drivers_by_day = {day: 0 for day in weekdays}
            drivers_by_day.update({day: count for day, count in rows})
        except SQLAlchemyError as e:
            raise UpstreamDataError(f"Failed to load weekly resource counts: {e}") from e

        return WeeklyResourceCounts(movers_by_day=movers_by_day, drivers_by_day=drivers_by_day)

    # ── Daily ────────────────────────────────────────────────────────────

    def get_daily_resource_data(
        self,
        target_date: date,
        weekday: str,
        plan_type: PlanType,
        exclude_appointment_id: int | None = None,
    ) -> DailyResourceData:
        """Rosters, blocked resources, bookings and external tasks for one date."""
        try:
            blocked_mover_ids, blocked_driver_ids = self._get_blocked_ids(target_date)

            movers: list[Resource] = []
            if plan_type is PlanType.FULL_SERVICE:
                movers = self._get_movers(weekday, blocked_mover_ids)
            drivers = self._get_drivers(weekday, blocked_driver_ids)

            range_start, range_end = self._query_range(target_date)
            mover_bookings = self._get_mover_bookings(
                [m.id for m in movers], range_start, range_end, exclude_appointment_id
            )
            driver_bookings = self._get_driver_bookings(
                [d.id for d in drivers], range_start, range_end, exclude_appointment_id
            )
            external_tasks = self._get_external_tasks(
                [d.id for d in drivers], range_start, range_end, exclude_appointment_id
            )
        except SQLAlchemyError as e:
            raise UpstreamDataError(f"Failed to load resource data for {target_date}: {e}") from e

        return DailyResourceData(
            target_date=target_date,
            movers=movers,
            drivers=drivers,
            blocked_mover_ids=frozenset(blocked_mover_ids),
            blocked_driver_ids=frozenset(blocked_driver_ids),
            mover_bookings=mover_bookings,
            driver_bookings=driver_bookings,
            external_tasks=external_tasks,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _query_range(self, target_date: date) -> tuple[datetime, datetime]:
        """
        Naive-UTC range that catches everything able to block the business day.

        Widened by the largest buffer so late-evening bookings of the previous
        day are not missed.
        """
        config = self.config
        margin = timedelta(minutes=max(
            config.buffer_before_minutes,
            config.buffer_after_minutes,
            config.task_buffer_before_minutes + config.task_service_minutes + config.task_buffer_after_minutes,
        ))
        day_start = datetime.combine(target_date, time.min, tzinfo=config.tz)
        day_end = day_start + timedelta(days=1)
        return _to_naive_utc(day_start - margin), _to_naive_utc(day_end + margin)

    def _get_blocked_ids(self, target_date: date) -> tuple[set[int], set[int]]:
        from ...models.generated import BlockedDates

        rows = (
            self.db.query(BlockedDates.user_type, BlockedDates.user_id)
            .filter(BlockedDates.blocked_date == target_date)
            .all()
        )
        movers = {user_id for user_type, user_id in rows if user_type == "mover"}
        drivers = {user_id for user_type, user_id in rows if user_type == "driver"}
        return movers, drivers

    def _get_movers(self, weekday: str, blocked_ids: set[int]) -> list[Resource]:
        from ...models.generated import MovingPartnerAvailability, MovingPartners

        query = (
            self.db.query(MovingPartnerAvailability)
            .join(MovingPartners, MovingPartners.id == MovingPartnerAvailability.moving_partner_id)
            .filter(
                MovingPartners.status == MOVER_ACTIVE_STATUS,
                MovingPartnerAvailability.day_of_week == weekday,
                MovingPartnerAvailability.is_blocked.is_(False),
            )
        )
        if blocked_ids:
            query = query.filter(MovingPartnerAvailability.moving_partner_id.notin_(blocked_ids))

        return _build_resources(
            ResourceKind.MOVER,
            ((row.moving_partner_id, row) for row in query.all()),
        )

    def _get_drivers(self, weekday: str, blocked_ids: set[int]) -> list[Resource]:
        from ...models.generated import DriverAvailability, Drivers

        query = (
            self.db.query(DriverAvailability)
            .join(Drivers, Drivers.id == DriverAvailability.driver_id)
            .filter(
                Drivers.status == DRIVER_ACTIVE_STATUS,
                DriverAvailability.day_of_week == weekday,
                DriverAvailability.is_blocked.is_(False),
            )
        )
        if blocked_ids:
            query = query.filter(DriverAvailability.driver_id.notin_(blocked_ids))

        return _build_resources(
            ResourceKind.DRIVER,
            ((row.driver_id, row) for row in query.all()),
        )

    def _get_mover_bookings(
        self,
        mover_ids: list[int],
        range_start: datetime,
        range_end: datetime,
        exclude_appointment_id: int | None,
    ) -> list[BookingConflict]:
        from ...models.generated import MoverTimeSlotBookings

        if not mover_ids:
            return []

        query = self.db.query(MoverTimeSlotBookings).filter(
            MoverTimeSlotBookings.moving_partner_id.in_(mover_ids),
            MoverTimeSlotBookings.booking_date < range_end,
            MoverTimeSlotBookings.end_date > range_start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(MoverTimeSlotBookings.appointment_id != exclude_appointment_id)

        return [
            BookingConflict(
                resource_id=row.moving_partner_id,
                service_start=_as_utc(row.booking_date),
                service_end=_as_utc(row.end_date),
            )
            for row in query.all()
        ]

    def _get_driver_bookings(
        self,
        driver_ids: list[int],
        range_start: datetime,
        range_end: datetime,
        exclude_appointment_id: int | None,
    ) -> list[BookingConflict]:
        from ...models.generated import DriverTimeSlotBookings

        if not driver_ids:
            return []

        query = self.db.query(DriverTimeSlotBookings).filter(
            DriverTimeSlotBookings.driver_id.in_(driver_ids),
            DriverTimeSlotBookings.booking_date < range_end,
            DriverTimeSlotBookings.end_date > range_start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(DriverTimeSlotBookings.appointment_id != exclude_appointment_id)

        return [
            BookingConflict(
                resource_id=row.driver_id,
                service_start=_as_utc(row.booking_date),
                service_end=_as_utc(row.end_date),
            )
            for row in query.all()
        ]

    def _get_external_tasks(
        self,
        driver_ids: list[int],
        range_start: datetime,
        range_end: datetime,
        exclude_appointment_id: int | None,
    ) -> list[ExternalTaskConflict]:
        """One blocking window per (driver, appointment), however many tasks it has."""
        from ...models.generated import Appointments, ExternalTasks

        if not driver_ids:
            return []

        query = (
            self.db.query(ExternalTasks.driver_id, ExternalTasks.appointment_id, Appointments.time)
            .join(Appointments, Appointments.id == ExternalTasks.appointment_id)
            .filter(
                ExternalTasks.driver_id.in_(driver_ids),
                Appointments.time >= range_start,
                Appointments.time < range_end,
                Appointments.status.notin_(CLOSED_APPOINTMENT_STATUSES),
            )
        )
        if exclude_appointment_id is not None:
            query = query.filter(ExternalTasks.appointment_id != exclude_appointment_id)

        config = self.config
        before = timedelta(minutes=config.task_buffer_before_minutes)
        after = timedelta(minutes=config.task_service_minutes + config.task_buffer_after_minutes)

        seen: set[tuple[int, int]] = set()
        tasks: list[ExternalTaskConflict] = []
        for driver_id, appointment_id, task_time in query.all():
            if (driver_id, appointment_id) in seen:
                continue
            seen.add((driver_id, appointment_id))
            start = _as_utc(task_time)
            tasks.append(ExternalTaskConflict(
                driver_id=driver_id,
                window_start=start - before,
                window_end=start + after,
            ))
        return tasks


# ── Row conversion ───────────────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC."""
    if not isinstance(value, datetime):
        raise UpstreamDataError(f"Expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _build_resources(kind: ResourceKind, rows: Iterable[tuple[int, object]]) -> list[Resource]:
    """Group availability rows by resource and weekday into Resource objects."""
    ranges: dict[int, dict[str, list[TimeRange]]] = defaultdict(lambda: defaultdict(list))

    for resource_id, row in rows:
        try:
            rng = TimeRange(start=parse_time(row.start_time), end=parse_time(row.end_time))
        except (ValueError, TypeError, AttributeError) as e:
            raise UpstreamDataError(
                f"Malformed availability for {kind.value} {resource_id}: {e}"
            ) from e
        ranges[resource_id][row.day_of_week].append(rng)

    return [
        Resource(
            id=resource_id,
            kind=kind,
            availability={
                day: tuple(sorted(day_ranges, key=lambda r: r.start_minutes))
                for day, day_ranges in by_day.items()
            },
        )
        for resource_id, by_day in sorted(ranges.items())
    ]
