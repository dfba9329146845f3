# backend/tests/conftest.py
"""
Shared fixtures for availability engine tests.
"""

from datetime import date, datetime, time, timezone

import pytest

from app.services.availability import (
    AvailabilityConfig,
    DailyResourceData,
    MemoryCache,
    Resource,
    ResourceKind,
    TimeRange,
    WeeklyResourceCounts,
)
from app.services.availability.service import AvailabilityService

MONDAY = date(2025, 1, 6)
TODAY = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced epoch-seconds clock for the cache."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRepository:
    """In-memory persistence collaborator that records every call."""

    def __init__(
        self,
        weekly: WeeklyResourceCounts | None = None,
        daily: DailyResourceData | None = None,
    ):
        self.weekly = weekly or WeeklyResourceCounts(movers_by_day={}, drivers_by_day={})
        self.daily = daily
        self.weekly_calls: list[tuple] = []
        self.daily_calls: list[tuple] = []

    def get_resource_counts_by_weekday(self, weekdays, plan_type):
        self.weekly_calls.append((list(weekdays), plan_type))
        return self.weekly

    def get_daily_resource_data(self, target_date, weekday, plan_type, exclude_appointment_id=None):
        self.daily_calls.append((target_date, weekday, plan_type, exclude_appointment_id))
        if self.daily is None:
            return DailyResourceData(target_date=target_date, movers=[], drivers=[])
        return self.daily

    @property
    def calls(self) -> int:
        return len(self.weekly_calls) + len(self.daily_calls)


def utc(target_date: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(target_date, time(hour, minute), tzinfo=timezone.utc)


def make_resource(resource_id: int, kind: ResourceKind, pattern: dict[str, list[tuple[str, str]]]) -> Resource:
    """make_resource(1, ResourceKind.DRIVER, {"Monday": [("09:00", "17:00")]})"""
    return Resource(
        id=resource_id,
        kind=kind,
        availability={
            day: tuple(
                TimeRange(start=time.fromisoformat(start), end=time.fromisoformat(end))
                for start, end in ranges
            )
            for day, ranges in pattern.items()
        },
    )


def monday_mover(resource_id: int = 1) -> Resource:
    return make_resource(resource_id, ResourceKind.MOVER, {"Monday": [("09:00", "17:00")]})


def monday_driver(resource_id: int) -> Resource:
    return make_resource(resource_id, ResourceKind.DRIVER, {"Monday": [("09:00", "17:00")]})


@pytest.fixture
def config():
    return AvailabilityConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(max_size=100, default_ttl=300, sweep_interval=60, clock=clock)


@pytest.fixture
def monday_data():
    """One mover and two drivers, all free 9am-5pm on Monday 2025-01-06."""
    return DailyResourceData(
        target_date=MONDAY,
        movers=[monday_mover(1)],
        drivers=[monday_driver(10), monday_driver(11)],
    )


@pytest.fixture
def make_service(cache, config):
    def factory(repository, **kwargs):
        kwargs.setdefault("clock", lambda: TODAY)
        return AvailabilityService(repository, kwargs.pop("cache", cache), config, **kwargs)

    return factory


