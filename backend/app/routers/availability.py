# backend/app/routers/availability.py
"""
Availability API endpoints.

GET  /availability/monthly          - Days of a month with enough capacity
GET  /availability/daily            - Hourly slots of a day
GET  /availability/cache/stats      - Cache contents (monitoring)
POST /availability/cache/warm       - Pre-compute daily slots
POST /availability/cache/invalidate - Manual invalidation (admin)
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.availability import (
    CacheInvalidateRequest,
    CacheStatsResponse,
    CacheWarmRequest,
    DailyAvailabilityResponse,
    MonthlyAvailabilityResponse,
)
from ..services.availability import (
    AvailabilityCacheInvalidator,
    PlanType,
    UpstreamDataError,
    ValidationError,
    get_availability_config,
)
from ..services.availability.invalidator import get_affected_dates
from ..services.availability.repository import SqlAvailabilityRepository
from ..services.availability.service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


def get_availability_cache(request: Request):
    """Cache instance created in the app lifespan."""
    return request.app.state.availability_cache


def get_availability_service(
    db: Session = Depends(get_db),
    cache=Depends(get_availability_cache),
) -> AvailabilityService:
    config = get_availability_config()
    return AvailabilityService(SqlAvailabilityRepository(db, config), cache, config)


def _run(func, *args):
    try:
        return func(*args)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamDataError:
        logger.exception("Availability data unavailable")
        raise HTTPException(status_code=503, detail="Availability data unavailable")


@router.get("/monthly", response_model=MonthlyAvailabilityResponse)
def get_monthly_availability(
    year: int,
    month: int,
    plan_type: PlanType = Query(..., alias="planType"),
    unit_count: int = Query(..., alias="numberOfUnits"),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Monthly overview: which days can take a new appointment."""
    return _run(service.get_monthly_availability, year, month, plan_type, unit_count)


@router.get("/daily", response_model=DailyAvailabilityResponse)
def get_daily_time_slots(
    target_date: date = Query(..., alias="date"),
    plan_type: PlanType = Query(..., alias="planType"),
    unit_count: int = Query(..., alias="numberOfUnits"),
    exclude_appointment_id: int | None = Query(None, alias="excludeAppointmentId"),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Hourly slots of a day; excludeAppointmentId ignores that appointment's own bookings."""
    return _run(
        service.get_daily_time_slots,
        target_date,
        plan_type,
        unit_count,
        exclude_appointment_id,
    )


@router.get("/cache/stats", response_model=CacheStatsResponse)
def get_cache_stats(service: AvailabilityService = Depends(get_availability_service)):
    return service.get_cache_stats()


@router.post("/cache/warm")
def warm_cache(
    data: CacheWarmRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Pre-compute daily slots for the given dates (maintenance)."""
    warmed = service.warm_cache(data.dates, data.plan_types, data.unit_count)
    return {
        "requested": len(data.dates) * len(data.plan_types),
        "warmed": warmed,
    }


@router.post("/cache/invalidate")
def invalidate_cache(
    data: CacheInvalidateRequest,
    cache=Depends(get_availability_cache),
):
    """Manually invalidate availability cache (admin endpoint)."""
    invalidator = AvailabilityCacheInvalidator(cache)
    dates = list(data.dates or [])
    if data.date_from is not None:
        dates.extend(get_affected_dates(data.date_from, data.date_to))
    dates = sorted(set(dates))

    if dates:
        deleted = sum(invalidator.booking_changed(dt) for dt in dates)
    else:
        deleted = invalidator.invalidate_all()

    return {
        "deleted_keys": deleted,
        "dates": [d.isoformat() for d in dates] if dates else "all",
    }
