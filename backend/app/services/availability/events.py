"""
Invalidation events.

Booking and resource-management code publishes small JSON events on the
`events:availability` Redis channel; every process running the engine
subscribes and applies them to its own cache through the invalidator.
Pub/sub (not a list queue) so that each instance sees every event.

Event types:
- booking_created / booking_updated / booking_cancelled  {"date": "YYYY-MM-DD"}
- driver_availability_changed  {"driver_id": int, "dates": ["YYYY-MM-DD", ...] | null}
                               or {"driver_id": int, "date_from": ..., "date_to": ...}
- mover_availability_changed   {"mover_id": int, "dates": [...] | null} or a date_from/date_to range
- availability_reset           {}
"""

import asyncio
import json
import logging
import time
from datetime import date

import redis.asyncio as aioredis
from redis import Redis

from .invalidator import AvailabilityCacheInvalidator, get_affected_dates_from_range

logger = logging.getLogger(__name__)

CHANNEL = "events:availability"

BOOKING_EVENTS = ("booking_created", "booking_updated", "booking_cancelled")


def emit_invalidation(redis: Redis, event_type: str, payload: dict | None = None) -> None:
    """Publish an invalidation event. Failures are logged, never raised."""
    event = {
        "type": event_type,
        **(payload or {}),
        "ts": int(time.time()),
    }
    try:
        redis.publish(CHANNEL, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {CHANNEL}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")


def handle_invalidation_event(invalidator: AvailabilityCacheInvalidator, event: dict) -> int:
    """
    Apply one event to the cache.

    Returns:
        Number of deleted cache keys

    Raises:
        ValueError: malformed payload
    """
    event_type = event.get("type")

    if event_type in BOOKING_EVENTS:
        return invalidator.booking_changed(_parse_date(event["date"]))

    if event_type == "driver_availability_changed":
        return invalidator.driver_availability_changed(
            int(event["driver_id"]), _event_dates(event)
        )

    if event_type == "mover_availability_changed":
        return invalidator.mover_availability_changed(
            int(event["mover_id"]), _event_dates(event)
        )

    if event_type == "availability_reset":
        return invalidator.invalidate_all()

    logger.warning(f"Unknown availability event type: {event_type}")
    return 0


async def invalidation_consumer_loop(redis_url: str, invalidator: AvailabilityCacheInvalidator) -> None:
    """
    Subscribe to CHANNEL and apply events until cancelled.

    Started as an asyncio task in the app lifespan.
    """
    r = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = r.pubsub()
    await pubsub.subscribe(CHANNEL)
    logger.info("invalidation_consumer_loop started")

    try:
        while True:
            try:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=5.0)
                if message is None:
                    continue
                _process_message(invalidator, message["data"])
            except asyncio.CancelledError:
                logger.info("invalidation_consumer_loop cancelled")
                raise
            except Exception:
                logger.exception("invalidation_consumer_loop error, retrying in 2s")
                await asyncio.sleep(2)
    finally:
        await pubsub.aclose()
        await r.aclose()


def _process_message(invalidator: AvailabilityCacheInvalidator, raw: str) -> None:
    try:
        event = json.loads(raw)
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON on {CHANNEL}: {raw[:200]}")
        return
    if not isinstance(event, dict):
        logger.error(f"Unexpected event payload on {CHANNEL}: {raw[:200]}")
        return

    try:
        handle_invalidation_event(invalidator, event)
    except (KeyError, TypeError, ValueError):
        logger.exception(f"Malformed availability event type={event.get('type')}")


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _event_dates(event: dict) -> list[date] | None:
    """Explicit "dates", else an inclusive "date_from"/"date_to" range, else None (everything)."""
    if event.get("dates") is not None:
        return [_parse_date(v) for v in event["dates"]]
    if event.get("date_from") is not None or event.get("date_to") is not None:
        return get_affected_dates_from_range(event["date_from"], event["date_to"])
    return None
