"""
Tests for invalidation event publishing and dispatch.
"""

import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from app.services.availability.events import (
    CHANNEL,
    _process_message,
    emit_invalidation,
    handle_invalidation_event,
)


@pytest.fixture
def invalidator():
    mock = MagicMock()
    mock.booking_changed.return_value = 2
    mock.driver_availability_changed.return_value = 3
    mock.mover_availability_changed.return_value = 4
    mock.invalidate_all.return_value = 5
    return mock


class TestEmitInvalidation:

    def test_publishes_on_channel(self):
        redis = MagicMock()

        emit_invalidation(redis, "booking_created", {"date": date(2025, 1, 6)})

        channel, raw = redis.publish.call_args.args
        event = json.loads(raw)
        assert channel == CHANNEL
        assert event["type"] == "booking_created"
        assert event["date"] == "2025-01-06"
        assert "ts" in event

    def test_publish_failure_is_not_raised(self):
        redis = MagicMock()
        redis.publish.side_effect = ConnectionError("redis down")

        emit_invalidation(redis, "availability_reset")


class TestHandleInvalidationEvent:

    @pytest.mark.parametrize("event_type", ["booking_created", "booking_updated", "booking_cancelled"])
    def test_booking_events(self, invalidator, event_type):
        deleted = handle_invalidation_event(invalidator, {"type": event_type, "date": "2025-01-06"})

        assert deleted == 2
        invalidator.booking_changed.assert_called_once_with(date(2025, 1, 6))

    def test_driver_change_with_dates(self, invalidator):
        handle_invalidation_event(invalidator, {
            "type": "driver_availability_changed",
            "driver_id": "7",
            "dates": ["2025-01-06", "2025-01-07"],
        })

        invalidator.driver_availability_changed.assert_called_once_with(
            7, [date(2025, 1, 6), date(2025, 1, 7)]
        )

    def test_mover_change_without_dates(self, invalidator):
        handle_invalidation_event(invalidator, {"type": "mover_availability_changed", "mover_id": 3})

        invalidator.mover_availability_changed.assert_called_once_with(3, None)

    def test_driver_change_with_date_range(self, invalidator):
        handle_invalidation_event(invalidator, {
            "type": "driver_availability_changed",
            "driver_id": 7,
            "date_from": "2025-01-30",
            "date_to": "2025-02-01",
        })

        invalidator.driver_availability_changed.assert_called_once_with(
            7, [date(2025, 1, 30), date(2025, 1, 31), date(2025, 2, 1)]
        )

    def test_half_open_range_raises(self, invalidator):
        with pytest.raises(KeyError):
            handle_invalidation_event(invalidator, {
                "type": "mover_availability_changed",
                "mover_id": 3,
                "date_from": "2025-01-30",
            })

    def test_reset(self, invalidator):
        assert handle_invalidation_event(invalidator, {"type": "availability_reset"}) == 5

    def test_unknown_type(self, invalidator):
        assert handle_invalidation_event(invalidator, {"type": "something_else"}) == 0
        invalidator.invalidate_all.assert_not_called()

    def test_missing_date_raises(self, invalidator):
        with pytest.raises(KeyError):
            handle_invalidation_event(invalidator, {"type": "booking_created"})


class TestProcessMessage:
    """Raw pub/sub payloads never break the consumer loop."""

    def test_valid_message(self, invalidator):
        _process_message(invalidator, json.dumps({"type": "booking_updated", "date": "2025-01-06"}))

        invalidator.booking_changed.assert_called_once_with(date(2025, 1, 6))

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        json.dumps({"type": "booking_created", "date": "06/01/2025"}),
        json.dumps({"type": "driver_availability_changed"}),
        json.dumps({"type": "mover_availability_changed", "mover_id": 3, "date_from": "2025-01-30", "date_to": None}),
    ])
    def test_bad_payloads_are_logged(self, invalidator, raw):
        _process_message(invalidator, raw)

        invalidator.invalidate_all.assert_not_called()
