"""Tests for agent-03-discovery-engine — availability estimator."""

import os
import tempfile
from datetime import datetime

import pytest
import yaml

from agent_03_discovery_engine.algorithms.availability import (
    Availability,
    EstimatorConfig,
    business_hours_today,
    can_deliver,
    check_availability,
    estimated_fulfillment_minutes,
    is_currently_open,
    next_open_timestamp,
    wait_minutes,
)
from agent_03_discovery_engine.algorithms.geodesy import Coordinate
from agent_03_discovery_engine.algorithms.records import DayHours, Pharmacy, parse_operating_hours

# 2026-10-14 is a Wednesday
WED_10AM = datetime(2026, 10, 14, 10, 0)
WED_8PM = datetime(2026, 10, 14, 20, 0)

WEEKDAY_HOURS = {
    day: {"is_open": True, "open_time": "09:00", "close_time": "17:00"}
    for day in ("mon", "tue", "wed", "thu", "fri")
}


def _pharmacy(**overrides) -> Pharmacy:
    fields = {
        "pharmacy_id": "ph-1",
        "name": "Test Pharmacy",
        "location": Coordinate(6.5, 3.4),
        "operating_hours": parse_operating_hours(WEEKDAY_HOURS),
    }
    fields.update(overrides)
    return Pharmacy(**fields)


# ---- is_currently_open ------------------------------------------------------


class TestIsCurrentlyOpen:
    def test_inside_window(self):
        assert is_currently_open(DayHours(True, "09:00", "17:00"), 12)

    def test_bounds_are_inclusive(self):
        hours = DayHours(True, "09:00", "17:00")
        assert is_currently_open(hours, 9)
        assert is_currently_open(hours, 17)
        assert not is_currently_open(hours, 18)

    def test_closed_day(self):
        assert not is_currently_open(DayHours(False), 12)

    def test_missing_day(self):
        assert not is_currently_open(None, 12)

    def test_overnight_window_wraps(self):
        hours = DayHours(True, "22:00", "06:00")
        assert is_currently_open(hours, 23)
        assert is_currently_open(hours, 3)
        assert not is_currently_open(hours, 12)


# ---- wait and ETA -----------------------------------------------------------


class TestWaitMinutes:
    def test_linear(self):
        assert wait_minutes(3) == 45

    def test_caps_at_two_hours(self):
        assert wait_minutes(20) == 120
        assert wait_minutes(500) == 120

    def test_unset_is_zero(self):
        assert wait_minutes(None) == 0


class TestEstimatedFulfillment:
    def test_normal(self):
        # 30 + 5 km * 2 + 2 orders * 15
        assert estimated_fulfillment_minutes(5, 30, "normal", 2) == 70

    def test_emergency_halves_processing(self):
        assert estimated_fulfillment_minutes(0, 60, "emergency") == 30

    def test_routine(self):
        assert estimated_fulfillment_minutes(0, 50, "routine") == 60

    def test_unknown_urgency_uses_normal(self):
        assert estimated_fulfillment_minutes(1, 40, "whenever") == 42

    def test_default_processing(self):
        assert estimated_fulfillment_minutes(0, None) == 60

    def test_rounds_half_up(self):
        # 0.25 km * 2 = 0.5 → rounds up
        assert estimated_fulfillment_minutes(0.25, 10) == 11


# ---- next_open_timestamp ----------------------------------------------------


class TestNextOpenTimestamp:
    def test_always_closed_is_none(self):
        hours = parse_operating_hours({})
        assert next_open_timestamp(hours, WED_10AM) is None

    def test_empty_table_is_none(self):
        assert next_open_timestamp(None, WED_10AM) is None

    def test_later_today(self):
        early = datetime(2026, 10, 14, 7, 30)
        hours = parse_operating_hours(WEEKDAY_HOURS)
        assert next_open_timestamp(hours, early) == datetime(2026, 10, 14, 9, 0)

    def test_skips_today_when_opening_passed(self):
        hours = parse_operating_hours(WEEKDAY_HOURS)
        assert next_open_timestamp(hours, WED_10AM) == datetime(2026, 10, 15, 9, 0)

    def test_skips_closed_weekend(self):
        friday_evening = datetime(2026, 10, 16, 19, 0)
        hours = parse_operating_hours(WEEKDAY_HOURS)
        assert next_open_timestamp(hours, friday_evening) == datetime(2026, 10, 19, 9, 0)


# ---- composition ------------------------------------------------------------


class TestCheckAvailability:
    def test_open_pharmacy(self):
        pharmacy = _pharmacy(current_orders=2, current_capacity=70)
        avail = check_availability(pharmacy, WED_10AM)
        assert avail.is_open
        assert avail.capacity == 70
        assert avail.wait_minutes == 30
        assert avail.next_open_timestamp == datetime(2026, 10, 15, 9, 0)
        assert avail.availability_unknown is False

    def test_closed_after_hours(self):
        avail = check_availability(_pharmacy(), WED_8PM)
        assert not avail.is_open
        assert avail.capacity == 100  # default when unset

    def test_degraded_defaults(self):
        avail = Availability.degraded()
        assert avail.to_dict() == {
            "is_open": False,
            "capacity": 0,
            "wait_minutes": 0,
            "next_open_timestamp": None,
            "availability_unknown": True,
        }

    def test_business_hours_today(self):
        assert business_hours_today(_pharmacy(), WED_10AM) == DayHours(True, "09:00", "17:00")
        sunday = datetime(2026, 10, 18, 12, 0)
        assert business_hours_today(_pharmacy(), sunday) == DayHours(False)


class TestCanDeliver:
    def test_inside_radius(self):
        pharmacy = _pharmacy(services={"delivery": True}, delivery_radius_km=10)
        assert can_deliver(pharmacy, 9.9)

    def test_outside_radius(self):
        pharmacy = _pharmacy(services={"delivery": True}, delivery_radius_km=10)
        assert not can_deliver(pharmacy, 10.1)

    def test_no_delivery_service(self):
        assert not can_deliver(_pharmacy(delivery_radius_km=10), 1)

    def test_no_radius(self):
        assert not can_deliver(_pharmacy(services={"delivery": True}), 1)


class TestEstimatorConfig:
    def test_from_yaml_merges_multipliers(self):
        data = {"estimator": {"max_wait_minutes": 60, "urgency_multipliers": {"emergency": 0.25}}}
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(data, f)
            path = f.name
        try:
            config = EstimatorConfig.from_yaml(path)
        finally:
            os.unlink(path)

        assert config.max_wait_minutes == 60
        assert config.urgency_multipliers["emergency"] == 0.25
        assert config.urgency_multipliers["routine"] == 1.2
        assert wait_minutes(20, config) == 60

    @pytest.mark.parametrize("urgency, expected", [("urgent", 42), ("normal", 60)])
    def test_multipliers(self, urgency, expected):
        assert estimated_fulfillment_minutes(0, 60, urgency) == expected
