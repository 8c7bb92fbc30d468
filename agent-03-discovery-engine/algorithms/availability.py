#!/usr/bin/env python3
"""
Pharmacy Discovery — Availability Estimator

Open/closed state, queue wait, next opening time and fulfilment ETA for a
pharmacy snapshot.  Every function takes ``now`` explicitly so callers (and
tests) control the clock; the API layer passes local server time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import yaml

from .records import WEEKDAYS, DayHours, Pharmacy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults (overridden by the estimator section of the profile YAML)
# ---------------------------------------------------------------------------

_DEFAULT_URGENCY_MULTIPLIERS = {
    "emergency": 0.5,
    "urgent": 0.7,
    "normal": 1.0,
    "routine": 1.2,
}

DEFAULT_PROCESSING_MINUTES = 60.0
DEFAULT_CAPACITY = 100.0


@dataclass(frozen=True)
class EstimatorConfig:
    """Queueing and travel constants for availability/ETA estimation."""

    minutes_per_queued_order: float = 15.0
    max_wait_minutes: float = 120.0
    travel_minutes_per_km: float = 2.0
    default_processing_minutes: float = DEFAULT_PROCESSING_MINUTES
    default_capacity: float = DEFAULT_CAPACITY
    urgency_multipliers: dict[str, float] = field(
        default_factory=lambda: dict(_DEFAULT_URGENCY_MULTIPLIERS)
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "EstimatorConfig":
        """Load the ``estimator`` section of a profile YAML file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        est = raw.get("estimator", {})
        defaults = cls()
        return cls(
            minutes_per_queued_order=est.get("minutes_per_queued_order", defaults.minutes_per_queued_order),
            max_wait_minutes=est.get("max_wait_minutes", defaults.max_wait_minutes),
            travel_minutes_per_km=est.get("travel_minutes_per_km", defaults.travel_minutes_per_km),
            default_processing_minutes=est.get(
                "default_processing_minutes", defaults.default_processing_minutes
            ),
            default_capacity=est.get("default_capacity", defaults.default_capacity),
            urgency_multipliers={
                **_DEFAULT_URGENCY_MULTIPLIERS,
                **est.get("urgency_multipliers", {}),
            },
        )


DEFAULT_ESTIMATOR = EstimatorConfig()


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class Availability:
    """Real-time availability snapshot attached to a scored pharmacy."""

    is_open: bool
    capacity: float
    wait_minutes: int
    next_open_timestamp: datetime | None
    availability_unknown: bool = False

    @classmethod
    def degraded(cls) -> "Availability":
        """Conservative defaults used when enrichment fails or times out."""
        return cls(
            is_open=False,
            capacity=0,
            wait_minutes=0,
            next_open_timestamp=None,
            availability_unknown=True,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_open": self.is_open,
            "capacity": self.capacity,
            "wait_minutes": self.wait_minutes,
            "next_open_timestamp": (
                self.next_open_timestamp.isoformat() if self.next_open_timestamp else None
            ),
            "availability_unknown": self.availability_unknown,
        }


# ---------------------------------------------------------------------------
# Core estimates
# ---------------------------------------------------------------------------


def weekday_key(moment: datetime) -> str:
    return WEEKDAYS[moment.weekday()]


def is_currently_open(hours_for_today: DayHours | None, current_hour: int) -> bool:
    """
    Hour-granularity open check with inclusive bounds.

    A window whose close hour is earlier than its open hour (22:00–06:00)
    wraps past midnight.
    """
    if hours_for_today is None or not hours_for_today.is_open:
        return False

    open_hour = hours_for_today.open_hour
    close_hour = hours_for_today.close_hour
    if open_hour is None or close_hour is None:
        return False

    if close_hour < open_hour:
        return current_hour >= open_hour or current_hour <= close_hour
    return open_hour <= current_hour <= close_hour


def wait_minutes(current_orders: int | None, config: EstimatorConfig = DEFAULT_ESTIMATOR) -> int:
    """Linear queueing model: 15 min per queued order, capped at 2 hours."""
    orders = max(0, current_orders or 0)
    return int(min(orders * config.minutes_per_queued_order, config.max_wait_minutes))


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def estimated_fulfillment_minutes(
    distance_km: float,
    avg_processing_minutes: float | None,
    urgency: str = "normal",
    current_orders: int | None = 0,
    config: EstimatorConfig = DEFAULT_ESTIMATOR,
) -> int:
    """
    Processing time scaled by urgency, plus travel at 2 min/km, plus the
    current queue wait.
    """
    processing = (
        config.default_processing_minutes
        if avg_processing_minutes is None
        else avg_processing_minutes
    )
    multiplier = config.urgency_multipliers.get(urgency, 1.0)
    adjusted = processing * multiplier
    travel = distance_km * config.travel_minutes_per_km
    queue = wait_minutes(current_orders, config)
    return max(0, _round_half_up(adjusted + travel + queue))


def next_open_timestamp(
    hours_table: dict[str, DayHours] | None,
    now: datetime,
) -> datetime | None:
    """
    Next opening time within the coming 7 days, starting today.

    Today is skipped if its opening time has already passed.  None means
    "unknown", not "never".
    """
    if not hours_table:
        return None

    for offset in range(7):
        day = now + timedelta(days=offset)
        hours = hours_table.get(weekday_key(day))
        if hours is None or not hours.is_open:
            continue
        hm = hours.open_hm
        if hm is None:
            continue
        candidate = day.replace(hour=hm[0], minute=hm[1], second=0, microsecond=0)
        if offset == 0 and candidate <= now:
            continue
        return candidate

    return None


def business_hours_today(pharmacy: Pharmacy, now: datetime) -> DayHours | None:
    return pharmacy.operating_hours.get(weekday_key(now))


def can_deliver(pharmacy: Pharmacy, distance_km: float) -> bool:
    """Delivery service offered, a radius configured, and the user inside it."""
    if not pharmacy.services.get("delivery") or not pharmacy.delivery_radius_km:
        return False
    return distance_km <= pharmacy.delivery_radius_km


def check_availability(
    pharmacy: Pharmacy,
    now: datetime,
    config: EstimatorConfig = DEFAULT_ESTIMATOR,
) -> Availability:
    """Compose open state, capacity, queue wait and next opening time."""
    capacity = (
        config.default_capacity if pharmacy.current_capacity is None else pharmacy.current_capacity
    )
    return Availability(
        is_open=is_currently_open(business_hours_today(pharmacy, now), now.hour),
        capacity=capacity,
        wait_minutes=wait_minutes(pharmacy.current_orders, config),
        next_open_timestamp=next_open_timestamp(pharmacy.operating_hours, now),
    )
