#!/usr/bin/env python3
"""
Pharmacy Discovery — Scoring Engine

Combines distance, rating, processing speed, service match and live
availability into a single pharmacy_score (0–100):

    score = 0.30 * distance + 0.25 * rating + 0.20 * speed
          + 0.15 * services + 0.10 * availability

Weights and decay thresholds come from an immutable ScoringProfile so an
alternate profile can be swapped in without touching the formula.

Dependencies:
    pip install pyyaml
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from .availability import Availability
from .geodesy import format_distance, format_estimated_time
from .records import DayHours, Pharmacy, normalize_service


# ---------------------------------------------------------------------------
# Defaults (overridden by discovery_profile.yaml at runtime)
# ---------------------------------------------------------------------------

_DEFAULT_WEIGHTS = {
    "distance": 0.30,
    "rating": 0.25,
    "speed": 0.20,
    "services": 0.15,
    "availability": 0.10,
}

_DEFAULT_THRESHOLDS = {
    "distance_decay_km": 25.0,
    "speed_decay_minutes": 120.0,
    "default_processing_minutes": 60.0,
    "default_capacity": 100.0,
    "queue_penalty_per_order": 10.0,
}

_WEIGHT_TOLERANCE = 1e-9


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringWeights:
    distance: float = _DEFAULT_WEIGHTS["distance"]
    rating: float = _DEFAULT_WEIGHTS["rating"]
    speed: float = _DEFAULT_WEIGHTS["speed"]
    services: float = _DEFAULT_WEIGHTS["services"]
    availability: float = _DEFAULT_WEIGHTS["availability"]

    def total(self) -> float:
        return self.distance + self.rating + self.speed + self.services + self.availability


@dataclass(frozen=True)
class ScoringProfile:
    """Immutable scoring configuration. Weights must sum to 1.0."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    distance_decay_km: float = _DEFAULT_THRESHOLDS["distance_decay_km"]
    speed_decay_minutes: float = _DEFAULT_THRESHOLDS["speed_decay_minutes"]
    default_processing_minutes: float = _DEFAULT_THRESHOLDS["default_processing_minutes"]
    default_capacity: float = _DEFAULT_THRESHOLDS["default_capacity"]
    queue_penalty_per_order: float = _DEFAULT_THRESHOLDS["queue_penalty_per_order"]

    def __post_init__(self):
        total = self.weights.total()
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"scoring weights must sum to 1.0, got {total:.6f}")
        if self.distance_decay_km <= 0 or self.speed_decay_minutes <= 0:
            raise ValueError("decay thresholds must be positive")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ScoringProfile":
        """Load the weights/thresholds sections of a profile YAML file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        weights = raw.get("weights", {})
        thresholds = raw.get("thresholds", {})

        return cls(
            weights=ScoringWeights(
                **{k: weights.get(k, default) for k, default in _DEFAULT_WEIGHTS.items()}
            ),
            **{k: thresholds.get(k, default) for k, default in _DEFAULT_THRESHOLDS.items()},
        )


DEFAULT_PROFILE = ScoringProfile()


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def distance_score(distance_km: float, profile: ScoringProfile = DEFAULT_PROFILE) -> float:
    """Linear decay from 100 at the door to 0 at the decay distance (25 km)."""
    return max(0.0, 100.0 - (distance_km / profile.distance_decay_km) * 100.0)


def rating_score(average_rating: float | None) -> float:
    """0–5 stars → 0–100."""
    return (average_rating or 0.0) * 20.0


def speed_score(
    avg_processing_minutes: float | None,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> float:
    processing = (
        profile.default_processing_minutes
        if avg_processing_minutes is None
        else avg_processing_minutes
    )
    return max(0.0, 100.0 - (processing / profile.speed_decay_minutes) * 100.0)


def services_score(
    pharmacy_services: dict[str, bool] | None,
    required_services: Iterable[str] | None,
) -> float:
    """Share of the required services this pharmacy offers; 100 when none requested."""
    required = [normalize_service(s) for s in (required_services or [])]
    if not required:
        return 100.0
    offered = pharmacy_services or {}
    matched = sum(1 for s in required if offered.get(s) is True)
    return matched / len(required) * 100.0


def availability_score(
    current_capacity: float | None,
    current_orders: int | None,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> float:
    capacity = profile.default_capacity if current_capacity is None else current_capacity
    queue = max(0.0, 100.0 - (current_orders or 0) * profile.queue_penalty_per_order)
    return (capacity + queue) / 2.0


def review_volume_bonus(review_count: int | None) -> float:
    """Informational reliability signal; not part of pharmacy_score."""
    return min((review_count or 0) / 10.0, 10.0)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Composite scorer
# ---------------------------------------------------------------------------


@dataclass
class ScoreBreakdown:
    distance_score: float
    rating_score: float
    speed_score: float
    services_score: float
    availability_score: float

    def to_dict(self) -> dict[str, float]:
        return {
            "distance_score": round(self.distance_score, 2),
            "rating_score": round(self.rating_score, 2),
            "speed_score": round(self.speed_score, 2),
            "services_score": round(self.services_score, 2),
            "availability_score": round(self.availability_score, 2),
        }


@dataclass
class ScoreResult:
    score: int
    breakdown: ScoreBreakdown
    review_volume_bonus: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
            "review_volume_bonus": round(self.review_volume_bonus, 2),
        }


def compute_score(
    pharmacy: Pharmacy,
    distance_km: float,
    required_services: Iterable[str] | None = None,
    profile: ScoringProfile | None = None,
) -> ScoreResult:
    """
    Score one pharmacy for a user at distance_km.

    Returns the rounded 0–100 score plus the itemised sub-scores.
    """
    if profile is None:
        profile = DEFAULT_PROFILE

    breakdown = ScoreBreakdown(
        distance_score=distance_score(distance_km, profile),
        rating_score=rating_score(pharmacy.average_rating),
        speed_score=speed_score(pharmacy.average_processing_minutes, profile),
        services_score=services_score(pharmacy.services, required_services),
        availability_score=availability_score(
            pharmacy.current_capacity, pharmacy.current_orders, profile
        ),
    )

    w = profile.weights
    total = (
        breakdown.distance_score * w.distance
        + breakdown.rating_score * w.rating
        + breakdown.speed_score * w.speed
        + breakdown.services_score * w.services
        + breakdown.availability_score * w.availability
    )

    return ScoreResult(
        score=min(100, max(0, _round_half_up(total))),
        breakdown=breakdown,
        review_volume_bonus=review_volume_bonus(pharmacy.review_count),
    )


# ---------------------------------------------------------------------------
# Scored candidate
# ---------------------------------------------------------------------------


@dataclass
class ScoredPharmacy:
    """A retrieval candidate with its score and (after enrichment) live state."""

    pharmacy: Pharmacy
    distance_km: float
    score: ScoreResult
    estimated_fulfillment_minutes: int = 0
    availability: Availability | None = None
    can_deliver: bool = False
    business_hours: DayHours | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def pharmacy_id(self) -> str:
        return self.pharmacy.pharmacy_id

    @property
    def pharmacy_score(self) -> int:
        return self.score.score

    def to_dict(self) -> dict[str, Any]:
        data = self.pharmacy.to_dict()
        data.update({
            "distance_km": round(self.distance_km, 2),
            "average_rating_rounded": round(self.pharmacy.average_rating, 1),
            "pharmacy_score": self.pharmacy_score,
            "score_breakdown": self.score.breakdown.to_dict(),
            "review_volume_bonus": round(self.score.review_volume_bonus, 2),
            "available_services": self.pharmacy.available_services,
            "estimated_fulfillment_minutes": self.estimated_fulfillment_minutes,
            "current_availability": self.availability.to_dict() if self.availability else None,
            "can_deliver": self.can_deliver,
            "business_hours": self.business_hours.to_dict() if self.business_hours else None,
            "distance_formatted": format_distance(self.distance_km),
            "estimated_time_formatted": format_estimated_time(self.estimated_fulfillment_minutes),
        })
        data.update(self.extras)
        return data


def ranking_key(item: ScoredPharmacy) -> tuple:
    """Score desc, distance asc, review count desc."""
    return (-item.pharmacy_score, item.distance_km, -item.pharmacy.review_count)


def rank_scored(items: list[ScoredPharmacy]) -> list[ScoredPharmacy]:
    """Return a new list in ranking order."""
    return sorted(items, key=ranking_key)
