#!/usr/bin/env python3
"""
Pharmacy Discovery — Recommendation Ranker

Re-weights base-scored candidates using the user's completed-prescription
history:

    recommendation_score = base_score + usage_count * 10 + service_match_bonus

where service_match_bonus (0–20) rewards pharmacies offering the services
the user's past pharmacies offered, weighted by how often they occurred.
An empty history leaves every candidate at its base score.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .records import PrescriptionRecord
from .scoring import ScoredPharmacy


USAGE_BOOST_PER_VISIT = 10
SERVICE_MATCH_MAX_BONUS = 20.0
DEFAULT_TOP_N = 20


@dataclass
class UsageRecord:
    pharmacy_id: str
    pharmacy_name: str | None
    usage_count: int
    last_used: datetime | None
    total_value: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "pharmacy_id": self.pharmacy_id,
            "pharmacy_name": self.pharmacy_name,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "total_value": round(self.total_value, 2),
        }


def analyze_usage(history: list[PrescriptionRecord]) -> list[UsageRecord]:
    """Aggregate history per pharmacy, most used first."""
    usage: dict[str, UsageRecord] = {}

    for rx in history:
        if not rx.pharmacy_id:
            continue
        rec = usage.get(rx.pharmacy_id)
        if rec is None:
            rec = usage[rx.pharmacy_id] = UsageRecord(
                pharmacy_id=rx.pharmacy_id,
                pharmacy_name=rx.pharmacy_name,
                usage_count=0,
                last_used=rx.created_at,
                total_value=0.0,
            )
        rec.usage_count += 1
        rec.total_value += rx.total_amount or 0.0
        if rx.created_at is not None and (rec.last_used is None or rx.created_at > rec.last_used):
            rec.last_used = rx.created_at

    return sorted(usage.values(), key=lambda r: r.usage_count, reverse=True)


def service_preferences(history: list[PrescriptionRecord]) -> Counter:
    """How many history entries had a pharmacy offering each service."""
    prefs: Counter = Counter()
    for rx in history:
        for service, offered in rx.pharmacy_services.items():
            if offered:
                prefs[service] += 1
    return prefs


def service_match_bonus(
    pharmacy_services: dict[str, bool] | None,
    preferences: Counter | dict[str, int],
) -> float:
    if not preferences:
        return 0.0

    total_weight = sum(preferences.values())
    if total_weight <= 0:
        return 0.0

    offered = pharmacy_services or {}
    matched_weight = sum(w for service, w in preferences.items() if offered.get(service))
    return matched_weight / total_weight * SERVICE_MATCH_MAX_BONUS


def rank_recommendations(
    candidates: list[ScoredPharmacy],
    history: list[PrescriptionRecord],
    top_n: int = DEFAULT_TOP_N,
) -> list[ScoredPharmacy]:
    """
    Attach recommendation fields to each candidate and return the top_n by
    recommendation_score (ties: base score desc, then distance asc).
    """
    usage_by_id = {u.pharmacy_id: u for u in analyze_usage(history)}
    prefs = service_preferences(history)

    for item in candidates:
        usage = usage_by_id.get(item.pharmacy_id)
        usage_count = usage.usage_count if usage else 0
        bonus = service_match_bonus(item.pharmacy.services, prefs)
        score = item.pharmacy_score + usage_count * USAGE_BOOST_PER_VISIT + bonus

        item.extras.update({
            "recommendation_score": int(score + 0.5),
            "is_frequently_used": usage is not None,
            "usage_history": usage.to_dict() if usage else None,
            "service_match": int(bonus + 0.5),
        })

    ranked = sorted(
        candidates,
        key=lambda i: (-i.extras["recommendation_score"], -i.pharmacy_score, i.distance_km),
    )
    return ranked[:top_n]
