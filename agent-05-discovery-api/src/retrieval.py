"""
Pharmacy Discovery — Candidate Retrieval

Validates the request, asks the store for pharmacies inside the bounding box
of the search circle (equality filters first), then keeps only those whose
exact haversine distance is within the radius.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from agent_03_discovery_engine.algorithms.errors import (
    DiscoveryError,
    InvalidInput,
    RetrievalFailed,
)
from agent_03_discovery_engine.algorithms.geodesy import (
    Coordinate,
    bounding_box,
    haversine_km,
)
from agent_03_discovery_engine.algorithms.records import (
    URGENCY_LEVELS,
    Pharmacy,
    normalize_service,
)

from .helpers import DEFAULT_LIMIT, MAX_LIMIT, MAX_RADIUS_KM, MIN_RADIUS_KM
from .store import PharmacyStore, StoreCriteria

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryFilter:
    required_services: list[str] = field(default_factory=list)
    medications: list[str] = field(default_factory=list)
    urgency: str = "normal"
    accepts_insurance: bool = False
    has_delivery: bool = False
    is_open_24_hours: bool = False
    limit: int = DEFAULT_LIMIT

    def validate(self) -> "DiscoveryFilter":
        if not isinstance(self.limit, int) or not (1 <= self.limit <= MAX_LIMIT):
            raise InvalidInput(f"limit must be between 1 and {MAX_LIMIT}, got {self.limit!r}")
        if self.urgency not in URGENCY_LEVELS:
            raise InvalidInput(
                f"urgency must be one of {', '.join(URGENCY_LEVELS)}, got {self.urgency!r}"
            )
        self.required_services = [normalize_service(s) for s in self.required_services if s]
        self.medications = [m.strip() for m in self.medications if m and m.strip()]
        return self

    def store_criteria(self) -> StoreCriteria:
        return StoreCriteria(
            accepts_insurance=self.accepts_insurance,
            has_delivery=self.has_delivery,
            is_24_hours=self.is_open_24_hours,
        )


@dataclass
class Candidate:
    pharmacy: Pharmacy
    distance_km: float

    @property
    def available_services(self) -> list[str]:
        return self.pharmacy.available_services


def validate_location(location: Coordinate) -> Coordinate:
    if location is None or not location.is_valid():
        raise InvalidInput(f"invalid coordinates: {location!r}")
    return location


def validate_radius(radius_km: float) -> float:
    try:
        radius = float(radius_km)
    except (TypeError, ValueError):
        raise InvalidInput(f"radius must be numeric, got {radius_km!r}")
    if not math.isfinite(radius) or not (MIN_RADIUS_KM <= radius <= MAX_RADIUS_KM):
        raise InvalidInput(
            f"radius must be between {MIN_RADIUS_KM} and {MAX_RADIUS_KM} km, got {radius_km!r}"
        )
    return radius


def retrieve_candidates(
    store: PharmacyStore,
    location: Coordinate,
    radius_km: float,
    flt: DiscoveryFilter,
) -> list[Candidate]:
    """
    Every active, verified pharmacy within radius_km of location.

    Raises
    ------
    InvalidInput
        Before any store access, for bad coordinates, radius or filter.
    RetrievalFailed
        When the store query fails. Never retried here.
    """
    validate_location(location)
    radius = validate_radius(radius_km)
    flt.validate()

    box = bounding_box(location, radius)
    try:
        pharmacies = store.query_pharmacies(box, flt.store_criteria())
    except DiscoveryError:
        raise
    except Exception as e:
        logger.exception("Candidate retrieval failed")
        raise RetrievalFailed(f"candidate retrieval failed: {e}") from e

    candidates = []
    for pharmacy in pharmacies:
        dist = haversine_km(location, pharmacy.location)
        if dist <= radius:
            candidates.append(Candidate(pharmacy=pharmacy, distance_km=dist))

    logger.info(
        "Retrieved %d candidates within %.1f km of (%.5f, %.5f) (%d in box)",
        len(candidates), radius, location.latitude, location.longitude, len(pharmacies),
    )
    return candidates
