"""Pharmacy discovery endpoints (nearby, score, medication, recommendations, coverage, notify, zones)."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from agent_03_discovery_engine.algorithms.errors import (
    InvalidInput,
    NotFound,
    RetrievalFailed,
)
from agent_03_discovery_engine.algorithms.geodesy import BoundingBox, Coordinate

from ..discovery import DiscoveryService, build_service
from ..helpers import DEFAULT_LIMIT, DEFAULT_SEARCH_RADIUS_KM, split_csv
from ..models import (
    CalculateScoreRequest,
    MedicationAvailabilityRequest,
    NotifyPrescriptionRequest,
)
from ..retrieval import DiscoveryFilter

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RetrievalFailed):
        logger.error("%s failed: %s", action, e)
        return HTTPException(status_code=502, detail=f"Pharmacy store unavailable: {e}")
    logger.exception("%s failed", action)
    return HTTPException(status_code=500, detail=str(e))


def _filter_from_query(
    services: str | None,
    medications: str | None,
    urgency: str,
    accepts_insurance: bool,
    has_delivery: bool,
    is_24_hours: bool,
    limit: int,
) -> DiscoveryFilter:
    return DiscoveryFilter(
        required_services=split_csv(services),
        medications=split_csv(medications),
        urgency=urgency,
        accepts_insurance=accepts_insurance,
        has_delivery=has_delivery,
        is_open_24_hours=is_24_hours,
        limit=limit,
    )


@router.get("/api/pharmacies/nearby")
def nearby_pharmacies(
    lat: float = Query(..., description="Latitude"),
    lon: float = Query(..., description="Longitude"),
    radius_km: float = Query(DEFAULT_SEARCH_RADIUS_KM, description="Search radius in km (1–100)"),
    limit: int = Query(DEFAULT_LIMIT, description="Max results (1–100)"),
    services: str | None = Query(None, description="Comma-separated required services"),
    medications: str | None = Query(None, description="Comma-separated medication names"),
    urgency: str = Query("normal", description="emergency, urgent, normal or routine"),
    accepts_insurance: bool = Query(False),
    has_delivery: bool = Query(False),
    is_24_hours: bool = Query(False),
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Ranked pharmacies near a location with live availability."""
    try:
        flt = _filter_from_query(
            services, medications, urgency, accepts_insurance, has_delivery, is_24_hours, limit
        )
        result = service.find_nearby(Coordinate(lat, lon), radius_km, flt)
    except Exception as e:
        raise _http_error(e, "Nearby search")

    body = result.to_dict()
    body.update({
        "center": {"latitude": lat, "longitude": lon},
        "radius_km": radius_km,
    })
    return body


@router.post("/api/pharmacies/calculate-score")
def calculate_score(
    body: CalculateScoreRequest,
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Score one pharmacy for a user location, with the itemised breakdown."""
    try:
        location = Coordinate(body.user_location.latitude, body.user_location.longitude)
        return service.score_pharmacy(body.pharmacy_id, location, body.required_services)
    except Exception as e:
        raise _http_error(e, "Score calculation")


@router.post("/api/pharmacies/check-medication-availability")
def check_medication_availability(
    body: MedicationAvailabilityRequest,
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Per-pharmacy medication availability, pharmacies with everything first."""
    try:
        reports = service.filter_by_medication(body.pharmacy_ids, body.medications)
    except Exception as e:
        raise _http_error(e, "Medication availability check")

    return {
        "count": len(reports),
        "total_medications_requested": len(body.medications),
        "data": [r.to_dict() for r in reports],
    }


@router.get("/api/pharmacies/recommendations")
def recommendations(
    user_id: str = Query(..., description="User whose history personalises the ranking"),
    lat: float = Query(..., description="Latitude"),
    lon: float = Query(..., description="Longitude"),
    limit: int = Query(DEFAULT_LIMIT, description="Max results (1–100)"),
    services: str | None = Query(None, description="Comma-separated required services"),
    urgency: str = Query("normal", description="emergency, urgent, normal or routine"),
    accepts_insurance: bool = Query(False),
    has_delivery: bool = Query(False),
    is_24_hours: bool = Query(False),
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Nearby pharmacies re-ranked by the user's completed-prescription history."""
    try:
        flt = _filter_from_query(
            services, None, urgency, accepts_insurance, has_delivery, is_24_hours, limit
        )
        result = service.get_recommendations(user_id, Coordinate(lat, lon), flt)
    except Exception as e:
        raise _http_error(e, "Recommendations")

    body = result.to_dict()
    body.update({
        "user_id": user_id,
        "center": {"latitude": lat, "longitude": lon},
    })
    return body


@router.get("/api/pharmacies/coverage-analysis")
def coverage_analysis(
    north: float = Query(..., description="North edge latitude"),
    south: float = Query(..., description="South edge latitude"),
    east: float = Query(..., description="East edge longitude"),
    west: float = Query(..., description="West edge longitude"),
    grid_cell_km: float = Query(1.0, description="Grid spacing in km"),
    max_distance_km: float = Query(5.0, description="Reach cutoff per cell in km"),
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Grid coverage of an area: which cells have pharmacies within reach."""
    try:
        box = BoundingBox(north=north, south=south, east=east, west=west)
        return service.analyze_coverage(box, grid_cell_km, max_distance_km)
    except Exception as e:
        raise _http_error(e, "Coverage analysis")


@router.post("/api/pharmacies/notify-prescription-request")
def notify_prescription_request(
    body: NotifyPrescriptionRequest,
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Notify candidate pharmacies of a new prescription request."""
    try:
        return service.notify_candidates(body.pharmacy_ids, body.prescription_request.model_dump())
    except Exception as e:
        raise _http_error(e, "Prescription request notification")


@router.get("/api/pharmacies/{pharmacy_id}/delivery-zones")
def pharmacy_delivery_zones(
    pharmacy_id: str,
    radii: str | None = Query(None, description="Comma-separated zone radii in km (default 5,10,15,20)"),
    service: DiscoveryService = Depends(build_service),
) -> dict[str, Any]:
    """Concentric delivery zones around a pharmacy with base fees and ETAs."""
    try:
        try:
            radii_km = [float(r) for r in split_csv(radii)]
        except ValueError:
            raise InvalidInput(f"radii must be comma-separated numbers, got {radii!r}")
        return service.delivery_zones(pharmacy_id, radii_km or None)
    except Exception as e:
        raise _http_error(e, "Delivery zones")
