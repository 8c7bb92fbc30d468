"""Pharmacy Discovery — Ranking Algorithms."""

from .errors import (
    DiscoveryError,
    EnrichmentDegraded,
    InvalidInput,
    NotFound,
    RetrievalFailed,
)
from .geodesy import (
    BoundingBox,
    Coordinate,
    GridCell,
    bearing_degrees,
    bounding_box,
    center_of_mass,
    coverage_grid,
    delivery_zones,
    haversine_km,
)
from .records import (
    DayHours,
    InventoryLine,
    Pharmacy,
    PrescriptionRecord,
)
from .availability import (
    Availability,
    EstimatorConfig,
    check_availability,
    estimated_fulfillment_minutes,
    next_open_timestamp,
    wait_minutes,
)
from .scoring import (
    ScoredPharmacy,
    ScoreResult,
    ScoringProfile,
    compute_score,
    rank_scored,
)
from .recommendation import (
    UsageRecord,
    analyze_usage,
    rank_recommendations,
)
from .medication_filter import (
    MedicationReport,
    check_medication_availability,
    sort_by_medication_availability,
)
from .coverage import (
    CoverageStats,
    analyze_coverage,
)

__all__ = [
    "DiscoveryError",
    "EnrichmentDegraded",
    "InvalidInput",
    "NotFound",
    "RetrievalFailed",
    "BoundingBox",
    "Coordinate",
    "GridCell",
    "bearing_degrees",
    "bounding_box",
    "center_of_mass",
    "coverage_grid",
    "delivery_zones",
    "haversine_km",
    "DayHours",
    "InventoryLine",
    "Pharmacy",
    "PrescriptionRecord",
    "Availability",
    "EstimatorConfig",
    "check_availability",
    "estimated_fulfillment_minutes",
    "next_open_timestamp",
    "wait_minutes",
    "ScoredPharmacy",
    "ScoreResult",
    "ScoringProfile",
    "compute_score",
    "rank_scored",
    "UsageRecord",
    "analyze_usage",
    "rank_recommendations",
    "MedicationReport",
    "check_medication_availability",
    "sort_by_medication_availability",
    "CoverageStats",
    "analyze_coverage",
]
