"""
Pharmacy Discovery — Orchestration

DiscoveryService wires the pure ranking algorithms to the store, history
and notification collaborators.  Discovery runs in explicit stages:

    validate → retrieve (filters, box, haversine) → score → sort + limit
    → bounded enrichment → medication filter (re-sort) → recommendations

The service is request-scoped and holds no mutable state of its own.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

from agent_03_discovery_engine.algorithms.availability import (
    EstimatorConfig,
    business_hours_today,
    can_deliver,
    estimated_fulfillment_minutes,
)
from agent_03_discovery_engine.algorithms.coverage import analyze_coverage
from agent_03_discovery_engine.algorithms.errors import (
    DiscoveryError,
    InvalidInput,
    NotFound,
    RetrievalFailed,
)
from agent_03_discovery_engine.algorithms.geodesy import (
    DEFAULT_DELIVERY_RADII_KM,
    BoundingBox,
    Coordinate,
    coverage_grid,
    delivery_zones,
    haversine_km,
)
from agent_03_discovery_engine.algorithms.medication_filter import (
    MedicationReport,
    check_medication_availability,
    sort_by_medication_availability,
    unavailable_report,
)
from agent_03_discovery_engine.algorithms.recommendation import analyze_usage, rank_recommendations
from agent_03_discovery_engine.algorithms.records import Pharmacy
from agent_03_discovery_engine.algorithms.scoring import (
    ScoredPharmacy,
    ScoringProfile,
    compute_score,
    rank_scored,
)

from . import db, helpers
from .enrichment import bounded_map, enrich_candidates
from .notifications import (
    STATUS_FAILED,
    STATUS_NOT_FOUND,
    STATUS_SENT,
    LoggingDispatcher,
    NotificationDispatcher,
    WebhookDispatcher,
    build_notification,
    notify_pharmacy,
)
from .retrieval import Candidate, DiscoveryFilter, retrieve_candidates, validate_location
from .store import (
    JsonPharmacyStore,
    PharmacyStore,
    PostgresPharmacyStore,
    PrescriptionHistory,
    StoreCriteria,
)

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    pharmacies: list[ScoredPharmacy] = field(default_factory=list)
    partial: bool = False
    degraded_count: int = 0
    total_candidates: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": len(self.pharmacies),
            "total_candidates": self.total_candidates,
            "partial": self.partial,
            "degraded_count": self.degraded_count,
            "data": [p.to_dict() for p in self.pharmacies],
        }


def _call_store(fn: Callable, *args):
    """Run a store read, surfacing any non-engine failure as RetrievalFailed."""
    try:
        return fn(*args)
    except DiscoveryError:
        raise
    except Exception as e:
        logger.exception("Store call %s failed", getattr(fn, "__name__", fn))
        raise RetrievalFailed(str(e)) from e


class DiscoveryService:
    def __init__(
        self,
        store: PharmacyStore,
        history: PrescriptionHistory | None = None,
        dispatcher: NotificationDispatcher | None = None,
        profile: ScoringProfile | None = None,
        estimator: EstimatorConfig | None = None,
        max_workers: int = helpers.MAX_ENRICHMENT_WORKERS,
        timeout_s: float | None = helpers.ENRICHMENT_TIMEOUT_S,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.history = history
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.profile = profile or ScoringProfile()
        self.estimator = estimator or EstimatorConfig()
        self.max_workers = max_workers
        self.timeout_s = timeout_s
        self.clock = clock

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _score_candidate(self, candidate: Candidate, flt: DiscoveryFilter, now: datetime) -> ScoredPharmacy:
        pharmacy = candidate.pharmacy
        # record-based ETA; enrichment replaces it with the live estimate
        basic_eta = estimated_fulfillment_minutes(
            candidate.distance_km,
            pharmacy.average_processing_minutes,
            flt.urgency,
            0,
            self.estimator,
        )
        return ScoredPharmacy(
            pharmacy=pharmacy,
            distance_km=candidate.distance_km,
            score=compute_score(pharmacy, candidate.distance_km, flt.required_services, self.profile),
            estimated_fulfillment_minutes=basic_eta,
            can_deliver=can_deliver(pharmacy, candidate.distance_km),
            business_hours=business_hours_today(pharmacy, now),
        )

    def _deadline(self) -> float | None:
        return None if self.timeout_s is None else time.monotonic() + self.timeout_s

    @staticmethod
    def _remaining(deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def find_nearby(
        self,
        location: Coordinate,
        radius_km: float = helpers.DEFAULT_SEARCH_RADIUS_KM,
        flt: DiscoveryFilter | None = None,
    ) -> DiscoveryResult:
        """Ranked pharmacies within radius_km of location."""
        return self._discover(location, radius_km, flt or DiscoveryFilter())

    def _discover(
        self,
        location: Coordinate,
        radius_km: float,
        flt: DiscoveryFilter,
        keep_ids: frozenset[str] = frozenset(),
    ) -> DiscoveryResult:
        """
        Retrieve, score, limit and enrich.  Candidates in ``keep_ids`` survive
        the ``flt.limit`` cut (appended after the top slice).  Enrichment and
        inventory lookups share one deadline of ``timeout_s``.
        """
        deadline = self._deadline()
        candidates = retrieve_candidates(self.store, location, radius_km, flt)

        now = self.clock()
        ranked = rank_scored([self._score_candidate(c, flt, now) for c in candidates])
        scored = ranked[: flt.limit]
        scored.extend(item for item in ranked[flt.limit:] if item.pharmacy_id in keep_ids)

        outcome = enrich_candidates(
            scored,
            self.store,
            now,
            flt.urgency,
            self.estimator,
            self.max_workers,
            self._remaining(deadline),
        )
        result = DiscoveryResult(
            pharmacies=scored,
            partial=outcome.partial,
            degraded_count=outcome.degraded_count,
            total_candidates=len(candidates),
        )

        if flt.medications:
            self._apply_medication_filter(result, flt.medications, self._remaining(deadline))

        logger.info(
            "Discovery returned %d of %d candidates (partial=%s, degraded=%d)",
            len(result.pharmacies), result.total_candidates, result.partial, result.degraded_count,
        )
        return result

    # ------------------------------------------------------------------
    # Medication availability
    # ------------------------------------------------------------------

    def _medication_reports(
        self, pharmacy_ids: list[str], medications: list[str], timeout_s: float | None
    ) -> tuple[list[MedicationReport], bool]:
        def _lookup(pharmacy_id: str) -> MedicationReport:
            inventory = self.store.get_inventory(pharmacy_id)
            return check_medication_availability(pharmacy_id, inventory, medications)

        outcome = bounded_map(_lookup, pharmacy_ids, self.max_workers, timeout_s)
        reports = []
        for index, pharmacy_id in enumerate(pharmacy_ids):
            report = outcome.results[index]
            if report is None:
                err = outcome.errors.get(index)
                logger.warning(
                    "Inventory lookup degraded for %s: %s",
                    pharmacy_id, err if err is not None else "timed out",
                )
                report = unavailable_report(pharmacy_id, medications)
            reports.append(report)
        return reports, outcome.partial

    def _apply_medication_filter(
        self, result: DiscoveryResult, medications: list[str], timeout_s: float | None
    ) -> None:
        items = result.pharmacies
        reports, partial = self._medication_reports(
            [i.pharmacy_id for i in items], medications, timeout_s
        )

        by_id = {item.pharmacy_id: item for item in items}
        ordered = []
        for report in sort_by_medication_availability(reports):
            item = by_id[report.pharmacy_id]
            data = report.to_dict()
            item.extras.update({
                "medication_availability": data["medication_availability"],
                "has_all_medications": data["has_all_medications"],
                "available_medications_count": data["available_medications_count"],
            })
            ordered.append(item)

        result.pharmacies = ordered
        result.partial = result.partial or partial

    def filter_by_medication(
        self, pharmacy_ids: Iterable[str], medication_names: Iterable[str]
    ) -> list[MedicationReport]:
        """Per-pharmacy availability reports, all-available first."""
        ids = list(dict.fromkeys(str(p) for p in pharmacy_ids if p))
        medications = [m.strip() for m in medication_names if m and m.strip()]
        if not ids:
            raise InvalidInput("at least one pharmacy id is required")
        if not medications:
            return [MedicationReport(pharmacy_id=pid) for pid in ids]

        reports, _ = self._medication_reports(ids, medications, self.timeout_s)
        return sort_by_medication_availability(reports)

    # ------------------------------------------------------------------
    # Scoring a single pharmacy
    # ------------------------------------------------------------------

    def _get_pharmacy(self, pharmacy_id: str) -> Pharmacy:
        pharmacy = _call_store(self.store.get_pharmacy, pharmacy_id)
        if pharmacy is None:
            raise NotFound(pharmacy_id)
        return pharmacy

    def score_pharmacy(
        self,
        pharmacy_id: str,
        user_location: Coordinate,
        required_services: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        validate_location(user_location)
        pharmacy = self._get_pharmacy(pharmacy_id)

        distance = haversine_km(user_location, pharmacy.location)
        result = compute_score(pharmacy, distance, list(required_services or []), self.profile)
        return {
            "pharmacy_id": pharmacy.pharmacy_id,
            "name": pharmacy.name,
            "pharmacy_score": result.score,
            "score_breakdown": result.breakdown.to_dict(),
            "review_volume_bonus": round(result.review_volume_bonus, 2),
            "distance_km": round(distance, 2),
            "can_deliver": can_deliver(pharmacy, distance),
        }

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def get_recommendations(
        self,
        user_id: str,
        location: Coordinate,
        flt: DiscoveryFilter | None = None,
    ) -> DiscoveryResult:
        """
        Nearby pharmacies (15 km) re-ranked by the user's last completed
        prescriptions.  Returns the top ``flt.limit`` (default 20).

        The pool is the best ``MAX_LIMIT`` candidates by score plus every
        in-radius pharmacy the user has used, so a visited pharmacy that
        scores low is still boosted.
        """
        if not user_id:
            raise InvalidInput("user id is required")
        flt = flt or DiscoveryFilter()
        top_n = flt.limit
        flt.validate()

        history = []
        if self.history is not None:
            history = _call_store(
                self.history.get_completed_prescriptions, user_id, helpers.HISTORY_LIMIT
            )

        search = DiscoveryFilter(
            required_services=list(flt.required_services),
            medications=list(flt.medications),
            urgency=flt.urgency,
            accepts_insurance=flt.accepts_insurance,
            has_delivery=flt.has_delivery,
            is_open_24_hours=flt.is_open_24_hours,
            limit=helpers.MAX_LIMIT,
        )
        visited = frozenset(u.pharmacy_id for u in analyze_usage(history))
        result = self._discover(location, helpers.RECOMMENDATION_RADIUS_KM, search, keep_ids=visited)
        result.pharmacies = rank_recommendations(result.pharmacies, history, top_n)

        logger.info(
            "Recommendations for user %s: %d pharmacies, %d from history",
            user_id, len(result.pharmacies), len(visited),
        )
        return result

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    def analyze_coverage(
        self,
        box: BoundingBox,
        grid_cell_km: float,
        max_distance_km: float,
    ) -> dict[str, Any]:
        if not (isinstance(max_distance_km, (int, float)) and math.isfinite(max_distance_km)
                and max_distance_km > 0):
            raise InvalidInput(f"max distance must be a positive number, got {max_distance_km!r}")
        # validates the box and cell size before touching the store
        grid = coverage_grid(box, grid_cell_km)

        search_box = box.expanded(max_distance_km)
        pharmacies = _call_store(self.store.query_pharmacies, search_box, StoreCriteria())
        locations = [(p.pharmacy_id, p.location) for p in pharmacies]

        grid, stats = analyze_coverage(box, grid_cell_km, locations, max_distance_km, grid=grid)
        return {
            "bounding_box": box.to_dict(),
            "grid_cell_km": grid_cell_km,
            "max_distance_km": max_distance_km,
            "grid": [c.to_dict() for c in grid],
            "stats": stats.to_dict(),
        }

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify_candidates(
        self, pharmacy_ids: Iterable[str], request_payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Send the prescription request notification to each pharmacy."""
        ids = list(dict.fromkeys(str(p) for p in pharmacy_ids if p))
        if not ids:
            raise InvalidInput("at least one pharmacy id is required")
        payload = build_notification(request_payload)

        def _notify(pharmacy_id: str) -> str:
            pharmacy = self.store.get_pharmacy(pharmacy_id)
            if pharmacy is None:
                return STATUS_NOT_FOUND
            return notify_pharmacy(self.dispatcher, pharmacy, payload)

        outcome = bounded_map(_notify, ids, self.max_workers, self.timeout_s)

        statuses = []
        for index, pharmacy_id in enumerate(ids):
            status = outcome.results[index]
            if status is None:
                err = outcome.errors.get(index)
                logger.warning(
                    "Notification to %s failed: %s", pharmacy_id, err if err is not None else "timed out"
                )
                status = STATUS_FAILED
            statuses.append({"pharmacy_id": pharmacy_id, "status": status})

        sent = sum(1 for s in statuses if s["status"] == STATUS_SENT)
        logger.info("Prescription request notified to %d/%d pharmacies", sent, len(ids))
        return {
            "sent_count": sent,
            "per_pharmacy_status": statuses,
            "notification": payload,
        }

    # ------------------------------------------------------------------
    # Delivery zones
    # ------------------------------------------------------------------

    def delivery_zones(
        self, pharmacy_id: str, radii_km: Iterable[float] | None = None
    ) -> dict[str, Any]:
        radii = tuple(radii_km) if radii_km else DEFAULT_DELIVERY_RADII_KM
        if any(not (isinstance(r, (int, float)) and math.isfinite(r) and r > 0) for r in radii):
            raise InvalidInput(f"delivery radii must be positive numbers, got {list(radii)}")
        pharmacy = self._get_pharmacy(pharmacy_id)
        return {
            "pharmacy_id": pharmacy.pharmacy_id,
            "name": pharmacy.name,
            "location": pharmacy.location.to_dict(),
            "delivery_radius_km": pharmacy.delivery_radius_km,
            "zones": delivery_zones(pharmacy.location, sorted(radii)),
        }


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_service() -> DiscoveryService:
    """Service for the current process mode: PostgreSQL if available, else JSON."""
    if db.is_available():
        store = PostgresPharmacyStore()
        history: PrescriptionHistory = store
    else:
        store = history = JsonPharmacyStore(
            helpers.get_pharmacy_records(),
            helpers.get_inventory_records(),
            helpers.get_prescription_records(),
        )

    if helpers.NOTIFY_WEBHOOK_URL:
        dispatcher: NotificationDispatcher = WebhookDispatcher(helpers.NOTIFY_WEBHOOK_URL)
    else:
        dispatcher = LoggingDispatcher()

    return DiscoveryService(
        store=store,
        history=history,
        dispatcher=dispatcher,
        profile=helpers.load_scoring_profile(),
        estimator=helpers.load_estimator_config(),
    )
