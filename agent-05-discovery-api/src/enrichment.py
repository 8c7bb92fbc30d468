"""
Pharmacy Discovery — Bounded Parallel Enrichment

Per-candidate work that touches the store (live snapshot + availability +
detailed ETA, inventory lookups, notification dispatch) runs on a
ThreadPoolExecutor capped at DISCOVERY_MAX_ENRICHMENT_WORKERS.  A request
deadline (DISCOVERY_ENRICHMENT_TIMEOUT_S) bounds the whole batch:

    - a failing item is logged as EnrichmentDegraded and gets defaults
    - items still running at the deadline are cancelled, get defaults,
      and the batch is flagged partial
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Sequence

from agent_03_discovery_engine.algorithms.availability import (
    DEFAULT_ESTIMATOR,
    Availability,
    EstimatorConfig,
    check_availability,
    estimated_fulfillment_minutes,
)
from agent_03_discovery_engine.algorithms.errors import EnrichmentDegraded
from agent_03_discovery_engine.algorithms.scoring import ScoredPharmacy

from .helpers import ENRICHMENT_TIMEOUT_S, MAX_ENRICHMENT_WORKERS
from .store import PharmacyStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic bounded fan-out
# ---------------------------------------------------------------------------


@dataclass
class BatchOutcome:
    """Per-item results of bounded_map, aligned with the input order."""
    results: list[Any]
    errors: dict[int, BaseException] = field(default_factory=dict)
    timed_out: list[int] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.timed_out)


def bounded_map(
    fn: Callable[[Any], Any],
    items: Sequence[Any],
    max_workers: int = MAX_ENRICHMENT_WORKERS,
    timeout_s: float | None = ENRICHMENT_TIMEOUT_S,
) -> BatchOutcome:
    """
    Apply fn to every item on at most max_workers threads.

    Never raises for item failures: exceptions are collected in ``errors``
    and unfinished items (deadline hit) are listed in ``timed_out``.
    """
    outcome = BatchOutcome(results=[None] * len(items))
    if not items:
        return outcome

    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(items))),
        thread_name_prefix="discovery-enrich",
    )
    futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
    try:
        done, not_done = wait(futures, timeout=timeout_s)
    finally:
        # don't block the request on stragglers
        executor.shutdown(wait=False, cancel_futures=True)

    for future in done:
        index = futures[future]
        exc = future.exception()
        if exc is not None:
            outcome.errors[index] = exc
        else:
            outcome.results[index] = future.result()

    for future in not_done:
        future.cancel()
    outcome.timed_out = sorted(futures[f] for f in not_done)

    if outcome.timed_out:
        logger.warning(
            "Enrichment deadline of %ss hit: %d/%d items unfinished",
            timeout_s, len(outcome.timed_out), len(items),
        )
    return outcome


# ---------------------------------------------------------------------------
# Availability enrichment
# ---------------------------------------------------------------------------


@dataclass
class EnrichmentOutcome:
    partial: bool = False
    degraded_count: int = 0


def enrich_candidates(
    items: list[ScoredPharmacy],
    store: PharmacyStore,
    now: datetime,
    urgency: str = "normal",
    config: EstimatorConfig = DEFAULT_ESTIMATOR,
    max_workers: int = MAX_ENRICHMENT_WORKERS,
    timeout_s: float | None = ENRICHMENT_TIMEOUT_S,
) -> EnrichmentOutcome:
    """
    Attach live availability and a detailed ETA to each item in place.

    Degraded items keep their record-based ETA and get
    Availability.degraded() (availability_unknown = True).
    """

    def _enrich_one(item: ScoredPharmacy) -> tuple[Availability, int]:
        try:
            snapshot = store.get_pharmacy(item.pharmacy_id)
        except Exception as e:
            raise EnrichmentDegraded(item.pharmacy_id, f"snapshot fetch failed: {e}") from e
        if snapshot is None:
            raise EnrichmentDegraded(item.pharmacy_id, "pharmacy no longer in store")

        availability = check_availability(snapshot, now, config)
        eta = estimated_fulfillment_minutes(
            item.distance_km,
            snapshot.average_processing_minutes,
            urgency,
            snapshot.current_orders,
            config,
        )
        return availability, eta

    outcome = bounded_map(_enrich_one, items, max_workers, timeout_s)

    degraded = 0
    for index, item in enumerate(items):
        if index in outcome.errors or index in outcome.timed_out:
            err = outcome.errors.get(index)
            if err is not None and not isinstance(err, EnrichmentDegraded):
                err = EnrichmentDegraded(item.pharmacy_id, repr(err))
            logger.warning("%s", err or EnrichmentDegraded(item.pharmacy_id, "timed out"))
            item.availability = Availability.degraded()
            degraded += 1
            continue

        availability, eta = outcome.results[index]
        item.availability = availability
        item.estimated_fulfillment_minutes = eta

    return EnrichmentOutcome(partial=outcome.partial, degraded_count=degraded)
