#!/usr/bin/env python3
"""
Pharmacy Discovery — End-to-End Demo

Runs the discovery engine on the sample Lagos data (JSON mode, no database):
  1. Nearby: ranked pharmacies around Yaba
  2. Medication: re-sort by stock of two common medications
  3. Recommendations: personalised for a user with prescription history
  4. Coverage: grid analysis over central Lagos

Usage:
    python sample-data/run_demo.py
"""

from __future__ import annotations

import importlib.util
import sys
from datetime import datetime
from pathlib import Path

# ---------------------------------------------------------------------------
# Bootstrap imports for hyphenated directories
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parent.parent


def _register_package(alias: str, pkg_path: Path):
    spec = importlib.util.spec_from_file_location(
        alias,
        pkg_path / "__init__.py",
        submodule_search_locations=[str(pkg_path)],
    )
    mod = importlib.util.module_from_spec(spec)
    sys.modules[alias] = mod
    spec.loader.exec_module(mod)
    return mod


_register_package("agent_03_discovery_engine", ROOT / "agent-03-discovery-engine")
_register_package("agent_05_discovery_api", ROOT / "agent-05-discovery-api")

from agent_03_discovery_engine.algorithms.geodesy import BoundingBox, Coordinate  # noqa: E402
from agent_05_discovery_api.src import helpers  # noqa: E402
from agent_05_discovery_api.src.discovery import DiscoveryService  # noqa: E402
from agent_05_discovery_api.src.retrieval import DiscoveryFilter  # noqa: E402
from agent_05_discovery_api.src.store import JsonPharmacyStore  # noqa: E402

YABA = Coordinate(6.5095, 3.3792)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def _print_ranked(items: list) -> None:
    for rank, item in enumerate(items, 1):
        avail = item.availability
        state = "open" if avail and avail.is_open else "closed"
        if avail and avail.availability_unknown:
            state = "unknown"
        print(
            f"  {rank:>2}. {item.pharmacy_score:>3}  {item.pharmacy.name:<38} "
            f"{item.to_dict()['distance_formatted']:>8}  ETA {item.estimated_fulfillment_minutes:>3} min  [{state}]"
        )


def step_nearby(service: DiscoveryService) -> None:
    print("=" * 72)
    print("STEP 1: NEARBY (Yaba, 25 km)")
    print("=" * 72)
    result = service.find_nearby(YABA, 25, DiscoveryFilter(required_services=["delivery"]))
    print(f"  Candidates : {result.total_candidates}  (partial={result.partial})")
    _print_ranked(result.pharmacies)
    print()


def step_medication(service: DiscoveryService) -> None:
    print("=" * 72)
    print("STEP 2: MEDICATION AVAILABILITY")
    print("=" * 72)
    meds = ["Amoxicillin 500mg", "Artemether/Lumefantrine"]
    result = service.find_nearby(YABA, 25, DiscoveryFilter(medications=meds))
    for item in result.pharmacies:
        have = item.extras["available_medications_count"]
        flag = "ALL" if item.extras["has_all_medications"] else f"{have}/{len(meds)}"
        print(f"  {flag:>4}  {item.pharmacy.name}")
    print()


def step_recommendations(service: DiscoveryService) -> None:
    print("=" * 72)
    print("STEP 3: RECOMMENDATIONS (user-ada)")
    print("=" * 72)
    result = service.get_recommendations("user-ada", YABA)
    for item in result.pharmacies:
        usage = item.extras["usage_history"]
        visits = usage["usage_count"] if usage else 0
        print(
            f"  {item.extras['recommendation_score']:>4}  (base {item.pharmacy_score:>3}, "
            f"visits {visits}, service match {item.extras['service_match']:>2})  {item.pharmacy.name}"
        )
    print()


def step_coverage(service: DiscoveryService) -> None:
    print("=" * 72)
    print("STEP 4: COVERAGE (central Lagos, 2 km cells, 3 km reach)")
    print("=" * 72)
    box = BoundingBox(north=6.62, south=6.42, east=3.52, west=3.34)
    report = service.analyze_coverage(box, 2.0, 3.0)
    stats = report["stats"]
    print(f"  Cells      : {stats['total_cells']}")
    print(f"  Covered    : {stats['covered_cells']} ({stats['coverage_percentage']}%)")
    print(f"  Underserved: {len(stats['underserved_cells'])}")
    print(f"  Well served: {len(stats['well_covered_cells'])}")
    print("=" * 72)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main():
    data_dir = ROOT / "sample-data"
    if not (data_dir / "pharmacies.json").exists():
        print(f"Sample data not found: {data_dir / 'pharmacies.json'}")
        sys.exit(1)

    helpers.load_fallback_data(data_dir)
    store = JsonPharmacyStore(
        helpers.get_pharmacy_records(),
        helpers.get_inventory_records(),
        helpers.get_prescription_records(),
    )
    service = DiscoveryService(
        store=store,
        history=store,
        profile=helpers.load_scoring_profile(),
        estimator=helpers.load_estimator_config(),
    )

    print()
    print(f"  Pharmacy Discovery — Demo ({datetime.now():%a %H:%M})")
    print()

    step_nearby(service)
    step_medication(service)
    step_recommendations(service)
    step_coverage(service)


if __name__ == "__main__":
    main()
