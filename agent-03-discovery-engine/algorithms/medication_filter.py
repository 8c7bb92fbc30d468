#!/usr/bin/env python3
"""
Pharmacy Discovery — Medication Availability Filter

Cross-references requested medication names against each pharmacy's
inventory snapshot.  Matching is a case-insensitive exact name lookup.
Pharmacies without inventory data are kept and reported as having nothing
available.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .records import InventoryLine


@dataclass
class MedicationAvailability:
    name: str
    available: bool
    stock_count: int
    price: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "available": self.available,
            "stock_count": self.stock_count,
            "price": self.price,
        }


@dataclass
class MedicationReport:
    pharmacy_id: str
    medications: list[MedicationAvailability] = field(default_factory=list)

    @property
    def available_count(self) -> int:
        return sum(1 for m in self.medications if m.available)

    @property
    def has_all_requested(self) -> bool:
        return all(m.available for m in self.medications)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pharmacy_id": self.pharmacy_id,
            "medication_availability": [m.to_dict() for m in self.medications],
            "has_all_medications": self.has_all_requested,
            "available_medications_count": self.available_count,
            "total_medications_requested": len(self.medications),
        }


def check_medication_availability(
    pharmacy_id: str,
    inventory: list[InventoryLine] | None,
    medications: list[str],
) -> MedicationReport:
    """Per-medication availability for one pharmacy, in request order."""
    by_name: dict[str, InventoryLine] = {}
    for line in inventory or []:
        # first line wins for duplicate names
        by_name.setdefault(line.medication_name.strip().lower(), line)

    report = MedicationReport(pharmacy_id=pharmacy_id)
    for name in medications:
        line = by_name.get(name.strip().lower())
        report.medications.append(MedicationAvailability(
            name=name,
            available=bool(line and line.current_stock > 0),
            stock_count=line.current_stock if line else 0,
            price=line.price if line else None,
        ))
    return report


def unavailable_report(pharmacy_id: str, medications: list[str]) -> MedicationReport:
    """Report used when a pharmacy's inventory could not be read."""
    return check_medication_availability(pharmacy_id, [], medications)


def sort_by_medication_availability(reports: list[MedicationReport]) -> list[MedicationReport]:
    """Pharmacies with every medication first, then by available count desc."""
    return sorted(reports, key=lambda r: (not r.has_all_requested, -r.available_count))
