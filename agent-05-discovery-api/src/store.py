"""
Pharmacy Discovery — Store Collaborators

The engine reads pharmacies, inventory snapshots and prescription history
through two small interfaces.  Two backends implement both:

    PostgresPharmacyStore   psycopg2 pool (db.py), RealDictCursor rows
    JsonPharmacyStore       in-memory records loaded by helpers.load_fallback_data

Equality filters (active, verified, insurance, delivery, 24h) are applied
before the latitude/longitude range predicate in both backends.  Any backend
failure surfaces as RetrievalFailed; neither backend retries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from agent_03_discovery_engine.algorithms.errors import InvalidInput, RetrievalFailed
from agent_03_discovery_engine.algorithms.geodesy import BoundingBox
from agent_03_discovery_engine.algorithms.records import (
    InventoryLine,
    Pharmacy,
    PrescriptionRecord,
)

from . import db

logger = logging.getLogger(__name__)

# Sort key for history rows without a timestamp (oldest possible)
_NEVER = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class StoreCriteria:
    """Equality filters pushed down to the store. False means "don't filter"."""
    active_only: bool = True
    verified_only: bool = True
    accepts_insurance: bool = False
    has_delivery: bool = False
    is_24_hours: bool = False


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class PharmacyStore(ABC):
    @abstractmethod
    def query_pharmacies(self, box: BoundingBox, criteria: StoreCriteria) -> list[Pharmacy]:
        """Pharmacies matching criteria whose coordinates fall inside box."""

    @abstractmethod
    def get_pharmacy(self, pharmacy_id: str) -> Pharmacy | None:
        """Current snapshot of one pharmacy, or None if the id is unknown."""

    @abstractmethod
    def get_inventory(self, pharmacy_id: str) -> list[InventoryLine]:
        ...


class PrescriptionHistory(ABC):
    @abstractmethod
    def get_completed_prescriptions(self, user_id: str, limit: int = 10) -> list[PrescriptionRecord]:
        """The user's most recent completed prescriptions, newest first."""


def _build_records(rows: list[dict[str, Any]], build, kind: str) -> list:
    """Convert store rows, skipping (and logging) rows that cannot be typed."""
    records = []
    for row in rows:
        try:
            records.append(build(row))
        except InvalidInput as e:
            logger.warning(
                "Skipping malformed %s row %s: %s",
                kind, row.get("pharmacy_id") or row.get("id"), e,
            )
    return records


def _build_pharmacies(rows: list[dict[str, Any]]) -> list[Pharmacy]:
    return _build_records(rows, Pharmacy.from_record, "pharmacy")


def _build_inventory(rows: list[dict[str, Any]]) -> list[InventoryLine]:
    return _build_records(rows, InventoryLine.from_record, "inventory")


def _build_history(rows: list[dict[str, Any]]) -> list[PrescriptionRecord]:
    return _build_records(rows, PrescriptionRecord.from_record, "prescription")


# ---------------------------------------------------------------------------
# PostgreSQL backend
# ---------------------------------------------------------------------------

_PHARMACY_COLUMNS = """
    id, name, address, phone, email, latitude, longitude, services,
    operating_hours, delivery_radius_km, accepts_insurance, is_24_hours,
    average_processing_minutes, average_rating, review_count,
    current_orders, current_capacity, is_active, is_verified,
    notification_preferences
"""


class PostgresPharmacyStore(PharmacyStore, PrescriptionHistory):
    """Reads from the tables defined in sql/001_discovery_schema.sql."""

    @staticmethod
    def build_query(box: BoundingBox, criteria: StoreCriteria) -> tuple[str, list]:
        """Return (sql, params) for a filtered bounding-box query."""
        where: list[str] = []
        params: list = []

        if criteria.active_only:
            where.append("is_active")
        if criteria.verified_only:
            where.append("is_verified")
        if criteria.accepts_insurance:
            where.append("accepts_insurance")
        if criteria.has_delivery:
            where.append("COALESCE((services->>'delivery')::boolean, false)")
        if criteria.is_24_hours:
            where.append("is_24_hours")

        where.append("latitude BETWEEN %s AND %s")
        params.extend([box.south, box.north])
        if box.crosses_antimeridian:
            where.append("(longitude >= %s OR longitude <= %s)")
        else:
            where.append("longitude BETWEEN %s AND %s")
        params.extend([box.west, box.east])

        sql = f"SELECT {_PHARMACY_COLUMNS} FROM pharmacies WHERE " + " AND ".join(where)
        return sql, params

    def query_pharmacies(self, box: BoundingBox, criteria: StoreCriteria) -> list[Pharmacy]:
        sql, params = self.build_query(box, criteria)
        try:
            rows = db.fetch_all(sql, params)
        except Exception as e:
            logger.error("Pharmacy range query failed: %s", e)
            raise RetrievalFailed(f"pharmacy query failed: {e}") from e
        return _build_pharmacies(rows)

    def get_pharmacy(self, pharmacy_id: str) -> Pharmacy | None:
        try:
            row = db.fetch_one(
                f"SELECT {_PHARMACY_COLUMNS} FROM pharmacies WHERE id = %s",
                (pharmacy_id,),
            )
        except Exception as e:
            raise RetrievalFailed(f"pharmacy lookup failed: {e}") from e
        if row is None:
            return None
        built = _build_pharmacies([row])
        return built[0] if built else None

    def get_inventory(self, pharmacy_id: str) -> list[InventoryLine]:
        try:
            rows = db.fetch_all(
                """
                SELECT pharmacy_id, medication_name, current_stock, price
                FROM inventory
                WHERE pharmacy_id = %s
                ORDER BY medication_name
                """,
                (pharmacy_id,),
            )
        except Exception as e:
            raise RetrievalFailed(f"inventory lookup failed: {e}") from e
        return _build_inventory(rows)

    def get_completed_prescriptions(self, user_id: str, limit: int = 10) -> list[PrescriptionRecord]:
        try:
            rows = db.fetch_all(
                """
                SELECT rx.pharmacy_id, p.name AS pharmacy_name,
                       p.services AS pharmacy_services,
                       rx.total_amount, rx.created_at
                FROM prescriptions rx
                LEFT JOIN pharmacies p ON p.id = rx.pharmacy_id
                WHERE rx.user_id = %s AND rx.status = 'completed'
                ORDER BY rx.created_at DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
        except Exception as e:
            raise RetrievalFailed(f"prescription history lookup failed: {e}") from e
        return _build_history(rows)


# ---------------------------------------------------------------------------
# JSON fallback backend
# ---------------------------------------------------------------------------


class JsonPharmacyStore(PharmacyStore, PrescriptionHistory):
    """In-memory store over raw JSON records (dual-mode fallback)."""

    def __init__(
        self,
        pharmacies: list[dict[str, Any]],
        inventory: list[dict[str, Any]] | None = None,
        prescriptions: list[dict[str, Any]] | None = None,
    ):
        self._pharmacies = _build_pharmacies(pharmacies)
        self._by_id = {p.pharmacy_id: p for p in self._pharmacies}
        self._inventory = _build_inventory(inventory or [])
        self._prescriptions = prescriptions or []

    @staticmethod
    def _matches(pharmacy: Pharmacy, criteria: StoreCriteria) -> bool:
        if criteria.active_only and not pharmacy.is_active:
            return False
        if criteria.verified_only and not pharmacy.is_verified:
            return False
        if criteria.accepts_insurance and not pharmacy.accepts_insurance:
            return False
        if criteria.has_delivery and not pharmacy.services.get("delivery"):
            return False
        if criteria.is_24_hours and not pharmacy.is_24_hours:
            return False
        return True

    def query_pharmacies(self, box: BoundingBox, criteria: StoreCriteria) -> list[Pharmacy]:
        filtered = [p for p in self._pharmacies if self._matches(p, criteria)]
        return [p for p in filtered if box.contains(p.location)]

    def get_pharmacy(self, pharmacy_id: str) -> Pharmacy | None:
        return self._by_id.get(str(pharmacy_id))

    def get_inventory(self, pharmacy_id: str) -> list[InventoryLine]:
        return [line for line in self._inventory if line.pharmacy_id == str(pharmacy_id)]

    def get_completed_prescriptions(self, user_id: str, limit: int = 10) -> list[PrescriptionRecord]:
        rows = []
        for row in self._prescriptions:
            if str(row.get("user_id", "")) != str(user_id) or row.get("status") != "completed":
                continue
            row = dict(row)
            pharmacy = self._by_id.get(str(row.get("pharmacy_id")))
            if pharmacy is not None:
                row.setdefault("pharmacy_name", pharmacy.name)
                row.setdefault("pharmacy_services", dict(pharmacy.services))
            rows.append(row)

        history = _build_history(rows)
        history.sort(key=lambda rx: rx.created_at or _NEVER, reverse=True)
        return history[:limit]
