#!/usr/bin/env python3
"""
Pharmacy Discovery — Typed Records

Store rows arrive as loosely-typed dicts (camelCase from document exports,
snake_case from PostgreSQL).  These dataclasses are the single place where
missing fields are turned into explicit optionals with documented defaults:

    average_processing_minutes  None → 60 min at scoring/ETA time
    current_capacity            None → 100 %
    current_orders              None → 0
    average_rating              missing → 0.0
    review_count                missing → 0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import InvalidInput
from .geodesy import Coordinate


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

SERVICE_NAMES = (
    "prescription_fulfillment",
    "consultation",
    "delivery",
    "vaccination",
    "compounding",
)

_SERVICE_ALIASES = {
    "prescriptionfulfillment": "prescription_fulfillment",
    "prescription_fulfillment": "prescription_fulfillment",
    "consultation": "consultation",
    "delivery": "delivery",
    "vaccination": "vaccination",
    "compounding": "compounding",
}

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

URGENCY_LEVELS = ("emergency", "urgent", "normal", "routine")


def normalize_service(name: str) -> str:
    """Map 'prescriptionFulfillment' / 'Prescription-Fulfillment' → 'prescription_fulfillment'."""
    key = (name or "").strip().replace("-", "_").replace(" ", "_").lower()
    if key in _SERVICE_ALIASES:
        return _SERVICE_ALIASES[key]
    compact = key.replace("_", "")
    return _SERVICE_ALIASES.get(compact, key)


def _weekday_key(day: str) -> str | None:
    key = (day or "").strip().lower()[:3]
    return key if key in WEEKDAYS else None


def _get(record: dict[str, Any], *keys: str, default=None):
    """First present, non-None value among several spellings of a field."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def _opt_float(value) -> float | None:
    return None if value is None else float(value)


def _opt_int(value) -> int | None:
    return None if value is None else int(value)


_TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "n", "0", "off", ""})


def _as_bool(value, default: bool = False) -> bool:
    """Flags from JSON exports may be real booleans, 0/1 or text like "false"."""
    if value is None:
        return default
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_STRINGS:
            return True
        if key in _FALSE_STRINGS:
            return False
        raise InvalidInput(f"not a boolean: {value!r}")
    return bool(value)


def _as_utc(value) -> datetime | None:
    """Parse ISO text and pin naive timestamps to UTC so they compare."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise InvalidInput(f"not a timestamp: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Operating hours
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DayHours:
    """Opening window for one weekday. Times are "HH:MM" strings."""
    is_open: bool
    open_time: str | None = None
    close_time: str | None = None

    @property
    def open_hour(self) -> int | None:
        return _hour(self.open_time)

    @property
    def close_hour(self) -> int | None:
        return _hour(self.close_time)

    @property
    def open_hm(self) -> tuple[int, int] | None:
        return _hour_minute(self.open_time)

    @classmethod
    def from_record(cls, raw: dict[str, Any] | None) -> "DayHours":
        if not raw:
            return cls(is_open=False)
        open_time = _get(raw, "open_time", "openTime", "open")
        close_time = _get(raw, "close_time", "closeTime", "close")
        is_open = _as_bool(_get(raw, "is_open", "isOpen"), default=open_time is not None)
        return cls(is_open=is_open, open_time=open_time, close_time=close_time)

    def to_dict(self) -> dict[str, Any]:
        return {"is_open": self.is_open, "open_time": self.open_time, "close_time": self.close_time}


def _hour_minute(value: str | None) -> tuple[int, int] | None:
    if not value:
        return None
    parts = str(value).strip().split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None
    return hour, minute


def _hour(value: str | None) -> int | None:
    hm = _hour_minute(value)
    return hm[0] if hm else None


def parse_operating_hours(raw) -> dict[str, DayHours]:
    """
    Normalise operating hours into {"mon": DayHours, ...}.

    Accepts a mapping keyed by weekday (full or abbreviated, any case) or a
    list of {"day": ..., "isOpen": ..., "openTime": ..., "closeTime": ...}.
    Days that are not listed are closed.
    """
    hours = {day: DayHours(is_open=False) for day in WEEKDAYS}
    if not raw:
        return hours

    if isinstance(raw, dict):
        items = raw.items()
    else:
        items = ((entry.get("day", ""), entry) for entry in raw if isinstance(entry, dict))

    for day, entry in items:
        key = _weekday_key(day)
        if key is not None:
            hours[key] = DayHours.from_record(entry)
    return hours


# ---------------------------------------------------------------------------
# Pharmacy
# ---------------------------------------------------------------------------


@dataclass
class Pharmacy:
    pharmacy_id: str
    name: str
    location: Coordinate
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    services: dict[str, bool] = field(default_factory=dict)
    operating_hours: dict[str, DayHours] = field(default_factory=dict)
    delivery_radius_km: float | None = None
    accepts_insurance: bool = False
    is_24_hours: bool = False
    average_processing_minutes: float | None = None
    average_rating: float = 0.0
    review_count: int = 0
    current_orders: int | None = None
    current_capacity: float | None = None
    is_active: bool = True
    is_verified: bool = True
    notification_preferences: dict[str, bool] = field(default_factory=dict)

    @property
    def available_services(self) -> list[str]:
        return [s for s in SERVICE_NAMES if self.services.get(s)]

    def offers(self, service: str) -> bool:
        return bool(self.services.get(normalize_service(service)))

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Pharmacy":
        """
        Build a Pharmacy from a store row.

        Location may be a GeoJSON point (``location.coordinates`` as
        [lon, lat]) or flat latitude/longitude fields.  Any field that
        cannot be converted raises InvalidInput naming the pharmacy.
        """
        pharmacy_id = _get(record, "pharmacy_id", "id", "_id")
        if pharmacy_id is None:
            raise InvalidInput("pharmacy record has no id")
        try:
            return cls._convert(str(pharmacy_id), record)
        except InvalidInput:
            raise
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidInput(f"pharmacy {pharmacy_id}: {e}") from e

    @classmethod
    def _convert(cls, pharmacy_id: str, record: dict[str, Any]) -> "Pharmacy":
        location = record.get("location")
        if isinstance(location, dict) and location.get("coordinates"):
            lon, lat = location["coordinates"][:2]
        else:
            lat = _get(record, "latitude", "lat")
            lon = _get(record, "longitude", "lon", "lng")
        coord = Coordinate.validated(lat, lon)

        raw_services = record.get("services") or {}
        if isinstance(raw_services, (list, tuple, set)):
            raw_services = {s: True for s in raw_services}
        services = {normalize_service(k): _as_bool(v) for k, v in raw_services.items()}

        rating = record.get("rating")
        if isinstance(rating, dict):
            average_rating = _get(rating, "average_rating", "averageRating", default=0.0)
            review_count = _get(rating, "total_reviews", "totalReviews", default=0)
        else:
            average_rating = _get(record, "average_rating", "averageRating", default=0.0)
            review_count = _get(record, "review_count", "totalReviews", "reviewCount", default=0)

        return cls(
            pharmacy_id=pharmacy_id,
            name=_get(record, "name", "facility_name", default=""),
            location=coord,
            address=_get(record, "address", "address_line"),
            phone=record.get("phone"),
            email=record.get("email"),
            services=services,
            operating_hours=parse_operating_hours(_get(record, "operating_hours", "operatingHours")),
            delivery_radius_km=_opt_float(_get(record, "delivery_radius_km", "deliveryRadius")),
            accepts_insurance=_as_bool(_get(record, "accepts_insurance", "acceptsInsurance")),
            is_24_hours=_as_bool(_get(record, "is_24_hours", "is24Hours")),
            average_processing_minutes=_opt_float(
                _get(record, "average_processing_minutes", "averageProcessingTime")
            ),
            average_rating=float(average_rating),
            review_count=int(review_count),
            current_orders=_opt_int(_get(record, "current_orders", "currentOrders")),
            current_capacity=_opt_float(_get(record, "current_capacity", "currentCapacity")),
            is_active=_as_bool(_get(record, "is_active", "isActive"), default=True),
            is_verified=_as_bool(_get(record, "is_verified", "isVerified"), default=True),
            notification_preferences={
                channel: _as_bool(enabled)
                for channel, enabled in dict(
                    _get(record, "notification_preferences", "notificationPreferences", default={})
                ).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pharmacy_id": self.pharmacy_id,
            "name": self.name,
            "address": self.address,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "phone": self.phone,
            "email": self.email,
            "services": dict(self.services),
            "operating_hours": {day: h.to_dict() for day, h in self.operating_hours.items()},
            "delivery_radius_km": self.delivery_radius_km,
            "accepts_insurance": self.accepts_insurance,
            "is_24_hours": self.is_24_hours,
            "average_processing_minutes": self.average_processing_minutes,
            "average_rating": self.average_rating,
            "review_count": self.review_count,
        }


# ---------------------------------------------------------------------------
# Inventory and history snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryLine:
    pharmacy_id: str
    medication_name: str
    current_stock: int = 0
    price: float | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "InventoryLine":
        medication = record.get("medication")
        if isinstance(medication, dict):
            name = medication.get("name", "")
        else:
            name = _get(record, "medication_name", "medicationName", "name", default="")
        pharmacy_id = str(_get(record, "pharmacy_id", "pharmacy", default=""))
        try:
            return cls(
                pharmacy_id=pharmacy_id,
                medication_name=name,
                current_stock=int(_get(record, "current_stock", "currentStock", default=0)),
                price=_opt_float(record.get("price")),
            )
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"inventory line {pharmacy_id}/{name}: {e}") from e


@dataclass(frozen=True)
class PrescriptionRecord:
    """A completed prescription from the user's history."""
    pharmacy_id: str | None
    pharmacy_name: str | None
    pharmacy_services: dict[str, bool]
    total_amount: float
    created_at: datetime | None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "PrescriptionRecord":
        assigned = record.get("assigned_pharmacy") or record.get("assignedPharmacy")
        if isinstance(assigned, dict):
            pharmacy_id = _get(assigned, "pharmacy_id", "id", "_id")
            name = assigned.get("name")
            services = assigned.get("services") or {}
        else:
            pharmacy_id = assigned if assigned is not None else record.get("pharmacy_id")
            name = record.get("pharmacy_name")
            services = record.get("pharmacy_services") or {}

        try:
            return cls(
                pharmacy_id=str(pharmacy_id) if pharmacy_id is not None else None,
                pharmacy_name=name,
                pharmacy_services={normalize_service(k): _as_bool(v) for k, v in services.items()},
                total_amount=float(_get(record, "total_amount", "totalAmount", default=0.0)),
                created_at=_as_utc(_get(record, "created_at", "createdAt")),
            )
        except InvalidInput:
            raise
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidInput(f"prescription for pharmacy {pharmacy_id}: {e}") from e
