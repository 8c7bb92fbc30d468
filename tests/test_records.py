"""Tests for agent-03-discovery-engine — typed pharmacy records."""

from datetime import datetime, timezone

import pytest

from agent_03_discovery_engine.algorithms.errors import InvalidInput
from agent_03_discovery_engine.algorithms.records import (
    DayHours,
    InventoryLine,
    Pharmacy,
    PrescriptionRecord,
    normalize_service,
    parse_operating_hours,
)


class TestNormalizeService:
    @pytest.mark.parametrize("raw", ["prescriptionFulfillment", "Prescription-Fulfillment", "prescription_fulfillment"])
    def test_spellings(self, raw):
        assert normalize_service(raw) == "prescription_fulfillment"

    def test_unknown_passes_through(self):
        assert normalize_service("Aromatherapy") == "aromatherapy"


class TestParseOperatingHours:
    def test_missing_days_are_closed(self):
        hours = parse_operating_hours({"monday": {"isOpen": True, "openTime": "08:00", "closeTime": "18:00"}})
        assert hours["mon"] == DayHours(True, "08:00", "18:00")
        assert hours["sun"] == DayHours(False)
        assert len(hours) == 7

    def test_list_form(self):
        hours = parse_operating_hours([{"day": "Tuesday", "isOpen": True, "openTime": "07:30", "closeTime": "12:00"}])
        assert hours["tue"].open_hm == (7, 30)
        assert hours["tue"].close_hour == 12

    def test_text_flag_false(self):
        hours = parse_operating_hours({"monday": {"isOpen": "false", "openTime": "08:00", "closeTime": "18:00"}})
        assert hours["mon"].is_open is False


class TestPharmacyFromRecord:
    def test_snake_case_row(self):
        pharmacy = Pharmacy.from_record({
            "id": 42,
            "name": "Row Pharmacy",
            "latitude": 6.5,
            "longitude": 3.4,
            "services": {"delivery": True, "consultation": False},
            "average_rating": 4.1,
            "review_count": 12,
            "delivery_radius_km": 7,
        })
        assert pharmacy.pharmacy_id == "42"
        assert pharmacy.location.latitude == 6.5
        assert pharmacy.available_services == ["delivery"]
        assert pharmacy.delivery_radius_km == 7.0
        assert pharmacy.is_active and pharmacy.is_verified

    def test_document_shape(self):
        pharmacy = Pharmacy.from_record({
            "_id": "doc-1",
            "name": "Doc Pharmacy",
            "location": {"type": "Point", "coordinates": [3.4, 6.5]},
            "services": {"prescriptionFulfillment": True},
            "rating": {"averageRating": 3.5, "totalReviews": 7},
            "averageProcessingTime": 0,
            "acceptsInsurance": True,
        })
        assert pharmacy.location.latitude == 6.5
        assert pharmacy.location.longitude == 3.4
        assert pharmacy.offers("prescriptionFulfillment")
        assert pharmacy.average_rating == 3.5
        assert pharmacy.review_count == 7
        assert pharmacy.average_processing_minutes == 0.0
        assert pharmacy.accepts_insurance

    def test_optional_fields_stay_none(self):
        pharmacy = Pharmacy.from_record({"id": "x", "latitude": 1, "longitude": 1})
        assert pharmacy.average_processing_minutes is None
        assert pharmacy.current_orders is None
        assert pharmacy.current_capacity is None

    def test_missing_id_raises(self):
        with pytest.raises(InvalidInput):
            Pharmacy.from_record({"latitude": 1, "longitude": 1})

    def test_bad_coordinates_raise(self):
        with pytest.raises(InvalidInput):
            Pharmacy.from_record({"id": "x", "latitude": None, "longitude": None})

    @pytest.mark.parametrize("field", ["average_rating", "review_count", "current_orders", "delivery_radius_km"])
    def test_unconvertible_number_raises_invalid_input(self, field):
        with pytest.raises(InvalidInput, match="pharmacy x"):
            Pharmacy.from_record({"id": "x", "latitude": 1, "longitude": 1, field: "n/a"})

    def test_text_flags(self):
        pharmacy = Pharmacy.from_record({
            "id": "x",
            "latitude": 1,
            "longitude": 1,
            "is_active": "false",
            "isVerified": "0",
            "accepts_insurance": "Yes",
            "is_24_hours": "off",
            "services": {"delivery": "false", "consultation": "true"},
            "notification_preferences": {"email": "true", "sms": "no"},
        })
        assert pharmacy.is_active is False
        assert pharmacy.is_verified is False
        assert pharmacy.accepts_insurance is True
        assert pharmacy.is_24_hours is False
        assert pharmacy.available_services == ["consultation"]
        assert pharmacy.notification_preferences == {"email": True, "sms": False}

    def test_unrecognised_flag_text_raises(self):
        with pytest.raises(InvalidInput):
            Pharmacy.from_record({"id": "x", "latitude": 1, "longitude": 1, "is_active": "maybe"})


class TestSnapshots:
    def test_inventory_line(self):
        line = InventoryLine.from_record({"pharmacy": "p1", "medication": {"name": "Amoxicillin"}, "currentStock": 4})
        assert line.pharmacy_id == "p1"
        assert line.medication_name == "Amoxicillin"
        assert line.current_stock == 4
        assert line.price is None

    def test_prescription_with_assigned_pharmacy(self):
        rx = PrescriptionRecord.from_record({
            "assignedPharmacy": {"_id": "p1", "name": "One", "services": {"delivery": True}},
            "totalAmount": 12.5,
            "createdAt": "2026-10-01T09:00:00Z",
        })
        assert rx.pharmacy_id == "p1"
        assert rx.pharmacy_services == {"delivery": True}
        assert rx.created_at == datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)

    def test_inventory_bad_stock_raises_invalid_input(self):
        with pytest.raises(InvalidInput):
            InventoryLine.from_record({"pharmacy_id": "p1", "medication_name": "Zinc", "current_stock": "lots"})

    def test_naive_timestamp_pinned_to_utc(self):
        rx = PrescriptionRecord.from_record({"pharmacy_id": "p1", "created_at": "2026-10-01T09:00:00"})
        assert rx.created_at.tzinfo is not None
        assert rx.created_at == datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)

    def test_offset_timestamp_converted_to_utc(self):
        rx = PrescriptionRecord.from_record({"pharmacy_id": "p1", "created_at": "2026-10-01T10:00:00+01:00"})
        assert rx.created_at.utcoffset().total_seconds() == 0
        assert rx.created_at.hour == 9

    def test_datetime_object_accepted(self):
        rx = PrescriptionRecord.from_record({"pharmacy_id": "p1", "created_at": datetime(2026, 10, 1, 9, 0)})
        assert rx.created_at == datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)

    def test_bad_timestamp_raises_invalid_input(self):
        with pytest.raises(InvalidInput):
            PrescriptionRecord.from_record({"pharmacy_id": "p1", "created_at": "last tuesday"})
