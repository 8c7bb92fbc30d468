"""Tests for pharmacy discovery endpoints (nearby, score, medication, recommendations, coverage, notify, zones)."""

from __future__ import annotations

from agent_05_discovery_api.src.discovery import DiscoveryService, build_service
from agent_05_discovery_api.src.store import JsonPharmacyStore

from .conftest import SAMPLE_INVENTORY, SAMPLE_PHARMACIES, YABA


def _ids(resp):
    return [p["pharmacy_id"] for p in resp.json()["data"]]


class _UnreachableStore(JsonPharmacyStore):
    def query_pharmacies(self, box, criteria):
        raise ConnectionError("connection refused")


class _FlakySnapshotStore(JsonPharmacyStore):
    def get_pharmacy(self, pharmacy_id):
        if pharmacy_id == "ph-surulere-002":
            raise TimeoutError("snapshot read timed out")
        return super().get_pharmacy(pharmacy_id)


class TestNearby:
    """GET /api/pharmacies/nearby — ranked discovery."""

    def test_ranked_results(self, client):
        resp = client.get("/api/pharmacies/nearby", params=YABA)
        assert resp.status_code == 200
        data = resp.json()
        assert _ids(resp) == ["ph-yaba-001", "ph-surulere-002", "ph-ikeja-003"]
        assert data["count"] == 3
        assert data["partial"] is False
        assert data["radius_km"] == 25
        scores = [p["pharmacy_score"] for p in data["data"]]
        assert scores == sorted(scores, reverse=True)

    def test_result_shape(self, client):
        resp = client.get("/api/pharmacies/nearby", params=YABA)
        top = resp.json()["data"][0]
        assert top["pharmacy_score"] == 92
        assert top["distance_km"] == 0.0
        assert top["can_deliver"] is True
        assert set(top["score_breakdown"]) == {
            "distance_score", "rating_score", "speed_score", "services_score", "availability_score",
        }
        assert top["current_availability"]["availability_unknown"] is False
        assert top["current_availability"]["wait_minutes"] == 15
        assert top["available_services"] == ["prescription_fulfillment", "consultation", "delivery"]

    def test_inactive_and_distant_excluded(self, client):
        ids = _ids(client.get("/api/pharmacies/nearby", params=YABA))
        assert "ph-closed-005" not in ids
        assert "ph-abuja-004" not in ids

    def test_radius(self, client):
        resp = client.get("/api/pharmacies/nearby", params={**YABA, "radius_km": 5})
        assert _ids(resp) == ["ph-yaba-001", "ph-surulere-002"]

    def test_limit(self, client):
        resp = client.get("/api/pharmacies/nearby", params={**YABA, "limit": 1})
        assert resp.json()["count"] == 1
        assert resp.json()["total_candidates"] == 3

    def test_boolean_filters(self, client):
        resp = client.get("/api/pharmacies/nearby", params={**YABA, "accepts_insurance": "true"})
        assert _ids(resp) == ["ph-yaba-001"]
        resp = client.get("/api/pharmacies/nearby", params={**YABA, "is_24_hours": "true"})
        assert _ids(resp) == ["ph-surulere-002"]

    def test_services_lower_score_without_excluding(self, client):
        resp = client.get("/api/pharmacies/nearby", params={**YABA, "services": "vaccination"})
        data = resp.json()["data"]
        assert len(data) == 3
        by_id = {p["pharmacy_id"]: p for p in data}
        assert by_id["ph-surulere-002"]["score_breakdown"]["services_score"] == 100.0
        assert by_id["ph-yaba-001"]["score_breakdown"]["services_score"] == 0.0

    def test_medication_filter_reorders(self, client):
        resp = client.get(
            "/api/pharmacies/nearby",
            params={**YABA, "medications": "amoxicillin 500mg, Artemether/Lumefantrine"},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert _ids(resp) == ["ph-surulere-002", "ph-yaba-001", "ph-ikeja-003"]
        assert data[0]["has_all_medications"] is True
        assert data[1]["available_medications_count"] == 1
        assert data[2]["available_medications_count"] == 0

    def test_invalid_latitude(self, client):
        resp = client.get("/api/pharmacies/nearby", params={"lat": 95, "lon": 3.4})
        assert resp.status_code == 400

    def test_radius_out_of_range(self, client):
        assert client.get("/api/pharmacies/nearby", params={**YABA, "radius_km": 0.5}).status_code == 400
        assert client.get("/api/pharmacies/nearby", params={**YABA, "radius_km": 150}).status_code == 400

    def test_limit_out_of_range(self, client):
        assert client.get("/api/pharmacies/nearby", params={**YABA, "limit": 500}).status_code == 400

    def test_unknown_urgency(self, client):
        assert client.get("/api/pharmacies/nearby", params={**YABA, "urgency": "asap"}).status_code == 400

    def test_non_numeric_latitude(self, client):
        assert client.get("/api/pharmacies/nearby", params={"lat": "abc", "lon": 3.4}).status_code == 422

    def test_missing_coordinates(self, client):
        assert client.get("/api/pharmacies/nearby").status_code == 422

    def test_store_failure_is_502(self, app, client):
        app.dependency_overrides[build_service] = lambda: DiscoveryService(
            _UnreachableStore(SAMPLE_PHARMACIES)
        )
        resp = client.get("/api/pharmacies/nearby", params=YABA)
        assert resp.status_code == 502

    def test_degraded_enrichment_still_200(self, app, client):
        app.dependency_overrides[build_service] = lambda: DiscoveryService(
            _FlakySnapshotStore(SAMPLE_PHARMACIES, SAMPLE_INVENTORY)
        )
        resp = client.get("/api/pharmacies/nearby", params=YABA)
        assert resp.status_code == 200
        data = resp.json()
        assert data["degraded_count"] == 1
        by_id = {p["pharmacy_id"]: p for p in data["data"]}
        assert by_id["ph-surulere-002"]["current_availability"]["availability_unknown"] is True
        assert by_id["ph-yaba-001"]["current_availability"]["availability_unknown"] is False


class TestCalculateScore:
    """POST /api/pharmacies/calculate-score"""

    def test_breakdown(self, client):
        resp = client.post("/api/pharmacies/calculate-score", json={
            "pharmacy_id": "ph-yaba-001",
            "user_location": {"latitude": 6.5095, "longitude": 3.3792},
            "required_services": ["delivery", "vaccination"],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["pharmacy_id"] == "ph-yaba-001"
        assert data["score_breakdown"]["services_score"] == 50.0
        assert data["score_breakdown"]["distance_score"] == 100.0
        assert data["review_volume_bonus"] == 10.0
        assert data["can_deliver"] is True

    def test_unknown_pharmacy(self, client):
        resp = client.post("/api/pharmacies/calculate-score", json={
            "pharmacy_id": "ph-missing",
            "user_location": {"latitude": 6.5, "longitude": 3.4},
        })
        assert resp.status_code == 404

    def test_invalid_location(self, client):
        resp = client.post("/api/pharmacies/calculate-score", json={
            "pharmacy_id": "ph-yaba-001",
            "user_location": {"latitude": 6.5, "longitude": 200},
        })
        assert resp.status_code == 400

    def test_malformed_body(self, client):
        resp = client.post("/api/pharmacies/calculate-score", json={"pharmacy_id": "ph-yaba-001"})
        assert resp.status_code == 422


class TestMedicationAvailability:
    """POST /api/pharmacies/check-medication-availability"""

    def test_all_available_first(self, client):
        resp = client.post("/api/pharmacies/check-medication-availability", json={
            "pharmacy_ids": ["ph-ikeja-003", "ph-surulere-002"],
            "medications": ["AMOXICILLIN 500MG"],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_medications_requested"] == 1
        assert [r["pharmacy_id"] for r in data["data"]] == ["ph-surulere-002", "ph-ikeja-003"]
        med = data["data"][0]["medication_availability"][0]
        assert med["available"] is True
        assert med["stock_count"] == 12

    def test_no_medications_keeps_order(self, client):
        resp = client.post("/api/pharmacies/check-medication-availability", json={
            "pharmacy_ids": ["ph-ikeja-003", "ph-yaba-001"],
            "medications": [],
        })
        assert resp.status_code == 200
        assert [r["pharmacy_id"] for r in resp.json()["data"]] == ["ph-ikeja-003", "ph-yaba-001"]

    def test_empty_pharmacy_list(self, client):
        resp = client.post("/api/pharmacies/check-medication-availability", json={
            "pharmacy_ids": [],
            "medications": ["Amoxicillin 500mg"],
        })
        assert resp.status_code == 422


class TestRecommendations:
    """GET /api/pharmacies/recommendations"""

    def test_history_promotes_regular_pharmacy(self, client):
        resp = client.get("/api/pharmacies/recommendations", params={"user_id": "user-ada", **YABA})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user_id"] == "user-ada"
        top = data["data"][0]
        assert top["pharmacy_id"] == "ph-ikeja-003"
        assert top["is_frequently_used"] is True
        assert top["usage_history"]["usage_count"] == 3
        assert top["recommendation_score"] > top["pharmacy_score"]

    def test_new_user_gets_plain_ranking(self, client):
        resp = client.get("/api/pharmacies/recommendations", params={"user_id": "user-new", **YABA})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data[0]["pharmacy_id"] == "ph-yaba-001"
        assert all(p["recommendation_score"] == p["pharmacy_score"] for p in data)

    def test_requires_user(self, client):
        assert client.get("/api/pharmacies/recommendations", params=YABA).status_code == 422


class TestCoverageAnalysis:
    """GET /api/pharmacies/coverage-analysis"""

    def test_grid_and_stats(self, client):
        resp = client.get("/api/pharmacies/coverage-analysis", params={
            "north": 6.53, "south": 6.49, "east": 3.40, "west": 3.36,
            "grid_cell_km": 1, "max_distance_km": 5,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"]["total_cells"] == len(data["grid"])
        assert data["stats"]["covered_cells"] == data["stats"]["total_cells"]
        assert data["stats"]["coverage_percentage"] == 100.0
        assert {"cell_id", "latitude", "longitude", "status"} <= set(data["grid"][0])

    def test_inverted_box(self, client):
        resp = client.get("/api/pharmacies/coverage-analysis", params={
            "north": 6.40, "south": 6.60, "east": 3.40, "west": 3.30,
        })
        assert resp.status_code == 400

    def test_bad_cell_size(self, client):
        resp = client.get("/api/pharmacies/coverage-analysis", params={
            "north": 6.53, "south": 6.49, "east": 3.40, "west": 3.36, "grid_cell_km": 0,
        })
        assert resp.status_code == 400


class TestNotifyPrescriptionRequest:
    """POST /api/pharmacies/notify-prescription-request"""

    REQUEST = {
        "prescription_request_id": "rx-1001",
        "patient_id": "user-ada",
        "patient_name": "Ada",
        "urgency": "urgent",
        "medications": ["Amoxicillin 500mg"],
        "estimated_value": 1500,
    }

    def test_per_pharmacy_status(self, client):
        resp = client.post("/api/pharmacies/notify-prescription-request", json={
            "pharmacy_ids": ["ph-yaba-001", "ph-missing"],
            "prescription_request": self.REQUEST,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["sent_count"] == 1
        assert data["per_pharmacy_status"] == [
            {"pharmacy_id": "ph-yaba-001", "status": "sent"},
            {"pharmacy_id": "ph-missing", "status": "not_found"},
        ]
        assert data["notification"]["priority"] == "medium"

    def test_invalid_urgency(self, client):
        resp = client.post("/api/pharmacies/notify-prescription-request", json={
            "pharmacy_ids": ["ph-yaba-001"],
            "prescription_request": {**self.REQUEST, "urgency": "asap"},
        })
        assert resp.status_code == 422

    def test_missing_request(self, client):
        resp = client.post("/api/pharmacies/notify-prescription-request", json={
            "pharmacy_ids": ["ph-yaba-001"],
        })
        assert resp.status_code == 422


class TestDeliveryZones:
    """GET /api/pharmacies/{pharmacy_id}/delivery-zones"""

    def test_default_zones(self, client):
        resp = client.get("/api/pharmacies/ph-yaba-001/delivery-zones")
        assert resp.status_code == 200
        data = resp.json()
        assert [z["radius_km"] for z in data["zones"]] == [5.0, 10.0, 15.0, 20.0]
        assert [z["base_fee"] for z in data["zones"]] == [2.5, 5.0, 7.5, 10.0]
        assert data["delivery_radius_km"] == 6.0

    def test_custom_radii(self, client):
        resp = client.get("/api/pharmacies/ph-yaba-001/delivery-zones", params={"radii": "8,3"})
        assert [z["radius_km"] for z in resp.json()["zones"]] == [3.0, 8.0]

    def test_bad_radii(self, client):
        resp = client.get("/api/pharmacies/ph-yaba-001/delivery-zones", params={"radii": "3,abc"})
        assert resp.status_code == 400

    def test_unknown_pharmacy(self, client):
        assert client.get("/api/pharmacies/ph-missing/delivery-zones").status_code == 404
