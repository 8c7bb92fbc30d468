"""Shared fixtures for the API test suite.

All tests run in JSON fallback mode (no database required).
We seed helpers._PHARMACIES / _INVENTORY / _PRESCRIPTIONS directly, and
patch db.is_available() → False.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Sample records (mirror the JSON fallback shape)
# ---------------------------------------------------------------------------

YABA = {"lat": 6.5095, "lon": 3.3792}

SAMPLE_PHARMACIES: list[dict] = [
    {
        "pharmacy_id": "ph-yaba-001",
        "name": "Yaba Community Pharmacy",
        "address": "12 Herbert Macaulay Way, Yaba",
        "latitude": 6.5095,
        "longitude": 3.3792,
        "services": {"prescription_fulfillment": True, "delivery": True, "consultation": True},
        "delivery_radius_km": 6,
        "accepts_insurance": True,
        "average_processing_minutes": 30,
        "average_rating": 4.5,
        "review_count": 120,
        "current_orders": 1,
        "current_capacity": 90,
        "notification_preferences": {"email": True},
    },
    {
        "pharmacy_id": "ph-surulere-002",
        "name": "Surulere Health Pharmacy",
        "address": "40 Adeniran Ogunsanya St, Surulere",
        "latitude": 6.4969,
        "longitude": 3.3481,
        "services": {"prescription_fulfillment": True, "vaccination": True},
        "is_24_hours": True,
        "average_processing_minutes": 45,
        "average_rating": 4.0,
        "review_count": 30,
    },
    {
        "pharmacy_id": "ph-ikeja-003",
        "name": "Ikeja Allen Pharmacy",
        "address": "10 Allen Avenue, Ikeja",
        "latitude": 6.6018,
        "longitude": 3.3515,
        "services": {"prescription_fulfillment": True},
        "average_rating": 3.5,
        "review_count": 8,
    },
    {
        "pharmacy_id": "ph-abuja-004",
        "name": "Wuse Market Pharmacy",
        "latitude": 9.0579,
        "longitude": 7.4951,
        "services": {"prescription_fulfillment": True},
        "average_rating": 5.0,
    },
    {
        "pharmacy_id": "ph-closed-005",
        "name": "Closed Pharmacy Yaba",
        "latitude": 6.51,
        "longitude": 3.38,
        "is_active": False,
    },
]

SAMPLE_INVENTORY: list[dict] = [
    {"pharmacy_id": "ph-yaba-001", "medication_name": "Amoxicillin 500mg", "current_stock": 40, "price": 1500},
    {"pharmacy_id": "ph-surulere-002", "medication_name": "Amoxicillin 500mg", "current_stock": 12, "price": 1450},
    {"pharmacy_id": "ph-surulere-002", "medication_name": "Artemether/Lumefantrine", "current_stock": 20, "price": 2500},
]

SAMPLE_PRESCRIPTIONS: list[dict] = [
    {"user_id": "user-ada", "pharmacy_id": "ph-ikeja-003", "status": "completed",
     "total_amount": 5000, "created_at": "2026-10-01T09:00:00+00:00"},
    {"user_id": "user-ada", "pharmacy_id": "ph-ikeja-003", "status": "completed",
     "total_amount": 3200, "created_at": "2026-10-08T09:00:00+00:00"},
    {"user_id": "user-ada", "pharmacy_id": "ph-ikeja-003", "status": "completed",
     "total_amount": 1800, "created_at": "2026-10-12T09:00:00+00:00"},
    {"user_id": "user-ada", "pharmacy_id": "ph-yaba-001", "status": "cancelled",
     "total_amount": 0, "created_at": "2026-10-13T09:00:00+00:00"},
]


# ---------------------------------------------------------------------------
# App fixture — seeds JSON fallback, patches DB away
# ---------------------------------------------------------------------------


@pytest.fixture()
def app():
    """FastAPI app running in JSON fallback mode (no DB)."""
    with (
        patch("agent_05_discovery_api.src.db.is_available", return_value=False),
        patch("agent_05_discovery_api.src.db.init_pool", return_value=False),
        patch("agent_05_discovery_api.src.db.close_pool"),
    ):
        from agent_05_discovery_api.src.app import app as _app
        from agent_05_discovery_api.src import helpers

        # Seed JSON fallback data
        helpers._PHARMACIES = list(SAMPLE_PHARMACIES)
        helpers._INVENTORY = list(SAMPLE_INVENTORY)
        helpers._PRESCRIPTIONS = list(SAMPLE_PRESCRIPTIONS)

        # Set server_started_at on app.state (normally done in startup event)
        _app.state.server_started_at = datetime(2026, 10, 14, 0, 0, 0, tzinfo=timezone.utc)

        yield _app

        # Cleanup
        _app.dependency_overrides.clear()
        helpers._PHARMACIES = []
        helpers._INVENTORY = []
        helpers._PRESCRIPTIONS = []


@pytest.fixture()
def client(app):
    """TestClient without startup events, so the seeded data is what gets served."""
    return TestClient(app, raise_server_exceptions=False)
