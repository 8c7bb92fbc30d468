"""Health check endpoint."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from .. import db
from ..helpers import get_inventory_records, get_pharmacy_records, iso

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
async def health(request: Request):
    """Reports mode, pharmacy count, version and DB latency."""
    mode = "database" if db.is_available() else "json_fallback"
    count = 0
    db_ok = False
    db_latency_ms: float | None = None

    if db.is_available():
        try:
            t0 = time.monotonic()
            row = db.fetch_one("SELECT count(*) AS count FROM pharmacies")
            count = row["count"] if row else 0
            db_latency_ms = round((time.monotonic() - t0) * 1000, 1)
            db_ok = True
        except Exception as e:
            logger.warning("Health check database query failed: %s", e)
            count = len(get_pharmacy_records())
            mode = "json_fallback"
    else:
        count = len(get_pharmacy_records())

    server_started_at = request.app.state.server_started_at
    uptime_seconds = round((datetime.now(timezone.utc) - server_started_at).total_seconds())

    return {
        "status": "healthy" if db_ok else "degraded",
        "mode": mode,
        "pharmacy_count": count,
        "inventory_lines": None if db_ok else len(get_inventory_records()),
        "version": request.app.version,
        "database_connected": db_ok,
        "started_at": iso(server_started_at),
        "uptime_seconds": uptime_seconds,
        "checks": {
            "database": {
                "status": "up" if db_ok else "down",
                "latency_ms": db_latency_ms,
            },
        },
    }
