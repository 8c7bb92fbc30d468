#!/usr/bin/env python3
"""
Pharmacy Discovery — API

Dual-mode FastAPI server:
  • Database mode — pharmacies, inventory and history from PostgreSQL
  • JSON fallback — the same data from sample-data/*.json when the DB is unavailable

Usage:
    uvicorn agent_05_discovery_api.src.app:app --reload --port 8000
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import db, helpers
from .routes import health, pharmacies

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Pharmacy Discovery",
    version="0.1.0",
    description="Geospatial pharmacy discovery, ranking and coverage analysis",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.server_started_at = datetime.now(timezone.utc)

app.include_router(health.router)
app.include_router(pharmacies.router)


@app.on_event("startup")
async def startup():
    app.state.server_started_at = datetime.now(timezone.utc)
    # Always load JSON (fallback data)
    helpers.load_fallback_data()
    # Try to connect to DB (best-effort)
    if db.init_pool(maxconn=max(2, helpers.MAX_ENRICHMENT_WORKERS)):
        logger.info("Running in DATABASE mode")
        _ensure_schema()
    else:
        logger.info("Running in JSON FALLBACK mode")


def _ensure_schema():
    """Apply 001_discovery_schema.sql if the pharmacies table doesn't exist yet."""
    if not helpers.SCHEMA_SQL.exists():
        logger.warning("Schema file not found at %s", helpers.SCHEMA_SQL)
        return
    try:
        db.ensure_schema(helpers.SCHEMA_SQL)
    except Exception as e:
        logger.warning("Could not ensure discovery schema: %s", e)


@app.on_event("shutdown")
async def shutdown():
    db.close_pool()
