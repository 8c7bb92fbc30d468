"""
Pharmacy Discovery — PostgreSQL Access

A psycopg2 ThreadedConnectionPool shared by the request threads and the
enrichment workers.  Connection settings come from DISCOVERY_DB_* env vars.

If init_pool() cannot reach the server the pool stays unset, is_available()
returns False, and the API serves pharmacies, inventory and history from the
JSON files loaded by helpers.load_fallback_data.

Usage:
    from . import db

    if db.init_pool():
        rows = db.fetch_all("SELECT id, name FROM pharmacies WHERE is_active")
"""

from __future__ import annotations

import logging
import os

from psycopg2 import extras, pool

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Connection settings
# ---------------------------------------------------------------------------

DB_CONFIG = {
    "host": os.environ.get("DISCOVERY_DB_HOST", "localhost"),
    "port": int(os.environ.get("DISCOVERY_DB_PORT", "5432")),
    "dbname": os.environ.get("DISCOVERY_DB_NAME", "pharmacy_discovery"),
    "user": os.environ.get("DISCOVERY_DB_USER", "discovery"),
    "password": os.environ.get("DISCOVERY_DB_PASSWORD", "discovery_local_dev"),
}

_pool: pool.ThreadedConnectionPool | None = None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _probe(p: pool.ThreadedConnectionPool) -> None:
    conn = p.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
    finally:
        p.putconn(conn)


def init_pool(minconn: int = 2, maxconn: int = 20) -> bool:
    """
    Open the pool and run a probe query.

    Size maxconn to the enrichment worker bound so parallel snapshot reads
    don't queue for connections.  Returns False (JSON mode) on any error.
    """
    global _pool
    candidate = None
    try:
        candidate = pool.ThreadedConnectionPool(minconn, maxconn, **DB_CONFIG)
        _probe(candidate)
    except Exception as e:
        logger.warning("Database unavailable, serving JSON fallback data: %s", e)
        if candidate is not None:
            try:
                candidate.closeall()
            except Exception:
                logger.debug("closeall failed after probe error", exc_info=True)
        _pool = None
        return False

    _pool = candidate
    logger.info(
        "Database pool ready (%s@%s:%s/%s, max %d connections)",
        DB_CONFIG["user"], DB_CONFIG["host"], DB_CONFIG["port"], DB_CONFIG["dbname"], maxconn,
    )
    return True


def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    _pool.closeall()
    _pool = None
    logger.info("Database pool closed.")


def is_available() -> bool:
    return _pool is not None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class get_conn:
    """
    Borrow a pooled connection for the duration of a ``with`` block.

    The transaction is committed when the block exits cleanly and rolled
    back when it raises; the connection always goes back to the pool.
    """

    def __enter__(self):
        if _pool is None:
            raise RuntimeError("Database pool not initialized")
        self._pool = _pool
        self.conn = self._pool.getconn()
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self._pool.putconn(self.conn)
        return False


def fetch_all(sql: str, params: tuple | list = ()) -> list[dict]:
    """Execute a read and return the rows as plain dicts (RealDictCursor)."""
    with get_conn() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]


def fetch_one(sql: str, params: tuple | list = ()) -> dict | None:
    rows = fetch_all(sql, params)
    return rows[0] if rows else None


def ensure_schema(schema_path) -> bool:
    """Create the discovery tables unless ``pharmacies`` already exists.

    Returns True when the schema file was executed.
    """
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT to_regclass('public.pharmacies')")
            if cur.fetchone()[0] is not None:
                return False
            with open(schema_path, "r", encoding="utf-8") as f:
                cur.execute(f.read())
    logger.info("Applied discovery schema from %s", schema_path)
    return True
