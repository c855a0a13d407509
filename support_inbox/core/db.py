"""Database helpers for psycopg connections."""

from __future__ import annotations

import logging
from pathlib import Path

import psycopg

from .settings import get_settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"


def connect(database_url: str | None = None) -> psycopg.Connection:
    """Open a psycopg connection to ``database_url`` or ``DATABASE_URL``."""

    url = database_url or get_settings().database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")
    return psycopg.connect(url)


def ensure_schema(conn: psycopg.Connection, schema_sql_path: Path = SCHEMA_PATH) -> None:
    """Create the inbox tables if they do not exist yet.

    The schema file only uses ``IF NOT EXISTS`` statements, so this is safe
    to call on every start-up.
    """

    with conn.cursor() as cur:
        cur.execute(schema_sql_path.read_text(encoding="utf-8"))
    conn.commit()
    logger.info("Database schema ensured from %s", schema_sql_path.name)


__all__ = ["SCHEMA_PATH", "connect", "ensure_schema"]
