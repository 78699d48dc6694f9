# src/pricestats/storage/repo.py
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone

import pandas as pd


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def log_event(conn: sqlite3.Connection, event_type: str, payload: dict | None = None) -> None:
    conn.execute(
        "INSERT INTO events (ts_utc, event_type, payload) VALUES (?, ?, ?)",
        (utc_now_iso(), event_type, json.dumps(payload) if payload is not None else None),
    )
    conn.commit()


def get_events(conn: sqlite3.Connection, limit: int = 50) -> pd.DataFrame:
    """Derniers événements (plus récent en premier)."""
    q = """
    SELECT ts_utc, event_type, payload
    FROM events
    ORDER BY id DESC
    LIMIT ?
    """
    return pd.read_sql_query(q, conn, params=(int(limit),))
