# src/pricestats/storage/db.py
from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from .schema import SCHEMA_SQL


DEFAULT_DB_PATH = Path("data") / "pricestats.db"


def get_db_path() -> Path:
    env = os.getenv("PRICESTATS_DB_PATH")
    return Path(env) if env else DEFAULT_DB_PATH


def connect(db_path: Path | str | None = None) -> sqlite3.Connection:
    path = Path(db_path) if db_path is not None else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row  # permet d'accéder aux colonnes par nom
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Crée les tables si elles n'existent pas."""
    conn.executescript(SCHEMA_SQL)
    conn.commit()
