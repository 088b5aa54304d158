from __future__ import annotations

import sqlite3
from pathlib import Path

from lectern.core.config import read_float_env, read_int_env

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000


def default_schema_path() -> Path:
    return Path(__file__).resolve().parent / "schema.sql"


def _sqlite_connect_timeout_seconds() -> float:
    return read_float_env("LECTERN_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS)


def _sqlite_busy_timeout_ms() -> int:
    return read_int_env("LECTERN_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS)


def _configure_connection(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute(f"PRAGMA busy_timeout = {_sqlite_busy_timeout_ms()};")


def get_connection(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=_sqlite_connect_timeout_seconds())
    conn.row_factory = sqlite3.Row
    _configure_connection(conn)
    return conn


def initialize_schema(db_path: Path, schema_path: Path | None = None) -> None:
    schema = schema_path or default_schema_path()
    with get_connection(db_path) as conn:
        conn.executescript(schema.read_text(encoding="utf-8"))
        _apply_lightweight_migrations(conn)
        conn.commit()


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row["name"] == column for row in rows)


def _apply_lightweight_migrations(conn: sqlite3.Connection) -> None:
    # Databases created before catalog imports carried edition metadata.
    if not _column_exists(conn, "documents", "edition"):
        conn.execute("ALTER TABLE documents ADD COLUMN edition TEXT")
