from __future__ import annotations

import threading
import time
from pathlib import Path

from conftest import make_document, make_job
from lectern.infrastructure.db.sqlite import get_connection, initialize_schema


def test_connection_enables_wal_and_busy_timeout(tmp_path: Path) -> None:
    db_path = tmp_path / "lectern.db"
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        journal_mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
        busy_timeout = conn.execute("PRAGMA busy_timeout;").fetchone()[0]
        foreign_keys = conn.execute("PRAGMA foreign_keys;").fetchone()[0]

    assert str(journal_mode).lower() == "wal"
    assert int(busy_timeout) >= 30_000
    assert int(foreign_keys) == 1


def test_schema_initialization_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "lectern.db"
    initialize_schema(db_path)
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}

    assert {"documents", "ingestion_jobs", "chunks"} <= tables


def test_claim_waits_behind_a_held_write_lock(repos) -> None:
    document = make_document(repos.documents)
    job = make_job(repos.jobs, document.id)

    blocker = get_connection(repos.db_path)
    blocker.execute("BEGIN IMMEDIATE;")
    blocker.execute("UPDATE documents SET title = ? WHERE id = ?", ("Locked", document.id))

    claimed: list[object] = []
    errors: list[str] = []
    started = time.perf_counter()
    finished_at: list[float] = []

    def _claim() -> None:
        try:
            claimed.append(repos.jobs.claim_next())
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(str(exc))
        finally:
            finished_at.append(time.perf_counter())

    worker = threading.Thread(target=_claim)
    worker.start()
    time.sleep(0.25)
    assert worker.is_alive()
    blocker.commit()
    blocker.close()
    worker.join(timeout=5)

    assert errors == []
    assert finished_at and finished_at[0] - started >= 0.2
    assert len(claimed) == 1 and claimed[0] is not None
    assert claimed[0].id == job.id
    assert repos.documents.get_by_id(document.id).title == "Locked"
