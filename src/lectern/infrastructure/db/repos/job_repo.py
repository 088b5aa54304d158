from __future__ import annotations

import sqlite3
from pathlib import Path

from lectern.core.time import now_utc_iso, utc_iso_seconds_ago
from lectern.domain.models.ingestion import (
    JOB_PAUSED,
    JOB_QUEUED,
    JOB_RUNNING,
    JOB_STATUSES,
    IngestionJob,
    JobProgressPatch,
)
from lectern.infrastructure.db.sqlite import get_connection


def insert_job_row(conn: sqlite3.Connection, job: IngestionJob) -> None:
    conn.execute(
        """
        INSERT INTO ingestion_jobs (
            id,
            document_id,
            status,
            total_pages,
            pages_done,
            total_chunks,
            chunks_done,
            next_chunk_index,
            next_page_to_process,
            error_message,
            last_heartbeat_at,
            started_at,
            completed_at,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            job.id,
            job.document_id,
            job.status,
            job.total_pages,
            job.pages_done,
            job.total_chunks,
            job.chunks_done,
            job.next_chunk_index,
            job.next_page_to_process,
            job.error_message,
            job.last_heartbeat_at,
            job.started_at,
            job.completed_at,
            job.created_at,
            job.updated_at,
        ),
    )


class JobRepo:
    """Durable ledger of ingestion jobs and their resumable progress."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, job: IngestionJob) -> None:
        with get_connection(self.db_path) as conn:
            insert_job_row(conn, job)
            conn.commit()

    def get_by_id(self, job_id: str) -> IngestionJob | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM ingestion_jobs WHERE id = ?", (job_id,)).fetchone()
        return self._to_model(row) if row else None

    def list(self, limit: int = 100, *, status: str | None = None) -> list[IngestionJob]:
        with get_connection(self.db_path) as conn:
            if status:
                rows = conn.execute(
                    """
                    SELECT * FROM ingestion_jobs
                    WHERE status = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (status, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM ingestion_jobs
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
        return [self._to_model(row) for row in rows]

    def list_for_document(self, document_id: str) -> list[IngestionJob]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM ingestion_jobs
                WHERE document_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (document_id,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS c FROM ingestion_jobs GROUP BY status"
            ).fetchall()
        counts = {status: 0 for status in sorted(JOB_STATUSES)}
        for row in rows:
            counts[str(row["status"])] = int(row["c"] or 0)
        return counts

    def claim_next(self) -> IngestionJob | None:
        """Move the oldest QUEUED job to RUNNING and return it, or ``None``.

        ``BEGIN IMMEDIATE`` takes the database write lock before the
        candidate is read, so concurrent claimers (threads or processes)
        serialize here. The ``status = 'QUEUED'`` guard on the UPDATE makes
        the transition a compare-and-swap: a caller that lost the race
        changes zero rows and gets ``None``.
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            candidate = conn.execute(
                """
                SELECT id FROM ingestion_jobs
                WHERE status = ?
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (JOB_QUEUED,),
            ).fetchone()
            if candidate is None:
                conn.rollback()
                return None
            now = now_utc_iso()
            cursor = conn.execute(
                """
                UPDATE ingestion_jobs
                SET status = ?,
                    started_at = ?,
                    last_heartbeat_at = ?,
                    updated_at = ?
                WHERE id = ?
                  AND status = ?
                """,
                (JOB_RUNNING, now, now, now, candidate["id"], JOB_QUEUED),
            )
            if int(cursor.rowcount or 0) != 1:
                conn.rollback()
                return None
            claimed = conn.execute(
                "SELECT * FROM ingestion_jobs WHERE id = ?",
                (candidate["id"],),
            ).fetchone()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return self._to_model(claimed) if claimed else None

    def update_progress(self, job_id: str, patch: JobProgressPatch) -> IngestionJob | None:
        changes = patch.changes()
        status = changes.get("status")
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Unsupported job status: {status}")
        assignments = [f"{column} = ?" for column in changes]
        assignments.append("updated_at = ?")
        params = [*changes.values(), now_utc_iso(), job_id]
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                f"UPDATE ingestion_jobs SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            conn.commit()
        if int(cursor.rowcount or 0) == 0:
            return None
        return self.get_by_id(job_id)

    def touch_heartbeat(self, job_id: str) -> None:
        self.update_progress(job_id, JobProgressPatch(last_heartbeat_at=now_utc_iso()))

    def mark_stalled(self, timeout_seconds: float) -> int:
        cutoff = utc_iso_seconds_ago(timeout_seconds)
        minutes = f"{timeout_seconds / 60:g}"
        now = now_utc_iso()
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE ingestion_jobs
                SET status = ?,
                    error_message = ?,
                    updated_at = ?
                WHERE status = ?
                  AND COALESCE(last_heartbeat_at, started_at, updated_at) < ?
                """,
                (
                    JOB_PAUSED,
                    f"Job timed out: no heartbeat for {minutes} minutes",
                    now,
                    JOB_RUNNING,
                    cutoff,
                ),
            )
            conn.commit()
        return int(cursor.rowcount or 0)

    def requeue(self, job_id: str) -> IngestionJob | None:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE ingestion_jobs
                SET status = ?,
                    error_message = NULL,
                    updated_at = ?
                WHERE id = ?
                  AND status IN ('PAUSED', 'FAILED')
                """,
                (JOB_QUEUED, now_utc_iso(), job_id),
            )
            conn.commit()
        if int(cursor.rowcount or 0) == 0:
            return None
        return self.get_by_id(job_id)

    @staticmethod
    def _to_model(row) -> IngestionJob:
        return IngestionJob(
            id=row["id"],
            document_id=row["document_id"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            total_pages=row["total_pages"],
            pages_done=int(row["pages_done"] or 0),
            total_chunks=row["total_chunks"],
            chunks_done=int(row["chunks_done"] or 0),
            next_chunk_index=int(row["next_chunk_index"] or 0),
            next_page_to_process=int(row["next_page_to_process"] or 0),
            error_message=row["error_message"],
            last_heartbeat_at=row["last_heartbeat_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )
