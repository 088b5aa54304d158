from __future__ import annotations

import sqlite3
from pathlib import Path

from lectern.core.time import now_utc_iso
from lectern.domain.models.document import DOCUMENT_READY, DOCUMENT_STATUSES, Document
from lectern.domain.models.ingestion import IngestionJob
from lectern.infrastructure.db.repos.job_repo import insert_job_row
from lectern.infrastructure.db.sqlite import get_connection


def insert_document_row(conn: sqlite3.Connection, document: Document) -> None:
    conn.execute(
        """
        INSERT INTO documents (
            id,
            title,
            subject,
            education_level,
            specialization,
            year_number,
            edition,
            storage_key,
            checksum_sha256,
            source_url,
            original_filename,
            status,
            page_count,
            size_bytes,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            document.id,
            document.title,
            document.subject,
            document.education_level,
            document.specialization,
            document.year_number,
            document.edition,
            document.storage_key,
            document.checksum_sha256,
            document.source_url,
            document.original_filename,
            document.status,
            document.page_count,
            document.size_bytes,
            document.created_at,
            document.updated_at,
        ),
    )


class DocumentRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, document: Document) -> None:
        with get_connection(self.db_path) as conn:
            insert_document_row(conn, document)
            conn.commit()

    def insert_with_job(self, document: Document, job: IngestionJob) -> None:
        """Insert a document and its first job atomically; neither lands alone."""
        with get_connection(self.db_path) as conn:
            insert_document_row(conn, document)
            insert_job_row(conn, job)
            conn.commit()

    def get_by_id(self, document_id: str) -> Document | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return self._to_model(row) if row else None

    def get_by_checksum(self, checksum_sha256: str) -> Document | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE checksum_sha256 = ?",
                (checksum_sha256,),
            ).fetchone()
        return self._to_model(row) if row else None

    def get_by_source_url(self, source_url: str) -> Document | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE source_url = ?",
                (source_url,),
            ).fetchone()
        return self._to_model(row) if row else None

    def list(self, limit: int = 100, *, status: str | None = None) -> list[Document]:
        with get_connection(self.db_path) as conn:
            if status:
                rows = conn.execute(
                    """
                    SELECT * FROM documents
                    WHERE status = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (status, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM documents
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
        return [self._to_model(row) for row in rows]

    def list_ready_ids(self, *, education_level: str | None = None) -> list[str]:
        with get_connection(self.db_path) as conn:
            if education_level:
                rows = conn.execute(
                    "SELECT id FROM documents WHERE status = ? AND education_level = ?",
                    (DOCUMENT_READY, education_level),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT id FROM documents WHERE status = ?",
                    (DOCUMENT_READY,),
                ).fetchall()
        return [str(row["id"]) for row in rows]

    def get_titles(self, document_ids: list[str]) -> dict[str, str]:
        if not document_ids:
            return {}
        placeholders = ",".join("?" for _ in document_ids)
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT id, title FROM documents WHERE id IN ({placeholders})",
                tuple(document_ids),
            ).fetchall()
        return {str(row["id"]): str(row["title"]) for row in rows}

    def update_status(self, document_id: str, status: str) -> Document | None:
        if status not in DOCUMENT_STATUSES:
            raise ValueError(f"Unsupported document status: {status}")
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE documents SET status = ?, updated_at = ? WHERE id = ?",
                (status, now_utc_iso(), document_id),
            )
            conn.commit()
        return self.get_by_id(document_id)

    def update_page_count(self, document_id: str, page_count: int) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE documents SET page_count = ?, updated_at = ? WHERE id = ?",
                (page_count, now_utc_iso(), document_id),
            )
            conn.commit()

    def delete(self, document_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()
        return int(cursor.rowcount or 0) > 0

    def count_by_status(self) -> dict[str, int]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS c FROM documents GROUP BY status"
            ).fetchall()
        return {str(row["status"]): int(row["c"] or 0) for row in rows}

    @staticmethod
    def _to_model(row) -> Document:
        return Document(
            id=row["id"],
            title=row["title"],
            checksum_sha256=row["checksum_sha256"],
            storage_key=row["storage_key"],
            original_filename=row["original_filename"],
            size_bytes=int(row["size_bytes"] or 0),
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            subject=row["subject"],
            education_level=row["education_level"],
            specialization=row["specialization"],
            year_number=row["year_number"],
            edition=row["edition"] if "edition" in row.keys() else None,
            source_url=row["source_url"],
            page_count=row["page_count"],
        )
