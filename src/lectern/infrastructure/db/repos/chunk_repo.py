from __future__ import annotations

from pathlib import Path

from lectern.domain.models.chunk import Chunk
from lectern.infrastructure.db.sqlite import get_connection


class ChunkRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_chunks(self, chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        with get_connection(self.db_path) as conn:
            conn.executemany(
                """
                INSERT INTO chunks (
                    id,
                    document_id,
                    chunk_index,
                    page_start,
                    page_end,
                    text_content,
                    token_count,
                    source_ref,
                    embedding_dim,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.id,
                        chunk.document_id,
                        chunk.chunk_index,
                        chunk.page_start,
                        chunk.page_end,
                        chunk.text,
                        chunk.token_count,
                        chunk.source_ref,
                        len(chunk.embedding) if chunk.embedding is not None else None,
                        chunk.created_at,
                    )
                    for chunk in chunks
                ],
            )
            conn.commit()
        return len(chunks)

    def delete_from_index(self, document_id: str, from_index: int) -> int:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM chunks WHERE document_id = ? AND chunk_index >= ?",
                (document_id, from_index),
            )
            conn.commit()
        return int(cursor.rowcount or 0)

    def count_for_document(self, document_id: str) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS c FROM chunks WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        return int(row["c"]) if row else 0

    def list_for_document(self, document_id: str) -> list[Chunk]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM chunks
                WHERE document_id = ?
                ORDER BY chunk_index ASC
                """,
                (document_id,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def get_by_slots(self, slots: list[tuple[str, int]]) -> dict[tuple[str, int], Chunk]:
        """Load chunks keyed by ``(document_id, chunk_index)``."""
        if not slots:
            return {}
        clauses = " OR ".join("(document_id = ? AND chunk_index = ?)" for _ in slots)
        params: list[object] = []
        for document_id, chunk_index in slots:
            params.extend((document_id, chunk_index))
        with get_connection(self.db_path) as conn:
            rows = conn.execute(f"SELECT * FROM chunks WHERE {clauses}", params).fetchall()
        out: dict[tuple[str, int], Chunk] = {}
        for row in rows:
            chunk = self._to_model(row)
            out[(chunk.document_id, chunk.chunk_index)] = chunk
        return out

    @staticmethod
    def _to_model(row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            chunk_index=int(row["chunk_index"]),
            page_start=int(row["page_start"]),
            page_end=int(row["page_end"]),
            text=row["text_content"],
            token_count=int(row["token_count"] or 0),
            source_ref=row["source_ref"],
            created_at=row["created_at"],
        )
