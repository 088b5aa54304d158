from __future__ import annotations

import logging

from lectern.core.ids import chunk_point_id
from lectern.domain.models.chunk import Chunk, ChunkHit, ChunkSearchFilters
from lectern.infrastructure.db.repos.chunk_repo import ChunkRepo
from lectern.infrastructure.db.repos.document_repo import DocumentRepo
from lectern.infrastructure.vector.qdrant_store import QdrantLocalStore, VectorPoint

logger = logging.getLogger(__name__)


class ChunkStore:
    """Chunk rows in SQLite with their embeddings mirrored as Qdrant points.

    A point is keyed by ``(document_id, chunk_index)`` so a re-ingested slot
    overwrites the previous vector instead of duplicating it.
    """

    def __init__(
        self,
        chunk_repo: ChunkRepo,
        document_repo: DocumentRepo,
        vector_store: QdrantLocalStore,
    ) -> None:
        self.chunk_repo = chunk_repo
        self.document_repo = document_repo
        self.vector_store = vector_store

    def put(self, chunks: list[Chunk]) -> list[Chunk]:
        if not chunks:
            return []
        self.chunk_repo.insert_chunks(chunks)

        levels: dict[str, str | None] = {}
        points: list[VectorPoint] = []
        for chunk in chunks:
            if chunk.embedding is None:
                continue
            if chunk.document_id not in levels:
                document = self.document_repo.get_by_id(chunk.document_id)
                levels[chunk.document_id] = document.education_level if document else None
            points.append(
                VectorPoint(
                    point_id=chunk_point_id(chunk.document_id, chunk.chunk_index),
                    vector=chunk.embedding,
                    payload={
                        "document_id": chunk.document_id,
                        "chunk_index": chunk.chunk_index,
                        "page_start": chunk.page_start,
                        "page_end": chunk.page_end,
                        "education_level": levels[chunk.document_id],
                    },
                )
            )
        self.vector_store.upsert_points(points)
        return chunks

    def delete_from_index(self, document_id: str, from_index: int) -> int:
        removed = self.chunk_repo.delete_from_index(document_id, from_index)
        self.vector_store.delete_document_points(document_id, from_index=from_index)
        if removed:
            logger.info("Discarded %d chunks of %s from index %d", removed, document_id, from_index)
        return removed

    def delete_document(self, document_id: str) -> int:
        return self.delete_from_index(document_id, 0)

    def count(self, document_id: str) -> int:
        return self.chunk_repo.count_for_document(document_id)

    def list_for_document(self, document_id: str) -> list[Chunk]:
        return self.chunk_repo.list_for_document(document_id)

    def search(
        self,
        query_embedding: list[float],
        limit: int,
        filters: ChunkSearchFilters | None = None,
    ) -> list[ChunkHit]:
        filters = filters or ChunkSearchFilters()
        if limit <= 0:
            return []

        page_start: int | None = None
        page_end: int | None = None
        if filters.document_id:
            ready_ids = set(self.document_repo.list_ready_ids())
            document_ids = [filters.document_id] if filters.document_id in ready_ids else []
            if filters.has_page_range:
                page_start, page_end = filters.page_start, filters.page_end
        elif filters.education_level:
            document_ids = self.document_repo.list_ready_ids(education_level=filters.education_level)
        else:
            document_ids = self.document_repo.list_ready_ids()

        if not document_ids:
            return []

        hits = self.vector_store.search(
            query_vector=query_embedding,
            limit=limit,
            document_ids=document_ids,
            page_start=page_start,
            page_end=page_end,
        )
        slots: list[tuple[str, int]] = []
        for hit in hits:
            payload = hit["payload"]
            slots.append((str(payload.get("document_id")), int(payload.get("chunk_index", -1))))
        chunks = self.chunk_repo.get_by_slots(slots)
        titles = self.document_repo.get_titles(sorted({slot[0] for slot in slots}))

        out: list[ChunkHit] = []
        for hit, slot in zip(hits, slots):
            chunk = chunks.get(slot)
            if chunk is None:
                # Point outlived its row (e.g. interrupted delete); skip it.
                logger.debug("Vector point %s has no chunk row", hit["id"])
                continue
            out.append(
                ChunkHit(
                    chunk=chunk,
                    distance=1.0 - float(hit["score"]),
                    document_title=titles.get(chunk.document_id, ""),
                )
            )
        out.sort(key=lambda item: item.distance)
        return out[:limit]
