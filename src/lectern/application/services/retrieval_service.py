from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from lectern.application.services.chunk_store import ChunkStore
from lectern.domain.models.chunk import ChunkSearchFilters
from lectern.infrastructure.vector.embeddings import SentenceTransformerEmbedder

MAX_SEARCH_LIMIT = 50


@dataclass(slots=True)
class RetrievedChunk:
    chunk_id: str
    document_id: str
    document_title: str
    chunk_index: int
    page_start: int
    page_end: int
    source_ref: str
    text: str
    distance: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RetrievalService:
    def __init__(self, embedder: SentenceTransformerEmbedder, chunk_store: ChunkStore) -> None:
        self.embedder = embedder
        self.chunk_store = chunk_store

    def search(
        self,
        query: str,
        *,
        limit: int = 8,
        document_id: str | None = None,
        page_start: int | None = None,
        page_end: int | None = None,
        education_level: str | None = None,
    ) -> list[RetrievedChunk]:
        text = (query or "").strip()
        if not text:
            return []
        safe_limit = max(1, min(int(limit), MAX_SEARCH_LIMIT))
        filters = ChunkSearchFilters(
            document_id=document_id or None,
            page_start=page_start,
            page_end=page_end,
            education_level=education_level or None,
        )
        hits = self.chunk_store.search(self.embedder.embed(text), safe_limit, filters)
        return [
            RetrievedChunk(
                chunk_id=hit.chunk.id,
                document_id=hit.chunk.document_id,
                document_title=hit.document_title,
                chunk_index=hit.chunk.chunk_index,
                page_start=hit.chunk.page_start,
                page_end=hit.chunk.page_end,
                source_ref=hit.chunk.source_ref,
                text=hit.chunk.text,
                distance=hit.distance,
                score=1.0 - hit.distance,
            )
            for hit in hits
        ]
