from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class PageText:
    page_number: int
    text: str


@dataclass(slots=True)
class ParsedDocument:
    pages: list[PageText]
    total_pages: int


@dataclass(slots=True)
class ChunkDraft:
    text: str
    page_start: int
    page_end: int
    token_count: int


@dataclass(slots=True)
class Chunk:
    id: str
    document_id: str
    chunk_index: int
    page_start: int
    page_end: int
    text: str
    token_count: int
    source_ref: str
    created_at: str
    embedding: list[float] | None = None


@dataclass(slots=True)
class ChunkSearchFilters:
    document_id: str | None = None
    page_start: int | None = None
    page_end: int | None = None
    education_level: str | None = None

    @property
    def has_page_range(self) -> bool:
        return self.page_start is not None and self.page_end is not None


@dataclass(slots=True)
class ChunkHit:
    chunk: Chunk
    distance: float
    document_title: str
