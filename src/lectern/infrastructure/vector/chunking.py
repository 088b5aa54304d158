from __future__ import annotations

import math
import re
from collections.abc import Iterable

from lectern.domain.models.chunk import ChunkDraft, PageText

AVG_CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 50

_SEGMENT_BOUNDARY = re.compile(r"(?<=[.!?।\n])\s+")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / AVG_CHARS_PER_TOKEN)


class PageChunker:
    """Greedy sentence packer that keeps a page span for every chunk.

    Segments are appended to a running buffer until the next one would push
    the estimate past ``max_tokens``; the buffer is then emitted and the tail
    of it carried over as overlap into the next chunk.
    """

    def __init__(
        self,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    ) -> None:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        self.max_tokens = max_tokens
        self.overlap_tokens = max(0, overlap_tokens)

    def chunk_pages(self, pages: Iterable[PageText]) -> list[ChunkDraft]:
        ordered = list(pages)
        chunks: list[ChunkDraft] = []
        buffer = ""
        span_start = ordered[0].page_number if ordered else 1
        span_end = span_start
        overlap_chars = self.overlap_tokens * AVG_CHARS_PER_TOKEN

        for page in ordered:
            for segment in _SEGMENT_BOUNDARY.split(page.text):
                candidate = f"{buffer} {segment}" if buffer else segment
                if estimate_tokens(candidate) > self.max_tokens and buffer:
                    chunks.append(self._draft(buffer, span_start, span_end))
                    overlap = buffer[-overlap_chars:] if overlap_chars else ""
                    buffer = f"{overlap} {segment}" if overlap else segment
                    span_start = page.page_number
                    span_end = page.page_number
                else:
                    buffer = candidate
                    span_end = page.page_number

        if buffer.strip():
            chunks.append(self._draft(buffer, span_start, span_end))
        return chunks

    @staticmethod
    def _draft(buffer: str, page_start: int, page_end: int) -> ChunkDraft:
        return ChunkDraft(
            text=buffer.strip(),
            page_start=page_start,
            page_end=page_end,
            token_count=estimate_tokens(buffer),
        )


def chunk_pages(
    pages: Iterable[PageText],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[ChunkDraft]:
    return PageChunker(max_tokens=max_tokens, overlap_tokens=overlap_tokens).chunk_pages(pages)
