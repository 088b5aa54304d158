from __future__ import annotations

from dataclasses import dataclass, fields

JOB_QUEUED = "QUEUED"
JOB_RUNNING = "RUNNING"
JOB_COMPLETED = "COMPLETED"
JOB_FAILED = "FAILED"
JOB_PAUSED = "PAUSED"

JOB_STATUSES = frozenset({JOB_QUEUED, JOB_RUNNING, JOB_COMPLETED, JOB_FAILED, JOB_PAUSED})
REQUEUEABLE_STATUSES = frozenset({JOB_PAUSED, JOB_FAILED})


@dataclass(slots=True)
class IngestionJob:
    id: str
    document_id: str
    status: str
    created_at: str
    updated_at: str
    total_pages: int | None = None
    pages_done: int = 0
    total_chunks: int | None = None
    chunks_done: int = 0
    next_chunk_index: int = 0
    next_page_to_process: int = 0
    error_message: str | None = None
    last_heartbeat_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    @property
    def progress_percent(self) -> float:
        if not self.total_chunks:
            return 0.0
        ratio = self.chunks_done / self.total_chunks
        return round(min(1.0, max(0.0, ratio)) * 100.0, 1)


@dataclass(slots=True)
class JobProgressPatch:
    """Fields an ``update_progress`` call may touch; ``None`` leaves a column alone."""

    status: str | None = None
    total_pages: int | None = None
    pages_done: int | None = None
    total_chunks: int | None = None
    chunks_done: int | None = None
    next_chunk_index: int | None = None
    next_page_to_process: int | None = None
    error_message: str | None = None
    last_heartbeat_at: str | None = None
    completed_at: str | None = None

    def changes(self) -> dict[str, object]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }
