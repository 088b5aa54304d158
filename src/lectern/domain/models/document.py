from __future__ import annotations

from dataclasses import dataclass

DOCUMENT_UPLOADED = "UPLOADED"
DOCUMENT_INGESTING = "INGESTING"
DOCUMENT_READY = "READY"
DOCUMENT_FAILED = "FAILED"

DOCUMENT_STATUSES = frozenset({DOCUMENT_UPLOADED, DOCUMENT_INGESTING, DOCUMENT_READY, DOCUMENT_FAILED})

EDUCATION_LEVELS = ("elementary", "secondary", "high_school")


@dataclass(slots=True)
class Document:
    id: str
    title: str
    checksum_sha256: str
    storage_key: str
    original_filename: str
    size_bytes: int
    status: str
    created_at: str
    updated_at: str
    subject: str | None = None
    education_level: str | None = None
    specialization: str | None = None
    year_number: int | None = None
    edition: str | None = None
    source_url: str | None = None
    page_count: int | None = None
