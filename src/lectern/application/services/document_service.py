from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from lectern.application.services.chunk_store import ChunkStore
from lectern.core.errors import DocumentNotFoundError, ValidationError
from lectern.core.hashing import sha256_hex
from lectern.core.ids import new_uuid
from lectern.core.time import now_utc_iso
from lectern.core.titles import derive_document_title
from lectern.domain.models.document import DOCUMENT_UPLOADED, EDUCATION_LEVELS, Document
from lectern.domain.models.ingestion import JOB_QUEUED, IngestionJob
from lectern.infrastructure.blob.store import LocalBlobStore
from lectern.infrastructure.db.repos.document_repo import DocumentRepo
from lectern.infrastructure.db.repos.job_repo import JobRepo
from lectern.infrastructure.importers.http_fetch import fetch_bytes

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


@dataclass(slots=True)
class UploadResult:
    document: Document
    job: IngestionJob | None
    status: str


@dataclass(slots=True)
class DocumentDetail:
    document: Document
    jobs: list[IngestionJob]
    chunk_count: int


class DocumentService:
    def __init__(
        self,
        document_repo: DocumentRepo,
        job_repo: JobRepo,
        chunk_store: ChunkStore,
        blob_store: LocalBlobStore,
        fetcher: Callable[[str], bytes] | None = None,
    ) -> None:
        self.document_repo = document_repo
        self.job_repo = job_repo
        self.chunk_store = chunk_store
        self.blob_store = blob_store
        self.fetcher = fetcher or fetch_bytes

    def upload(
        self,
        *,
        content: bytes,
        filename: str,
        title: str | None = None,
        subject: str | None = None,
        education_level: str | None = None,
        specialization: str | None = None,
        year_number: int | None = None,
        edition: str | None = None,
        source_url: str | None = None,
    ) -> UploadResult:
        if not content:
            raise ValidationError("Uploaded file is empty.")
        if not content.startswith(PDF_MAGIC):
            raise ValidationError("Uploaded file is not a PDF.")
        if education_level and education_level not in EDUCATION_LEVELS:
            raise ValidationError(
                f"Unsupported education level: {education_level}. "
                f"Expected one of: {', '.join(EDUCATION_LEVELS)}"
            )

        digest = sha256_hex(content)
        existing = self.document_repo.get_by_checksum(digest)
        if existing is None and source_url:
            existing = self.document_repo.get_by_source_url(source_url)
        if existing is not None:
            logger.info("Skipping duplicate upload of %s (document %s)", filename, existing.id)
            return UploadResult(document=existing, job=self._latest_job(existing.id), status="duplicate")

        document_id = new_uuid()
        storage_key = self.blob_store.key_for_digest(digest, ".pdf")
        self.blob_store.save(storage_key, content)

        now = now_utc_iso()
        document = Document(
            id=document_id,
            title=derive_document_title(
                explicit_title=title,
                original_filename=filename,
                source_url=source_url,
                fallback_id=document_id,
            ),
            checksum_sha256=digest,
            storage_key=storage_key,
            original_filename=filename or "upload.pdf",
            size_bytes=len(content),
            status=DOCUMENT_UPLOADED,
            created_at=now,
            updated_at=now,
            subject=subject or None,
            education_level=education_level or None,
            specialization=specialization or None,
            year_number=year_number,
            edition=edition or None,
            source_url=source_url or None,
        )
        job = IngestionJob(
            id=new_uuid(),
            document_id=document_id,
            status=JOB_QUEUED,
            created_at=now,
            updated_at=now,
        )
        self.document_repo.insert_with_job(document, job)
        logger.info("Queued %s as document %s (job %s)", document.title, document_id, job.id)
        return UploadResult(document=document, job=job, status="queued")

    def import_from_url(self, url: str, **metadata) -> UploadResult:
        source_url = (url or "").strip()
        if not source_url.lower().startswith(("http://", "https://")):
            raise ValidationError(f"Not an http(s) URL: {url}")
        existing = self.document_repo.get_by_source_url(source_url)
        if existing is not None:
            return UploadResult(document=existing, job=self._latest_job(existing.id), status="duplicate")

        content = self.fetcher(source_url)
        filename = source_url.rstrip("/").rsplit("/", 1)[-1] or "download.pdf"
        return self.upload(content=content, filename=filename, source_url=source_url, **metadata)

    def list_documents(self, limit: int = 100, *, status: str | None = None) -> list[Document]:
        return self.document_repo.list(limit=max(1, int(limit)), status=status)

    def get_document_detail(self, document_id: str) -> DocumentDetail:
        document = self.document_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return DocumentDetail(
            document=document,
            jobs=self.job_repo.list_for_document(document_id),
            chunk_count=self.chunk_store.count(document_id),
        )

    def delete_document(self, document_id: str) -> bool:
        document = self.document_repo.get_by_id(document_id)
        if document is None:
            return False
        self.chunk_store.delete_document(document_id)
        deleted = self.document_repo.delete(document_id)
        # Checksums are unique, so no other document references this blob.
        self.blob_store.delete(document.storage_key)
        logger.info("Deleted document %s (%s)", document_id, document.title)
        return deleted

    def _latest_job(self, document_id: str) -> IngestionJob | None:
        jobs = self.job_repo.list_for_document(document_id)
        return jobs[0] if jobs else None
