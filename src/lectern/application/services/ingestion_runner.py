from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from lectern.application.services.chunk_store import ChunkStore
from lectern.core.config import IngestionSettings
from lectern.core.errors import DocumentNotFoundError, JobNotFoundError
from lectern.core.ids import new_uuid
from lectern.core.time import now_utc_iso
from lectern.core.titles import format_source_ref
from lectern.domain.models.chunk import Chunk, ChunkDraft
from lectern.domain.models.document import (
    DOCUMENT_FAILED,
    DOCUMENT_INGESTING,
    DOCUMENT_READY,
    Document,
)
from lectern.domain.models.ingestion import JOB_COMPLETED, JOB_FAILED, JobProgressPatch
from lectern.infrastructure.blob.store import LocalBlobStore
from lectern.infrastructure.db.repos.document_repo import DocumentRepo
from lectern.infrastructure.db.repos.job_repo import JobRepo
from lectern.infrastructure.parsers.pdf_parser import PdfParser
from lectern.infrastructure.vector.chunking import PageChunker
from lectern.infrastructure.vector.embeddings import SentenceTransformerEmbedder

logger = logging.getLogger(__name__)


class _Heartbeat:
    def __init__(self, job_repo: JobRepo, job_id: str, interval_seconds: float) -> None:
        self.job_repo = job_repo
        self.job_id = job_id
        self.interval_seconds = max(0.01, interval_seconds)
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name=f"ingestion-heartbeat-{job_id[:8]}",
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.job_repo.touch_heartbeat(self.job_id)
            except Exception:
                logger.exception("Heartbeat failed for job %s", self.job_id)


class IngestionRunner:
    """Drive one claimed job through parse, chunk, embed and store.

    Progress is checkpointed after every batch, so a requeued job resumes
    from ``next_chunk_index`` and redoes at most one batch.
    """

    def __init__(
        self,
        *,
        job_repo: JobRepo,
        document_repo: DocumentRepo,
        chunk_store: ChunkStore,
        blob_store: LocalBlobStore,
        parser: PdfParser,
        chunker: PageChunker,
        embedder: SentenceTransformerEmbedder,
        settings: IngestionSettings | None = None,
    ) -> None:
        self.job_repo = job_repo
        self.document_repo = document_repo
        self.chunk_store = chunk_store
        self.blob_store = blob_store
        self.parser = parser
        self.chunker = chunker
        self.embedder = embedder
        self.settings = settings or IngestionSettings()

    def run(self, job_id: str, *, on_finished: Callable[[], object] | None = None) -> None:
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Ingestion job not found: {job_id}")
        document = self.document_repo.get_by_id(job.document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {job.document_id}")

        heartbeat = _Heartbeat(self.job_repo, job.id, self.settings.heartbeat_interval_seconds)
        heartbeat.start()
        try:
            self._ingest(job.id, job.next_chunk_index, document)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception("Ingestion job %s failed", job.id)
            self.job_repo.update_progress(job.id, JobProgressPatch(status=JOB_FAILED, error_message=message))
            self.document_repo.update_status(document.id, DOCUMENT_FAILED)
        finally:
            heartbeat.stop()
            if on_finished is not None:
                try:
                    on_finished()
                except Exception:
                    logger.exception("Dispatching the next job after %s failed", job.id)

    def _ingest(self, job_id: str, resume_from: int, document: Document) -> None:
        self.document_repo.update_status(document.id, DOCUMENT_INGESTING)

        data = self.blob_store.get(document.storage_key)
        parsed = self.parser.parse(data)
        total_pages = parsed.total_pages
        self.document_repo.update_page_count(document.id, total_pages)
        self.job_repo.update_progress(job_id, JobProgressPatch(total_pages=total_pages))

        drafts = self.chunker.chunk_pages(parsed.pages)
        total_chunks = len(drafts)
        self.job_repo.update_progress(job_id, JobProgressPatch(total_chunks=total_chunks))

        start = max(0, resume_from)
        if start > 0:
            logger.info("Resuming job %s at chunk %d/%d", job_id, start, total_chunks)
        # Rows and points past the checkpoint belong to an unfinished batch,
        # including batch 0 when the first checkpoint never landed.
        self.chunk_store.delete_from_index(document.id, start)

        batch_size = max(1, self.settings.batch_size)
        for offset in range(start, total_chunks, batch_size):
            batch = drafts[offset : offset + batch_size]
            chunks = self._embed_batch(document, offset, batch)
            self.chunk_store.put(chunks)

            done = offset + len(batch)
            last_page = batch[-1].page_end
            self.job_repo.update_progress(
                job_id,
                JobProgressPatch(
                    chunks_done=done,
                    next_chunk_index=done,
                    pages_done=min(total_pages, last_page),
                    next_page_to_process=last_page,
                    last_heartbeat_at=now_utc_iso(),
                ),
            )
            logger.debug("Job %s: %d/%d chunks stored", job_id, done, total_chunks)

        self.job_repo.update_progress(
            job_id,
            JobProgressPatch(
                status=JOB_COMPLETED,
                chunks_done=total_chunks,
                pages_done=total_pages,
                completed_at=now_utc_iso(),
            ),
        )
        self.document_repo.update_status(document.id, DOCUMENT_READY)
        logger.info("Ingested %s: %d chunks over %d pages", document.title, total_chunks, total_pages)

    def _embed_batch(self, document: Document, offset: int, batch: list[ChunkDraft]) -> list[Chunk]:
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="embed") as pool:
            vectors = list(pool.map(lambda draft: self.embedder.embed(draft.text), batch))
        created_at = now_utc_iso()
        return [
            Chunk(
                id=new_uuid(),
                document_id=document.id,
                chunk_index=offset + position,
                page_start=draft.page_start,
                page_end=draft.page_end,
                text=draft.text,
                token_count=draft.token_count,
                source_ref=format_source_ref(document.title, draft.page_start, draft.page_end),
                created_at=created_at,
                embedding=vector,
            )
            for position, (draft, vector) in enumerate(zip(batch, vectors))
        ]
