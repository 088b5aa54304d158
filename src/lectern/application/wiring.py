from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from lectern.application.services.chunk_store import ChunkStore
from lectern.application.services.dispatcher import JobDispatcher, Spawn
from lectern.application.services.document_service import DocumentService
from lectern.application.services.ingestion_runner import IngestionRunner
from lectern.application.services.project_service import ProjectService
from lectern.application.services.retrieval_service import RetrievalService
from lectern.application.services.stall_reaper import StallReaper
from lectern.core.config import AppPaths, IngestionSettings
from lectern.core.errors import ConfigurationError
from lectern.infrastructure.blob.store import LocalBlobStore
from lectern.infrastructure.db.repos.chunk_repo import ChunkRepo
from lectern.infrastructure.db.repos.document_repo import DocumentRepo
from lectern.infrastructure.db.repos.job_repo import JobRepo
from lectern.infrastructure.parsers.pdf_parser import PdfParser
from lectern.infrastructure.vector.chunking import PageChunker
from lectern.infrastructure.vector.embeddings import EmbeddingConfig, SentenceTransformerEmbedder
from lectern.infrastructure.vector.qdrant_store import QdrantLocalStore


@dataclass(slots=True)
class ServiceBundle:
    paths: AppPaths
    settings: IngestionSettings
    project: ProjectService
    document_repo: DocumentRepo
    job_repo: JobRepo
    chunk_repo: ChunkRepo
    blob_store: LocalBlobStore
    vector_store: QdrantLocalStore
    chunk_store: ChunkStore
    embedder: SentenceTransformerEmbedder
    runner: IngestionRunner
    dispatcher: JobDispatcher
    reaper: StallReaper
    retrieval: RetrievalService
    documents: DocumentService

    def close(self) -> None:
        self.reaper.shutdown()
        self.vector_store.close()


def build_services(
    paths: AppPaths,
    settings: IngestionSettings | None = None,
    *,
    embedder: SentenceTransformerEmbedder | None = None,
    vector_store: QdrantLocalStore | None = None,
    blob_store: LocalBlobStore | None = None,
    fetcher: Callable[[str], bytes] | None = None,
    spawn: Spawn | None = None,
) -> ServiceBundle:
    """Construct every service once, sharing repositories and stores."""
    settings = settings or IngestionSettings.from_env()
    if settings.chunk_overlap_tokens >= settings.chunk_max_tokens:
        raise ConfigurationError(
            f"Chunk overlap ({settings.chunk_overlap_tokens}) must be smaller than "
            f"the chunk size ({settings.chunk_max_tokens} tokens)."
        )

    document_repo = DocumentRepo(paths.db_path)
    job_repo = JobRepo(paths.db_path)
    chunk_repo = ChunkRepo(paths.db_path)
    blob_store = blob_store or LocalBlobStore(paths.blob_dir)
    vector_store = vector_store or QdrantLocalStore(storage_path=paths.qdrant_dir)
    embedder = embedder or SentenceTransformerEmbedder(
        EmbeddingConfig(model_name=settings.embedding_model, device=settings.embedding_device)
    )
    chunk_store = ChunkStore(chunk_repo, document_repo, vector_store)

    runner = IngestionRunner(
        job_repo=job_repo,
        document_repo=document_repo,
        chunk_store=chunk_store,
        blob_store=blob_store,
        parser=PdfParser(),
        chunker=PageChunker(
            max_tokens=settings.chunk_max_tokens,
            overlap_tokens=settings.chunk_overlap_tokens,
        ),
        embedder=embedder,
        settings=settings,
    )
    dispatcher = JobDispatcher(job_repo, runner, spawn=spawn)
    reaper = StallReaper(
        job_repo,
        timeout_seconds=settings.stall_timeout_seconds,
        interval_seconds=settings.stall_reaper_interval_seconds,
        dispatcher=dispatcher,
        auto_requeue=settings.stall_auto_requeue,
    )

    return ServiceBundle(
        paths=paths,
        settings=settings,
        project=ProjectService(paths),
        document_repo=document_repo,
        job_repo=job_repo,
        chunk_repo=chunk_repo,
        blob_store=blob_store,
        vector_store=vector_store,
        chunk_store=chunk_store,
        embedder=embedder,
        runner=runner,
        dispatcher=dispatcher,
        reaper=reaper,
        retrieval=RetrievalService(embedder, chunk_store),
        documents=DocumentService(document_repo, job_repo, chunk_store, blob_store, fetcher=fetcher),
    )
