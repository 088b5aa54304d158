from __future__ import annotations

import math
import textwrap
import threading
import zlib
from dataclasses import dataclass
from pathlib import Path

import fitz
import pytest

from lectern.application.services.chunk_store import ChunkStore
from lectern.core.config import AppPaths, IngestionSettings
from lectern.core.ids import new_uuid
from lectern.core.time import now_utc_iso
from lectern.domain.models.document import DOCUMENT_UPLOADED, Document
from lectern.domain.models.ingestion import JOB_QUEUED, IngestionJob
from lectern.infrastructure.blob.store import LocalBlobStore
from lectern.infrastructure.db.repos.chunk_repo import ChunkRepo
from lectern.infrastructure.db.repos.document_repo import DocumentRepo
from lectern.infrastructure.db.repos.job_repo import JobRepo
from lectern.infrastructure.db.sqlite import initialize_schema
from lectern.infrastructure.vector.qdrant_store import QdrantLocalStore

FAKE_DIM = 256


class FakeEmbedder:
    """Hashed bag-of-words vectors; texts sharing words land close together."""

    model_name = "fake-bow"

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls = 0
        self._lock = threading.Lock()

    def embedding_dim(self) -> int:
        return FAKE_DIM

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls += 1
        if self.fail_on and self.fail_on in text:
            raise RuntimeError("embedding backend exploded")
        vector = [0.0] * FAKE_DIM
        vector[0] = 0.1
        for word in text.lower().split():
            token = "".join(ch for ch in word if ch.isalnum())
            if token:
                vector[1 + zlib.crc32(token.encode("utf-8")) % (FAKE_DIM - 1)] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


def build_pdf(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        lines: list[str] = []
        for paragraph in text.split("\n"):
            lines.extend(textwrap.wrap(paragraph, width=80) or [""])
        if lines and any(line.strip() for line in lines):
            page.insert_text((50, 60), "\n".join(lines), fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


@dataclass(slots=True)
class Repos:
    db_path: Path
    documents: DocumentRepo
    jobs: JobRepo
    chunks: ChunkRepo


@pytest.fixture
def repos(tmp_path: Path) -> Repos:
    db_path = tmp_path / "lectern.db"
    initialize_schema(db_path)
    return Repos(
        db_path=db_path,
        documents=DocumentRepo(db_path),
        jobs=JobRepo(db_path),
        chunks=ChunkRepo(db_path),
    )


@pytest.fixture
def vector_store(tmp_path: Path):
    store = QdrantLocalStore(storage_path=tmp_path / "qdrant", collection_name="test_chunks")
    yield store
    store.close()


@pytest.fixture
def chunk_store(repos: Repos, vector_store: QdrantLocalStore) -> ChunkStore:
    return ChunkStore(repos.chunks, repos.documents, vector_store)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def app_paths(tmp_path: Path) -> AppPaths:
    root = tmp_path / "proj"
    root.mkdir(parents=True, exist_ok=True)
    lectern_dir = root / ".lectern"
    return AppPaths(
        project_root=root,
        lectern_dir=lectern_dir,
        db_path=lectern_dir / "lectern.db",
        blob_dir=lectern_dir / "blobs",
        vector_dir=lectern_dir / "vector",
        qdrant_dir=lectern_dir / "vector" / "qdrant",
    )


@pytest.fixture
def fast_settings() -> IngestionSettings:
    return IngestionSettings(
        batch_size=2,
        heartbeat_interval_seconds=0.05,
        stall_timeout_seconds=600.0,
        stall_reaper_interval_seconds=0.05,
        chunk_max_tokens=40,
        chunk_overlap_tokens=5,
    )


def make_document(
    repo: DocumentRepo,
    *,
    title: str = "Physique 7C",
    status: str = DOCUMENT_UPLOADED,
    education_level: str | None = "high_school",
    storage_key: str | None = None,
) -> Document:
    now = now_utc_iso()
    document_id = new_uuid()
    document = Document(
        id=document_id,
        title=title,
        checksum_sha256=f"sha-{document_id}",
        storage_key=storage_key or f"sha256/aa/bb/{document_id}.pdf",
        original_filename=f"{title}.pdf",
        size_bytes=0,
        status=status,
        created_at=now,
        updated_at=now,
        education_level=education_level,
    )
    repo.insert(document)
    return document


def make_job(repo: JobRepo, document_id: str, *, created_at: str | None = None) -> IngestionJob:
    stamp = created_at or now_utc_iso()
    job = IngestionJob(
        id=new_uuid(),
        document_id=document_id,
        status=JOB_QUEUED,
        created_at=stamp,
        updated_at=stamp,
    )
    repo.insert(job)
    return job
