from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lectern.core.config import read_bool_env, read_float_env
from lectern.core.errors import StorageError

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


@dataclass(slots=True)
class VectorPoint:
    point_id: str
    vector: list[float]
    payload: dict[str, Any]


class QdrantLocalStore:
    """Cosine-distance collection of chunk vectors.

    Runs embedded against ``storage_path`` (or in memory when the path is
    ``None``) unless a server URL is given explicitly or via
    ``LECTERN_QDRANT_URL``.
    """

    def __init__(
        self,
        *,
        storage_path: Path | None,
        collection_name: str | None = None,
        url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.storage_path = storage_path
        self.server_url = self._resolve_server_url(url)
        self.collection_name = (
            collection_name
            or os.getenv("LECTERN_QDRANT_COLLECTION")
            or "lectern_chunks"
        )
        self.api_key = api_key or os.getenv("LECTERN_QDRANT_API_KEY")
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else read_float_env("LECTERN_QDRANT_TIMEOUT_SECONDS", 10.0)
        )
        if self.server_url:
            self.backend_name = "qdrant-server"
        elif storage_path is None:
            self.backend_name = "qdrant-memory"
        else:
            self.backend_name = "qdrant-local"
        self._client = None
        self._models = None
        self._known_dim: int | None = None

    def ensure_collection(self, vector_size: int) -> None:
        if vector_size <= 0:
            raise ValueError("vector_size must be positive")
        if self._known_dim == vector_size:
            return
        client, models = self._client_and_models()

        if not self._collection_exists():
            client.create_collection(
                collection_name=self.collection_name,
                vectors_config=models.VectorParams(size=vector_size, distance=models.Distance.COSINE),
            )
            self._known_dim = vector_size
            logger.info("Created Qdrant collection %s (dim=%d)", self.collection_name, vector_size)
            return

        info = client.get_collection(collection_name=self.collection_name)
        params = getattr(getattr(info, "config", None), "params", None)
        vectors_conf = getattr(params, "vectors", None)
        configured_dim = getattr(vectors_conf, "size", None)
        if configured_dim is not None and int(configured_dim) != int(vector_size):
            raise StorageError(
                f"Qdrant collection '{self.collection_name}' has vector size {configured_dim}, "
                f"but embedder produced {vector_size}."
            )
        self._known_dim = vector_size

    def upsert_points(self, points: list[VectorPoint]) -> None:
        if not points:
            return
        self.ensure_collection(len(points[0].vector))
        client, models = self._client_and_models()
        try:
            client.upsert(
                collection_name=self.collection_name,
                wait=True,
                points=[
                    models.PointStruct(id=point.point_id, vector=point.vector, payload=point.payload)
                    for point in points
                ],
            )
        except Exception as exc:
            raise StorageError(f"Qdrant upsert failed: {exc}") from exc

    def delete_document_points(self, document_id: str, *, from_index: int | None = None) -> None:
        """Delete a document's points, optionally only those at ``chunk_index >= from_index``."""
        if not self._collection_exists():
            return
        client, models = self._client_and_models()
        clauses = [
            models.FieldCondition(key="document_id", match=models.MatchValue(value=document_id)),
        ]
        if from_index is not None:
            clauses.append(
                models.FieldCondition(key="chunk_index", range=models.Range(gte=int(from_index)))
            )
        try:
            client.delete(
                collection_name=self.collection_name,
                points_selector=models.FilterSelector(filter=models.Filter(must=clauses)),
                wait=True,
            )
        except Exception as exc:
            raise StorageError(f"Qdrant delete failed for document {document_id}: {exc}") from exc

    def search(
        self,
        *,
        query_vector: list[float],
        limit: int,
        document_ids: list[str] | None = None,
        page_start: int | None = None,
        page_end: int | None = None,
    ) -> list[dict[str, Any]]:
        if not self._collection_exists():
            return []
        client, models = self._client_and_models()
        clauses = []
        if document_ids is not None:
            clauses.append(
                models.FieldCondition(key="document_id", match=models.MatchAny(any=list(document_ids)))
            )
        if page_start is not None:
            clauses.append(
                models.FieldCondition(key="page_start", range=models.Range(gte=int(page_start)))
            )
        if page_end is not None:
            clauses.append(
                models.FieldCondition(key="page_end", range=models.Range(lte=int(page_end)))
            )
        query_filter = models.Filter(must=clauses) if clauses else None
        try:
            response = client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=query_filter,
                with_payload=True,
                with_vectors=False,
                limit=max(1, limit),
            )
        except Exception as exc:
            raise StorageError(f"Qdrant search failed: {exc}") from exc
        out: list[dict[str, Any]] = []
        for hit in list(getattr(response, "points", []) or []):
            out.append(
                {
                    "id": str(getattr(hit, "id", "")),
                    "score": float(getattr(hit, "score", 0.0)),
                    "payload": dict(getattr(hit, "payload", {}) or {}),
                }
            )
        return out

    def count_points(self, document_id: str | None = None) -> int:
        if not self._collection_exists():
            return 0
        client, models = self._client_and_models()
        count_filter = None
        if document_id:
            count_filter = models.Filter(
                must=[models.FieldCondition(key="document_id", match=models.MatchValue(value=document_id))]
            )
        result = client.count(collection_name=self.collection_name, count_filter=count_filter, exact=True)
        return int(getattr(result, "count", 0))

    def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()
        self._client = None
        self._models = None
        self._known_dim = None

    def _collection_exists(self) -> bool:
        client, _ = self._client_and_models()
        try:
            return bool(client.collection_exists(collection_name=self.collection_name))
        except Exception as exc:
            raise StorageError(f"Qdrant is unreachable: {exc}") from exc

    def _client_and_models(self):
        if self._client is not None and self._models is not None:
            return self._client, self._models

        try:
            from qdrant_client import QdrantClient
            from qdrant_client.http import models
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise StorageError(
                "Qdrant dependency is missing. Install with `pip install -e .`."
            ) from exc

        if self.server_url:
            self._client = QdrantClient(
                url=self.server_url,
                api_key=self.api_key,
                timeout=self.timeout_seconds,
            )
        elif self.storage_path is None:
            self._client = QdrantClient(location=IN_MEMORY)
        else:
            client, used_path = self._open_local_client(QdrantClient, self.storage_path)
            self._client = client
            if used_path != self.storage_path:
                self.backend_name = "qdrant-local-isolated"
            self.storage_path = used_path
        self._models = models
        return self._client, self._models

    def _open_local_client(self, qdrant_client_cls: type, base_path: Path) -> tuple[object, Path]:
        target = base_path.expanduser().resolve()
        target.mkdir(parents=True, exist_ok=True)
        try:
            return qdrant_client_cls(path=str(target)), target
        except Exception as exc:
            if not self._is_storage_lock_error(exc):
                raise StorageError(f"Unable to open Qdrant storage at {target}: {exc}") from exc
            if not read_bool_env("LECTERN_QDRANT_LOCAL_ISOLATED_FALLBACK", True):
                raise StorageError(f"Qdrant storage at {target} is locked: {exc}") from exc
            isolated = (target.parent / "qdrant-isolated" / f"pid-{os.getpid()}").resolve()
            isolated.mkdir(parents=True, exist_ok=True)
            logger.warning(
                "Primary local Qdrant storage %s is locked by another process; using isolated fallback %s.",
                target,
                isolated,
            )
            return qdrant_client_cls(path=str(isolated)), isolated

    @staticmethod
    def _is_storage_lock_error(exc: Exception) -> bool:
        msg = str(exc).lower()
        return "already accessed by another instance of qdrant client" in msg

    @staticmethod
    def _resolve_server_url(explicit_url: str | None) -> str | None:
        if explicit_url and explicit_url.strip():
            return explicit_url.strip()
        env_url = os.getenv("LECTERN_QDRANT_URL")
        if env_url and env_url.strip():
            return env_url.strip()
        return None
