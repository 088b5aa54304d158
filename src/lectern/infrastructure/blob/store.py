from __future__ import annotations

from pathlib import Path, PurePosixPath

from lectern.core.errors import StorageError
from lectern.core.files import ensure_directory, write_bytes_atomic


class LocalBlobStore:
    """Opaque byte store addressed by relative POSIX keys under ``base_dir``."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    @staticmethod
    def key_for_digest(digest_sha256: str, suffix: str = "") -> str:
        shard_a = digest_sha256[:2]
        shard_b = digest_sha256[2:4]
        return str(PurePosixPath("sha256") / shard_a / shard_b / f"{digest_sha256}{suffix}")

    def save(self, key: str, data: bytes) -> None:
        path = self._resolve(key)
        try:
            write_bytes_atomic(path, data)
        except OSError as exc:
            raise StorageError(f"Unable to write blob {key}: {exc}") from exc

    def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(f"Blob not found: {key}") from exc
        except OSError as exc:
            raise StorageError(f"Unable to read blob {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to delete blob {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def _resolve(self, key: str) -> Path:
        clean = str(key or "").strip()
        if not clean:
            raise StorageError("Blob key must not be empty.")
        ensure_directory(self.base_dir)
        root = self.base_dir.resolve()
        target = (root / PurePosixPath(clean)).resolve()
        if root not in target.parents:
            raise StorageError(f"Blob key escapes storage root: {key}")
        return target
