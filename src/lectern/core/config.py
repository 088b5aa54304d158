from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    lectern_dir: Path
    db_path: Path
    blob_dir: Path
    vector_dir: Path
    qdrant_dir: Path


DEFAULT_LECTERN_DIRNAME = ".lectern"
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    lectern_home_raw = os.getenv("LECTERN_HOME")
    if lectern_home_raw:
        lectern_dir = Path(lectern_home_raw).expanduser().resolve()
    else:
        lectern_dir = root / DEFAULT_LECTERN_DIRNAME

    return AppPaths(
        project_root=root,
        lectern_dir=lectern_dir,
        db_path=lectern_dir / "lectern.db",
        blob_dir=lectern_dir / "blobs",
        vector_dir=lectern_dir / "vector",
        qdrant_dir=lectern_dir / "vector" / "qdrant",
    )


@dataclass(frozen=True)
class IngestionSettings:
    batch_size: int = 5
    heartbeat_interval_seconds: float = 15.0
    stall_timeout_seconds: float = 600.0
    stall_reaper_interval_seconds: float = 60.0
    stall_auto_requeue: bool = False
    chunk_max_tokens: int = 500
    chunk_overlap_tokens: int = 50
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_device: str = "auto"

    @classmethod
    def from_env(cls) -> IngestionSettings:
        defaults = cls()
        return cls(
            batch_size=read_int_env("LECTERN_BATCH_SIZE", defaults.batch_size),
            heartbeat_interval_seconds=read_float_env(
                "LECTERN_HEARTBEAT_INTERVAL_SECONDS",
                defaults.heartbeat_interval_seconds,
            ),
            stall_timeout_seconds=read_float_env(
                "LECTERN_STALL_TIMEOUT_SECONDS",
                defaults.stall_timeout_seconds,
            ),
            stall_reaper_interval_seconds=read_float_env(
                "LECTERN_STALL_REAPER_INTERVAL_SECONDS",
                defaults.stall_reaper_interval_seconds,
            ),
            stall_auto_requeue=read_bool_env("LECTERN_STALL_AUTO_REQUEUE", defaults.stall_auto_requeue),
            chunk_max_tokens=read_int_env("LECTERN_CHUNK_MAX_TOKENS", defaults.chunk_max_tokens),
            chunk_overlap_tokens=read_non_negative_int_env(
                "LECTERN_CHUNK_OVERLAP_TOKENS",
                defaults.chunk_overlap_tokens,
            ),
            embedding_model=(os.getenv("LECTERN_EMBEDDING_MODEL") or "").strip() or defaults.embedding_model,
            embedding_device=(os.getenv("LECTERN_EMBEDDING_DEVICE") or "").strip() or defaults.embedding_device,
        )


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_non_negative_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return max(0, parsed)


def read_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default
