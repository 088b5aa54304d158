from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lectern.core.config import AppPaths
from lectern.core.errors import ProjectNotInitializedError
from lectern.core.files import ensure_directory
from lectern.infrastructure.db.sqlite import initialize_schema


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    db_path: Path


class ProjectService:
    """Creates the ``.lectern`` workspace and migrates its database."""

    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def init_project(self) -> InitResult:
        created = [
            path
            for path in (self.paths.lectern_dir, self.paths.blob_dir, self.paths.vector_dir, self.paths.qdrant_dir)
            if not path.exists()
        ]
        for path in (self.paths.blob_dir, self.paths.qdrant_dir):
            ensure_directory(path)
        # Safe to rerun: the schema is idempotent and migrations check columns first.
        initialize_schema(self.paths.db_path)
        return InitResult(paths_created=created, db_path=self.paths.db_path)

    def is_initialized(self) -> bool:
        return self.paths.db_path.exists()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise ProjectNotInitializedError(
                f"No Lectern workspace at {self.paths.lectern_dir}. Run `lectern init` first."
            )
