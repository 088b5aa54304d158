class LecternError(Exception):
    """Base error for all user-facing Lectern exceptions."""


class ConfigurationError(LecternError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(LecternError):
    """Raised when .lectern metadata is missing."""


class ValidationError(LecternError):
    """Raised when model invariants or request inputs fail."""


class ParseError(LecternError):
    """Raised when a document cannot be read as a PDF."""


class EmbeddingError(LecternError):
    """Raised when the embedding model fails to produce vectors."""


class StorageError(LecternError):
    """Raised when the blob store or the chunk store is unavailable."""


class JobNotFoundError(LecternError):
    """Raised when an ingestion job id does not resolve."""


class DocumentNotFoundError(LecternError):
    """Raised when a document id does not resolve."""


class CatalogError(LecternError):
    """Raised when textbook catalog discovery fails."""


class FetchError(LecternError):
    """Raised when a remote download fails; ``status`` holds the HTTP code if any."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
