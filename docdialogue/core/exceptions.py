"""Custom exceptions for the application.

Every error that may reach a caller derives from ``PipelineError`` and carries
the HTTP status it maps to. The message is always safe to show to the caller.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputError(PipelineError):
    """Raised when a request is missing or has malformed fields."""

    status_code = 400


class NotFoundError(PipelineError):
    """Raised when a referenced slug or record does not exist."""

    status_code = 404


class AuthError(PipelineError):
    """Raised when a tool call carries the wrong shared secret."""

    status_code = 401


class ConfigError(PipelineError):
    """Raised when required configuration is missing."""

    status_code = 500


class UpstreamError(PipelineError):
    """Raised when an upstream provider answers with a non-success status."""

    status_code = 502


class FatalPipelineError(PipelineError):
    """Raised when an ingest stage fails and the run must be aborted."""

    status_code = 500

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class TransientExternalError(PipelineError):
    """Raised when a call to an external service fails."""

    pass


class EmbeddingError(TransientExternalError):
    """Raised when embedding generation fails."""

    pass


class VectorDBError(TransientExternalError):
    """Raised when vector database operations fail."""

    pass


class LLMError(TransientExternalError):
    """Raised when LLM operations fail."""

    pass


class StorageError(TransientExternalError):
    """Raised when downloading from object storage fails."""

    pass


class CacheError(Exception):
    """Raised when cache operations fail."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass
