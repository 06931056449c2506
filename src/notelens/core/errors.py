from __future__ import annotations


class NotelensError(Exception):
    """Base error for all user-facing notelens exceptions."""


class ConfigurationError(NotelensError):
    """Raised when configuration is invalid or incomplete."""


class DocumentNotFoundError(NotelensError):
    """Raised when a document cannot be found in the repository."""


class VectorStoreError(NotelensError):
    """Raised when a vector store write or read fails."""


class ExtractionError(NotelensError):
    """Raised when text cannot be extracted from a file."""


class ExternalContentError(NotelensError):
    """Raised when bookmark, file or folder content cannot be indexed."""


class ServiceNotReadyError(NotelensError):
    """Raised when the RAG service could not be initialized."""


MALFORMED_RESPONSE_STATUS = -1


class EmbeddingServiceError(NotelensError):
    """Raised when an embedding provider call fails.

    ``status_code`` is the HTTP status returned by the provider, ``None`` when
    the request never produced a response (timeouts, refused connections), or
    ``MALFORMED_RESPONSE_STATUS`` when the body could not be understood.
    """

    def __init__(self, provider: str, status_code: int | None, message: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        if self.status_code is None:
            return f"{self.provider} embedding request failed: {self.message}"
        return f"{self.provider} embedding request failed (status {self.status_code}): {self.message}"

    def is_unrecoverable(self) -> bool:
        """Return True when retrying the same request cannot succeed."""
        code = self.status_code
        if code is None:
            return False
        if code == MALFORMED_RESPONSE_STATUS:
            return True
        if code >= 500:
            return True
        return code in {401, 403, 404}


class DocumentRepositoryError(NotelensError):
    """Raised when the document index cannot be read."""
