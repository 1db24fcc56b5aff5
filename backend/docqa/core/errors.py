"""Exception taxonomy shared by the ingestion and question-answering paths.

Every error carries an ``error_code`` that is persisted on failed ingestion
attempts::

    DocQAError
    +-- ValidationError        malformed message or question input
    +-- NotFoundError          missing document / attempt / object
    |   +-- ObjectNotFoundError
    +-- IntegrityError         attempt does not belong to the document
    +-- UnsupportedTypeError   no extractor for the declared format
    +-- EmptyContentError      nothing extractable
    +-- ExtractionError        parser failure on the raw bytes
    +-- DependencyError        object store, queue, embeddings or LLM failure
    +-- CountMismatchError     embeddings and chunks diverged

Only ``DependencyError`` (and exceptions outside the taxonomy) are worth
redelivering; the rest fail the same way on every attempt.
"""

from __future__ import annotations

INTERNAL_ERROR = "INTERNAL_ERROR"


class DocQAError(Exception):
    """Base class for all DocQA errors."""

    error_code = INTERNAL_ERROR
    retryable = False

    def __init__(self, message: str = "An unexpected error occurred", provider: str | None = None) -> None:
        self.message = message
        self.provider = provider
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ValidationError(DocQAError):
    error_code = "VALIDATION_ERROR"


class NotFoundError(DocQAError):
    error_code = "NOT_FOUND"


class ObjectNotFoundError(NotFoundError):
    error_code = "OBJECT_NOT_FOUND"


class IntegrityError(DocQAError):
    error_code = "INTEGRITY_ERROR"


class UnsupportedTypeError(DocQAError):
    error_code = "UNSUPPORTED_TYPE"


class EmptyContentError(DocQAError):
    error_code = "EMPTY_CONTENT"


class ExtractionError(DocQAError):
    error_code = "EXTRACTION_FAILED"


class DependencyError(DocQAError):
    error_code = "DEPENDENCY_ERROR"
    retryable = True


class CountMismatchError(DocQAError):
    error_code = "COUNT_MISMATCH"


def error_code_for(exc: BaseException) -> str:
    """Stable error code for any exception."""
    if isinstance(exc, DocQAError):
        return exc.error_code
    return INTERNAL_ERROR


def is_retryable(exc: BaseException) -> bool:
    """Whether redelivering the message could plausibly succeed."""
    if isinstance(exc, DocQAError):
        return exc.retryable
    return True


__all__ = [
    "INTERNAL_ERROR",
    "DocQAError",
    "ValidationError",
    "NotFoundError",
    "ObjectNotFoundError",
    "IntegrityError",
    "UnsupportedTypeError",
    "EmptyContentError",
    "ExtractionError",
    "DependencyError",
    "CountMismatchError",
    "error_code_for",
    "is_retryable",
]
