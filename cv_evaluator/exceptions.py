# =============================================================================
# Domain Exceptions
# =============================================================================
#
# EvaluationError
# ├── ProviderError            — LLM / embedding backend failures
# │   └── EmbeddingParseError  — 2xx embedding response with no vector in it
# ├── ExtractionError          — document text extraction failures
# │   └── MissingDocumentFileError
# ├── DocumentNotFoundError    — document id unknown to the document store
# └── JobNotFoundError         — job id unknown to the job store
#
# Provider errors are caught at the scoring/embedding boundary and downgraded
# to fallbacks. Missing files and missing documents fail the job.
# =============================================================================

from __future__ import annotations


class EvaluationError(Exception):
    """Base class for all evaluation pipeline errors."""


class ProviderError(EvaluationError):
    """
    A generative or embedding backend call failed.

    Attributes:
        code: Short machine-readable reason, e.g. "MISSING_API_KEY",
            "PROVIDER_ERROR", "EMPTY_RESPONSE", "PARSE_ERROR".
        status: Last HTTP status seen, if any.
        details: Raw response body (or other diagnostic text).
    """

    def __init__(
        self,
        message: str,
        code: str = "PROVIDER_ERROR",
        status: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details

    def __str__(self) -> str:
        base = f"{self.code}: {self.args[0]}"
        if self.status is not None:
            base += f" (status={self.status})"
        return base


class EmbeddingParseError(ProviderError):
    """The embedding endpoint answered 2xx but no known shape matched."""

    def __init__(self, raw_body: str) -> None:
        super().__init__(
            "Unable to parse embedding array from response",
            code="PARSE_ERROR",
            details=raw_body,
        )
        self.raw_body = raw_body


class ExtractionError(EvaluationError):
    """Text could not be extracted from a stored document."""


class MissingDocumentFileError(ExtractionError):
    """The stored document file does not exist or cannot be read."""

    def __init__(self, file_path: str) -> None:
        super().__init__(f"MISSING_FILE: {file_path}")
        self.file_path = file_path


class DocumentNotFoundError(EvaluationError):
    """A document id referenced by a job is unknown."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class JobNotFoundError(EvaluationError):
    """A job id is unknown to the job store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id
