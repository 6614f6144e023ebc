"""
Custom exception hierarchy for Engram.

Every error carries a ``kind`` from a small, closed taxonomy so callers can
decide what to do without matching on concrete classes:

- validation: bad input, never retried
- provider_transient: rate limits, timeouts, 5xx; retried with backoff
- provider_permanent: auth failures, bad requests, unknown models
- not_found: a referenced entity doesn't exist
- conflict: duplicate ingest without replace
- internal: storage failures and invariant violations

All exceptions inherit from EngramError for easy catching.
"""

import asyncio

TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


class EngramError(Exception):
    """
    Base exception for all Engram errors.
    All custom exceptions should inherit from this class.
    """

    kind = "internal"

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize Engram error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict:
        """Serialize for an outer API layer."""
        return {"kind": self.kind, "message": self.message, "context": self.context}


class ValidationError(EngramError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    kind = "validation"


class ConfigurationError(ValidationError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class NotFoundError(EngramError):
    """
    Resource not found errors.
    Raised when a requested resource (memory, document, etc.) doesn't exist.
    """

    kind = "not_found"


class ConflictError(EngramError):
    """
    Conflict errors.
    Raised when a document is re-ingested without asking to replace it.
    """

    kind = "conflict"


class ProviderError(EngramError):
    """
    Base exception for model provider failures (LLM, embedder, reranker, OCR,
    transcription).
    """

    kind = "provider_permanent"


class ProviderTransientError(ProviderError):
    """
    Transient provider errors.
    Raised for rate limits, timeouts and server-side failures. Safe to retry.
    """

    kind = "provider_transient"


class ProviderPermanentError(ProviderError):
    """
    Permanent provider errors.
    Raised for auth failures, malformed requests and dimension mismatches.
    Retrying won't help.
    """

    kind = "provider_permanent"


class StoreError(EngramError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    kind = "internal"


class VectorStoreError(StoreError):
    """
    Vector store operation errors.
    Raised when vector database operations fail.
    """

    pass


class PipelineError(EngramError):
    """
    Processing pipeline errors.
    Raised when a whole ingest pass fails. Context carries the document id
    and the chunk ids that failed before the abort.
    """

    kind = "internal"


class ForgettingError(EngramError):
    """
    Forgetting cycle errors.
    Raised when a storage failure aborts a cycle. Context carries the
    evaluated/forgotten counts committed so far.
    """

    kind = "internal"


class InternalError(EngramError):
    """
    Internal errors.
    Raised when an invariant is violated.
    """

    kind = "internal"


def is_transient_status(status_code: int | None) -> bool:
    """Whether an HTTP status from a provider is worth retrying."""
    if status_code is None:
        return False
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def is_transient_exception(error: BaseException) -> bool:
    """
    Best-effort classification of an SDK exception.

    Connection failures and timeouts are transient, as are errors exposing a
    retryable ``status_code``. Everything else is treated as permanent.
    """
    if isinstance(error, ProviderError):
        return isinstance(error, ProviderTransientError)
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return is_transient_status(status_code)
    name = type(error).__name__
    return "Timeout" in name or "Connect" in name


def provider_error(
    error: BaseException, provider: str, operation: str, context: dict | None = None
) -> ProviderError:
    """
    Wrap an SDK exception into the matching ProviderError subclass.

    Args:
        error: Original exception
        provider: Provider name (ollama, openai, ...)
        operation: What was being attempted (embed, complete, ...)
        context: Extra context merged into the error

    Returns:
        ProviderTransientError or ProviderPermanentError
    """
    ctx = {"provider": provider, "operation": operation, "error": str(error)}
    if context:
        ctx.update(context)
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        ctx["status_code"] = status_code

    if is_transient_exception(error):
        return ProviderTransientError(f"{provider} {operation} failed: {error}", ctx)
    return ProviderPermanentError(f"{provider} {operation} failed: {error}", ctx)
