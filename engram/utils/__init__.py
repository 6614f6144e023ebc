"""Utility modules for Engram."""

from engram.utils.exceptions import (
    ConfigurationError,
    ConflictError,
    EngramError,
    ForgettingError,
    InternalError,
    NotFoundError,
    PipelineError,
    ProviderError,
    ProviderPermanentError,
    ProviderTransientError,
    StoreError,
    ValidationError,
    VectorStoreError,
    is_transient_exception,
    provider_error,
)
from engram.utils.id_generator import (
    generate_chunk_id,
    generate_document_id,
    generate_memory_id,
)
from engram.utils.locks import KeyedLocks
from engram.utils.logger import get_logger, setup_logging
from engram.utils.retry import RetryPolicy
from engram.utils.similarity import (
    content_overlap_score,
    batch_cosine_similarity,
    fuzzy_overlap_score,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    # ID Generators
    "generate_document_id",
    "generate_chunk_id",
    "generate_memory_id",
    # Concurrency
    "KeyedLocks",
    "RetryPolicy",
    # Similarity
    "batch_cosine_similarity",
    "content_overlap_score",
    "fuzzy_overlap_score",
    # Exceptions
    "EngramError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "ConflictError",
    "ProviderError",
    "ProviderTransientError",
    "ProviderPermanentError",
    "StoreError",
    "VectorStoreError",
    "PipelineError",
    "ForgettingError",
    "InternalError",
    "is_transient_exception",
    "provider_error",
]
