"""
Abstract base class for rerankers.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class RerankResult(BaseModel):
    """Relevance of one candidate, by its index in the input list."""

    index: int = Field(..., ge=0)
    score: float = Field(..., ge=0.0, le=1.0)


class Reranker(ABC):
    """
    Scores query/candidate relevance.

    Implementations may only score the candidates they were given: every
    returned index refers to the input list, and candidates may be omitted
    but never invented.
    """

    @abstractmethod
    async def rerank(self, query: str, candidates: list[str]) -> list[RerankResult]:
        """
        Score candidates against the query.

        Args:
            query: Search query
            candidates: Candidate texts

        Returns:
            One result per scored candidate, in any order

        Raises:
            ProviderTransientError: Retryable provider failure
            ProviderPermanentError: Non-retryable provider failure
        """
        pass

    async def close(self):
        """Release resources held by the reranker."""
