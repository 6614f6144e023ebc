"""
Base interface for an external vector index.

The index only holds vectors plus the payload needed to filter them
(container, state, derived flag). The repository stays the source of truth
and re-reads memory state after every search.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from engram.models.memory import Memory, MemoryState


class VectorHit(BaseModel):
    """Vector search hit."""

    memory_id: str
    score: float


class VectorStore(ABC):
    """Abstract base class for vector index implementations."""

    @abstractmethod
    async def initialize(self, dimension: int) -> None:
        """
        Initialize the index (create collections/indices).

        Args:
            dimension: Embedding dimension

        Raises:
            VectorStoreError: If initialization fails
        """
        pass

    @abstractmethod
    async def upsert(self, memory: Memory) -> None:
        """
        Store or update a memory's vector and filter payload.

        Raises:
            ValidationError: If the memory has no embedding
            VectorStoreError: If the upsert fails
        """
        pass

    @abstractmethod
    async def set_state(self, memory_id: str, state: MemoryState) -> None:
        """Update the state payload of a stored vector."""
        pass

    @abstractmethod
    async def delete(self, memory_ids: list[str]) -> None:
        """Delete vectors. Unknown IDs are ignored."""
        pass

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        container_tag: str,
        limit: int,
        states: list[MemoryState] | None = None,
        include_derived: bool = True,
    ) -> list[VectorHit]:
        """
        Nearest neighbours within a container.

        Returns:
            Hits ordered by descending cosine similarity
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass
