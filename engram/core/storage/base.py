"""
Abstract base class for the persistence layer.

The repository owns documents, chunks, memories, provenance, edges and the
profile cache. Multi-row writes that must not be observed half-done
(memory + sources, supersession, forget cascade) are single methods here so
each implementation can run them in one transaction.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from engram.models.document import Chunk, Document
from engram.models.memory import Memory, MemorySource, MemoryState
from engram.models.profile import CachedProfile
from engram.models.relationships import EdgeType, GraphEdge


class Repository(ABC):
    """
    Abstract base for storage backends.

    Responsibilities:
    - Document and chunk persistence
    - Memory persistence with provenance
    - Directed, deduplicated edges between memories
    - Vector search over memories, filtered by container and state
    - Lifecycle writes (supersession, forgetting) as atomic units
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create schema and open connections."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections."""
        pass

    # ═══════════════════════════════════════════════════════════
    # METADATA
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_metadata(self, key: str) -> str | None:
        """Read a store-level metadata value."""
        pass

    @abstractmethod
    async def set_metadata(self, key: str, value: str) -> None:
        """Write a store-level metadata value."""
        pass

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS & CHUNKS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_document(self, document: Document) -> None:
        """
        Insert a document.

        Raises:
            ConflictError: If the ID already exists
        """
        pass

    @abstractmethod
    async def update_document(self, document: Document) -> None:
        """Update document status and counters."""
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        pass

    @abstractmethod
    async def get_documents(self, document_ids: list[str]) -> list[Document]:
        pass

    @abstractmethod
    async def find_document_by_hash(self, container_tag: str, content_hash: str) -> Document | None:
        """Find a document with identical raw bytes in the container."""
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document, its chunks and memory sources pointing at it.

        Memories are kept even when this removes their last source.

        Returns:
            True if the document existed
        """
        pass

    @abstractmethod
    async def add_chunks(self, chunks: list[Chunk]) -> None:
        """Insert chunks of one document."""
        pass

    @abstractmethod
    async def update_chunk(self, chunk: Chunk) -> None:
        """Persist a chunk's embedding, status and error."""
        pass

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[Chunk]:
        """Chunks of a document ordered by position."""
        pass

    # ═══════════════════════════════════════════════════════════
    # MEMORIES & PROVENANCE
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_memory(
        self,
        memory: Memory,
        sources: list[MemorySource],
        edges: list[GraphEdge] | None = None,
    ) -> None:
        """
        Insert a memory together with its sources (and outgoing edges, e.g.
        derived_from links of an inferred memory), atomically.

        Raises:
            ValidationError: If no source is given for a non-derived memory
        """
        pass

    @abstractmethod
    async def update_memory(self, memory: Memory) -> None:
        pass

    @abstractmethod
    async def get_memory(self, memory_id: str) -> Memory | None:
        pass

    @abstractmethod
    async def get_memories(self, memory_ids: list[str]) -> list[Memory]:
        """Memories for the given IDs; unknown IDs are skipped."""
        pass

    @abstractmethod
    async def list_memories(
        self,
        container_tag: str,
        states: list[MemoryState] | None = None,
        limit: int | None = None,
    ) -> list[Memory]:
        """Memories of a container, newest first."""
        pass

    @abstractmethod
    async def find_memory_by_hash(self, container_tag: str, content_hash: str) -> Memory | None:
        pass

    @abstractmethod
    async def touch_memories(self, memory_ids: list[str], accessed_at: datetime) -> None:
        """Set last_accessed and bump access_count."""
        pass

    @abstractmethod
    async def set_pinned(self, memory_id: str, pinned: bool) -> bool:
        """
        Pin or unpin a memory.

        Returns:
            True if the memory exists
        """
        pass

    @abstractmethod
    async def add_source(self, source: MemorySource) -> bool:
        """
        Link a memory to a document/chunk. Idempotent.

        Returns:
            True if a new link was created
        """
        pass

    @abstractmethod
    async def get_sources(self, memory_ids: list[str]) -> list[MemorySource]:
        pass

    # ═══════════════════════════════════════════════════════════
    # EDGES
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_edge(self, edge: GraphEdge) -> bool:
        """
        Insert an edge unless (source, target, type) already exists.

        Raises:
            NotFoundError: If an endpoint doesn't exist

        Returns:
            True if the edge was created
        """
        pass

    @abstractmethod
    async def get_edge_between(
        self, source_id: str, target_id: str, edge_type: EdgeType | None = None
    ) -> GraphEdge | None:
        """Find a directed edge between two memories."""
        pass

    @abstractmethod
    async def get_edges(
        self,
        memory_ids: list[str],
        direction: str = "both",
        edge_types: list[EdgeType] | None = None,
    ) -> list[GraphEdge]:
        """
        Edges touching any of the memories.

        Args:
            memory_ids: Memories to look around
            direction: "outgoing", "incoming" or "both"
            edge_types: Optional type filter
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # SEARCH
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def vector_search(
        self,
        container_tag: str,
        vector: list[float],
        k: int,
        states: list[MemoryState] | None = None,
        include_derived: bool = True,
        exclude_ids: list[str] | None = None,
    ) -> list[tuple[Memory, float]]:
        """
        Top-k memories by cosine similarity within a container.

        State is evaluated at read time; only ``states`` (default: active)
        are returned.

        Returns:
            (memory, similarity) pairs ordered by descending similarity
        """
        pass

    @abstractmethod
    async def chunk_vector_search(
        self,
        container_tag: str,
        vector: list[float],
        k: int,
    ) -> list[tuple[Chunk, float]]:
        """
        Top-k embedded chunks by cosine similarity, across the documents of
        a container.

        Returns:
            (chunk, similarity) pairs ordered by descending similarity, then id
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def apply_supersession(
        self,
        winner_id: str,
        loser_id: str,
        edges: list[GraphEdge],
    ) -> bool:
        """
        Mark ``loser_id`` superseded by ``winner_id`` and insert the edges,
        in one transaction. Already-present edges are skipped.

        Returns:
            True if anything changed
        """
        pass

    @abstractmethod
    async def get_forgetting_candidates(self, cutoff: datetime) -> list[Memory]:
        """
        Non-pinned memories that are superseded or whose last access (or
        creation) is at or before ``cutoff``.
        """
        pass

    @abstractmethod
    async def forget_memory(
        self,
        memory_id: str,
        still_eligible: Callable[[Memory], bool] | None = None,
    ) -> bool:
        """
        Delete a memory with its sources and every edge touching it, in one
        transaction.

        The memory is re-read inside that transaction. Pinned memories, and
        memories for which ``still_eligible`` returns False, are left alone.

        Returns:
            True if the memory was deleted
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # PROFILE CACHE
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def last_mutation(self, container_tag: str) -> datetime | None:
        """When memories of the container last changed."""
        pass

    @abstractmethod
    async def get_profile(self, container_tag: str) -> CachedProfile | None:
        pass

    @abstractmethod
    async def put_profile(self, profile: CachedProfile) -> None:
        pass
