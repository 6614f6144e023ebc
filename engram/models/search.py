"""
Search request and result models.
"""

from typing import Literal

from pydantic import BaseModel, Field

from engram.models.document import Chunk, Document
from engram.models.memory import Memory
from engram.models.relationships import GraphEdge


class SearchOptions(BaseModel):
    """Per-query search options. Unset fields fall back to SearchConfig."""

    top_k: int | None = Field(default=None, ge=1, description="Candidates fetched from the vector index")
    limit: int | None = Field(default=None, ge=1, description="Hits returned")
    similarity_threshold: float | None = Field(default=None, description="Minimum cosine similarity")
    rerank: bool | None = Field(default=None, description="Rerank candidates when a reranker is configured")
    relevance_floor: float | None = Field(default=None, description="Minimum rerank score kept")
    temporal: bool = Field(default=True, description="Apply temporal adjustment")
    track_access: bool | None = Field(default=None, description="Touch last_accessed of returned hits")
    rewrite_query: bool | None = Field(default=None, description="Let the LLM rewrite the query first")


class SearchHit(BaseModel):
    """One ranked search result."""

    memory: Memory
    similarity: float
    rerank_score: float | None = None
    temporal_factor: float = 1.0
    score: float

    @property
    def base_score(self) -> float:
        """Rerank score when reranked, otherwise similarity."""
        return self.rerank_score if self.rerank_score is not None else self.similarity


class ChunkHit(BaseModel):
    """A chunk matched by document search."""

    chunk: Chunk
    similarity: float
    rerank_score: float | None = None

    @property
    def score(self) -> float:
        return self.rerank_score if self.rerank_score is not None else self.similarity


class DocumentHit(BaseModel):
    """A document with its matching chunks, scored by its best chunk."""

    document: Document
    chunks: list[ChunkHit] = Field(default_factory=list)

    @property
    def score(self) -> float:
        return max((c.score for c in self.chunks), default=0.0)


class HybridHit(BaseModel):
    """One result of hybrid search: either a memory or a document chunk."""

    kind: Literal["memory", "chunk"]
    score: float
    memory: SearchHit | None = None
    chunk: ChunkHit | None = None
    document_id: str | None = None

    @property
    def id(self) -> str:
        return self.memory.memory.id if self.memory is not None else self.chunk.chunk.id


class Neighborhood(BaseModel):
    """Subgraph reachable from a set of seed memories."""

    memories: list[Memory] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
