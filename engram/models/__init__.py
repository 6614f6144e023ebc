"""
Data models for Engram.

Core models:
- Document, Chunk: Ingested sources and their ordered slices
- Memory, MemorySource: Atomic facts with provenance
- GraphEdge, EdgeType: Directed relationships between memories
- CachedProfile: Per-container summary
- Transfer types for ingestion, extraction, search and lifecycle reports
"""

from engram.models.document import (
    Chunk,
    ChunkStatus,
    Document,
    DocumentType,
    ExtractedContent,
    ProcessingState,
    TextChunk,
)
from engram.models.extraction import CandidateMemory, ExtractedMemories, ExtractedMemory
from engram.models.ingestion import (
    ConversationTurn,
    IngestionResult,
    IngestionStatus,
    IngestRequest,
)
from engram.models.lifecycle import ForgettingReport, ResolutionReport
from engram.models.memory import (
    Memory,
    MemorySource,
    MemoryState,
    MemoryType,
    compute_bytes_hash,
    compute_content_hash,
)
from engram.models.profile import CachedProfile, ProfileSummary
from engram.models.relationships import (
    EdgeType,
    GraphEdge,
    InferredFact,
    RelationshipJudgement,
)
from engram.models.search import (
    ChunkHit,
    DocumentHit,
    HybridHit,
    Neighborhood,
    SearchHit,
    SearchOptions,
)

__all__ = [
    # Source content
    "Document",
    "DocumentType",
    "ProcessingState",
    "Chunk",
    "ChunkStatus",
    "ExtractedContent",
    "TextChunk",
    # Memory
    "Memory",
    "MemorySource",
    "MemoryState",
    "MemoryType",
    "compute_content_hash",
    "compute_bytes_hash",
    # Extraction
    "ExtractedMemory",
    "ExtractedMemories",
    "CandidateMemory",
    # Ingestion
    "IngestRequest",
    "IngestionResult",
    "IngestionStatus",
    "ConversationTurn",
    # Relationships
    "EdgeType",
    "GraphEdge",
    "RelationshipJudgement",
    "InferredFact",
    # Search
    "SearchOptions",
    "SearchHit",
    "ChunkHit",
    "DocumentHit",
    "HybridHit",
    "Neighborhood",
    # Lifecycle
    "ForgettingReport",
    "ResolutionReport",
    # Profile
    "CachedProfile",
    "ProfileSummary",
]
