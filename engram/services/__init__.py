"""
Services for Engram.

High-level business logic services:
- MemoryEngine: Unified interface for all memory operations
- ProcessingPipeline: Documents to embedded chunks and memories
- MemoryExtractor: Atomic memories from chunks and conversations
- ConsistencyResolver: Contradiction and relationship resolution
- InferenceEngine: Derived memories from related clusters
- SearchService: Hybrid retrieval and graph neighborhoods
- ForgettingManager: Eviction of stale and superseded memories
- ProfileService: Cached per-container summaries
"""

from engram.services.consistency import ConsistencyResolver
from engram.services.forgetting import ForgettingManager
from engram.services.inference import InferenceEngine
from engram.services.memory_engine import MemoryEngine
from engram.services.memory_extractor import MemoryExtractor
from engram.services.pipeline import ProcessingPipeline
from engram.services.profile import ProfileService
from engram.services.search import SearchService
from engram.services.temporal import TemporalRanker

__all__ = [
    "MemoryEngine",
    "ProcessingPipeline",
    "MemoryExtractor",
    "ConsistencyResolver",
    "InferenceEngine",
    "SearchService",
    "ForgettingManager",
    "ProfileService",
    "TemporalRanker",
]
