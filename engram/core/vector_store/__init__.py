"""Optional external vector index for memory embeddings."""

from engram.core.vector_store.base import VectorHit, VectorStore
from engram.core.vector_store.qdrant import QdrantStore

__all__ = ["VectorStore", "VectorHit", "QdrantStore"]
