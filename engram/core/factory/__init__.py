"""
Factory modules for creating Engram components.

Provides modular factories for LLM, Embedder, Reranker, media providers and
the Repository.
"""

from engram.core.factory.embedder_factory import EmbedderFactory
from engram.core.factory.llm_factory import LLMFactory
from engram.core.factory.media_factory import MediaFactory
from engram.core.factory.reranker_factory import RerankerFactory
from engram.core.factory.storage_factory import RepositoryFactory

__all__ = [
    "LLMFactory",
    "EmbedderFactory",
    "RerankerFactory",
    "MediaFactory",
    "RepositoryFactory",
]
