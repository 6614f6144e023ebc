"""
Embedding provider abstraction layer.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)

DimensionCheckedEmbedder wraps any provider and pins the vector dimension.
"""
from engram.core.embeddings.base import Embedder
from engram.core.embeddings.dimension import DimensionCheckedEmbedder
from engram.core.embeddings.ollama import OllamaEmbedder
from engram.core.embeddings.openai import OpenAIEmbedder

__all__ = [
    "Embedder",
    "DimensionCheckedEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
]
