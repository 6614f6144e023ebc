"""
Reranker abstraction layer.

Supported rerankers:
- LLMReranker (any LLMProvider)
"""
from engram.core.reranker.base import Reranker, RerankResult
from engram.core.reranker.llm import LLMReranker

__all__ = [
    "Reranker",
    "RerankResult",
    "LLMReranker",
]
