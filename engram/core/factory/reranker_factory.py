"""
Factory for creating rerankers.
"""

from engram.config import RerankerConfig
from engram.core.llm.base import LLMProvider
from engram.core.reranker.base import Reranker
from engram.core.reranker.llm import LLMReranker
from engram.utils.exceptions import ConfigurationError


class RerankerFactory:
    """Factory for creating rerankers from configuration."""

    @staticmethod
    def create(config: RerankerConfig, llm: LLMProvider | None = None) -> Reranker | None:
        """
        Create a reranker, or None when reranking is disabled.

        Raises:
            ConfigurationError: If provider is not supported or misconfigured
        """
        if not config.enabled or config.provider == "none":
            return None
        if config.provider == "llm":
            if llm is None:
                raise ConfigurationError("LLM reranker requires an LLM provider")
            return LLMReranker(llm, batch_size=config.batch_size)
        raise ConfigurationError(f"Unsupported reranker provider: {config.provider}")
