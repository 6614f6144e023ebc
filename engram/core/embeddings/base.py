"""
Abstract base class for embedding providers.

Chunks, memories and queries all go through the same embedder, so every
vector in a store shares one dimension (see DimensionCheckedEmbedder).
"""

from abc import ABC, abstractmethod


class Embedder(ABC):
    """
    Abstract base for embedding providers.

    Implementations raise ProviderTransientError for failures worth retrying
    (rate limits, timeouts, 5xx) and ProviderPermanentError otherwise;
    callers decide whether to retry.
    """

    @abstractmethod
    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Embed one text.

        Args:
            text: Text to embed (a chunk's embedded form, a memory or a query)
            **kwargs: Provider-specific parameters

        Returns:
            Embedding vector

        Raises:
            ValidationError: If text is empty
            ProviderTransientError: Retryable provider failure
            ProviderPermanentError: Non-retryable provider failure
        """
        pass

    async def batch_embed(self, texts: list[str], batch_size: int = 32, **kwargs) -> list[list[float]]:
        """
        Embed several texts, preserving input order.

        The default calls ``embed`` once per text; providers with a batch
        endpoint override it and honour ``batch_size``.
        """
        return [await self.embed(text, **kwargs) for text in texts]

    async def get_dimension(self) -> int:
        """Vector dimension, measured with a one-word embedding unless overridden."""
        return len(await self.embed("dimension"))

    @abstractmethod
    async def close(self):
        """Release client connections."""
        pass
