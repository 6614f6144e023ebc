"""
OpenAI embedder using official SDK.
"""

from openai import AsyncOpenAI

from engram.core.embeddings.base import Embedder
from engram.utils.exceptions import ProviderPermanentError, ValidationError, provider_error
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAIEmbedder(Embedder):
    """
    OpenAI embedder for generating text embeddings.

    Uses official OpenAI SDK with support for batch processing.
    Supports models like text-embedding-3-small, text-embedding-3-large, etc.
    """

    # Known dimensions for OpenAI embedding models
    _MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key
            model: Embedding model name (e.g., "text-embedding-3-small")
            organization: Optional organization ID
            base_url: Optional custom base URL
            timeout: Request timeout in seconds
        """
        self.model = model

        self.client = AsyncOpenAI(
            api_key=api_key, organization=organization, base_url=base_url, timeout=timeout
        )

    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding for text using OpenAI.

        Args:
            text: Text to embed
            **kwargs: Additional parameters (e.g., dimensions, user)

        Returns:
            Embedding vector as list of floats

        Raises:
            ValidationError: If text is invalid
            ProviderTransientError: Rate limits, timeouts, 5xx
            ProviderPermanentError: Auth failures, bad requests, empty responses
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        embeddings = await self._create([text], **kwargs)
        return embeddings[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = 2048, **kwargs
    ) -> list[list[float]]:
        """
        Batch embed using OpenAI's native batch API.

        OpenAI supports up to 2048 inputs per request.

        Args:
            texts: List of texts to embed
            batch_size: Number of texts per request (max 2048)
            **kwargs: Additional parameters

        Returns:
            List of embedding vectors

        Raises:
            ValidationError: If texts list is invalid
        """
        if not texts:
            raise ValidationError("Texts list cannot be empty")

        embeddings = []
        for i in range(0, len(texts), batch_size):
            embeddings.extend(await self._create(texts[i : i + batch_size], **kwargs))
        return embeddings

    async def _create(self, inputs: list[str], **kwargs) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=inputs, **kwargs)
        except Exception as e:
            logger.error(
                "OpenAI embedding error: {}",
                e,
                extra={"model": self.model, "error": str(e), "error_type": type(e).__name__},
            )
            raise provider_error(e, "openai", "embed", {"model": self.model}) from e

        if not response.data or len(response.data) != len(inputs):
            raise ProviderPermanentError(
                "OpenAI returned empty embedding response",
                {"provider": "openai", "model": self.model},
            )

        # response.data is already ordered
        return [item.embedding for item in response.data]

    async def get_dimension(self) -> int:
        """
        Get embedding dimension for the model.

        Returns:
            Embedding vector dimension
        """
        if self.model in self._MODEL_DIMENSIONS:
            return self._MODEL_DIMENSIONS[self.model]
        return await super().get_dimension()

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
