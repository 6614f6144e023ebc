"""
Abstract base class for LLM providers.

One provider serves memory extraction, relationship judgement, inference,
profiles and reranking; all of them ask for structured output.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class LLMProvider(ABC):
    """
    Abstract base for LLM text generation providers.

    Responsibilities:
    - Plain text completion
    - Structured output parsed into a pydantic model

    Implementations classify failures: rate limits, timeouts and 5xx raise
    ProviderTransientError, everything else ProviderPermanentError. Output
    that doesn't parse into ``response_format`` raises ValidationError.
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion from prompt.

        Args:
            prompt: The input prompt
            response_format: Optional Pydantic model for structured output
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic, 1.0 = creative)
            **kwargs: Provider-specific parameters

        Returns:
            Pydantic model instance if response_format provided, else string

        Raises:
            ValidationError: If the prompt is empty or structured output parsing fails
            ProviderTransientError: Retryable provider failure
            ProviderPermanentError: Non-retryable provider failure
        """
        pass

    @abstractmethod
    async def close(self):
        """
        Close any open connections.
        """
