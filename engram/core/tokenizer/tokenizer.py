"""
Token counting utilities for chunk budgeting.

Uses tiktoken for accurate OpenAI-compatible token counting with
character-based approximation as the default.
"""

import math

import tiktoken

from engram.config import TokenizerConfig


class Tokenizer:
    """
    Token counter used by the chunkers.

    Usage:
        tokenizer = Tokenizer()
        count = tokenizer.count_tokens("Hello world")
        fits = tokenizer.fits("Some text", budget=512)
    """

    def __init__(self, config: TokenizerConfig | None = None):
        """
        Initialize tokenizer with configuration.

        Args:
            config: Optional tokenizer configuration. Uses defaults if not provided.
        """
        self.config = config or TokenizerConfig()
        self._encoder: tiktoken.Encoding | None = None

    @property
    def encoder(self) -> tiktoken.Encoding:
        """
        Lazy-load tiktoken encoder.

        Returns:
            Tiktoken encoding instance
        """
        if self._encoder is None:
            self._encoder = tiktoken.get_encoding(self.config.model)
        return self._encoder

    def count_tokens(self, text: str) -> int:
        """
        Count tokens with the configured provider.

        Args:
            text: Text to count tokens for

        Returns:
            Token count (approximate unless provider is tiktoken)
        """
        if not text:
            return 0

        if self.config.provider == "approximate":
            return self.estimate_tokens(text)

        return len(self.encoder.encode(text))

    def estimate_tokens(self, text: str) -> int:
        """
        Fast approximate token count using character ratio.

        Rounds up so a non-empty string always counts as at least one token.

        Args:
            text: Text to estimate tokens for

        Returns:
            Approximate token count
        """
        if not text:
            return 0
        return math.ceil(len(text) / self.config.chars_per_token)

    def fits(self, text: str, budget: int) -> bool:
        """Whether text stays within a token budget."""
        return self.count_tokens(text) <= budget

    def tokenize(self, text: str) -> list[int]:
        """
        Get token IDs for text.

        Args:
            text: Text to tokenize

        Returns:
            List of token IDs
        """
        if not text:
            return []
        return self.encoder.encode(text)

    def detokenize(self, tokens: list[int]) -> str:
        """
        Convert token IDs back to text.

        Args:
            tokens: List of token IDs

        Returns:
            Decoded text
        """
        if not tokens:
            return ""
        return self.encoder.decode(tokens)
