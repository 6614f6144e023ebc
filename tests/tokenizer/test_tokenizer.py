"""
Tests for Tokenizer class.

Tests cover:
1. Token estimation (character ratio, rounded up)
2. Provider selection (approximate vs tiktoken)
3. Budget checks
4. Tokenization and detokenization
"""

import pytest

from engram.config import TokenizerConfig
from engram.core.tokenizer import Tokenizer


class TestTokenEstimation:
    """Tests for approximate token estimation."""

    def test_estimate_rounds_up(self):
        """Test estimate is ceil(len / chars_per_token)."""
        tokenizer = Tokenizer()

        assert tokenizer.estimate_tokens("Hello world") == 3  # 11 / 4 = 2.75
        assert tokenizer.estimate_tokens("abcd") == 1
        assert tokenizer.estimate_tokens("abcde") == 2

    def test_estimate_empty(self):
        """Test estimating tokens in empty string."""
        assert Tokenizer().estimate_tokens("") == 0

    def test_single_character_counts(self):
        """Test a non-empty string is at least one token."""
        assert Tokenizer().estimate_tokens("x") == 1

    def test_custom_ratio(self):
        """Test estimation with custom chars_per_token."""
        tokenizer = Tokenizer(TokenizerConfig(chars_per_token=5.0))

        assert tokenizer.estimate_tokens("Hello world test") == 4  # 16 / 5 = 3.2

    def test_approximate_provider(self):
        """Test count_tokens uses the estimate by default."""
        tokenizer = Tokenizer()
        text = "The quick brown fox jumps over the lazy dog."

        assert tokenizer.count_tokens(text) == tokenizer.estimate_tokens(text)


class TestBudget:
    """Tests for fits()."""

    def test_fits_within_budget(self):
        tokenizer = Tokenizer()

        assert tokenizer.fits("a" * 40, budget=10) is True
        assert tokenizer.fits("a" * 41, budget=10) is False

    def test_empty_always_fits(self):
        assert Tokenizer().fits("", budget=0) is True


class TestTiktoken:
    """Tests for the tiktoken provider."""

    @pytest.fixture
    def tokenizer(self) -> Tokenizer:
        return Tokenizer(TokenizerConfig(provider="tiktoken"))

    def test_count_tokens(self, tokenizer):
        """Test accurate counting."""
        count = tokenizer.count_tokens("Hello, world!")

        assert isinstance(count, int)
        assert count > 0

    def test_count_empty(self, tokenizer):
        assert tokenizer.count_tokens("") == 0

    def test_count_deterministic(self, tokenizer):
        text = "The quick brown fox jumps over the lazy dog."

        assert tokenizer.count_tokens(text) == tokenizer.count_tokens(text)

    def test_unicode(self, tokenizer):
        assert tokenizer.count_tokens("Hello, 世界! 🌍") > 0

    def test_roundtrip(self, tokenizer):
        """Test tokenize -> detokenize preserves text."""
        text = "Engram stores memories, not documents."

        assert tokenizer.detokenize(tokenizer.tokenize(text)) == text

    def test_tokenize_empty(self, tokenizer):
        assert tokenizer.tokenize("") == []
        assert tokenizer.detokenize([]) == ""

    def test_encoder_cached(self, tokenizer):
        """Test the encoder is loaded once."""
        assert tokenizer.encoder is tokenizer.encoder
