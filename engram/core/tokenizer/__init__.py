"""
Tokenizer module for token counting.

Provides accurate token counting using tiktoken with a fast character-ratio
approximation as the default.
"""

from engram.config import TokenizerConfig
from engram.core.tokenizer.tokenizer import Tokenizer

__all__ = ["Tokenizer", "TokenizerConfig"]
