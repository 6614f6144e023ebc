"""Chunking: extracted text to token-bounded, overlapping chunks."""

from engram.core.chunking.base import ChunkContext, Chunker, Unit
from engram.core.chunking.code import CodeChunker
from engram.core.chunking.markdown import MarkdownChunker
from engram.core.chunking.registry import ChunkerRegistry
from engram.core.chunking.structured import StructuredDataChunker
from engram.core.chunking.text import TextChunker, WebpageChunker, split_sentences

__all__ = [
    "Chunker",
    "ChunkContext",
    "ChunkerRegistry",
    "Unit",
    "TextChunker",
    "CodeChunker",
    "MarkdownChunker",
    "StructuredDataChunker",
    "WebpageChunker",
    "split_sentences",
]
