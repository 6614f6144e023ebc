"""
Sentence-aware text chunking, plus the webpage variant.
"""

import re

from engram.core.chunking.base import ChunkContext, Chunker, Unit
from engram.core.extractors.text import strip_boilerplate

ABBREVIATIONS = frozenset(
    {
        "mr", "mrs", "ms", "dr", "prof", "sr", "jr", "st", "mt", "vs", "etc",
        "e.g", "i.e", "cf", "al", "inc", "ltd", "co", "corp", "dept", "est",
        "no", "nos", "fig", "approx", "jan", "feb", "mar", "apr", "jun", "jul",
        "aug", "sep", "sept", "oct", "nov", "dec",
    }
)

_SENTENCE_END = re.compile(r"[.!?]+[\"'”’)\]]*\s+|\n\s*")
_WORD_BEFORE = re.compile(r"([\w.]+)$")
_MARKUP = re.compile(r"<(!doctype|html|head|body|div|p|article|main|section|h[1-6]|span|a|ul|ol|li|table)\b", re.IGNORECASE)


def _is_abbreviation(text: str, dot_index: int) -> bool:
    match = _WORD_BEFORE.search(text, max(0, dot_index - 32), dot_index)
    if not match:
        return False
    word = match.group(1).lower().rstrip(".")
    # Single-letter initials ("J. R. Smith")
    return word in ABBREVIATIONS or (len(word) == 1 and word.isalpha())


def split_sentences(text: str) -> list[str]:
    """
    Split text into sentences, keeping trailing whitespace with each one.

    Line breaks are boundaries too, so lists and short lines stay whole.
    """
    pieces = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        end = match.end()
        if match.group().startswith(".") and _is_abbreviation(text, match.start()):
            continue
        if start < end < len(text):
            pieces.append(text[start:end])
            start = end
    if start < len(text):
        pieces.append(text[start:])
    return pieces


class TextChunker(Chunker):
    """
    Generic sliding window over sentences.

    Usage:
        chunker = TextChunker(config.processing)
        for chunk in chunker.chunk(text):
            ...
    """

    def split_units(self, text: str, context: ChunkContext) -> list[Unit]:
        return [Unit(sentence) for sentence in split_sentences(text)]


class WebpageChunker(TextChunker):
    """Text chunking after HTML boilerplate (scripts, navigation, footers) is removed."""

    def prepare(self, text: str) -> str:
        if _MARKUP.search(text):
            text, _ = strip_boilerplate(text)
        return super().prepare(text)
