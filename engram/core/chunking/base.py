"""
Base chunker: splits prepared text into semantic units and packs them into
token-bounded chunks with overlap.

Units always concatenate back to the prepared text, and every chunk after
the first starts with a suffix of its predecessor (``overlap_chars`` long).
Dropping that prefix from every chunk but the first and joining the rest
reproduces ``prepare(text)`` exactly.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import NamedTuple

from pydantic import BaseModel

from engram.config import ProcessingConfig
from engram.core.tokenizer import Tokenizer
from engram.models.document import TextChunk

PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
LINE_BREAK = re.compile(r"\n")


class ChunkContext(BaseModel):
    """What a chunker may know about the document besides its text."""

    source_path: str | None = None
    title: str | None = None


class Unit(NamedTuple):
    """
    Smallest piece the packer moves around.

    ``label`` is chunker-specific context (heading trail, table header) for
    the embedded form; ``boundary`` forces a new chunk to start at this unit.
    """

    text: str
    label: str | None = None
    boundary: bool = False


def split_after(text: str, pattern: re.Pattern) -> list[str]:
    """Cut ``text`` after every match of ``pattern``; pieces join back to ``text``."""
    pieces = []
    start = 0
    for match in pattern.finditer(text):
        end = match.end()
        if start < end < len(text):
            pieces.append(text[start:end])
            start = end
    if start < len(text):
        pieces.append(text[start:])
    return pieces


class Chunker(ABC):
    """
    Abstract base for chunkers.

    Subclasses only decide where semantic units begin and, optionally, what
    extra context goes into the embedded form of a chunk. Budgeting, hard
    splits and overlap live here.
    """

    def __init__(self, config: ProcessingConfig | None = None, tokenizer: Tokenizer | None = None):
        self.config = config or ProcessingConfig()
        self.tokenizer = tokenizer or Tokenizer()
        self.max_tokens = self.config.max_chunk_tokens
        self.overlap_tokens = min(self.config.chunk_overlap, self.max_tokens - 1)

    def prepare(self, text: str) -> str:
        """Normalize newlines to ``\\n`` and strip surrounding whitespace."""
        return text.replace("\r\n", "\n").replace("\r", "\n").strip()

    @abstractmethod
    def split_units(self, text: str, context: ChunkContext) -> list[Unit]:
        """
        Split prepared text into semantic units.

        The unit texts must concatenate to ``text``.
        """
        pass

    def embedding_text(self, content: str, label: str | None, context: ChunkContext) -> str | None:
        """Text to embed instead of ``content``; None embeds the content itself."""
        return None

    def chunk(self, text: str, context: ChunkContext | None = None) -> Iterator[TextChunk]:
        """
        Chunk a document's text.

        Args:
            text: Extracted document text
            context: Optional document context (source path, title)

        Yields:
            TextChunk objects with strictly increasing positions
        """
        prepared = self.prepare(text)
        if not prepared:
            return

        context = context or ChunkContext()
        units: list[Unit] = []
        for unit in self.split_units(prepared, context):
            units.extend(self._fit(unit))

        yield from self._pack(units, context)

    # ═══════════════════════════════════════════════════════════
    # BUDGETING
    # ═══════════════════════════════════════════════════════════

    def _fits(self, text: str, budget: int | None = None) -> bool:
        budget = self.max_tokens if budget is None else budget
        return self.tokenizer.estimate_tokens(text) <= budget and self.tokenizer.fits(text, budget)

    def _max_prefix(self, text: str) -> int:
        """Longest prefix length within budget, at least 1."""
        if self._fits(text):
            return len(text)
        lo, hi = 1, len(text)
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self._fits(text[:mid]):
                lo = mid
            else:
                hi = mid - 1
        return lo

    def _fit(self, unit: Unit) -> Iterator[Unit]:
        """Break an oversize unit at paragraphs, then lines, then whitespace."""
        if self._fits(unit.text):
            yield unit
            return

        for pattern in (PARAGRAPH_BREAK, LINE_BREAK):
            pieces = split_after(unit.text, pattern)
            if len(pieces) > 1:
                for index, piece in enumerate(pieces):
                    yield from self._fit(Unit(piece, unit.label, unit.boundary and index == 0))
                return

        yield from self._hard_split(unit)

    def _hard_split(self, unit: Unit) -> Iterator[Unit]:
        remaining = unit.text
        first = True
        while remaining:
            cut = self._max_prefix(remaining)
            if cut < len(remaining):
                space = max(remaining.rfind(ch, 0, cut) for ch in (" ", "\n", "\t"))
                if space >= cut // 2 and space > 0:
                    cut = space + 1
            yield Unit(remaining[:cut], unit.label, unit.boundary and first)
            remaining = remaining[cut:]
            first = False

    # ═══════════════════════════════════════════════════════════
    # PACKING
    # ═══════════════════════════════════════════════════════════

    def _pack(self, units: list[Unit], context: ChunkContext) -> Iterator[TextChunk]:
        position = 0
        current: list[Unit] = []
        current_text = ""
        overlap_count = 0

        for unit in units:
            has_new = len(current) > overlap_count
            if has_new and (unit.boundary or not self._fits(current_text + unit.text)):
                yield self._emit(current, overlap_count, position, context)
                position += 1

                overlap = [] if unit.boundary else self._overlap_units(current)
                while overlap and not self._fits("".join(u.text for u in overlap) + unit.text):
                    overlap.pop(0)

                current = overlap + [unit]
                overlap_count = len(overlap)
                current_text = "".join(u.text for u in current)
            else:
                current.append(unit)
                current_text += unit.text

        if len(current) > overlap_count:
            yield self._emit(current, overlap_count, position, context)

    def _overlap_units(self, units: list[Unit]) -> list[Unit]:
        """Longest run of trailing units within the overlap budget."""
        if self.overlap_tokens <= 0:
            return []

        taken: list[Unit] = []
        text = ""
        for unit in reversed(units):
            candidate = unit.text + text
            if not self._fits(candidate, self.overlap_tokens):
                break
            taken.insert(0, unit)
            text = candidate

        # Never repeat a whole chunk
        if len(taken) == len(units):
            taken = taken[1:]
        return taken

    def _emit(
        self,
        units: list[Unit],
        overlap_count: int,
        position: int,
        context: ChunkContext,
    ) -> TextChunk:
        content = "".join(u.text for u in units)
        overlap_chars = sum(len(u.text) for u in units[:overlap_count])
        label = units[overlap_count].label

        return TextChunk(
            content=content,
            position=position,
            token_estimate=self.tokenizer.estimate_tokens(content),
            overlap_chars=overlap_chars,
            embedded_content=self.embedding_text(content, label, context),
        )
