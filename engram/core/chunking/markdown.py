"""
Markdown chunking along the heading hierarchy.
"""

import re

from engram.core.chunking.base import ChunkContext, Chunker, Unit

_HEADING = re.compile(r"^ {0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE = re.compile(r"^ {0,3}(```|~~~)")


class MarkdownChunker(Chunker):
    """
    Splits markdown into paragraphs under their section headings.

    Headings start new units and code fences are never split on blank lines.
    The embedded form of a chunk is prefixed with the heading trail of its
    first section ("Guide > Install > Linux").
    """

    def split_units(self, text: str, context: ChunkContext) -> list[Unit]:
        units: list[Unit] = []
        trail: list[str] = []
        current: list[str] = []
        current_label: str | None = None
        in_fence = False
        after_blank = False

        def flush():
            if current:
                units.append(Unit("".join(current), current_label))
                current.clear()

        for line in text.splitlines(keepends=True):
            fence = _FENCE.match(line)
            if not in_fence:
                heading = None if fence else _HEADING.match(line.rstrip("\n"))
                if heading:
                    flush()
                    level = len(heading.group(1))
                    trail = trail[: level - 1] + [heading.group(2)]
                    current_label = " > ".join(trail)
                    current.append(line)
                    after_blank = False
                    continue

                if not line.strip():
                    after_blank = True
                    current.append(line)
                    continue

                if after_blank:
                    flush()
                    current_label = " > ".join(trail) or None

            if fence:
                in_fence = not in_fence
            after_blank = False
            current.append(line)

        flush()
        return units

    def embedding_text(self, content: str, label: str | None, context: ChunkContext) -> str | None:
        if not label:
            return None
        return f"{label}\n\n{content.strip()}"
