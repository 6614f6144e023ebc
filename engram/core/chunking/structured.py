"""
Row-group chunking for tabular text (CSV, XLSX).

The extractor renders a table as a ``Columns: ...`` header line followed by
one record per line, optionally under a ``Sheet: ...`` line. Each chunk holds
at most ``rows_per_chunk`` records; the header is repeated in the embedded
form only, so chunk contents still join back to the source text.
"""

from engram.core.chunking.base import ChunkContext, Chunker, Unit
from engram.core.extractors.structured import HEADER_PREFIX

SHEET_PREFIX = "Sheet: "


class StructuredDataChunker(Chunker):
    """Chunker for CSV and spreadsheet text."""

    def split_units(self, text: str, context: ChunkContext) -> list[Unit]:
        rows_per_chunk = max(1, self.config.rows_per_chunk)
        lines = text.splitlines(keepends=True)
        units: list[Unit] = []

        sheet: str | None = None
        header: str | None = None
        group: list[str] = []
        rows = 0

        # Plain CSV text without a rendered header: the first line is the header
        if lines and not lines[0].startswith((HEADER_PREFIX, SHEET_PREFIX)):
            header = lines[0].strip()
            group.append(lines[0])
            lines = lines[1:]

        def flush():
            nonlocal rows
            rows = 0
            if group:
                label = "\n".join(part for part in (sheet, header) if part)
                units.append(Unit("".join(group), label or None, boundary=True))
                group.clear()

        for line in lines:
            stripped = line.strip()
            if stripped.startswith(SHEET_PREFIX):
                flush()
                sheet, header = stripped, None
                group.append(line)
                continue
            if stripped.startswith(HEADER_PREFIX):
                header = stripped
                group.append(line)
                continue

            if stripped and rows >= rows_per_chunk:
                flush()
            if stripped:
                rows += 1
            group.append(line)

        flush()
        return units

    def embedding_text(self, content: str, label: str | None, context: ChunkContext) -> str | None:
        if not label:
            return None
        body = content.strip()
        if body.startswith(label):
            return None
        return f"{label}\n{body}"
