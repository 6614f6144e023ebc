"""
Extractors for tabular formats (CSV, XLSX).

Rows are rendered as ``column: value`` records, one row per line, with the
header on the first line so the structured chunker can repeat it.
"""

import csv
import io
import zipfile
from collections.abc import Iterable
from pathlib import PurePosixPath

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from engram.core.extractors.base import DocumentExtractor
from engram.core.extractors.text import decode_text
from engram.models.document import DocumentType, ExtractedContent
from engram.utils.exceptions import ValidationError

HEADER_PREFIX = "Columns: "


def render_rows(header: list[str], rows: Iterable[list]) -> list[str]:
    """Render rows as ``col: value | col: value`` records, skipping empty rows."""
    lines = []
    for row in rows:
        cells = ["" if value is None else str(value).strip() for value in row]
        if not any(cells):
            continue
        pairs = []
        for index, value in enumerate(cells):
            if not value:
                continue
            name = header[index] if index < len(header) and header[index] else f"column_{index + 1}"
            pairs.append(f"{name}: {value}")
        lines.append(" | ".join(pairs))
    return lines


def render_table(rows: list[list]) -> tuple[str, int]:
    """
    Render a table whose first row is the header.

    Returns:
        Tuple of (text, data row count)
    """
    if not rows:
        return "", 0
    header = ["" if cell is None else str(cell).strip() for cell in rows[0]]
    records = render_rows(header, rows[1:])
    named = [h for h in header if h]
    lines = [HEADER_PREFIX + ", ".join(named)] if named else []
    return "\n".join(lines + records), len(records)


class CsvExtractor(DocumentExtractor):
    """CSV and TSV files; the delimiter is sniffed from the first lines."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        text = decode_text(data)
        sample = "\n".join(text.splitlines()[:5])
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        try:
            rows = list(csv.reader(io.StringIO(text), dialect))
        except csv.Error as e:
            raise ValidationError(f"Malformed CSV: {e}", {"source_path": source_path}) from e

        rendered, row_count = render_table(rows)
        title = PurePosixPath(source_path).stem if source_path else None
        return self._build(rendered, doc_type, title, source_path, url, rows=row_count)


class XlsxExtractor(DocumentExtractor):
    """Excel workbooks; every sheet is rendered under a ``Sheet:`` line."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise ValidationError(f"Unreadable XLSX workbook: {e}", {"source_path": source_path}) from e

        sections = []
        total_rows = 0
        try:
            for sheet in workbook.worksheets:
                rows = [list(row) for row in sheet.iter_rows(values_only=True)]
                rendered, row_count = render_table(rows)
                if not rendered:
                    continue
                total_rows += row_count
                sections.append(f"Sheet: {sheet.title}\n{rendered}")
        finally:
            workbook.close()

        title = PurePosixPath(source_path).stem if source_path else None
        return self._build(
            "\n\n".join(sections),
            doc_type,
            title,
            source_path,
            url,
            rows=total_rows,
            sheets=len(sections),
        )
