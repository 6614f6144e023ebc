"""
Extractors for Office documents (DOCX, PPTX).
"""

import io
import zipfile

import docx
from docx.opc.exceptions import PackageNotFoundError as DocxPackageError
from pptx import Presentation
from pptx.exc import PackageNotFoundError as PptxPackageError

from engram.core.extractors.base import DocumentExtractor
from engram.models.document import DocumentType, ExtractedContent
from engram.utils.exceptions import ValidationError

_TITLE_STYLES = ("Title", "Heading 1")


class DocxExtractor(DocumentExtractor):
    """Word documents: paragraphs in order, then tables as pipe-separated rows."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        try:
            document = docx.Document(io.BytesIO(data))
        except (DocxPackageError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ValidationError(f"Unreadable DOCX document: {e}", {"source_path": source_path}) from e

        title = document.core_properties.title or None
        parts = []
        for paragraph in document.paragraphs:
            text = paragraph.text.strip()
            if not text:
                continue
            style = paragraph.style.name if paragraph.style is not None else ""
            if title is None and style in _TITLE_STYLES:
                title = text
            parts.append(text)

        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append(" | ".join(cells))

        return self._build(
            "\n\n".join(parts),
            doc_type,
            title,
            source_path,
            url,
            tables=len(document.tables),
        )


class PptxExtractor(DocumentExtractor):
    """PowerPoint decks: one ``Slide N`` section per slide, speaker notes included."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        try:
            presentation = Presentation(io.BytesIO(data))
        except (PptxPackageError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ValidationError(f"Unreadable PPTX presentation: {e}", {"source_path": source_path}) from e

        title = None
        sections = []
        for number, slide in enumerate(presentation.slides, start=1):
            lines = []
            title_shape = slide.shapes.title
            if title_shape is not None and title_shape.has_text_frame:
                slide_title = title_shape.text_frame.text.strip()
                if slide_title and title is None:
                    title = slide_title

            for shape in slide.shapes:
                if shape.has_text_frame:
                    text = shape.text_frame.text.strip()
                    if text:
                        lines.append(text)

            if slide.has_notes_slide:
                notes = slide.notes_slide.notes_text_frame.text.strip()
                if notes:
                    lines.append(f"Notes: {notes}")

            if lines:
                sections.append(f"Slide {number}\n" + "\n".join(lines))

        return self._build(
            "\n\n".join(sections),
            doc_type,
            title,
            source_path,
            url,
            slides=len(presentation.slides),
        )
