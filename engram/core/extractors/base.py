"""
Abstract base class for document extractors.
"""

import re
from abc import ABC, abstractmethod

from engram.models.document import DocumentType, ExtractedContent

_SPACES = re.compile(r"[ \t\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def clean_text(text: str) -> str:
    """
    Normalize extracted text.

    Newlines become ``\\n``, runs of spaces collapse, trailing spaces are
    dropped and at most two consecutive newlines are kept.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_SPACES.sub(" ", line).rstrip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def count_words(text: str) -> int:
    return len(text.split())


class DocumentExtractor(ABC):
    """
    Turns raw bytes of one document family into plain text.

    Implementations must be stateless apart from their provider handles so a
    single instance can serve concurrent ingests.
    """

    @abstractmethod
    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        """
        Extract text from raw bytes.

        Args:
            data: Raw document bytes (non-empty)
            doc_type: Resolved document type
            source_path: Original file path, if known
            url: Origin URL, if known

        Returns:
            ExtractedContent with cleaned text and title

        Raises:
            ValidationError: If the bytes can't be parsed as this format
            ProviderError: If a delegated provider (OCR, transcription) fails
        """
        pass

    def _build(
        self,
        text: str,
        doc_type: DocumentType,
        title: str | None,
        source_path: str | None,
        url: str | None,
        **metadata,
    ) -> ExtractedContent:
        cleaned = clean_text(text)
        return ExtractedContent(
            text=cleaned,
            doc_type=doc_type,
            title=title.strip() if title and title.strip() else None,
            url=url,
            source_path=source_path,
            word_count=count_words(cleaned),
            metadata=metadata,
        )
