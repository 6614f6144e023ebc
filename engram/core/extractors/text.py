"""
Extractors for text-based formats: plain text, code, markdown and HTML.
"""

import re
from pathlib import PurePosixPath

from bs4 import BeautifulSoup

from engram.core.extractors.base import DocumentExtractor
from engram.models.document import DocumentType, ExtractedContent
from engram.utils.exceptions import ValidationError

BOILERPLATE_TAGS = ("script", "style", "noscript", "nav", "header", "footer", "aside", "iframe", "svg", "form")
CONTENT_SELECTORS = ("article", "main", ".content", "#content")

_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), replacing invalid sequences."""
    return data.decode("utf-8-sig", errors="replace")


def markdown_title(text: str) -> str | None:
    match = _HEADING.search(text)
    return match.group(1) if match else None


def strip_boilerplate(html: str) -> tuple[str, str | None]:
    """
    Reduce an HTML page to its readable text.

    Returns:
        Tuple of (text, title)
    """
    soup = BeautifulSoup(html, "html.parser")

    title = None
    if soup.title and soup.title.string:
        title = soup.title.string.strip()

    for tag in soup(list(BOILERPLATE_TAGS)):
        tag.decompose()

    root = None
    for selector in CONTENT_SELECTORS:
        root = soup.select_one(selector)
        if root is not None:
            break
    if root is None:
        root = soup.body or soup

    return root.get_text(separator="\n", strip=True), title


class PlainTextExtractor(DocumentExtractor):
    """Text, code and markdown: the bytes already are the text."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        text = decode_text(data)

        title = None
        if doc_type == DocumentType.MARKDOWN:
            title = markdown_title(text)
        elif doc_type == DocumentType.CODE and source_path:
            title = PurePosixPath(source_path).name

        return self._build(text, doc_type, title, source_path, url)


class WebpageExtractor(DocumentExtractor):
    """HTML pages, with navigation and script boilerplate removed."""

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        html = decode_text(data)
        if "<" not in html:
            raise ValidationError("Webpage content contains no markup", {"source_path": source_path, "url": url})

        text, title = strip_boilerplate(html)
        return self._build(text, doc_type, title, source_path, url)
