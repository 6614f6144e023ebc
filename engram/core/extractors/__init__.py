"""Document extraction: raw bytes to plain text."""

from engram.core.extractors.base import DocumentExtractor, clean_text, count_words
from engram.core.extractors.detection import (
    Language,
    detect_language,
    detect_type,
    detect_type_from_bytes,
    looks_like_code,
)
from engram.core.extractors.media import AudioExtractor, ImageExtractor, VideoExtractor
from engram.core.extractors.office import DocxExtractor, PptxExtractor
from engram.core.extractors.registry import ExtractorRegistry
from engram.core.extractors.structured import CsvExtractor, XlsxExtractor
from engram.core.extractors.text import PlainTextExtractor, WebpageExtractor, strip_boilerplate

__all__ = [
    "DocumentExtractor",
    "ExtractorRegistry",
    "PlainTextExtractor",
    "WebpageExtractor",
    "CsvExtractor",
    "XlsxExtractor",
    "DocxExtractor",
    "PptxExtractor",
    "ImageExtractor",
    "AudioExtractor",
    "VideoExtractor",
    "Language",
    "detect_language",
    "detect_type",
    "detect_type_from_bytes",
    "looks_like_code",
    "clean_text",
    "count_words",
    "strip_boilerplate",
]
