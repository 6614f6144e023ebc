"""
Document type and programming language detection.

Binary formats are recognized by magic numbers, OOXML containers by their
zip members, and text formats by light heuristics.
"""

import io
import re
import zipfile
from enum import Enum
from pathlib import PurePosixPath

from engram.models.document import DocumentType


class Language(str, Enum):
    """Languages the code chunker knows definition keywords for."""

    PYTHON = "python"
    RUST = "rust"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    TSX = "tsx"
    GO = "go"
    JAVA = "java"
    C = "c"
    CPP = "cpp"


LANGUAGE_EXTENSIONS = {
    "py": Language.PYTHON,
    "rs": Language.RUST,
    "js": Language.JAVASCRIPT,
    "jsx": Language.JAVASCRIPT,
    "ts": Language.TYPESCRIPT,
    "tsx": Language.TSX,
    "go": Language.GO,
    "java": Language.JAVA,
    "c": Language.C,
    "h": Language.C,
    "cpp": Language.CPP,
    "hpp": Language.CPP,
    "cc": Language.CPP,
    "cxx": Language.CPP,
}

EXTENSION_TYPES = {
    "txt": DocumentType.TEXT,
    "md": DocumentType.MARKDOWN,
    "markdown": DocumentType.MARKDOWN,
    "csv": DocumentType.CSV,
    "tsv": DocumentType.CSV,
    "xlsx": DocumentType.XLSX,
    "docx": DocumentType.DOCX,
    "pptx": DocumentType.PPTX,
    "html": DocumentType.WEBPAGE,
    "htm": DocumentType.WEBPAGE,
    "png": DocumentType.IMAGE,
    "jpg": DocumentType.IMAGE,
    "jpeg": DocumentType.IMAGE,
    "gif": DocumentType.IMAGE,
    "webp": DocumentType.IMAGE,
    "bmp": DocumentType.IMAGE,
    "tif": DocumentType.IMAGE,
    "tiff": DocumentType.IMAGE,
    "mp3": DocumentType.AUDIO,
    "wav": DocumentType.AUDIO,
    "m4a": DocumentType.AUDIO,
    "ogg": DocumentType.AUDIO,
    "flac": DocumentType.AUDIO,
    "mp4": DocumentType.VIDEO,
    "webm": DocumentType.VIDEO,
    "avi": DocumentType.VIDEO,
    "mkv": DocumentType.VIDEO,
    "mov": DocumentType.VIDEO,
    **{ext: DocumentType.CODE for ext in LANGUAGE_EXTENSIONS},
}

IMAGE_MIME_TYPES = {
    b"\xff\xd8\xff": "image/jpeg",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
    b"II*\x00": "image/tiff",
    b"MM\x00*": "image/tiff",
    b"BM": "image/bmp",
}

_CODE_PATTERNS = [
    re.compile(r"^\s*(def|class)\s+\w+.*:\s*$", re.MULTILINE),
    re.compile(r"^\s*(pub\s+)?fn\s+\w+\s*\(", re.MULTILINE),
    re.compile(r"^\s*use\s+(std|crate)::", re.MULTILINE),
    re.compile(r"^\s*(import|from)\s+[\w.]+(\s+import\s+\w+)?", re.MULTILINE),
    re.compile(r"^\s*(export\s+)?(async\s+)?function\s+\w+\s*\(", re.MULTILINE),
    re.compile(r"^\s*(const|let)\s+\w+\s*=", re.MULTILINE),
    re.compile(r"^\s*package\s+\w+\s*;?\s*$", re.MULTILINE),
    re.compile(r"^\s*(public|private|protected)\s+(static\s+)?[\w<>\[\]]+\s+\w+\s*\(", re.MULTILINE),
    re.compile(r"^\s*#include\s*[<\"]", re.MULTILINE),
    re.compile(r"\bint\s+main\s*\(", re.MULTILINE),
]


def image_mime_type(data: bytes) -> str | None:
    """MIME type of an image, or None if the bytes aren't a known image format."""
    for magic, mime in IMAGE_MIME_TYPES.items():
        if data.startswith(magic):
            return mime
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _is_audio(data: bytes) -> bool:
    if len(data) >= 2 and data[0] == 0xFF and data[1] in (0xFB, 0xF3, 0xF2):
        return True
    if data.startswith(b"ID3") or data.startswith(b"fLaC") or data.startswith(b"OggS"):
        return True
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return True
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in (b"M4A ", b"M4B "):
        return True
    return False


def _is_video(data: bytes) -> bool:
    if len(data) >= 12 and data[4:8] == b"ftyp":
        return data[8:12] in (b"isom", b"iso2", b"mp41", b"mp42", b"qt  ", b"avc1")
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"AVI ":
        return True
    # EBML header: Matroska or WebM
    return data.startswith(b"\x1a\x45\xdf\xa3")


def _ooxml_type(data: bytes) -> DocumentType | None:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = set(archive.namelist())
    except zipfile.BadZipFile:
        return None

    if "word/document.xml" in names:
        return DocumentType.DOCX
    if "xl/workbook.xml" in names:
        return DocumentType.XLSX
    if "ppt/presentation.xml" in names:
        return DocumentType.PPTX
    return None


def looks_like_html(text: str) -> bool:
    lower = text.lstrip()[:200].lower()
    return lower.startswith(("<!doctype html", "<html", "<head"))


def looks_like_csv(text: str) -> bool:
    """At least two lines with a consistent column count for some delimiter."""
    lines = [line for line in text.splitlines()[:5] if line.strip()]
    if len(lines) < 2:
        return False

    for delimiter in (",", ";", "\t"):
        first = lines[0].count(delimiter) + 1
        if first >= 2 and all(line.count(delimiter) + 1 == first for line in lines):
            return True
    return False


def looks_like_markdown(text: str) -> bool:
    stripped = text.strip()
    return (
        stripped.startswith("#")
        or "\n# " in stripped
        or "\n## " in stripped
        or stripped.startswith(("- ", "* "))
        or "\n- " in stripped
        or "\n* " in stripped
        or "```" in stripped
    )


def looks_like_code(text: str) -> bool:
    """Heuristic: two distinct code patterns, or one plus heavy brace/semicolon use."""
    sample = text.strip()[:4000]
    if len(sample) < 20:
        return False
    if sample.startswith(("#!/usr/bin", "#!/bin")):
        return True

    matches = sum(1 for pattern in _CODE_PATTERNS if pattern.search(sample))
    if matches >= 2:
        return True

    lines = [line for line in sample.splitlines() if line.strip()]
    if not lines:
        return False
    punctuated = sum(1 for line in lines if line.rstrip().endswith((";", "{", "}")))
    return matches >= 1 and punctuated / len(lines) > 0.3


def detect_language(source_path: str | None) -> Language | None:
    """Language from a file path extension, or None when unknown."""
    if not source_path:
        return None
    suffix = PurePosixPath(source_path.lower()).suffix.lstrip(".")
    return LANGUAGE_EXTENSIONS.get(suffix)


def detect_type_from_path(source_path: str | None) -> DocumentType | None:
    if not source_path:
        return None
    suffix = PurePosixPath(source_path.lower()).suffix.lstrip(".")
    return EXTENSION_TYPES.get(suffix)


def detect_type_from_bytes(data: bytes) -> DocumentType | None:
    """
    Detect a document type from content alone.

    Returns:
        The detected type, or None for undecodable binary data
    """
    if image_mime_type(data):
        return DocumentType.IMAGE
    if _is_audio(data):
        return DocumentType.AUDIO
    if _is_video(data):
        return DocumentType.VIDEO
    if data.startswith(b"PK\x03\x04"):
        return _ooxml_type(data)

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None

    if looks_like_html(text):
        return DocumentType.WEBPAGE
    if looks_like_csv(text):
        return DocumentType.CSV
    if looks_like_markdown(text):
        return DocumentType.MARKDOWN
    if looks_like_code(text):
        return DocumentType.CODE
    return DocumentType.TEXT


def detect_type(data: bytes, source_path: str | None = None) -> DocumentType | None:
    """
    Detect a document type, trusting binary signatures first, then the file
    extension, then text heuristics.
    """
    by_bytes = detect_type_from_bytes(data)
    if by_bytes in (
        DocumentType.IMAGE,
        DocumentType.AUDIO,
        DocumentType.VIDEO,
        DocumentType.DOCX,
        DocumentType.XLSX,
        DocumentType.PPTX,
    ):
        return by_bytes
    return detect_type_from_path(source_path) or by_bytes
