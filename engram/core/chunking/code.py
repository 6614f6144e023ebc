"""
Code chunking along definition boundaries.

A unit starts at each top-level (or first-level nested) definition, with the
comments and decorators directly above it. The embedded form of each chunk
is prefixed with the file path, the file's imports and the signatures of
sibling definitions, so a chunk holding one method still carries where it
lives.
"""

import re
from collections.abc import Iterator

from engram.core.chunking.base import ChunkContext, Chunker, Unit
from engram.core.chunking.text import split_sentences
from engram.core.extractors.detection import Language, detect_language
from engram.models.document import TextChunk

_INDENT = r"^[ \t]{0,4}"

DEFINITION_PATTERNS = {
    Language.PYTHON: re.compile(_INDENT + r"(async\s+def|def|class)\s+\w+"),
    Language.RUST: re.compile(
        _INDENT + r"(pub(\([^)]*\))?\s+)?(async\s+)?(unsafe\s+)?(fn|struct|enum|trait|impl|mod|type)\b"
    ),
    Language.GO: re.compile(r"^(func|type)\s+"),
    Language.JAVA: re.compile(
        _INDENT + r"(?=\S)((public|private|protected|static|final|abstract|synchronized)\s+)*"
        r"(class|interface|enum|record|[\w<>\[\],\s]+\s+\w+\s*\()"
    ),
    Language.C: re.compile(r"^(struct|enum|union|typedef)\b|^[A-Za-z_][\w\s\*]*\s\**\w+\s*\([^;]*$"),
}
_JS_LIKE = re.compile(
    _INDENT
    + r"(export\s+)?(default\s+)?(async\s+)?"
    r"((function\*?|class|interface|type|enum|abstract\s+class)\s|const\s+\w+\s*=\s*(async\s*)?\()"
)
DEFINITION_PATTERNS[Language.JAVASCRIPT] = _JS_LIKE
DEFINITION_PATTERNS[Language.TYPESCRIPT] = _JS_LIKE
DEFINITION_PATTERNS[Language.TSX] = _JS_LIKE
DEFINITION_PATTERNS[Language.CPP] = re.compile(
    r"^(class|struct|namespace|template|enum|union|typedef)\b|^[A-Za-z_][\w\s\*&:<>,]*\s[\*&]*[\w:~]+\s*\([^;]*$"
)

_ATTACHED = re.compile(r"^\s*(@|#\[|//|/\*|\*|#(?!include)|\"\"\"|''')")
_IMPORT = re.compile(r"^\s*(use\s|import\s|from\s+\S+\s+import\s|#include|package\s|.*\brequire\()")
_SIGNATURE = re.compile(
    r"^\s*(pub\s+)?(async\s+)?(def|fn|func|function|class|struct|impl|trait|interface|enum|type)\s+\w+"
)

MAX_IMPORTS = 15
MAX_SIGNATURES = 10
MAX_LINE = 120


def extract_imports(source: str) -> list[str]:
    """Import-like lines from the top of a source file."""
    imports = []
    for line in source.splitlines()[:100]:
        if _IMPORT.match(line):
            statement = line.strip().rstrip(";{").strip()
            if len(statement) <= MAX_LINE:
                imports.append(statement)
        if len(imports) >= MAX_IMPORTS:
            break
    return imports


def extract_signatures(source: str, exclude: str = "") -> list[str]:
    """Definition headers in ``source`` that don't appear in ``exclude``."""
    signatures = []
    for line in source.splitlines():
        if not _SIGNATURE.match(line):
            continue
        stripped = line.strip()
        if stripped in exclude:
            continue
        signature = stripped.split("{")[0].split(":")[0].strip()
        if signature and len(signature) <= MAX_LINE:
            signatures.append(signature)
        if len(signatures) >= MAX_SIGNATURES:
            break
    return signatures


class CodeChunker(Chunker):
    """Chunker for source files whose language is known from the path."""

    def split_units(self, text: str, context: ChunkContext) -> list[Unit]:
        language = detect_language(context.source_path)
        pattern = DEFINITION_PATTERNS.get(language) if language else None
        if pattern is None:
            return [Unit(sentence) for sentence in split_sentences(text)]

        units: list[list[str]] = [[]]
        for line in text.splitlines(keepends=True):
            if pattern.match(line) and any(part.strip() for part in units[-1]):
                # Carry comments/decorators directly above the definition along
                attached = []
                while units[-1] and _ATTACHED.match(units[-1][-1]):
                    attached.insert(0, units[-1].pop())
                units.append(attached)
            units[-1].append(line)

        return [Unit("".join(lines)) for lines in units if lines]

    def chunk(self, text: str, context: ChunkContext | None = None) -> Iterator[TextChunk]:
        context = context or ChunkContext()
        prepared = self.prepare(text)
        imports = extract_imports(prepared)

        for chunk in super().chunk(text, context):
            prefix = []
            if context.source_path:
                prefix.append(f"# File: {context.source_path}")
            if imports:
                prefix.append(f"# Imports: {', '.join(imports)}")
            siblings = extract_signatures(prepared, exclude=chunk.content)
            if siblings:
                prefix.append(f"# Sibling definitions: {'; '.join(siblings)}")

            if prefix:
                chunk.embedded_content = "\n".join(prefix) + "\n\n" + chunk.content.strip()
            yield chunk
