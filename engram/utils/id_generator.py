"""
ID generation for documents, chunks and memories.

Documents and memories get random ids (``doc_`` / ``mem_`` plus 12 hex
characters). Chunk ids are derived from their document and position, so
re-chunking the same document reproduces them.
"""

from uuid import uuid4

DOCUMENT_PREFIX = "doc_"
MEMORY_PREFIX = "mem_"
CHUNK_SEPARATOR = "_chunk_"


def _random_suffix() -> str:
    return uuid4().hex[:12]


def generate_document_id() -> str:
    """Random document id, e.g. ``doc_3f9a0c1b2d4e``."""
    return f"{DOCUMENT_PREFIX}{_random_suffix()}"


def generate_chunk_id(document_id: str, position: int) -> str:
    """
    Chunk id for a position within a document.

    Args:
        document_id: Parent document ID
        position: Zero-based chunk position

    Returns:
        ID in format "doc_xxx_chunk_N"
    """
    return f"{document_id}{CHUNK_SEPARATOR}{position}"


def generate_memory_id() -> str:
    """Random memory id, e.g. ``mem_8b1e77d0a5c2``."""
    return f"{MEMORY_PREFIX}{_random_suffix()}"
