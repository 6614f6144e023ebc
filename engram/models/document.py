"""
Document and Chunk models.

A Document is one ingested source (file, page, transcript). It is split into
ordered Chunks that are embedded and fed to memory extraction. Document
content is immutable once chunked.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DocumentType(str, Enum):
    """Closed set of supported source formats."""

    TEXT = "text"
    CODE = "code"
    MARKDOWN = "markdown"
    CSV = "csv"
    XLSX = "xlsx"
    DOCX = "docx"
    PPTX = "pptx"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    WEBPAGE = "webpage"


class ProcessingState(str, Enum):
    """Pipeline state of a document."""

    RECEIVED = "received"
    EXTRACTED = "extracted"
    CHUNKED = "chunked"
    EMBEDDING = "embedding"
    PERSISTED = "persisted"
    FAILED = "failed"


class ChunkStatus(str, Enum):
    """Embedding status of a single chunk."""

    PENDING = "pending"
    EMBEDDED = "embedded"
    FAILED = "failed"


class Document(BaseModel):
    """
    Ingested source document.

    Chunks are owned by the document and deleted with it. Memories extracted
    from it are only linked through MemorySource and outlive it.
    """

    # Core identity
    id: str = Field(..., description="Unique document ID (doc_xxx)")
    container_tag: str = Field(..., description="Isolation scope")
    type: DocumentType = Field(..., description="Source format")
    title: str | None = Field(default=None, description="Extracted or supplied title")

    # Origin
    source_url: str | None = Field(default=None, description="Origin URL, if any")
    source_path: str | None = Field(default=None, description="Origin file path, if any")
    content_hash: str = Field(..., description="SHA256 hash of the raw bytes")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    # Processing
    status: ProcessingState = Field(default=ProcessingState.RECEIVED, description="Pipeline state")
    word_count: int = Field(default=0, ge=0, description="Words in the extracted text")
    chunk_count: int = Field(default=0, ge=0, description="Number of chunks")
    failed_chunk_ids: list[str] = Field(default_factory=list, description="Chunks that failed embedding")
    error: str | None = Field(default=None, description="Error message when failed")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last update timestamp")

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}


class Chunk(BaseModel):
    """
    Ordered slice of a document's text.

    Adjacent chunks may overlap: the first ``overlap_chars`` characters of a
    chunk repeat the tail of its predecessor.
    """

    # Core identity
    id: str = Field(..., description="Unique chunk ID (doc_xxx_chunk_0)")
    document_id: str = Field(..., description="Parent document ID")

    # Content
    content: str = Field(..., description="Chunk text")
    embedded_content: str | None = Field(
        default=None,
        description="Normalized text that was embedded, when it differs from content",
    )
    embedding: list[float] = Field(default_factory=list, description="Vector embedding of content")

    # Position in document
    position: int = Field(..., ge=0, description="Zero-based index within document")
    overlap_chars: int = Field(default=0, ge=0, description="Characters shared with previous chunk")
    token_estimate: int = Field(default=0, ge=0, description="Estimated token count")

    # Embedding status
    status: ChunkStatus = Field(default=ChunkStatus.PENDING, description="Embedding status")
    error: str | None = Field(default=None, description="Embedding error, if failed")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}

    @property
    def text_for_embedding(self) -> str:
        return self.embedded_content or self.content


class ExtractedContent(BaseModel):
    """Plain text pulled out of a raw document."""

    text: str
    doc_type: DocumentType
    title: str | None = None
    url: str | None = None
    source_path: str | None = None
    word_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class TextChunk(BaseModel):
    """Chunker output before it becomes a persisted Chunk."""

    content: str
    position: int = Field(..., ge=0)
    token_estimate: int = Field(..., ge=0)
    overlap_chars: int = Field(default=0, ge=0)
    embedded_content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
