"""
Ingestion request and result models.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from engram.models.document import DocumentType, ProcessingState


class IngestionStatus(str, Enum):
    """Outcome of an ingest call."""

    COMPLETED = "completed"  # Persisted, possibly with failed chunks
    DUPLICATE = "duplicate"  # Same content already persisted; nothing done
    FAILED = "failed"  # Pass-level failure


class IngestRequest(BaseModel):
    """Raw document handed to the pipeline."""

    data: bytes = Field(..., description="Raw document bytes")
    container_tag: str = Field(..., description="Isolation scope")
    doc_type: DocumentType | None = Field(
        default=None, description="Declared type; detected from bytes/path when omitted"
    )
    document_id: str | None = Field(default=None, description="Caller-chosen ID for idempotent re-ingest")
    title: str | None = None
    source_url: str | None = None
    source_path: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    extract_memories: bool | None = Field(
        default=None, description="Override ProcessingConfig.extract_memories"
    )


class IngestionResult(BaseModel):
    """
    Result of an ingest call.

    ``state`` is the document's final pipeline state. Chunk-level failures
    don't fail the document; they show up in ``failed_chunk_ids``.
    """

    document_id: str
    status: IngestionStatus
    state: ProcessingState
    chunk_count: int = Field(default=0, ge=0)
    failed_chunk_ids: list[str] = Field(default_factory=list)
    memory_ids: list[str] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0)
    message: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}


class ConversationTurn(BaseModel):
    """One message of a conversation."""

    role: str
    content: str
