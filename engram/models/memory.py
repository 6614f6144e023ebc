"""
Memory model with lifecycle and provenance tracking.
"""

import hashlib
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def to_naive(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class MemoryState(str, Enum):
    """Memory lifecycle state."""

    ACTIVE = "active"
    SUPERSEDED = "superseded"
    FORGOTTEN_PENDING = "forgotten_pending"


class MemoryType(str, Enum):
    """Kind of fact a memory records."""

    FACT = "fact"  # Stable knowledge ("Alice works at Acme")
    PREFERENCE = "preference"  # Likes, dislikes, habits
    EPISODE = "episode"  # Something that happened; decays in ranking


class Memory(BaseModel):
    """
    Atomic fact distilled from source content.

    Memories are scoped to a container tag, carry an embedding for semantic
    search and keep provenance through MemorySource links. Consistency
    resolution moves them from ACTIVE to SUPERSEDED; the forgetting manager
    deletes them outright.
    """

    # Core identity
    id: str = Field(..., description="Unique memory ID (mem_xxx)")
    container_tag: str = Field(..., description="Isolation scope, immutable after creation")
    content: str = Field(..., description="Atomic statement")
    content_hash: str = Field(default="", description="SHA256 hash for deduplication")
    embedding: list[float] = Field(default_factory=list, description="Vector embedding")

    # Classification
    memory_type: MemoryType = Field(default=MemoryType.FACT, description="Fact, preference or episode")
    importance: float = Field(default=0.5, ge=0.0, le=1.0, description="Retention weight")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Extraction confidence")

    # Lifecycle
    state: MemoryState = Field(default=MemoryState.ACTIVE, description="Lifecycle state")
    pinned: bool = Field(default=False, description="Pinned memories are never forgotten")
    superseded_by: str | None = Field(default=None, description="ID of superseding memory")

    # Inference
    is_derived: bool = Field(default=False, description="Produced by inference, not extraction")
    derived_from: list[str] = Field(default_factory=list, description="Source memory IDs")

    # Metadata
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    # Access tracking
    access_count: int = Field(default=0, ge=0, description="Number of times accessed")
    last_accessed: datetime | None = Field(default=None, description="Last access timestamp")

    # Timestamps
    event_time: datetime | None = Field(
        default=None, description="When the described fact happened or became true"
    )
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last update timestamp")

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}

    @field_validator("event_time", "last_accessed", "created_at", "updated_at")
    @classmethod
    def _naive_local(cls, value: datetime | None) -> datetime | None:
        # Stored timestamps are naive local time so they compare as ISO strings
        return to_naive(value)

    @property
    def effective_time(self) -> datetime:
        """Event time when known, otherwise creation time."""
        return self.event_time or self.created_at

    @property
    def reference_time(self) -> datetime:
        """Last time the memory was touched, for TTL checks."""
        return self.last_accessed or self.created_at

    def is_active(self) -> bool:
        return self.state == MemoryState.ACTIVE

    def is_expired(self, now: datetime, ttl_days: int) -> bool:
        """
        Check whether the memory outlived its TTL.

        Args:
            now: Reference instant (the forgetting cutoff)
            ttl_days: Days without access before expiry

        Returns:
            True if the last access/creation is older than the TTL
        """
        return now - self.reference_time > timedelta(days=ttl_days)


class MemorySource(BaseModel):
    """Provenance link from a memory to the document (and chunk) it came from."""

    memory_id: str
    document_id: str
    chunk_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


def compute_content_hash(content: str) -> str:
    """
    Compute SHA256 hash of content for deduplication.

    The hash is prefixed with "sha256:" for easy identification of the algorithm used.
    Content is normalized (stripped, lowercased, whitespace collapsed) so that
    trivially different statements hash the same.

    Args:
        content: Text content to hash

    Returns:
        Hash string in format "sha256:hexdigest"
    """
    normalized = " ".join(content.strip().lower().split())
    hash_bytes = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"sha256:{hash_bytes}"


def compute_bytes_hash(data: bytes) -> str:
    """SHA256 of raw document bytes, "sha256:" prefixed."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"
