"""
Memory extraction models.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from engram.models.memory import MemoryType

_YEAR = re.compile(r"^(\d{4})$")
_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")


def parse_event_time(value: Any) -> datetime | None:
    """
    Lenient event time parsing for LLM output.

    A bare year or year-month maps to the first day of that period. Anything
    that is not a date comes back as None instead of failing the whole item.
    """
    if value is None or isinstance(value, datetime):
        return value
    # JSON numbers are only meaningful as years ("moved in 2023")
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    year = _YEAR.match(text)
    if year:
        return datetime(int(year.group(1)), 1, 1)
    year_month = _YEAR_MONTH.match(text)
    if year_month:
        month = int(year_month.group(2))
        return datetime(int(year_month.group(1)), month, 1) if 1 <= month <= 12 else None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


class ExtractedMemory(BaseModel):
    """Single memory as returned by the LLM."""

    model_config = {"extra": "ignore"}

    content: str = Field(..., description="Atomic, self-contained statement")
    memory_type: MemoryType = Field(default=MemoryType.FACT, description="fact, preference or episode")
    confidence: float = Field(default=0.8, ge=0.0, le=1.0, description="Extraction confidence")
    importance: float | None = Field(default=None, ge=0.0, le=1.0, description="How worth keeping it is")
    event_time: datetime | None = Field(default=None, description="When the fact happened, if stated")

    @field_validator("event_time", mode="before")
    @classmethod
    def _lenient_event_time(cls, value: Any) -> datetime | None:
        # Plain pydantic reads "2023" as a Unix timestamp
        return parse_event_time(value)


class ExtractedMemories(BaseModel):
    """Structured LLM output wrapper."""

    model_config = {"extra": "ignore"}

    memories: list[ExtractedMemory] = Field(default_factory=list)


class CandidateMemory(BaseModel):
    """Extracted memory awaiting dedup and commit, with provenance."""

    content: str
    container_tag: str
    memory_type: MemoryType = MemoryType.FACT
    confidence: float = 0.8
    importance: float = 0.5
    event_time: datetime | None = None
    document_id: str | None = None
    chunk_ids: list[str] = Field(default_factory=list)
    embedding: list[float] = Field(default_factory=list)
    content_hash: str = ""
