"""
Relationship models and types for the memory graph.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EdgeType(str, Enum):
    """Types of directed edges between memories."""

    # Consistency
    CONTRADICTS = "contradicts"  # new -> existing
    SUPERSEDES = "supersedes"  # winner -> loser

    # Relationships
    SUPPORTS = "supports"
    ELABORATES = "elaborates"
    TEMPORAL_FOLLOWS = "temporal_follows"  # later -> earlier

    # Inference provenance (derived -> source)
    DERIVED_FROM = "derived_from"


class GraphEdge(BaseModel):
    """
    Directed edge between two memories.

    (source_id, target_id, type) is unique; writers check before inserting.
    """

    source_id: str
    target_id: str
    type: EdgeType
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_id, self.target_id, self.type.value)


class RelationshipJudgement(BaseModel):
    """LLM classification of how a new memory relates to an existing one."""

    model_config = {"extra": "ignore"}

    relation: str = Field(
        ...,
        description="One of: contradicts, supports, elaborates, temporal_follows, unrelated",
    )
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence in the relation")
    reasoning: str = Field(default="", description="Short justification")


class InferredFact(BaseModel):
    """LLM proposal for a derived memory."""

    model_config = {"extra": "ignore"}

    has_inference: bool = Field(..., description="Whether a new fact follows from the cluster")
    content: str = Field(default="", description="The derived statement")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence in the inference")
    reasoning: str = Field(default="", description="Short justification")
