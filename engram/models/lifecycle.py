"""
Lifecycle reports for consistency resolution and forgetting.
"""

from pydantic import BaseModel, Field, model_validator

from engram.models.relationships import GraphEdge


class ForgettingReport(BaseModel):
    """Counts from one forgetting cycle."""

    evaluated: int = Field(default=0, ge=0)
    forgotten: int = Field(default=0, ge=0)
    forgotten_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _forgotten_not_above_evaluated(self):
        if self.forgotten > self.evaluated:
            raise ValueError("forgotten cannot exceed evaluated")
        return self

    def as_tuple(self) -> tuple[int, int]:
        return (self.evaluated, self.forgotten)


class ResolutionReport(BaseModel):
    """What a consistency pass changed."""

    container_tag: str
    checked: int = 0
    superseded_ids: list[str] = Field(default_factory=list)
    edges_created: list[GraphEdge] = Field(default_factory=list)
    derived_ids: list[str] = Field(default_factory=list)
