"""
Container profile model.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ProfileSummary(BaseModel):
    """LLM output for profile generation."""

    model_config = {"extra": "ignore"}

    narrative: str = Field(..., description="Short prose summary of what is known")
    facts: dict[str, list[str]] = Field(
        default_factory=dict, description="Compacted statements grouped by category"
    )


class CachedProfile(BaseModel):
    """
    Cached per-container summary of active memories.

    Stale when cached_at is older than the container's last mutation.
    """

    container_tag: str
    narrative: str = ""
    facts: dict[str, list[str]] = Field(default_factory=dict)
    memory_count: int = 0
    cached_at: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat()}

    def is_stale(self, last_mutation: datetime | None) -> bool:
        if last_mutation is None:
            return False
        return self.cached_at < last_mutation
