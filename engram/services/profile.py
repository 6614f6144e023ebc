"""
Profile Service - cached per-container summary of what is known.
"""

from datetime import datetime

from engram.core.llm.base import LLMProvider
from engram.core.storage.base import Repository
from engram.models.memory import MemoryState
from engram.models.profile import CachedProfile, ProfileSummary
from engram.utils.exceptions import ValidationError
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class ProfileService:
    """
    Builds and caches container profiles.

    A cached profile is reused until a memory of the container changes.
    """

    def __init__(self, repository: Repository, llm: LLMProvider, max_memories: int = 200):
        self.repository = repository
        self.llm = llm
        self.max_memories = max_memories

    async def get_profile(self, container_tag: str, refresh: bool = False) -> CachedProfile:
        """
        Get the profile of a container, regenerating it when stale.

        Args:
            container_tag: Container to summarize
            refresh: Regenerate even if the cache is fresh

        Returns:
            CachedProfile

        Raises:
            ValidationError: If container_tag is empty or the LLM output doesn't parse
            ProviderError: If the LLM call fails
        """
        if not container_tag:
            raise ValidationError("container_tag is required")

        cached = await self.repository.get_profile(container_tag)
        if cached is not None and not refresh:
            last_mutation = await self.repository.last_mutation(container_tag)
            if not cached.is_stale(last_mutation):
                return cached

        # Mutations after this instant leave the cache stale
        started = datetime.now()
        memories = await self.repository.list_memories(
            container_tag, states=[MemoryState.ACTIVE], limit=self.max_memories
        )

        if not memories:
            profile = CachedProfile(container_tag=container_tag, cached_at=started)
        else:
            statements = "\n".join(f"- [{m.memory_type.value}] {m.content}" for m in memories)
            current_dt = datetime.now()
            prompt = f"""[CURRENT DATE/TIME: {current_dt.strftime('%Y-%m-%d %H:%M:%S')}]

Summarize what is known from these memories.

Memories:
{statements}

Provide:
1. narrative: 2-4 sentences of prose
2. facts: the memories compacted into short statements, grouped by category
   (e.g. "identity", "work", "location", "preferences", "events")

Only use information stated in the memories."""

            summary = await self.llm.complete(prompt, response_format=ProfileSummary, temperature=0.0)
            profile = CachedProfile(
                container_tag=container_tag,
                narrative=summary.narrative,
                facts=summary.facts,
                memory_count=len(memories),
                cached_at=started,
            )

        await self.repository.put_profile(profile)
        logger.info(
            "Profile regenerated",
            extra={"container_tag": container_tag, "memory_count": profile.memory_count},
        )
        return profile
