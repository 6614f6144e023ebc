"""
Temporal Ranker - time-aware adjustment of search scores.

Reads the time context a query implies ("now", "in 2023", "used to") and
turns it into a multiplicative factor per memory:
- explicit year: event-time proximity to that year
- present: later event-times get a small bonus
- past: earlier event-times get a small bonus
- episodes decay with time since last access; facts and preferences don't
"""

import math
import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from engram.config import TemporalConfig
from engram.models.memory import Memory, MemoryType

_YEAR = re.compile(r"\b(19\d{2}|20\d{2})\b")

PRESENT_MARKERS = (
    "now", "currently", "current", "today", "these days", "nowadays",
    "at the moment", "presently", "still", "latest",
)
PAST_MARKERS = (
    "used to", "previously", "formerly", "in the past", "back then",
    "originally", "before", "earlier", "former", "once",
)


class TimeContextKind(str, Enum):
    """What period a query asks about."""

    NONE = "none"
    PRESENT = "present"
    PAST = "past"
    YEAR = "year"


class TimeContext(BaseModel):
    """Parsed time context of a query."""

    kind: TimeContextKind = TimeContextKind.NONE
    year: int | None = None


def _has_marker(text: str, markers: tuple[str, ...]) -> bool:
    return any(re.search(r"\b" + re.escape(marker) + r"\b", text) for marker in markers)


def parse_time_context(query: str, now: datetime | None = None) -> TimeContext:
    """
    Parse the time context implied by a query.

    Args:
        query: Search query
        now: Reference time for relative expressions ("last year")

    Returns:
        TimeContext
    """
    now = now or datetime.now()
    text = query.lower()

    match = _YEAR.search(text)
    if match:
        return TimeContext(kind=TimeContextKind.YEAR, year=int(match.group(1)))
    if "last year" in text:
        return TimeContext(kind=TimeContextKind.YEAR, year=now.year - 1)
    if "this year" in text:
        return TimeContext(kind=TimeContextKind.YEAR, year=now.year)
    if _has_marker(text, PAST_MARKERS):
        return TimeContext(kind=TimeContextKind.PAST)
    if _has_marker(text, PRESENT_MARKERS):
        return TimeContext(kind=TimeContextKind.PRESENT)
    return TimeContext()


class TemporalRanker:
    """
    Computes temporal factors for a set of candidate memories.

    Usage:
        ranker = TemporalRanker(config.temporal)
        factors = ranker.factors("where do I live now?", memories)
    """

    def __init__(self, config: TemporalConfig | None = None):
        self.config = config or TemporalConfig()

    def episode_relevance(self, memory: Memory, now: datetime) -> float:
        """
        Sigmoid decay for episodes: 0.5 at ``episode_decay_days`` since last
        access, approaching 0 afterwards. Facts and preferences return 1.0.
        """
        if memory.memory_type != MemoryType.EPISODE:
            return 1.0

        days = (now - memory.reference_time).total_seconds() / 86400
        if days <= 0:
            return 1.0

        decay_days = max(self.config.episode_decay_days, 1e-6)
        factor = min(max(self.config.episode_decay_factor, 0.01), 0.99)
        steepness = -math.log(1.0 / factor - 1.0) / decay_days
        exponent = (days - decay_days) * steepness
        # Guard exp overflow for very old episodes
        if exponent > 700:
            return 0.0
        return 1.0 / (1.0 + math.exp(exponent))

    def year_proximity(self, memory: Memory, year: int) -> float:
        """1.0 for the asked year, falling linearly to 0.5 at the window edge."""
        distance = abs(memory.effective_time.year - year)
        window = max(self.config.year_proximity_window, 1)
        proximity = max(0.0, 1.0 - distance / (window + 1))
        return 0.5 + 0.5 * proximity

    def factors(
        self,
        query: str,
        memories: list[Memory],
        now: datetime | None = None,
    ) -> list[float]:
        """
        Temporal factor for each memory, in input order.

        Args:
            query: Search query, parsed for its time context
            memories: Candidate memories
            now: Reference time

        Returns:
            List of factors (> 0 except for fully decayed episodes)
        """
        if not memories:
            return []

        now = now or datetime.now()
        context = parse_time_context(query, now)

        times = [m.effective_time.timestamp() for m in memories]
        earliest, latest = min(times), max(times)
        span = latest - earliest

        factors = []
        for memory, moment in zip(memories, times, strict=True):
            factor = self.episode_relevance(memory, now)
            recency = (moment - earliest) / span if span > 0 else 0.0

            if context.kind == TimeContextKind.YEAR and context.year is not None:
                factor *= self.year_proximity(memory, context.year)
            elif context.kind == TimeContextKind.PRESENT:
                if not memory.is_active():
                    factor *= 0.5
                factor *= 1.0 + self.config.recency_bonus * recency
            elif context.kind == TimeContextKind.PAST:
                factor *= 1.0 + self.config.recency_bonus * (1.0 - recency)

            factors.append(factor)

        return factors
