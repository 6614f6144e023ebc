"""
LLM-backed reranker.

Candidates are scored in small batches with structured output; the LLM sees
them by numeric index so it cannot reference anything outside the batch.
"""

import asyncio

from pydantic import BaseModel, Field

from engram.core.llm.base import LLMProvider
from engram.core.reranker.base import Reranker, RerankResult
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class RelevanceScore(BaseModel):
    """Relevance score for one candidate (structured output)."""

    model_config = {"extra": "ignore"}

    index: int = Field(..., description="Candidate number as shown in the prompt")
    relevance: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Relevance (0-1): 1.0=answers the query, 0.7-0.9=relevant, 0.4-0.7=some, <0.4=not",
    )


class RelevanceScores(BaseModel):
    """Batch of relevance scores (structured output)."""

    model_config = {"extra": "ignore"}

    scores: list[RelevanceScore] = Field(default_factory=list)


class LLMReranker(Reranker):
    """Reranker that asks an LLM to grade candidates."""

    def __init__(self, llm: LLMProvider, batch_size: int = 10):
        self.llm = llm
        self.batch_size = max(1, batch_size)

    async def rerank(self, query: str, candidates: list[str]) -> list[RerankResult]:
        if not candidates:
            return []

        batches = [
            (start, candidates[start : start + self.batch_size])
            for start in range(0, len(candidates), self.batch_size)
        ]
        batch_results = await asyncio.gather(
            *[self._score_batch(query, start, batch) for start, batch in batches]
        )

        results: dict[int, RerankResult] = {}
        for batch_result in batch_results:
            for result in batch_result:
                results.setdefault(result.index, result)

        return list(results.values())

    async def _score_batch(self, query: str, offset: int, batch: list[str]) -> list[RerankResult]:
        listing = "\n".join(f"[{i}] {text}" for i, text in enumerate(batch))
        prompt = f"""Rate how relevant each numbered memory is to the query.

Query: {query}

Memories:
{listing}

Return one score per memory, using the memory's number as "index".
Score 1.0 if it directly answers the query, 0.0 if it is unrelated."""

        response = await self.llm.complete(prompt, response_format=RelevanceScores, temperature=0.0)

        results = []
        for score in response.scores:
            # Indices outside the batch are dropped
            if 0 <= score.index < len(batch):
                results.append(RerankResult(index=offset + score.index, score=score.relevance))
            else:
                logger.debug(f"Reranker returned out-of-range index {score.index}")
        return results

    async def close(self):
        pass
