"""
Consistency Resolver - keeps the memory graph free of live contradictions.

For every newly committed memory:
1. Vector search for similar active memories in the same container
2. Cheap lexical contradiction check on each pair
3. LLM judgement of the pair (lexical verdict as fallback)
4. Contradictions supersede the older memory in one transaction; other
   relations become edges
5. Inference over the surviving memories

Passes are serialized per container.
"""

from datetime import datetime

from engram.config import ConsistencyConfig
from engram.core.llm.base import LLMProvider
from engram.core.relationships.contradiction import ContradictionCheck, ContradictionDetector
from engram.core.storage.base import Repository
from engram.models.lifecycle import ResolutionReport
from engram.models.memory import Memory, MemoryState
from engram.models.relationships import EdgeType, GraphEdge, RelationshipJudgement
from engram.services.inference import InferenceEngine
from engram.utils.exceptions import ProviderTransientError, ValidationError
from engram.utils.locks import KeyedLocks
from engram.utils.logger import get_logger
from engram.utils.retry import RetryPolicy

logger = get_logger(__name__)

RELATION_EDGE_TYPES = {
    "contradicts": EdgeType.CONTRADICTS,
    "supports": EdgeType.SUPPORTS,
    "elaborates": EdgeType.ELABORATES,
    "temporal_follows": EdgeType.TEMPORAL_FOLLOWS,
}

HEURISTIC_CONFIDENCE = 0.8


def normalize_relation(relation: str) -> str:
    """'Temporal follows' / 'temporal-follows' -> 'temporal_follows'."""
    return "_".join(relation.strip().lower().replace("-", " ").split())


def time_key(memory: Memory) -> tuple[datetime, datetime, str]:
    """Ordering used to decide which of two memories is the later one."""
    return (memory.effective_time, memory.created_at, memory.id)


class ConsistencyResolver:
    """
    Contradiction and relationship resolution for new memories.

    Usage:
        resolver = ConsistencyResolver(repository, llm, inference=inference)
        report = await resolver.resolve(new_memories, "user_42")
    """

    def __init__(
        self,
        repository: Repository,
        llm: LLMProvider | None = None,
        config: ConsistencyConfig | None = None,
        inference: InferenceEngine | None = None,
        detector: ContradictionDetector | None = None,
        locks: KeyedLocks | None = None,
        retry: RetryPolicy | None = None,
    ):
        """
        Initialize consistency resolver.

        Args:
            repository: Persistence layer
            llm: LLM provider that judges pairs (heuristics only when None)
            config: Thresholds
            inference: Optional inference engine run after resolution
            detector: Lexical contradiction detector
            locks: Per-container lock registry
            retry: Retry policy for provider calls
        """
        self.repository = repository
        self.llm = llm
        self.config = config or ConsistencyConfig()
        self.inference = inference
        self.detector = detector or ContradictionDetector()
        self.locks = locks or KeyedLocks()
        self.retry = retry or RetryPolicy()

    async def resolve(self, memories: list[Memory], container_tag: str) -> ResolutionReport:
        """
        Resolve new memories against the rest of their container.

        Args:
            memories: Newly committed memories
            container_tag: Container they belong to

        Returns:
            ResolutionReport with superseded memories, created edges and
            derived memories

        Raises:
            ValidationError: If a memory belongs to another container
            ProviderPermanentError: If the LLM rejects requests
        """
        if not container_tag:
            raise ValidationError("container_tag is required")

        report = ResolutionReport(container_tag=container_tag)

        async with self.locks.get(container_tag):
            survivors = []
            for memory in memories:
                if memory.container_tag != container_tag:
                    raise ValidationError(
                        "Memory belongs to another container",
                        {"memory_id": memory.id, "container_tag": memory.container_tag},
                    )

                # State may have changed since commit
                current = await self.repository.get_memory(memory.id)
                if current is None or not current.is_active():
                    continue

                report.checked += 1
                if await self._resolve_one(current, report):
                    survivors.append(current.id)

            if self.inference is not None and survivors:
                derived = await self.inference.infer(survivors, container_tag)
                report.derived_ids.extend(m.id for m in derived)

        logger.info(
            f"Resolved {report.checked} memories: {len(report.superseded_ids)} superseded, "
            f"{len(report.edges_created)} edges",
            extra={"container_tag": container_tag, "derived": len(report.derived_ids)},
        )
        return report

    async def _resolve_one(self, memory: Memory, report: ResolutionReport) -> bool:
        """
        Resolve one memory against its similar neighbours.

        Returns:
            False if the memory itself ended up superseded
        """
        if not memory.embedding:
            logger.warning("Skipping memory without embedding", extra={"memory_id": memory.id})
            return True

        matches = await self.repository.vector_search(
            memory.container_tag,
            memory.embedding,
            k=self.config.candidate_limit + 1,
            states=[MemoryState.ACTIVE],
            include_derived=self.config.include_derived_in_contradiction,
            exclude_ids=[memory.id],
        )
        candidates = [
            existing
            for existing, similarity in matches
            if similarity >= self.config.contradiction_threshold and existing.id != memory.id
        ][: self.config.candidate_limit]

        for existing in candidates:
            if await self._already_related(memory.id, existing.id):
                continue

            judgement = await self._judge(existing, memory)
            if judgement is None:
                continue

            relation = normalize_relation(judgement.relation)
            edge_type = RELATION_EDGE_TYPES.get(relation)
            if edge_type is None or judgement.confidence < self.config.min_relationship_confidence:
                continue

            if edge_type == EdgeType.CONTRADICTS:
                loser = await self._apply_contradiction(memory, existing, judgement, report)
                if loser == memory.id:
                    return False
                continue

            await self._add_relationship(memory, existing, edge_type, judgement, report)

        return True

    async def _already_related(self, first_id: str, second_id: str) -> bool:
        if await self.repository.get_edge_between(first_id, second_id) is not None:
            return True
        return await self.repository.get_edge_between(second_id, first_id) is not None

    # ═══════════════════════════════════════════════════════════
    # JUDGEMENT
    # ═══════════════════════════════════════════════════════════

    def _judgement_prompt(self, existing: Memory, new: Memory, hint: ContradictionCheck) -> str:
        current_dt = datetime.now()

        def describe(memory: Memory) -> str:
            when = memory.event_time.strftime("%Y-%m-%d") if memory.event_time else "unknown"
            return f'"{memory.content}" (type: {memory.memory_type.value}, event time: {when})'

        hint_line = ""
        if hint != ContradictionCheck.NONE:
            hint_line = f"\nA lexical check rates a contradiction as {hint.value}.\n"

        return f"""[CURRENT DATE/TIME: {current_dt.strftime('%Y-%m-%d %H:%M:%S')}]

Classify how the NEW memory relates to the EXISTING memory.

EXISTING: {describe(existing)}
NEW: {describe(new)}
{hint_line}
Relations:
- contradicts: both cannot be true at the same time (e.g. a changed location or job)
- supports: the new memory confirms or adds evidence for the existing one
- elaborates: the new memory adds detail to the existing one
- temporal_follows: the new memory describes what happened after the existing one
- unrelated: none of the above

Respond with relation, confidence (0.0-1.0) and a short reasoning."""

    async def _judge(self, existing: Memory, new: Memory) -> RelationshipJudgement | None:
        """LLM judgement, falling back to the lexical verdict when the LLM is unavailable."""
        hint = self.detector.check(existing.content, new.content)

        if self.llm is not None and self.config.use_llm:
            prompt = self._judgement_prompt(existing, new, hint)
            try:
                return await self.retry.run(
                    lambda: self.llm.complete(
                        prompt, response_format=RelationshipJudgement, temperature=0.0
                    ),
                    "judge_relationship",
                )
            except (ValidationError, ProviderTransientError) as e:
                logger.warning(
                    "Relationship judgement unavailable, using lexical check: {}",
                    e,
                    extra={"existing_id": existing.id, "new_id": new.id, "error": str(e)},
                )

        if hint == ContradictionCheck.LIKELY:
            return RelationshipJudgement(
                relation="contradicts",
                confidence=HEURISTIC_CONFIDENCE,
                reasoning="lexical contradiction check",
            )
        return None

    # ═══════════════════════════════════════════════════════════
    # GRAPH WRITES
    # ═══════════════════════════════════════════════════════════

    async def _apply_contradiction(
        self,
        new: Memory,
        existing: Memory,
        judgement: RelationshipJudgement,
        report: ResolutionReport,
    ) -> str:
        """Supersede the older of the pair; returns the loser's id."""
        winner, loser = (new, existing) if time_key(new) > time_key(existing) else (existing, new)

        edges = [
            GraphEdge(
                source_id=new.id,
                target_id=existing.id,
                type=EdgeType.CONTRADICTS,
                confidence=judgement.confidence,
                metadata={"reasoning": judgement.reasoning},
            ),
            GraphEdge(
                source_id=winner.id,
                target_id=loser.id,
                type=EdgeType.SUPERSEDES,
                confidence=judgement.confidence,
            ),
        ]

        changed = await self.repository.apply_supersession(winner.id, loser.id, edges)
        if changed:
            report.superseded_ids.append(loser.id)
            report.edges_created.extend(edges)
            logger.info(
                f"Memory {loser.id} superseded by {winner.id}",
                extra={"winner_id": winner.id, "loser_id": loser.id, "confidence": judgement.confidence},
            )
        return loser.id

    async def _add_relationship(
        self,
        new: Memory,
        existing: Memory,
        edge_type: EdgeType,
        judgement: RelationshipJudgement,
        report: ResolutionReport,
    ) -> None:
        source, target = new, existing
        if edge_type == EdgeType.TEMPORAL_FOLLOWS and time_key(existing) > time_key(new):
            source, target = existing, new

        edge = GraphEdge(
            source_id=source.id,
            target_id=target.id,
            type=edge_type,
            confidence=judgement.confidence,
            metadata={"reasoning": judgement.reasoning},
        )
        if await self.repository.add_edge(edge):
            report.edges_created.append(edge)
            logger.debug(
                f"Created {edge_type.value} edge",
                extra={"source_id": source.id, "target_id": target.id},
            )
