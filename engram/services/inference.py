"""
Inference Engine - derives new memories from clusters of related ones.

A cluster is collected by a bounded breadth-first walk over relationship
edges (supports, elaborates, temporal_follows) from a seed memory. The LLM
is asked whether a new fact follows from the cluster; a confident answer
becomes a derived memory linked to every source by a derived_from edge.
"""

from datetime import datetime

from engram.config import InferenceConfig
from engram.core.embeddings.base import Embedder
from engram.core.llm.base import LLMProvider
from engram.core.storage.base import Repository
from engram.models.memory import Memory, MemorySource, MemoryType, compute_content_hash
from engram.models.relationships import EdgeType, GraphEdge, InferredFact
from engram.utils.exceptions import ProviderTransientError, ValidationError
from engram.utils.id_generator import generate_memory_id
from engram.utils.logger import get_logger
from engram.utils.retry import RetryPolicy

logger = get_logger(__name__)

CLUSTER_EDGE_TYPES = [EdgeType.SUPPORTS, EdgeType.ELABORATES, EdgeType.TEMPORAL_FOLLOWS]


class InferenceEngine:
    """
    Bounded graph inference.

    Usage:
        engine = InferenceEngine(repository, llm, embedder)
        derived = await engine.infer(["mem_a1b2c3"], "user_42")
    """

    def __init__(
        self,
        repository: Repository,
        llm: LLMProvider,
        embedder: Embedder,
        config: InferenceConfig | None = None,
        retry: RetryPolicy | None = None,
    ):
        """
        Initialize inference engine.

        Args:
            repository: Persistence layer
            llm: LLM provider that proposes derived facts
            embedder: Embedder for derived memory vectors
            config: Traversal bounds and confidence threshold
            retry: Retry policy for provider calls
        """
        self.repository = repository
        self.llm = llm
        self.embedder = embedder
        self.config = config or InferenceConfig()
        self.retry = retry or RetryPolicy()

    async def collect_cluster(self, seed_id: str) -> list[Memory]:
        """
        Breadth-first walk from a seed over relationship edges.

        Bounded by ``max_depth`` hops, ``max_fanout`` neighbours per node and
        ``max_cluster_size`` nodes overall. Only active, non-derived memories
        are kept.

        Args:
            seed_id: Memory to start from

        Returns:
            Cluster memories ordered by id (the seed included when eligible)
        """
        visited = {seed_id}
        frontier = [seed_id]

        for _ in range(self.config.max_depth):
            next_frontier = []
            for node in frontier:
                edges = await self.repository.get_edges([node], direction="both", edge_types=CLUSTER_EDGE_TYPES)
                neighbours = sorted(
                    {e.target_id if e.source_id == node else e.source_id for e in edges} - visited
                )
                for neighbour in neighbours[: self.config.max_fanout]:
                    if len(visited) >= self.config.max_cluster_size:
                        break
                    visited.add(neighbour)
                    next_frontier.append(neighbour)

            if not next_frontier:
                break
            frontier = next_frontier

        memories = await self.repository.get_memories(sorted(visited))
        return [m for m in memories if m.is_active() and not m.is_derived]

    async def infer(self, seed_ids: list[str], container_tag: str) -> list[Memory]:
        """
        Derive memories from the clusters around the seeds.

        Args:
            seed_ids: Recently resolved memories
            container_tag: Container the derived memories belong to

        Returns:
            Newly created derived memories
        """
        if not self.config.enabled:
            return []

        derived: list[Memory] = []
        seen: set[tuple[str, ...]] = set()

        for seed_id in seed_ids:
            cluster = [m for m in await self.collect_cluster(seed_id) if m.container_tag == container_tag]
            if len(cluster) < 2:
                continue

            source_ids = tuple(m.id for m in cluster)
            if source_ids in seen:
                continue
            seen.add(source_ids)

            if await self._already_derived(source_ids):
                logger.debug(
                    "Cluster already has a derived memory",
                    extra={"seed_id": seed_id, "source_ids": list(source_ids)},
                )
                continue

            memory = await self._derive(cluster, container_tag)
            if memory is not None:
                derived.append(memory)

        if derived:
            logger.info(
                f"Derived {len(derived)} memories",
                extra={"container_tag": container_tag, "memory_ids": [m.id for m in derived]},
            )
        return derived

    async def _already_derived(self, source_ids: tuple[str, ...]) -> bool:
        """Whether some memory is derived from exactly this source set."""
        edges = await self.repository.get_edges(
            list(source_ids), direction="incoming", edge_types=[EdgeType.DERIVED_FROM]
        )
        by_derived: dict[str, set[str]] = {}
        for edge in edges:
            by_derived.setdefault(edge.source_id, set()).add(edge.target_id)
        return any(targets == set(source_ids) for targets in by_derived.values())

    def _inference_prompt(self, cluster: list[Memory]) -> str:
        current_dt = datetime.now()
        statements = "\n".join(
            f"- [{m.memory_type.value}] {m.content}"
            + (f" (as of {m.event_time.strftime('%Y-%m-%d')})" if m.event_time else "")
            for m in cluster
        )
        return f"""[CURRENT DATE/TIME: {current_dt.strftime('%Y-%m-%d %H:%M:%S')}]

The following memories are related to each other:
{statements}

Does a NEW fact follow from them that none of them states on its own?

Rules:
- Only infer what the memories jointly and clearly imply; no speculation
- The inferred fact must be one atomic, self-contained statement
- If nothing new follows, set has_inference to false
- confidence: 0.0-1.0, how certain the inference is

Respond with has_inference, content, confidence and reasoning."""

    async def _derive(self, cluster: list[Memory], container_tag: str) -> Memory | None:
        prompt = self._inference_prompt(cluster)
        try:
            result = await self.retry.run(
                lambda: self.llm.complete(prompt, response_format=InferredFact, temperature=0.0),
                "infer_fact",
            )
        except (ValidationError, ProviderTransientError) as e:
            logger.warning(
                "Inference skipped: {}",
                e,
                extra={"source_ids": [m.id for m in cluster], "error": str(e)},
            )
            return None

        content = result.content.strip()
        if not result.has_inference or not content or result.confidence < self.config.min_confidence:
            return None

        content_hash = compute_content_hash(content)
        if await self.repository.find_memory_by_hash(container_tag, content_hash) is not None:
            return None

        embedding = await self.retry.run(lambda: self.embedder.embed(content), "embed_derived")

        source_ids = [m.id for m in cluster]
        event_times = [m.event_time for m in cluster if m.event_time]
        memory = Memory(
            id=generate_memory_id(),
            container_tag=container_tag,
            content=content,
            content_hash=content_hash,
            embedding=embedding,
            memory_type=MemoryType.FACT,
            importance=max(m.importance for m in cluster),
            confidence=result.confidence,
            is_derived=True,
            derived_from=source_ids,
            metadata={"reasoning": result.reasoning},
            event_time=max(event_times) if event_times else None,
        )

        # Derived memories inherit the provenance of their sources
        links = {(s.document_id, s.chunk_id) for s in await self.repository.get_sources(source_ids)}
        sources = [
            MemorySource(memory_id=memory.id, document_id=document_id, chunk_id=chunk_id)
            for document_id, chunk_id in sorted(links, key=lambda link: (link[0], link[1] or ""))
        ]
        edges = [
            GraphEdge(
                source_id=memory.id,
                target_id=source_id,
                type=EdgeType.DERIVED_FROM,
                confidence=result.confidence,
            )
            for source_id in source_ids
        ]

        await self.repository.add_memory(memory, sources, edges)
        return memory
