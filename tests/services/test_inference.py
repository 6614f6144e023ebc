"""
Tests for graph inference.
"""

from datetime import datetime

import pytest

from engram.config import InferenceConfig
from engram.models.document import Document, DocumentType
from engram.models.memory import Memory, MemorySource, MemoryState, compute_content_hash
from engram.models.relationships import EdgeType, GraphEdge, InferredFact
from engram.services.inference import InferenceEngine
from engram.utils.exceptions import ProviderPermanentError, ValidationError

DOC_ID = "doc_000000000001"

RUNNER = InferredFact(
    has_inference=True,
    content="User is training for a marathon",
    confidence=0.85,
    reasoning="runs daily and registered for a race",
)


@pytest.fixture
async def chain(repository, embedder):
    """
    Three linked memories: a -supports-> b -elaborates-> c, plus an isolated d.
    """
    await repository.add_document(
        Document(id=DOC_ID, container_tag="user-1", type=DocumentType.TEXT, content_hash="sha256:doc")
    )
    contents = {
        "mem_a": ("User runs every morning", 0.4, datetime(2026, 2, 1)),
        "mem_b": ("User registered for the Berlin marathon", 0.9, datetime(2026, 3, 1)),
        "mem_c": ("The Berlin marathon is in September", 0.5, None),
        "mem_d": ("User owns a cat", 0.5, None),
    }
    memories = {}
    for memory_id, (content, importance, event_time) in contents.items():
        memory = Memory(
            id=memory_id,
            container_tag="user-1",
            content=content,
            content_hash=compute_content_hash(content),
            embedding=await embedder.embed(content),
            importance=importance,
            event_time=event_time,
        )
        chunk_id = f"{DOC_ID}_chunk_{memory_id[-1]}"
        await repository.add_memory(memory, [MemorySource(memory_id=memory_id, document_id=DOC_ID, chunk_id=chunk_id)])
        memories[memory_id] = memory

    await repository.add_edge(GraphEdge(source_id="mem_a", target_id="mem_b", type=EdgeType.SUPPORTS))
    await repository.add_edge(GraphEdge(source_id="mem_c", target_id="mem_b", type=EdgeType.ELABORATES))
    return memories


@pytest.fixture
def inference(repository, llm, embedder, retry) -> InferenceEngine:
    llm.on(InferredFact, RUNNER)
    return InferenceEngine(repository, llm, embedder, retry=retry)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCollectCluster:
    """Test the bounded cluster walk."""

    async def test_walks_relationship_edges(self, inference, chain):
        cluster = await inference.collect_cluster("mem_a")

        assert sorted(m.id for m in cluster) == ["mem_a", "mem_b", "mem_c"]

    async def test_isolated_memory(self, inference, chain):
        cluster = await inference.collect_cluster("mem_d")

        assert [m.id for m in cluster] == ["mem_d"]

    async def test_depth_bound(self, repository, llm, embedder, chain):
        engine = InferenceEngine(repository, llm, embedder, config=InferenceConfig(max_depth=1))

        cluster = await engine.collect_cluster("mem_a")

        assert sorted(m.id for m in cluster) == ["mem_a", "mem_b"]

    async def test_size_bound(self, repository, llm, embedder, chain):
        engine = InferenceEngine(repository, llm, embedder, config=InferenceConfig(max_cluster_size=2))

        cluster = await engine.collect_cluster("mem_b")

        assert len(cluster) == 2

    async def test_skips_inactive(self, repository, inference, chain):
        await repository.apply_supersession(
            "mem_b",
            "mem_c",
            [GraphEdge(source_id="mem_b", target_id="mem_c", type=EdgeType.SUPERSEDES)],
        )

        cluster = await inference.collect_cluster("mem_a")

        assert sorted(m.id for m in cluster) == ["mem_a", "mem_b"]

    async def test_ignores_non_cluster_edges(self, repository, inference, chain):
        await repository.add_edge(GraphEdge(source_id="mem_d", target_id="mem_a", type=EdgeType.CONTRADICTS))

        cluster = await inference.collect_cluster("mem_d")

        assert [m.id for m in cluster] == ["mem_d"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestInfer:
    """Test derived memory creation."""

    async def test_derives_memory(self, inference, repository, chain):
        derived = await inference.infer(["mem_a"], "user-1")

        assert len(derived) == 1
        memory = await repository.get_memory(derived[0].id)
        assert memory.content == "User is training for a marathon"
        assert memory.is_derived
        assert sorted(memory.derived_from) == ["mem_a", "mem_b", "mem_c"]
        assert memory.confidence == pytest.approx(0.85)
        assert memory.importance == pytest.approx(0.9)
        assert memory.event_time == datetime(2026, 3, 1)
        assert memory.metadata["reasoning"] == "runs daily and registered for a race"

        edges = await repository.get_edges([memory.id], direction="outgoing")
        assert {(e.target_id, e.type) for e in edges} == {
            ("mem_a", EdgeType.DERIVED_FROM),
            ("mem_b", EdgeType.DERIVED_FROM),
            ("mem_c", EdgeType.DERIVED_FROM),
        }

        sources = await repository.get_sources([memory.id])
        assert {s.chunk_id for s in sources} == {f"{DOC_ID}_chunk_a", f"{DOC_ID}_chunk_b", f"{DOC_ID}_chunk_c"}

    async def test_same_cluster_derived_once(self, inference, llm, chain):
        first = await inference.infer(["mem_a", "mem_b"], "user-1")

        assert len(first) == 1
        assert len(llm.calls_for(InferredFact)) == 1

        assert await inference.infer(["mem_c"], "user-1") == []
        assert len(llm.calls_for(InferredFact)) == 1

    async def test_prompt_lists_cluster(self, inference, llm, chain):
        await inference.infer(["mem_a"], "user-1")

        prompt = llm.calls_for(InferredFact)[0]
        assert "- [fact] User runs every morning (as of 2026-02-01)" in prompt
        assert "- [fact] The Berlin marathon is in September" in prompt
        assert "User owns a cat" not in prompt

    async def test_singleton_cluster_not_sent(self, inference, llm, chain):
        assert await inference.infer(["mem_d"], "user-1") == []
        assert llm.calls_for(InferredFact) == []

    @pytest.mark.parametrize(
        "answer",
        [
            InferredFact(has_inference=False),
            InferredFact(has_inference=True, content="Maybe a runner", confidence=0.4),
            InferredFact(has_inference=True, content="   ", confidence=0.9),
        ],
    )
    async def test_rejected_answers(self, inference, llm, repository, chain, answer):
        llm.on(InferredFact, answer)

        assert await inference.infer(["mem_a"], "user-1") == []
        assert len(await repository.list_memories("user-1")) == 4

    async def test_existing_content_not_duplicated(self, inference, llm, chain):
        llm.on(
            InferredFact,
            InferredFact(has_inference=True, content="User owns a cat", confidence=0.9),
        )

        assert await inference.infer(["mem_a"], "user-1") == []

    async def test_unparseable_answer_skipped(self, inference, llm, chain):
        llm.on(InferredFact, ValidationError("bad json"))

        assert await inference.infer(["mem_a"], "user-1") == []

    async def test_permanent_error_propagates(self, inference, llm, chain):
        llm.on(InferredFact, ProviderPermanentError("quota exhausted"))

        with pytest.raises(ProviderPermanentError):
            await inference.infer(["mem_a"], "user-1")

    async def test_disabled(self, repository, llm, embedder, chain):
        engine = InferenceEngine(repository, llm, embedder, config=InferenceConfig(enabled=False))

        assert await engine.infer(["mem_a"], "user-1") == []

    async def test_derived_memories_not_in_clusters(self, inference, repository, chain):
        derived = (await inference.infer(["mem_a"], "user-1"))[0]

        cluster = await inference.collect_cluster(derived.id)

        # derived_from edges are not walked, and the seed itself is derived
        assert cluster == []
        assert (await repository.get_memory(derived.id)).state == MemoryState.ACTIVE
