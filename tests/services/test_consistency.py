"""
Tests for consistency resolution.

Memories are stored directly; the scripted LLM judges each pair.
"""

from datetime import datetime, timedelta

import pytest

from engram.config import ConsistencyConfig
from engram.models.document import Document, DocumentType
from engram.models.memory import Memory, MemorySource, MemoryState
from engram.models.relationships import EdgeType, GraphEdge, RelationshipJudgement
from engram.services.consistency import ConsistencyResolver, normalize_relation
from engram.utils.exceptions import ValidationError
from engram.utils.id_generator import generate_memory_id

DOC_ID = "doc_000000000001"
T0 = datetime(2026, 1, 1, 12, 0)


def judgement(relation: str, confidence: float = 0.9) -> RelationshipJudgement:
    return RelationshipJudgement(relation=relation, confidence=confidence, reasoning="scripted")


@pytest.fixture
async def store(repository, embedder):
    """Factory storing a memory with a real embedding and one source."""
    await repository.add_document(
        Document(id=DOC_ID, container_tag="user-1", type=DocumentType.TEXT, content_hash="sha256:doc")
    )

    async def add(content: str, offset_days: int = 0, **kwargs) -> Memory:
        kwargs.setdefault("container_tag", "user-1")
        memory = Memory(
            id=generate_memory_id(),
            content=content,
            embedding=await embedder.embed(content),
            created_at=T0 + timedelta(days=offset_days),
            **kwargs,
        )
        sources = [] if memory.is_derived else [MemorySource(memory_id=memory.id, document_id=DOC_ID)]
        await repository.add_memory(memory, sources)
        return memory

    return add


@pytest.fixture
def resolver(repository, llm, retry) -> ConsistencyResolver:
    return ConsistencyResolver(
        repository, llm, config=ConsistencyConfig(contradiction_threshold=0.6), retry=retry
    )


@pytest.mark.unit
class TestNormalizeRelation:
    """Test relation label normalization."""

    @pytest.mark.parametrize(
        "raw", ["temporal_follows", "Temporal follows", "temporal-follows", " TEMPORAL_FOLLOWS "]
    )
    def test_variants(self, raw):
        assert normalize_relation(raw) == "temporal_follows"


@pytest.mark.integration
@pytest.mark.asyncio
class TestContradictions:
    """Test supersession of contradicting memories."""

    async def test_newer_memory_supersedes_older(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        berlin = await store("User lives in Berlin")
        munich = await store("User lives in Munich", offset_days=30)

        report = await resolver.resolve([munich], "user-1")

        assert report.checked == 1
        assert report.superseded_ids == [berlin.id]
        old = await repository.get_memory(berlin.id)
        assert old.state == MemoryState.SUPERSEDED
        assert old.superseded_by == munich.id
        assert (await repository.get_memory(munich.id)).state == MemoryState.ACTIVE

        assert await repository.get_edge_between(munich.id, berlin.id, EdgeType.CONTRADICTS)
        assert await repository.get_edge_between(munich.id, berlin.id, EdgeType.SUPERSEDES)

    async def test_event_time_decides_winner(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        current = await store("User lives in Munich", event_time=datetime(2025, 6, 1))
        # Ingested later but describes an earlier period
        historic = await store("User lives in Berlin", offset_days=5, event_time=datetime(2019, 1, 1))

        report = await resolver.resolve([historic], "user-1")

        assert report.superseded_ids == [historic.id]
        assert (await repository.get_memory(historic.id)).superseded_by == current.id
        assert (await repository.get_memory(current.id)).state == MemoryState.ACTIVE
        # The contradicts edge still points from the new memory
        assert await repository.get_edge_between(historic.id, current.id, EdgeType.CONTRADICTS)
        assert await repository.get_edge_between(current.id, historic.id, EdgeType.SUPERSEDES)

    async def test_low_confidence_ignored(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts", confidence=0.5))
        berlin = await store("User lives in Berlin")
        munich = await store("User lives in Munich", offset_days=1)

        report = await resolver.resolve([munich], "user-1")

        assert report.superseded_ids == []
        assert report.edges_created == []
        assert (await repository.get_memory(berlin.id)).state == MemoryState.ACTIVE

    async def test_replay_is_idempotent(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        await store("User lives in Berlin")
        munich = await store("User lives in Munich", offset_days=1)
        await resolver.resolve([munich], "user-1")
        judged = len(llm.calls_for(RelationshipJudgement))

        report = await resolver.resolve([munich], "user-1")

        assert report.superseded_ids == []
        assert report.edges_created == []
        # Superseded neighbour is no longer a candidate
        assert len(llm.calls_for(RelationshipJudgement)) == judged

    async def test_superseded_input_skipped(self, resolver, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        berlin = await store("User lives in Berlin")
        munich = await store("User lives in Munich", offset_days=1)
        await resolver.resolve([munich], "user-1")

        report = await resolver.resolve([berlin], "user-1")

        assert report.checked == 0

    async def test_lexical_fallback_when_llm_output_invalid(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, ValidationError("unparseable"))
        likes = await store("User likes coffee")
        hates = await store("User hates coffee", offset_days=1)

        report = await resolver.resolve([hates], "user-1")

        assert report.superseded_ids == [likes.id]
        edge = await repository.get_edge_between(hates.id, likes.id, EdgeType.CONTRADICTS)
        assert edge.confidence == pytest.approx(0.8)

    async def test_heuristics_only_without_llm(self, repository, retry, store):
        resolver = ConsistencyResolver(
            repository, None, config=ConsistencyConfig(contradiction_threshold=0.6), retry=retry
        )
        likes = await store("User likes coffee")
        hates = await store("User hates coffee", offset_days=1)
        berlin = await store("User lives in Berlin", offset_days=2)
        munich = await store("User lives in Munich", offset_days=3)

        report = await resolver.resolve([hates, munich], "user-1")

        # Relocation has no lexical cue
        assert report.superseded_ids == [likes.id]
        assert (await repository.get_memory(berlin.id)).state == MemoryState.ACTIVE


@pytest.mark.integration
@pytest.mark.asyncio
class TestRelationships:
    """Test non-contradicting relations."""

    async def test_supports_edge(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("supports", 0.8))
        existing = await store("User works at Acme")
        new = await store("User works at Acme as an engineer", offset_days=1)

        report = await resolver.resolve([new], "user-1")

        assert [e.type for e in report.edges_created] == [EdgeType.SUPPORTS]
        edge = await repository.get_edge_between(new.id, existing.id, EdgeType.SUPPORTS)
        assert edge.metadata["reasoning"] == "scripted"
        assert report.superseded_ids == []

    async def test_temporal_follows_points_later_to_earlier(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("Temporal follows"))
        later = await store("User finished the marathon race", event_time=datetime(2025, 10, 1))
        earlier = await store(
            "User started training for the marathon race", offset_days=3, event_time=datetime(2025, 3, 1)
        )

        await resolver.resolve([earlier], "user-1")

        assert await repository.get_edge_between(later.id, earlier.id, EdgeType.TEMPORAL_FOLLOWS)
        assert await repository.get_edge_between(earlier.id, later.id) is None

    async def test_unrelated_creates_nothing(self, resolver, llm, store):
        llm.on(RelationshipJudgement, judgement("unrelated"))
        await store("User lives in Berlin")
        new = await store("User lives in Munich", offset_days=1)

        report = await resolver.resolve([new], "user-1")

        assert report.edges_created == []

    async def test_dissimilar_memories_not_judged(self, resolver, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        await store("User lives in Berlin")
        new = await store("Quarterly revenue grew strongly", offset_days=1)

        await resolver.resolve([new], "user-1")

        assert llm.calls_for(RelationshipJudgement) == []

    async def test_related_pair_not_judged_again(self, resolver, repository, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        berlin = await store("User lives in Berlin")
        munich = await store("User lives in Munich", offset_days=1)
        await repository.add_edge(GraphEdge(source_id=berlin.id, target_id=munich.id, type=EdgeType.SUPPORTS))

        report = await resolver.resolve([munich], "user-1")

        assert llm.calls_for(RelationshipJudgement) == []
        assert report.superseded_ids == []

    async def test_derived_memories_excluded(self, resolver, llm, store):
        llm.on(RelationshipJudgement, judgement("contradicts"))
        await store("User lives in Berlin", is_derived=True)
        new = await store("User lives in Munich", offset_days=1)

        report = await resolver.resolve([new], "user-1")

        assert llm.calls_for(RelationshipJudgement) == []
        assert report.superseded_ids == []

    async def test_prompt_mentions_both_memories(self, resolver, llm, store):
        llm.on(RelationshipJudgement, judgement("unrelated"))
        await store("User likes coffee")
        new = await store("User hates coffee", offset_days=1)

        await resolver.resolve([new], "user-1")

        prompt = llm.calls_for(RelationshipJudgement)[0]
        assert 'EXISTING: "User likes coffee"' in prompt
        assert 'NEW: "User hates coffee"' in prompt
        assert "lexical check rates a contradiction as likely" in prompt


@pytest.mark.integration
@pytest.mark.asyncio
class TestValidation:
    """Test input validation."""

    async def test_foreign_container(self, resolver, store):
        memory = await store("User lives in Berlin", container_tag="user-2")

        with pytest.raises(ValidationError):
            await resolver.resolve([memory], "user-1")

    async def test_missing_container(self, resolver):
        with pytest.raises(ValidationError):
            await resolver.resolve([], "")
