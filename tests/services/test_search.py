"""
Tests for search and neighborhood retrieval.
"""

from datetime import datetime, timedelta

import pytest

from engram.core.reranker.base import Reranker, RerankResult
from engram.models.document import Document, DocumentType
from engram.models.memory import Memory, MemorySource
from engram.models.relationships import EdgeType, GraphEdge
from engram.models.search import SearchOptions
from engram.services.search import SearchService
from engram.utils.exceptions import (
    NotFoundError,
    ProviderPermanentError,
    ProviderTransientError,
    ValidationError,
)

DOC_ID = "doc_000000000001"
T0 = datetime(2026, 1, 1, 12, 0)


class FixedReranker(Reranker):
    """Returns preset results, or raises a preset error."""

    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.queries = []

    async def rerank(self, query, candidates):
        self.queries.append((query, list(candidates)))
        if self.error is not None:
            raise self.error
        return self.results


@pytest.fixture
async def store(repository, embedder):
    """Factory storing a memory with a real embedding and one source."""
    await repository.add_document(
        Document(id=DOC_ID, container_tag="user-1", type=DocumentType.TEXT, content_hash="sha256:doc")
    )

    async def add(memory_id: str, content: str, offset_days: int = 0, **kwargs) -> Memory:
        kwargs.setdefault("container_tag", "user-1")
        memory = Memory(
            id=memory_id,
            content=content,
            embedding=await embedder.embed(content),
            created_at=T0 + timedelta(days=offset_days),
            **kwargs,
        )
        await repository.add_memory(memory, [MemorySource(memory_id=memory_id, document_id=DOC_ID)])
        return memory

    return add


@pytest.fixture
def search(repository, embedder, retry) -> SearchService:
    return SearchService(repository, embedder, retry=retry)


@pytest.mark.integration
@pytest.mark.asyncio
class TestSearch:
    """Test vector search, filtering and ordering."""

    async def test_most_similar_first(self, search, store):
        await store("mem_tea", "User drinks green tea")
        await store("mem_bike", "User rides a red bike to work")

        hits = await search.search("what bike does the user ride", "user-1")

        assert hits[0].memory.id == "mem_bike"
        assert hits[0].similarity > hits[1].similarity
        assert hits[0].score == pytest.approx(hits[0].similarity * hits[0].temporal_factor)

    async def test_limit_and_threshold(self, search, store):
        await store("mem_a", "User drinks green tea")
        await store("mem_b", "User drinks black tea")
        await store("mem_c", "Quarterly revenue grew strongly")

        limited = await search.search("user drinks tea", "user-1", SearchOptions(limit=1))
        filtered = await search.search("user drinks tea", "user-1", SearchOptions(similarity_threshold=0.5))

        assert len(limited) == 1
        assert {h.memory.id for h in filtered} == {"mem_a", "mem_b"}

    async def test_only_active_memories(self, search, repository, store):
        await store("mem_old", "User lives in Berlin")
        await store("mem_new", "User lives in Munich", offset_days=1)
        await repository.apply_supersession(
            "mem_new", "mem_old", [GraphEdge(source_id="mem_new", target_id="mem_old", type=EdgeType.SUPERSEDES)]
        )

        hits = await search.search("user lives in Berlin", "user-1")

        assert [h.memory.id for h in hits] == ["mem_new"]

    async def test_container_isolation(self, search, store):
        await store("mem_mine", "User lives in Berlin")
        await store("mem_other", "User lives in Berlin too", container_tag="user-2")

        hits = await search.search("user lives in Berlin", "user-1")

        assert [h.memory.id for h in hits] == ["mem_mine"]

    async def test_ties_prefer_later_event_time(self, search, store):
        await store("mem_b", "User lives in Berlin", event_time=datetime(2020, 1, 1))
        await store("mem_a", "In Berlin user lives", event_time=datetime(2024, 1, 1))
        await store("mem_c", "Berlin user lives in", event_time=datetime(2024, 1, 1))

        hits = await search.search("user lives in Berlin", "user-1", SearchOptions(temporal=False))

        assert [h.memory.id for h in hits] == ["mem_a", "mem_c", "mem_b"]

    async def test_present_query_prefers_recent(self, search, store):
        await store("mem_b", "User lives in Berlin", event_time=datetime(2020, 1, 1))
        await store("mem_a", "In Berlin user lives", event_time=datetime(2024, 1, 1))

        hits = await search.search("where user lives in Berlin now", "user-1")

        assert hits[0].memory.id == "mem_a"
        assert hits[0].temporal_factor > hits[1].temporal_factor

    async def test_tracks_access(self, search, repository, store):
        await store("mem_a", "User drinks green tea")

        await search.search("green tea", "user-1")

        memory = await repository.get_memory("mem_a")
        assert memory.access_count == 1
        assert memory.last_accessed is not None

    async def test_access_tracking_optional(self, search, repository, store):
        await store("mem_a", "User drinks green tea")

        await search.search("green tea", "user-1", SearchOptions(track_access=False))

        memory = await repository.get_memory("mem_a")
        assert memory.access_count == 0

    async def test_empty_results(self, search):
        assert await search.search("anything at all", "user-1") == []

    @pytest.mark.parametrize("query,container", [("", "user-1"), ("   ", "user-1"), ("tea", "")])
    async def test_validation(self, search, query, container):
        with pytest.raises(ValidationError):
            await search.search(query, container)

    async def test_embedder_failure_propagates(self, repository, failing_embedder, retry):
        service = SearchService(repository, failing_embedder, retry=retry)

        with pytest.raises(ProviderPermanentError):
            await service.search("FAIL query", "user-1")


@pytest.mark.integration
@pytest.mark.asyncio
class TestRerank:
    """Test reranker integration."""

    async def test_rerank_reorders(self, repository, embedder, retry, store):
        await store("mem_a", "User drinks green tea")
        await store("mem_b", "User drinks tea with milk")
        reranker = FixedReranker([RerankResult(index=0, score=0.2), RerankResult(index=1, score=0.95)])
        service = SearchService(repository, embedder, reranker=reranker, retry=retry)

        hits = await service.search("user drinks green tea", "user-1", SearchOptions(temporal=False))

        assert [h.memory.id for h in hits] == ["mem_b", "mem_a"]
        assert hits[0].rerank_score == pytest.approx(0.95)
        assert hits[0].score == pytest.approx(0.95)
        assert reranker.queries[0][1] == ["User drinks green tea", "User drinks tea with milk"]

    async def test_relevance_floor_drops(self, repository, embedder, retry, store):
        await store("mem_a", "User drinks green tea")
        await store("mem_b", "User drinks tea with milk")
        reranker = FixedReranker([RerankResult(index=0, score=0.9), RerankResult(index=1, score=0.1)])
        service = SearchService(repository, embedder, reranker=reranker, retry=retry)

        hits = await service.search("user drinks green tea", "user-1", SearchOptions(relevance_floor=0.5))

        assert [h.memory.id for h in hits] == ["mem_a"]

    async def test_unscored_candidates_dropped(self, repository, embedder, retry, store):
        await store("mem_a", "User drinks green tea")
        await store("mem_b", "User drinks tea with milk")
        reranker = FixedReranker([RerankResult(index=1, score=0.6), RerankResult(index=9, score=1.0)])
        service = SearchService(repository, embedder, reranker=reranker, retry=retry)

        hits = await service.search("user drinks green tea", "user-1")

        assert [h.memory.id for h in hits] == ["mem_b"]

    @pytest.mark.parametrize(
        "reranker",
        [
            FixedReranker(error=ProviderTransientError("reranker down")),
            FixedReranker([RerankResult(index=7, score=0.9)]),
        ],
    )
    async def test_fallback_to_similarity(self, repository, embedder, retry, store, reranker):
        await store("mem_a", "User drinks green tea")
        await store("mem_b", "User drinks tea with milk")
        service = SearchService(repository, embedder, reranker=reranker, retry=retry)

        hits = await service.search("user drinks green tea", "user-1", SearchOptions(temporal=False))

        assert [h.memory.id for h in hits] == ["mem_a", "mem_b"]
        assert all(h.rerank_score is None for h in hits)

    async def test_rerank_disabled_per_query(self, repository, embedder, retry, store):
        await store("mem_a", "User drinks green tea")
        reranker = FixedReranker([RerankResult(index=0, score=0.1)])
        service = SearchService(repository, embedder, reranker=reranker, retry=retry)

        hits = await service.search("green tea", "user-1", SearchOptions(rerank=False))

        assert reranker.queries == []
        assert hits[0].rerank_score is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestNeighborhood:
    """Test bounded subgraph retrieval."""

    @pytest.fixture
    async def graph(self, repository, store):
        # a -> b -> c -> a (cycle), c -> d
        for memory_id in ("mem_a", "mem_b", "mem_c", "mem_d"):
            await store(memory_id, f"Statement {memory_id}")
        for source, target, edge_type in (
            ("mem_a", "mem_b", EdgeType.SUPPORTS),
            ("mem_b", "mem_c", EdgeType.ELABORATES),
            ("mem_c", "mem_a", EdgeType.TEMPORAL_FOLLOWS),
            ("mem_c", "mem_d", EdgeType.SUPPORTS),
        ):
            await repository.add_edge(GraphEdge(source_id=source, target_id=target, type=edge_type))

    async def test_depth_zero(self, search, graph):
        neighborhood = await search.neighborhood(["mem_a"], depth=0)

        assert [m.id for m in neighborhood.memories] == ["mem_a"]
        assert neighborhood.edges == []
        assert [d.id for d in neighborhood.documents] == [DOC_ID]

    async def test_depth_one(self, search, graph):
        neighborhood = await search.neighborhood(["mem_a"], depth=1)

        assert [m.id for m in neighborhood.memories] == ["mem_a", "mem_b", "mem_c"]
        assert {(e.source_id, e.target_id) for e in neighborhood.edges} == {
            ("mem_a", "mem_b"),
            ("mem_c", "mem_a"),
        }

    async def test_cycle_terminates(self, search, graph):
        neighborhood = await search.neighborhood(["mem_a"], depth=10)

        assert [m.id for m in neighborhood.memories] == ["mem_a", "mem_b", "mem_c", "mem_d"]
        assert len(neighborhood.edges) == 4

    async def test_missing_seed(self, search, graph):
        with pytest.raises(NotFoundError):
            await search.neighborhood(["mem_a", "mem_missing"])

    async def test_invalid_arguments(self, search):
        with pytest.raises(ValidationError):
            await search.neighborhood([])
        with pytest.raises(ValidationError):
            await search.neighborhood(["mem_a"], depth=-1)
