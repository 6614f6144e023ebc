"""
Tests for MemoryEngine service.

Tests the engine wiring end to end: real SQLite storage, fake embedder
and scripted LLM.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from engram.config import Config, LoggingConfig, StorageConfig
from engram.core.embeddings.dimension import DimensionCheckedEmbedder
from engram.core.llm.ollama import OllamaLLM
from engram.core.storage.sqlite_store import SQLiteRepository
from engram.models.document import DocumentType, ProcessingState
from engram.models.extraction import ExtractedMemories, ExtractedMemory
from engram.models.ingestion import ConversationTurn, IngestionStatus, IngestRequest
from engram.models.memory import MemoryState
from engram.models.profile import ProfileSummary
from engram.services.memory_engine import MemoryEngine
from engram.utils.exceptions import InternalError, NotFoundError, ValidationError

NOTE = b"User lives in Berlin. User works at Acme as an engineer."

LATER = datetime.now() + timedelta(days=200)


def text_request(data: bytes = NOTE, **kwargs) -> IngestRequest:
    kwargs.setdefault("container_tag", "user-1")
    kwargs.setdefault("doc_type", DocumentType.TEXT)
    return IngestRequest(data=data, **kwargs)


def unimportant(prompt: str) -> ExtractedMemories:
    return ExtractedMemories(
        memories=[ExtractedMemory(content="User drinks green tea every morning", importance=0.1)]
    )


@pytest.mark.unit
class TestMemoryEngineUnit:
    """Unit tests for MemoryEngine."""

    def test_initialization(self, tmp_path, llm, embedder, config):
        """Test engine initialization."""
        repository = SQLiteRepository(str(tmp_path / "engram.db"))
        engine = MemoryEngine(repository, llm, embedder, config=config)

        assert engine.repository is repository
        assert engine.llm is llm
        assert engine.embedder is embedder
        assert engine.config is config
        assert engine.reranker is None
        assert engine.pipeline.memory_extractor is engine.memory_extractor
        assert engine.resolver.inference is engine.inference

    def test_default_config(self, tmp_path, llm, embedder):
        engine = MemoryEngine(SQLiteRepository(str(tmp_path / "engram.db")), llm, embedder)

        assert engine.config == Config()

    def test_from_config(self, tmp_path):
        """Test building every provider from configuration."""
        config = Config(
            storage=StorageConfig(sqlite_path=str(tmp_path / "engram.db")),
            logging=LoggingConfig(log_to_file=False),
        )

        engine = MemoryEngine.from_config(config)

        assert isinstance(engine.repository, SQLiteRepository)
        assert isinstance(engine.llm, OllamaLLM)
        assert isinstance(engine.embedder, DimensionCheckedEmbedder)
        assert engine.reranker is None
        assert engine.ocr is None
        assert engine.transcriber is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestMemoryEngineIngest:
    """Test ingestion through the engine."""

    async def test_ingest_extracts_memories(self, engine, repository):
        result = await engine.ingest(text_request())

        assert result.status == IngestionStatus.COMPLETED
        assert result.state == ProcessingState.PERSISTED
        assert len(result.memory_ids) == 2

        memories = await repository.get_memories(result.memory_ids)
        assert {m.content for m in memories} == {
            "User lives in Berlin",
            "User works at Acme as an engineer",
        }
        sources = await repository.get_sources(result.memory_ids)
        assert {s.document_id for s in sources} == {result.document_id}

    async def test_duplicate_ingest(self, engine):
        first = await engine.ingest(text_request())
        second = await engine.ingest(text_request())

        assert second.status == IngestionStatus.DUPLICATE
        assert second.document_id == first.document_id
        assert second.memory_ids == []

    async def test_unexpected_error_wrapped(self, engine):
        with patch.object(engine.pipeline, "ingest", side_effect=RuntimeError("disk on fire")):
            with pytest.raises(InternalError) as exc_info:
                await engine.ingest(text_request())

        assert exc_info.value.context == {"container_tag": "user-1"}
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_engram_errors_pass_through(self, engine):
        with pytest.raises(ValidationError):
            await engine.ingest(text_request(data=b""))

    async def test_extract_memories_from_stored_chunks(self, engine, repository):
        result = await engine.ingest(text_request(extract_memories=False))
        assert result.memory_ids == []

        chunks = await repository.get_chunks(result.document_id)
        memories = await engine.extract_memories(chunks, "user-1")

        assert len(memories) == 2
        assert all(m.container_tag == "user-1" for m in memories)

    async def test_extract_memories_requires_container(self, engine):
        with pytest.raises(ValidationError):
            await engine.extract_memories([], "")


@pytest.mark.integration
@pytest.mark.asyncio
class TestMemoryEngineConversation:
    """Test conversation ingestion."""

    TURNS = [
        ConversationTurn(role="user", content="I live in Berlin with my partner."),
        ConversationTurn(role="assistant", content="Nice city!"),
    ]

    async def test_add_conversation(self, engine, repository, llm):
        result = await engine.add_conversation(self.TURNS, "user-1", title="Chat")

        assert result.status == IngestionStatus.COMPLETED
        document = await repository.get_document(result.document_id)
        assert document.type == DocumentType.TEXT
        assert document.title == "Chat"
        assert document.metadata == {"source": "conversation", "turns": 2}

        memories = await repository.get_memories(result.memory_ids)
        # "Nice city" is too short to keep
        assert [m.content for m in memories] == ["I live in Berlin with my partner"]
        assert "Conversation:\n" in llm.calls_for(ExtractedMemories)[0]

    async def test_duplicate_conversation(self, engine, llm):
        await engine.add_conversation(self.TURNS, "user-1")
        calls = len(llm.calls_for(ExtractedMemories))

        result = await engine.add_conversation(self.TURNS, "user-1")

        assert result.status == IngestionStatus.DUPLICATE
        assert result.memory_ids == []
        assert len(llm.calls_for(ExtractedMemories)) == calls

    async def test_empty_conversation(self, engine):
        with pytest.raises(ValidationError):
            await engine.add_conversation([ConversationTurn(role="user", content="  ")], "user-1")

    async def test_missing_container(self, engine):
        with pytest.raises(ValidationError):
            await engine.add_conversation(self.TURNS, "")


@pytest.mark.integration
@pytest.mark.asyncio
class TestMemoryEngineMemories:
    """Test document deletion, lookup and pinning."""

    async def test_delete_document_keeps_memories(self, engine, repository):
        result = await engine.ingest(text_request())

        await engine.delete_document(result.document_id)

        assert await repository.get_document(result.document_id) is None
        assert await repository.get_chunks(result.document_id) == []
        memories = await repository.get_memories(result.memory_ids)
        assert len(memories) == 2

    async def test_delete_missing_document(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.delete_document("doc_missing")

        assert exc_info.value.context == {"document_id": "doc_missing"}

    async def test_get_memory(self, engine):
        result = await engine.ingest(text_request())

        memory = await engine.get_memory(result.memory_ids[0])

        assert memory.id == result.memory_ids[0]

    async def test_get_missing_memory(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get_memory("mem_missing")

    async def test_pin_and_unpin(self, engine):
        result = await engine.ingest(text_request())
        memory_id = result.memory_ids[0]

        assert (await engine.pin_memory(memory_id)).pinned is True
        assert (await engine.pin_memory(memory_id, pinned=False)).pinned is False

    async def test_pin_missing_memory(self, engine):
        with pytest.raises(NotFoundError):
            await engine.pin_memory("mem_missing")


@pytest.mark.integration
@pytest.mark.asyncio
class TestMemoryEngineRetrieval:
    """Test search, neighborhood and profiles through the engine."""

    async def test_search(self, engine):
        await engine.ingest(text_request())

        hits = await engine.search("Where does the user live in Berlin", "user-1")

        assert hits
        assert hits[0].memory.content == "User lives in Berlin"

    async def test_search_other_container_is_empty(self, engine):
        await engine.ingest(text_request())

        assert await engine.search("User lives in Berlin", "user-2") == []

    async def test_search_unexpected_error_wrapped(self, engine):
        with patch.object(engine.search_service, "search", side_effect=KeyError("index")):
            with pytest.raises(InternalError):
                await engine.search("anything", "user-1")

    async def test_search_documents(self, engine):
        result = await engine.ingest(text_request())

        documents = await engine.search_documents("User works at Acme", "user-1")

        assert [d.document.id for d in documents] == [result.document_id]
        assert documents[0].chunks

    async def test_hybrid_prefers_memories_over_their_chunks(self, engine):
        result = await engine.ingest(text_request())

        hits = await engine.search_hybrid("User works at Acme", "user-1")

        assert {h.kind for h in hits} == {"memory"}
        assert set(result.memory_ids) <= {h.id for h in hits}

    async def test_document_search_unexpected_error_wrapped(self, engine):
        with patch.object(engine.search_service, "search_documents", side_effect=KeyError("index")):
            with pytest.raises(InternalError, match="Document search failed"):
                await engine.search_documents("anything", "user-1")

    async def test_hybrid_validation_passes_through(self, engine):
        with pytest.raises(ValidationError):
            await engine.search_hybrid("   ", "user-1")

    async def test_neighborhood_includes_documents(self, engine):
        result = await engine.ingest(text_request())

        neighborhood = await engine.neighborhood(result.memory_ids[:1], depth=1)

        assert [m.id for m in neighborhood.memories] == result.memory_ids[:1]
        assert [d.id for d in neighborhood.documents] == [result.document_id]

    async def test_get_profile(self, engine, llm):
        llm.on(ProfileSummary, ProfileSummary(narrative="Engineer in Berlin.", facts={"work": ["Acme"]}))
        await engine.ingest(text_request())

        profile = await engine.get_profile("user-1")

        assert profile.container_tag == "user-1"
        assert profile.narrative == "Engineer in Berlin."
        assert profile.memory_count == 2


@pytest.mark.integration
@pytest.mark.asyncio
class TestMemoryEngineLifecycle:
    """Test forgetting and shutdown."""

    async def test_forgetting_cycle(self, engine, llm, repository):
        llm.on(ExtractedMemories, unimportant)
        result = await engine.ingest(text_request(data=b"User drinks green tea every morning."))
        memory_id = result.memory_ids[0]

        # Nothing has expired yet
        report = await engine.run_forgetting_cycle()
        assert report.forgotten == 0

        report = await engine.run_forgetting_cycle(cutoff=LATER)

        assert report.forgotten_ids == [memory_id]
        assert await repository.get_memory(memory_id) is None

    async def test_pinned_memory_survives(self, engine, llm):
        llm.on(ExtractedMemories, unimportant)
        result = await engine.ingest(text_request(data=b"User drinks green tea every morning."))
        memory_id = result.memory_ids[0]
        await engine.pin_memory(memory_id)

        report = await engine.run_forgetting_cycle(cutoff=LATER)

        assert report.forgotten == 0
        memory = await engine.get_memory(memory_id)
        assert memory.state == MemoryState.ACTIVE

    async def test_close_closes_providers(self, tmp_path, llm, embedder):
        engine = MemoryEngine(SQLiteRepository(str(tmp_path / "close.db")), llm, embedder)
        await engine.initialize(start_forgetting_worker=True)
        assert engine.forgetting.worker_running

        await engine.close()

        assert llm.closed is True
        assert embedder.closed is True
        assert engine.forgetting.worker_running is False
