"""
Tests for memory extraction, filtering and dedup.
"""

from datetime import datetime

import pytest

from engram.models.document import Chunk, Document, DocumentType
from engram.models.extraction import CandidateMemory, ExtractedMemories, ExtractedMemory
from engram.models.ingestion import ConversationTurn
from engram.models.memory import MemoryType, compute_content_hash
from engram.services.memory_extractor import MemoryExtractor, format_conversation, is_low_information
from engram.utils.exceptions import ProviderPermanentError, ProviderTransientError, ValidationError

DOC_ID = "doc_000000000001"


def chunk(content: str, position: int = 0) -> Chunk:
    return Chunk(id=f"{DOC_ID}_chunk_{position}", document_id=DOC_ID, content=content, position=position)


def scripted(*items: ExtractedMemory) -> ExtractedMemories:
    return ExtractedMemories(memories=list(items))


@pytest.fixture
async def document(repository) -> Document:
    document = Document(
        id=DOC_ID, container_tag="user-1", type=DocumentType.TEXT, content_hash="sha256:doc"
    )
    await repository.add_document(document)
    return document


@pytest.fixture
def extractor(llm, embedder, repository, retry) -> MemoryExtractor:
    return MemoryExtractor(llm, embedder, repository, retry=retry)


@pytest.mark.unit
class TestLowInformation:
    """Test the low-information filter."""

    @pytest.mark.parametrize("content", ["", "  ", "Hi!", "thank you so much.", "Good morning", "ok sure"])
    def test_filler(self, content):
        assert is_low_information(content, min_words=3)

    def test_informative(self):
        assert not is_low_information("User likes green tea", min_words=3)

    def test_format_conversation_skips_blank_turns(self):
        turns = [
            ConversationTurn(role="user", content=" I moved to Munich. "),
            ConversationTurn(role="assistant", content="  "),
        ]

        assert format_conversation(turns) == "[user]: I moved to Munich."


@pytest.mark.integration
@pytest.mark.asyncio
class TestExtract:
    """Test extraction from chunks."""

    async def test_candidates_carry_provenance(self, extractor, document):
        candidates = await extractor.extract([chunk("User likes green tea. User owns a bike.")], "user-1")

        assert [c.content for c in candidates] == ["User likes green tea", "User owns a bike"]
        for candidate in candidates:
            assert candidate.document_id == DOC_ID
            assert candidate.chunk_ids == [f"{DOC_ID}_chunk_0"]
            assert candidate.container_tag == "user-1"
            assert candidate.importance == 0.5
            assert candidate.embedding
            assert candidate.content_hash == compute_content_hash(candidate.content)

    async def test_prompt_contains_chunk(self, extractor, llm, document):
        await extractor.extract([chunk("User likes green tea.")], "user-1")

        prompt = llm.calls_for(ExtractedMemories)[0]
        assert prompt.startswith("[CURRENT DATE/TIME:")
        assert prompt.endswith("Content:\nUser likes green tea.")

    async def test_filters_filler_and_low_confidence(self, extractor, llm, document):
        llm.on(
            ExtractedMemories,
            scripted(
                ExtractedMemory(content="Hello"),
                ExtractedMemory(content="ok thanks"),
                ExtractedMemory(content="User might like jazz", confidence=0.1),
                ExtractedMemory(
                    content="User prefers window seats",
                    memory_type=MemoryType.PREFERENCE,
                    importance=0.9,
                ),
            ),
        )

        candidates = await extractor.extract([chunk("irrelevant")], "user-1")

        assert len(candidates) == 1
        assert candidates[0].content == "User prefers window seats"
        assert candidates[0].memory_type == MemoryType.PREFERENCE
        assert candidates[0].importance == 0.9

    async def test_batch_duplicates_merge_chunks(self, extractor, document):
        chunks = [chunk("User likes green tea.", 0), chunk("user likes GREEN tea.", 1)]

        candidates = await extractor.extract(chunks, "user-1")

        assert len(candidates) == 1
        assert candidates[0].chunk_ids == [f"{DOC_ID}_chunk_0", f"{DOC_ID}_chunk_1"]

    async def test_batch_paraphrases_merge_chunks(self, extractor, repository, document):
        chunks = [chunk("User lives in Berlin.", 0), chunk("In Berlin user lives.", 1)]

        candidates = await extractor.extract(chunks, "user-1")

        assert [c.content for c in candidates] == ["User lives in Berlin"]
        assert candidates[0].chunk_ids == [f"{DOC_ID}_chunk_0", f"{DOC_ID}_chunk_1"]

        memories = await extractor.commit(candidates)
        sources = await repository.get_sources([memories[0].id])
        assert len(sources) == 2

    async def test_batch_distinct_statements_kept(self, extractor, document):
        chunks = [chunk("User lives in Berlin.", 0), chunk("User works in Munich.", 1)]

        candidates = await extractor.extract(chunks, "user-1")

        assert len(candidates) == 2

    async def test_event_time_year_survives_parsing(self, extractor, llm, document):
        llm.on(
            ExtractedMemories,
            lambda prompt: ExtractedMemories.model_validate_json(
                '{"memories": ['
                '{"content": "User moved to Berlin", "event_time": "2023"},'
                '{"content": "User adopted a cat", "event_time": "2023-06"}'
                "]}"
            ),
        )

        candidates = await extractor.extract([chunk("irrelevant")], "user-1")

        assert [c.event_time for c in candidates] == [datetime(2023, 1, 1), datetime(2023, 6, 1)]

    async def test_store_duplicate_by_hash_links_source(self, extractor, repository, document):
        memories = await extractor.commit(await extractor.extract([chunk("User likes green tea.")], "user-1"))

        again = await extractor.extract([chunk("User likes green tea.", 3)], "user-1")

        assert again == []
        sources = await repository.get_sources([memories[0].id])
        assert {s.chunk_id for s in sources} == {f"{DOC_ID}_chunk_0", f"{DOC_ID}_chunk_3"}

    async def test_store_duplicate_by_similarity(self, extractor, repository, document):
        memories = await extractor.commit(await extractor.extract([chunk("User lives in Berlin.")], "user-1"))

        # Same words, different order: different hash, identical bag-of-words vector
        again = await extractor.extract([chunk("In Berlin user lives.", 1)], "user-1")

        assert again == []
        sources = await repository.get_sources([memories[0].id])
        assert len(sources) == 2

    async def test_unparseable_output_yields_nothing(self, extractor, llm, document):
        llm.on(ExtractedMemories, ValidationError("bad json"))

        assert await extractor.extract([chunk("User likes tea.")], "user-1") == []

    async def test_transient_failure_yields_nothing(self, extractor, llm, document):
        llm.on(ExtractedMemories, ProviderTransientError("timeout"))

        assert await extractor.extract([chunk("User likes tea.")], "user-1") == []
        # Retried before giving up
        assert len(llm.calls_for(ExtractedMemories)) == 3

    async def test_permanent_failure_propagates(self, extractor, llm, document):
        llm.on(ExtractedMemories, ProviderPermanentError("invalid api key"))

        with pytest.raises(ProviderPermanentError):
            await extractor.extract([chunk("User likes tea.")], "user-1")

    async def test_requires_container(self, extractor):
        with pytest.raises(ValidationError):
            await extractor.extract([chunk("User likes tea.")], "")


@pytest.mark.integration
@pytest.mark.asyncio
class TestConversation:
    """Test extraction from conversations."""

    async def test_conversation_prompt(self, extractor, llm, document):
        turns = [
            ConversationTurn(role="user", content="I adopted a cat named Miso."),
            ConversationTurn(role="assistant", content="Congratulations!"),
        ]

        candidates = await extractor.extract_from_conversation(turns, "user-1", document_id=DOC_ID)

        prompt = llm.calls_for(ExtractedMemories)[0]
        assert "Conversation:\n[user]: I adopted a cat named Miso.\n[assistant]: Congratulations!" in prompt
        assert [c.content for c in candidates] == ["I adopted a cat named Miso"]
        assert candidates[0].document_id == DOC_ID
        assert candidates[0].chunk_ids == []

    async def test_empty_conversation(self, extractor):
        with pytest.raises(ValidationError):
            await extractor.extract_from_conversation([ConversationTurn(role="user", content=" ")], "user-1")


@pytest.mark.integration
@pytest.mark.asyncio
class TestCommit:
    """Test committing candidates."""

    async def test_commit_persists_memory_and_sources(self, extractor, repository, document):
        candidates = await extractor.extract([chunk("User owns a red bike.")], "user-1")

        memories = await extractor.commit(candidates)

        assert len(memories) == 1
        stored = await repository.get_memory(memories[0].id)
        assert stored.content == "User owns a red bike"
        assert stored.embedding == candidates[0].embedding
        sources = await repository.get_sources([stored.id])
        assert [(s.document_id, s.chunk_id) for s in sources] == [(DOC_ID, f"{DOC_ID}_chunk_0")]

    async def test_commit_embeds_when_missing(self, extractor, repository, embedder, document):
        candidate = CandidateMemory(
            content="User speaks Portuguese",
            container_tag="user-1",
            document_id=DOC_ID,
            content_hash=compute_content_hash("User speaks Portuguese"),
        )

        memories = await extractor.commit([candidate])

        assert memories[0].embedding == await embedder.embed("User speaks Portuguese")

    async def test_commit_requires_document(self, extractor):
        candidate = CandidateMemory(content="Orphan statement here", container_tag="user-1")

        with pytest.raises(ValidationError):
            await extractor.commit([candidate])

    async def test_commit_links_when_hash_appeared(self, extractor, repository, document):
        candidates = await extractor.extract([chunk("User owns a red bike.")], "user-1")
        duplicate = candidates[0].model_copy(update={"chunk_ids": [f"{DOC_ID}_chunk_5"]})
        first = await extractor.commit(candidates)

        assert await extractor.commit([duplicate]) == []
        sources = await repository.get_sources([first[0].id])
        assert len(sources) == 2
