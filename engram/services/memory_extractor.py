"""
Memory Extractor - distills atomic memories from chunks and conversations.

Flow:
1. LLM extraction with structured output (per chunk, or per conversation)
2. Low-information filter (too short, greetings, filler)
3. Exact dedup within the batch (content hash)
4. Dedup against stored memories (hash, then vector similarity); a duplicate
   only gains a new MemorySource
5. ``commit`` persists survivors with their sources atomically
"""

from datetime import datetime

from engram.config import ExtractionConfig
from engram.core.embeddings.base import Embedder
from engram.core.llm.base import LLMProvider
from engram.core.storage.base import Repository
from engram.models.document import Chunk
from engram.models.extraction import CandidateMemory, ExtractedMemories, ExtractedMemory
from engram.models.ingestion import ConversationTurn
from engram.models.memory import Memory, MemorySource, MemoryState, compute_content_hash
from engram.utils.exceptions import ProviderTransientError, ValidationError
from engram.utils.id_generator import generate_memory_id
from engram.utils.logger import get_logger
from engram.utils.retry import RetryPolicy
from engram.utils.similarity import batch_cosine_similarity

logger = get_logger(__name__)

FILLER_PHRASES = frozenset(
    {
        "hi", "hello", "hey", "thanks", "thank you", "thank you so much", "ok",
        "okay", "sure", "yes", "no", "bye", "goodbye", "good morning",
        "good night", "good evening", "how are you", "you're welcome",
        "no problem", "sounds good", "got it", "great", "cool", "nice",
        "see you", "see you later", "nice to meet you",
    }
)


def is_low_information(content: str, min_words: int) -> bool:
    """Empty, shorter than ``min_words`` words, or pure greeting/filler."""
    normalized = " ".join(content.lower().strip(" .!?,").split())
    if not normalized:
        return True
    if normalized in FILLER_PHRASES:
        return True
    return len(normalized.split()) < min_words


def format_conversation(turns: list[ConversationTurn]) -> str:
    return "\n".join(f"[{turn.role}]: {turn.content.strip()}" for turn in turns if turn.content.strip())


class MemoryExtractor:
    """
    Turns source text into candidate memories and commits them.

    Usage:
        extractor = MemoryExtractor(llm, embedder, repository)
        candidates = await extractor.extract(chunks, "user_42")
        memories = await extractor.commit(candidates)
    """

    def __init__(
        self,
        llm: LLMProvider,
        embedder: Embedder,
        repository: Repository,
        config: ExtractionConfig | None = None,
        retry: RetryPolicy | None = None,
    ):
        """
        Initialize memory extractor.

        Args:
            llm: LLM provider for extraction
            embedder: Embedder for dedup vectors
            repository: Persistence layer
            config: Extraction thresholds
            retry: Retry policy for provider calls
        """
        self.llm = llm
        self.embedder = embedder
        self.repository = repository
        self.config = config or ExtractionConfig()
        self.retry = retry or RetryPolicy()

    # ═══════════════════════════════════════════════════════════
    # EXTRACTION
    # ═══════════════════════════════════════════════════════════

    async def extract(self, chunks: list[Chunk], container_tag: str) -> list[CandidateMemory]:
        """
        Extract candidate memories from document chunks.

        Args:
            chunks: Chunks of one or more documents
            container_tag: Container the memories belong to

        Returns:
            Novel candidates (with embeddings), ready for ``commit``

        Raises:
            ValidationError: If container_tag is empty
            ProviderPermanentError: If the LLM or embedder rejects requests
        """
        if not container_tag:
            raise ValidationError("container_tag is required")

        candidates: list[CandidateMemory] = []
        for chunk in chunks:
            items = await self._extract_items(self._document_prompt(chunk.content), chunk_id=chunk.id)
            candidates.extend(
                self._to_candidate(item, container_tag, chunk.document_id, [chunk.id]) for item in items
            )

        return await self._filter(candidates, container_tag)

    async def extract_from_conversation(
        self,
        turns: list[ConversationTurn],
        container_tag: str,
        document_id: str | None = None,
    ) -> list[CandidateMemory]:
        """
        Extract candidate memories from a conversation.

        Args:
            turns: Conversation messages in order
            container_tag: Container the memories belong to
            document_id: Document recording the conversation (provenance)

        Returns:
            Novel candidates, ready for ``commit``
        """
        if not container_tag:
            raise ValidationError("container_tag is required")
        conversation = format_conversation(turns)
        if not conversation:
            raise ValidationError("Conversation has no content")

        items = await self._extract_items(self._conversation_prompt(conversation))
        candidates = [self._to_candidate(item, container_tag, document_id, []) for item in items]
        return await self._filter(candidates, container_tag)

    def _document_prompt(self, content: str) -> str:
        current_dt = datetime.now()
        return f"""[CURRENT DATE/TIME: {current_dt.strftime('%Y-%m-%d %H:%M:%S')}]

Extract key facts, preferences and events from the following content as
atomic, self-contained memories.

Memory types:
- fact: Objective information (occupation, location, skills, relationships)
- preference: Choices, likes, dislikes or stated preferences
- episode: Events, experiences or interactions that happened

Rules:
- One statement per memory; resolve pronouns so each memory stands alone
- Skip greetings, filler and anything not worth remembering
- confidence: 0.0-1.0, how certain the content supports the memory
- importance: 0.0-1.0, how useful the memory is long-term
- event_time: ISO date when the content says when it happened or became true, else null

Content:
{content}"""

    def _conversation_prompt(self, conversation: str) -> str:
        current_dt = datetime.now()
        return f"""[CURRENT DATE/TIME: {current_dt.strftime('%Y-%m-%d %H:%M:%S')}]

Extract key facts, preferences and events about the user from the following
conversation as atomic, self-contained memories. Prefer what the user states
about themselves; ignore assistant suggestions the user did not confirm.

Memory types:
- fact: Objective information (occupation, location, skills, relationships)
- preference: Choices, likes, dislikes or stated preferences
- episode: Events, experiences or interactions that happened

confidence and importance are 0.0-1.0. event_time is an ISO date when the
conversation says when something happened, else null.

Conversation:
{conversation}"""

    async def _extract_items(self, prompt: str, chunk_id: str | None = None) -> list[ExtractedMemory]:
        """Run one extraction call; unparseable or transiently failing output yields nothing."""
        try:
            result = await self.retry.run(
                lambda: self.llm.complete(prompt, response_format=ExtractedMemories, temperature=0.0),
                "extract_memories",
            )
        except ValidationError as e:
            logger.warning(
                "Discarding unparseable extraction output: {}",
                e,
                extra={"chunk_id": chunk_id, "error": str(e)},
            )
            return []
        except ProviderTransientError as e:
            logger.warning(
                "Extraction skipped after transient LLM failure: {}",
                e,
                extra={"chunk_id": chunk_id, "error": str(e)},
            )
            return []

        return result.memories

    def _to_candidate(
        self,
        item: ExtractedMemory,
        container_tag: str,
        document_id: str | None,
        chunk_ids: list[str],
    ) -> CandidateMemory:
        content = item.content.strip()
        return CandidateMemory(
            content=content,
            container_tag=container_tag,
            memory_type=item.memory_type,
            confidence=item.confidence,
            importance=item.importance if item.importance is not None else self.config.default_importance,
            event_time=item.event_time,
            document_id=document_id,
            chunk_ids=list(chunk_ids),
            content_hash=compute_content_hash(content),
        )

    # ═══════════════════════════════════════════════════════════
    # FILTERING & DEDUP
    # ═══════════════════════════════════════════════════════════

    async def _filter(self, candidates: list[CandidateMemory], container_tag: str) -> list[CandidateMemory]:
        informative = [
            c
            for c in candidates
            if not is_low_information(c.content, self.config.min_words)
            and c.confidence >= self.config.min_confidence
        ]

        # Exact duplicates within the batch merge their provenance
        unique: dict[str, CandidateMemory] = {}
        for candidate in informative:
            existing = unique.get(candidate.content_hash)
            if existing is None:
                unique[candidate.content_hash] = candidate
                continue
            for chunk_id in candidate.chunk_ids:
                if chunk_id not in existing.chunk_ids:
                    existing.chunk_ids.append(chunk_id)
            existing.confidence = max(existing.confidence, candidate.confidence)

        novel = await self._dedup_against_store(list(unique.values()), container_tag)

        logger.info(
            f"Extracted {len(novel)} new memories from {len(candidates)} candidates",
            extra={
                "container_tag": container_tag,
                "filtered": len(candidates) - len(informative),
                "batch_duplicates": len(informative) - len(unique),
                "near_duplicates": len(unique) - len(novel),
            },
        )
        return novel

    async def _dedup_against_store(
        self,
        candidates: list[CandidateMemory],
        container_tag: str,
    ) -> list[CandidateMemory]:
        if not candidates:
            return []

        vectors = await self.retry.run(
            lambda: self.embedder.batch_embed([c.content for c in candidates]),
            "embed_candidates",
        )

        novel: list[CandidateMemory] = []
        for candidate, vector in zip(candidates, vectors, strict=True):
            candidate.embedding = vector

            duplicate = await self.repository.find_memory_by_hash(container_tag, candidate.content_hash)
            if duplicate is None:
                matches = await self.repository.vector_search(
                    container_tag, vector, k=1, states=[MemoryState.ACTIVE]
                )
                if matches and matches[0][1] >= self.config.dedup_threshold:
                    duplicate = matches[0][0]

            if duplicate is not None:
                await self._link_sources(duplicate.id, candidate)
                logger.debug(
                    f"Candidate duplicates {duplicate.id}",
                    extra={"memory_id": duplicate.id, "content": candidate.content[:50]},
                )
                continue

            # Paraphrases from different chunks of the same batch
            twin = self._similar_in_batch(candidate, novel)
            if twin is not None:
                self._merge_into(twin, candidate)
                logger.debug(
                    "Candidate paraphrases a batch mate: {}",
                    candidate.content[:50],
                    extra={"kept": twin.content[:50]},
                )
                continue

            novel.append(candidate)

        return novel

    def _similar_in_batch(
        self, candidate: CandidateMemory, accepted: list[CandidateMemory]
    ) -> CandidateMemory | None:
        if not accepted:
            return None
        scores = batch_cosine_similarity(candidate.embedding, [c.embedding for c in accepted])
        best = max(range(len(accepted)), key=lambda i: scores[i])
        return accepted[best] if scores[best] >= self.config.dedup_threshold else None

    @staticmethod
    def _merge_into(kept: CandidateMemory, duplicate: CandidateMemory) -> None:
        for chunk_id in duplicate.chunk_ids:
            if chunk_id not in kept.chunk_ids:
                kept.chunk_ids.append(chunk_id)
        kept.confidence = max(kept.confidence, duplicate.confidence)

    async def _link_sources(self, memory_id: str, candidate: CandidateMemory) -> None:
        for source in self._sources_for(memory_id, candidate):
            await self.repository.add_source(source)

    def _sources_for(self, memory_id: str, candidate: CandidateMemory) -> list[MemorySource]:
        if candidate.document_id is None:
            return []
        if not candidate.chunk_ids:
            return [MemorySource(memory_id=memory_id, document_id=candidate.document_id)]
        return [
            MemorySource(memory_id=memory_id, document_id=candidate.document_id, chunk_id=chunk_id)
            for chunk_id in candidate.chunk_ids
        ]

    # ═══════════════════════════════════════════════════════════
    # COMMIT
    # ═══════════════════════════════════════════════════════════

    async def commit(self, candidates: list[CandidateMemory]) -> list[Memory]:
        """
        Persist candidates as memories with their sources.

        A candidate whose content appeared in the store since extraction only
        gains a source.

        Args:
            candidates: Output of ``extract``/``extract_from_conversation``

        Returns:
            Newly created memories

        Raises:
            ValidationError: If a candidate has no document provenance
        """
        created = []
        for candidate in candidates:
            if candidate.document_id is None:
                raise ValidationError(
                    "Candidate memory has no source document",
                    {"content": candidate.content[:50]},
                )

            existing = await self.repository.find_memory_by_hash(candidate.container_tag, candidate.content_hash)
            if existing is not None:
                await self._link_sources(existing.id, candidate)
                continue

            if not candidate.embedding:
                candidate.embedding = await self.retry.run(
                    lambda c=candidate: self.embedder.embed(c.content), "embed_memory"
                )

            memory = Memory(
                id=generate_memory_id(),
                container_tag=candidate.container_tag,
                content=candidate.content,
                content_hash=candidate.content_hash,
                embedding=candidate.embedding,
                memory_type=candidate.memory_type,
                importance=candidate.importance,
                confidence=candidate.confidence,
                event_time=candidate.event_time,
            )
            await self.repository.add_memory(memory, self._sources_for(memory.id, candidate))
            created.append(memory)

        if created:
            logger.info(
                f"Committed {len(created)} memories",
                extra={"container_tag": created[0].container_tag, "memory_ids": [m.id for m in created]},
            )
        return created
