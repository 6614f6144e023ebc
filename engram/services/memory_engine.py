"""
Memory Engine - main orchestrator for ingestion, memory and retrieval.

Integrates:
- Processing pipeline (documents -> chunks -> memories)
- Consistency resolution and inference
- Memory, document and hybrid search with graph neighborhoods
- Forgetting (on demand or as a background worker)
- Container profiles
"""

import asyncio
from datetime import datetime

from engram.config import Config
from engram.core.chunking import ChunkerRegistry
from engram.core.embeddings.base import Embedder
from engram.core.embeddings.dimension import DimensionCheckedEmbedder
from engram.core.extractors import ExtractorRegistry
from engram.core.factory import (
    EmbedderFactory,
    LLMFactory,
    MediaFactory,
    RepositoryFactory,
    RerankerFactory,
)
from engram.core.llm.base import LLMProvider
from engram.core.media.base import OCRProvider, Transcriber
from engram.core.reranker.base import Reranker
from engram.core.storage.base import Repository
from engram.core.tokenizer import Tokenizer
from engram.models.document import Chunk, DocumentType
from engram.models.ingestion import (
    ConversationTurn,
    IngestionResult,
    IngestionStatus,
    IngestRequest,
)
from engram.models.lifecycle import ForgettingReport
from engram.models.memory import Memory
from engram.models.profile import CachedProfile
from engram.models.search import DocumentHit, HybridHit, Neighborhood, SearchHit, SearchOptions
from engram.services.consistency import ConsistencyResolver
from engram.services.forgetting import ForgettingManager
from engram.services.inference import InferenceEngine
from engram.services.memory_extractor import MemoryExtractor, format_conversation
from engram.services.pipeline import ProcessingPipeline
from engram.services.profile import ProfileService
from engram.services.query_rewriter import QueryRewriter
from engram.services.search import SearchService
from engram.services.temporal import TemporalRanker
from engram.utils.exceptions import EngramError, InternalError, NotFoundError, ValidationError
from engram.utils.locks import KeyedLocks
from engram.utils.logger import get_logger, setup_logging
from engram.utils.retry import RetryPolicy

logger = get_logger(__name__)


class MemoryEngine:
    """
    Main memory engine orchestrating all components.

    Usage:
        engine = MemoryEngine.from_config(Config.from_env())
        await engine.initialize()
        result = await engine.ingest(IngestRequest(data=b"...", container_tag="user_42"))
        hits = await engine.search("where does the user live?", "user_42")
        await engine.close()
    """

    def __init__(
        self,
        repository: Repository,
        llm: LLMProvider,
        embedder: Embedder,
        config: Config | None = None,
        reranker: Reranker | None = None,
        ocr: OCRProvider | None = None,
        transcriber: Transcriber | None = None,
    ):
        """
        Initialize memory engine.

        Args:
            repository: Persistence layer (documents, chunks, memories, graph)
            llm: LLM provider for extraction, judgement, inference and profiles
            embedder: Embedder for chunk, memory and query vectors
            config: Engine configuration (defaults when omitted)
            reranker: Optional search reranker
            ocr: Optional OCR provider for images
            transcriber: Optional transcriber for audio and video
        """
        self.config = config or Config()
        self.repository = repository
        self.llm = llm
        self.embedder = embedder
        self.reranker = reranker
        self.ocr = ocr
        self.transcriber = transcriber

        self.retry = RetryPolicy(self.config.retry)
        self.locks = KeyedLocks()

        self.memory_extractor = MemoryExtractor(
            llm, embedder, repository, config=self.config.extraction, retry=self.retry
        )
        self.inference = InferenceEngine(
            repository, llm, embedder, config=self.config.inference, retry=self.retry
        )
        self.resolver = ConsistencyResolver(
            repository,
            llm,
            config=self.config.consistency,
            inference=self.inference,
            locks=self.locks,
            retry=self.retry,
        )
        self.pipeline = ProcessingPipeline(
            repository,
            embedder,
            extractors=ExtractorRegistry(ocr=ocr, transcriber=transcriber),
            chunkers=ChunkerRegistry(self.config.processing, Tokenizer(self.config.tokenizer)),
            config=self.config.processing,
            memory_extractor=self.memory_extractor,
            resolver=self.resolver,
            retry=self.retry,
        )
        self.search_service = SearchService(
            repository,
            embedder,
            config=self.config.search,
            reranker=reranker,
            temporal=TemporalRanker(self.config.temporal),
            retry=self.retry,
            rewriter=QueryRewriter(
                llm,
                cache_size=self.config.search.rewrite_cache_size,
                timeout=self.config.search.rewrite_timeout,
            ),
        )
        self.forgetting = ForgettingManager(repository, self.config.forgetting)
        self.profiles = ProfileService(repository, llm)

    @classmethod
    def from_config(cls, config: Config) -> "MemoryEngine":
        """
        Build an engine and all of its providers from configuration.

        Args:
            config: Engine configuration

        Returns:
            MemoryEngine (not yet initialized)

        Raises:
            ConfigurationError: If a provider or backend is unknown
        """
        setup_logging(**config.logging.model_dump())

        repository = RepositoryFactory.create(config.storage, config.qdrant)
        llm = LLMFactory.create(config.llm)
        embedder = DimensionCheckedEmbedder(
            EmbedderFactory.create(config.embedder), repository, config.embedder.dimension
        )
        reranker = RerankerFactory.create(config.reranker, llm)

        return cls(
            repository,
            llm,
            embedder,
            config=config,
            reranker=reranker,
            ocr=MediaFactory.create_ocr(config.ocr),
            transcriber=MediaFactory.create_transcriber(config.transcription),
        )

    async def initialize(self, start_forgetting_worker: bool = False):
        """
        Initialize storage and optionally start the forgetting worker.

        Args:
            start_forgetting_worker: Run forgetting cycles every
                ``forgetting.interval_hours``
        """
        logger.info("Initializing Memory Engine...")
        await self.repository.initialize()

        if start_forgetting_worker:
            self.forgetting.start_background_worker()
            logger.info("Background forgetting worker started")

        logger.info("Memory Engine initialized")

    # ═══════════════════════════════════════════════════════════
    # INGESTION
    # ═══════════════════════════════════════════════════════════

    async def ingest(self, request: IngestRequest, replace: bool = False) -> IngestionResult:
        """
        Ingest a document and extract memories from it.

        Args:
            request: Raw bytes plus container and origin metadata
            replace: Replace an existing document with the same id or content

        Returns:
            IngestionResult

        Raises:
            ValidationError: Empty or unsupported input
            ConflictError: If the document exists and replace is False
            PipelineError: If storage fails mid-pass
            ProviderError: If a provider rejects requests
        """
        try:
            return await self.pipeline.ingest(request, replace=replace)
        except EngramError:
            raise
        except Exception as e:
            logger.error(
                "Failed to ingest document: {}",
                e,
                extra={"container_tag": request.container_tag, "error": str(e)},
            )
            raise InternalError(f"Failed to ingest document: {e}", {"container_tag": request.container_tag}) from e

    async def retry_failed_chunks(self, document_id: str) -> IngestionResult:
        """Re-embed the failed chunks of a persisted document."""
        return await self.pipeline.retry_failed_chunks(document_id)

    async def extract_memories(self, chunks: list[Chunk], container_tag: str) -> list[Memory]:
        """
        Extract, commit and resolve memories from stored chunks.

        Args:
            chunks: Chunks to read (typically ``repository.get_chunks(document_id)``)
            container_tag: Container of the memories

        Returns:
            Newly committed memories
        """
        if not container_tag:
            raise ValidationError("container_tag is required")
        return await self.pipeline.extract_memories(chunks, container_tag)

    async def add_conversation(
        self,
        turns: list[ConversationTurn],
        container_tag: str,
        title: str | None = None,
    ) -> IngestionResult:
        """
        Record a conversation and extract memories about the user from it.

        The transcript is stored as a text document so every memory keeps
        document provenance.

        Args:
            turns: Conversation messages in order
            container_tag: Container of the memories
            title: Optional document title

        Returns:
            IngestionResult of the transcript document, with the new memory ids

        Raises:
            ValidationError: If the conversation has no content
        """
        if not container_tag:
            raise ValidationError("container_tag is required")
        transcript = format_conversation(turns)
        if not transcript:
            raise ValidationError("Conversation has no content")

        result = await self.ingest(
            IngestRequest(
                data=transcript.encode("utf-8"),
                container_tag=container_tag,
                doc_type=DocumentType.TEXT,
                title=title or "Conversation",
                metadata={"source": "conversation", "turns": len(turns)},
                extract_memories=False,
            )
        )
        if result.status == IngestionStatus.DUPLICATE:
            return result

        candidates = await self.memory_extractor.extract_from_conversation(
            turns, container_tag, document_id=result.document_id
        )
        memories = await self.memory_extractor.commit(candidates)
        if memories:
            await self.resolver.resolve(memories, container_tag)

        result.memory_ids = [m.id for m in memories]
        logger.info(
            f"Conversation stored with {len(memories)} memories",
            extra={"document_id": result.document_id, "container_tag": container_tag},
        )
        return result

    async def delete_document(self, document_id: str) -> None:
        """
        Delete a document and its chunks. Memories extracted from it remain.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        if not await self.repository.delete_document(document_id):
            raise NotFoundError(f"Document not found: {document_id}", {"document_id": document_id})
        logger.info("Deleted document {}", document_id, extra={"document_id": document_id})

    # ═══════════════════════════════════════════════════════════
    # RETRIEVAL
    # ═══════════════════════════════════════════════════════════

    async def search(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[SearchHit]:
        """
        Hybrid search over the active memories of a container.

        Args:
            query: Natural language query
            container_tag: Container to search
            options: Per-query options

        Returns:
            Ranked hits
        """
        return await self._retrieve("Search", self.search_service.search, query, container_tag, options)

    async def search_documents(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[DocumentHit]:
        """Search the embedded chunks of a container's documents, grouped by document."""
        return await self._retrieve(
            "Document search", self.search_service.search_documents, query, container_tag, options
        )

    async def search_hybrid(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[HybridHit]:
        """
        Search memories and document chunks together.

        Chunks whose document already backs a returned memory are left out.
        """
        return await self._retrieve(
            "Hybrid search", self.search_service.search_hybrid, query, container_tag, options
        )

    async def _retrieve(self, label: str, operation, query: str, container_tag: str, options):
        try:
            return await operation(query, container_tag, options)
        except EngramError:
            raise
        except Exception as e:
            logger.error(
                "{} failed: {}",
                label,
                e,
                extra={"container_tag": container_tag, "query": query[:50], "error": str(e)},
            )
            raise InternalError(f"{label} failed: {e}", {"container_tag": container_tag}) from e

    async def neighborhood(self, seed_ids: list[str], depth: int = 1) -> Neighborhood:
        """Subgraph within ``depth`` hops of the seeds, with source documents."""
        return await self.search_service.neighborhood(seed_ids, depth)

    async def get_memory(self, memory_id: str) -> Memory:
        """
        Get a memory by id.

        Raises:
            NotFoundError: If the memory doesn't exist
        """
        memory = await self.repository.get_memory(memory_id)
        if memory is None:
            raise NotFoundError(f"Memory not found: {memory_id}", {"memory_id": memory_id})
        return memory

    async def pin_memory(self, memory_id: str, pinned: bool = True) -> Memory:
        """
        Pin or unpin a memory. Pinned memories are never forgotten.

        Returns:
            The updated memory

        Raises:
            NotFoundError: If the memory doesn't exist
        """
        if not await self.repository.set_pinned(memory_id, pinned):
            raise NotFoundError(f"Memory not found: {memory_id}", {"memory_id": memory_id})
        logger.info(
            f"Memory {memory_id} {'pinned' if pinned else 'unpinned'}",
            extra={"memory_id": memory_id},
        )
        return await self.get_memory(memory_id)

    async def get_profile(self, container_tag: str, refresh: bool = False) -> CachedProfile:
        """Cached profile of a container, regenerated when memories changed."""
        return await self.profiles.get_profile(container_tag, refresh=refresh)

    # ═══════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════

    async def run_forgetting_cycle(self, cutoff: datetime | None = None) -> ForgettingReport:
        """
        Run one forgetting cycle.

        Args:
            cutoff: Reference instant for TTL evaluation (default: now)

        Returns:
            ForgettingReport
        """
        return await self.forgetting.run_once(cutoff)

    async def close(self):
        """Stop the background worker and close all connections."""
        logger.info("Closing Memory Engine...")

        self.forgetting.stop_background_worker()
        worker = self.forgetting._worker_task
        if worker is not None:
            try:
                await worker
            except asyncio.CancelledError:
                pass  # Expected when cancelling

        await self.repository.close()
        await self.embedder.close()
        await self.llm.close()
        if self.reranker is not None:
            await self.reranker.close()
        if self.ocr is not None:
            await self.ocr.close()
        if self.transcriber is not None:
            await self.transcriber.close()

        logger.info("Memory Engine closed")
