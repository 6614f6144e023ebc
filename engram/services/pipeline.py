"""
Processing Pipeline - raw document bytes to embedded chunks and memories.

States: received -> extracted -> chunked -> embedding -> persisted (or failed).

Chunk embedding runs with bounded parallelism; a chunk that fails to embed
is marked failed without failing the document. Storage failures abort the
pass with PipelineError.
"""

import asyncio
import time

from engram.config import ProcessingConfig
from engram.core.chunking import ChunkContext, ChunkerRegistry
from engram.core.embeddings.base import Embedder
from engram.core.extractors import ExtractorRegistry
from engram.core.storage.base import Repository
from engram.models.document import Chunk, ChunkStatus, Document, ProcessingState
from engram.models.ingestion import IngestionResult, IngestionStatus, IngestRequest
from engram.models.memory import Memory, compute_bytes_hash
from engram.services.consistency import ConsistencyResolver
from engram.services.memory_extractor import MemoryExtractor
from engram.utils.exceptions import (
    ConflictError,
    NotFoundError,
    PipelineError,
    ProviderError,
    StoreError,
    ValidationError,
)
from engram.utils.id_generator import generate_chunk_id, generate_document_id
from engram.utils.logger import get_logger
from engram.utils.retry import RetryPolicy

logger = get_logger(__name__)


class ProcessingPipeline:
    """
    Document ingestion.

    Usage:
        pipeline = ProcessingPipeline(repository, embedder, memory_extractor=extractor, resolver=resolver)
        result = await pipeline.ingest(IngestRequest(data=b"...", container_tag="user_42"))
    """

    def __init__(
        self,
        repository: Repository,
        embedder: Embedder,
        extractors: ExtractorRegistry | None = None,
        chunkers: ChunkerRegistry | None = None,
        config: ProcessingConfig | None = None,
        memory_extractor: MemoryExtractor | None = None,
        resolver: ConsistencyResolver | None = None,
        retry: RetryPolicy | None = None,
    ):
        """
        Initialize processing pipeline.

        Args:
            repository: Persistence layer
            embedder: Embedder for chunk vectors
            extractors: Text extraction per document type
            chunkers: Chunking per document type
            config: Chunking and concurrency settings
            memory_extractor: Memory extraction after persistence (skipped when None)
            resolver: Consistency resolution of extracted memories (skipped when None)
            retry: Retry policy for provider calls
        """
        self.repository = repository
        self.embedder = embedder
        self.config = config or ProcessingConfig()
        self.extractors = extractors or ExtractorRegistry()
        self.chunkers = chunkers or ChunkerRegistry(self.config)
        self.memory_extractor = memory_extractor
        self.resolver = resolver
        self.retry = retry or RetryPolicy()

    # ═══════════════════════════════════════════════════════════
    # INGEST
    # ═══════════════════════════════════════════════════════════

    async def ingest(self, request: IngestRequest, replace: bool = False) -> IngestionResult:
        """
        Ingest one document.

        Args:
            request: Raw bytes plus container and origin metadata
            replace: Remove an existing document with the same id or content first

        Returns:
            IngestionResult; ``status`` is ``duplicate`` when identical content
            is already persisted

        Raises:
            ValidationError: Empty bytes, unknown type or unparseable content
                (raised before anything is written)
            ConflictError: If the document exists and replace is False
            PipelineError: If storage fails mid-pass
            ProviderError: If OCR/transcription or memory extraction fails
        """
        start_time = time.time()

        if not request.container_tag:
            raise ValidationError("container_tag is required")
        doc_type = self.extractors.resolve_type(request.data, request.doc_type, request.source_path)
        content_hash = compute_bytes_hash(request.data)

        existing = await self._find_existing(request, content_hash)
        if existing is not None and not replace:
            if existing.content_hash == content_hash and existing.status == ProcessingState.PERSISTED:
                logger.info(
                    f"Document {existing.id} already ingested",
                    extra={"document_id": existing.id, "container_tag": request.container_tag},
                )
                return IngestionResult(
                    document_id=existing.id,
                    status=IngestionStatus.DUPLICATE,
                    state=existing.status,
                    chunk_count=existing.chunk_count,
                    failed_chunk_ids=existing.failed_chunk_ids,
                    processing_time_ms=(time.time() - start_time) * 1000,
                    message="Identical content already persisted",
                )
            raise ConflictError(
                f"Document {existing.id} already exists",
                {"document_id": existing.id, "content_hash": existing.content_hash},
            )

        content = await self.retry.run(
            lambda: self.extractors.extract(
                request.data, doc_type, source_path=request.source_path, url=request.source_url
            ),
            "extract_document",
        )

        if existing is not None:
            await self.repository.delete_document(existing.id)
            logger.info(f"Replacing document {existing.id}", extra={"document_id": existing.id})

        document = Document(
            id=request.document_id or (existing.id if existing is not None else generate_document_id()),
            container_tag=request.container_tag,
            type=doc_type,
            title=request.title or content.title,
            source_url=request.source_url,
            source_path=request.source_path,
            content_hash=content_hash,
            metadata={**content.metadata, **request.metadata},
            word_count=content.word_count,
        )
        chunks: list[Chunk] = []
        failed_chunk_ids: list[str] = []

        try:
            await self.repository.add_document(document)

            document.status = ProcessingState.EXTRACTED
            await self.repository.update_document(document)

            chunker = self.chunkers.get_chunker(doc_type, request.source_path)
            context = ChunkContext(source_path=request.source_path, title=document.title)
            chunks = [
                Chunk(
                    id=generate_chunk_id(document.id, text_chunk.position),
                    document_id=document.id,
                    content=text_chunk.content,
                    embedded_content=text_chunk.embedded_content,
                    position=text_chunk.position,
                    overlap_chars=text_chunk.overlap_chars,
                    token_estimate=text_chunk.token_estimate,
                )
                for text_chunk in chunker.chunk(content.text, context)
            ]
            await self.repository.add_chunks(chunks)
            document.chunk_count = len(chunks)
            document.status = ProcessingState.CHUNKED
            await self.repository.update_document(document)

            document.status = ProcessingState.EMBEDDING
            await self.repository.update_document(document)
            failed_chunk_ids = await self._embed_chunks(chunks)

            document.failed_chunk_ids = failed_chunk_ids
            document.status = ProcessingState.PERSISTED
            await self.repository.update_document(document)
        except StoreError as e:
            failed = [c.id for c in chunks if c.status == ChunkStatus.FAILED]
            await self._mark_failed(document, str(e))
            raise PipelineError(
                f"Ingestion of {document.id} failed: {e}",
                {"document_id": document.id, "failed_chunk_ids": failed},
            ) from e

        logger.info(
            f"Document {document.id} persisted with {len(chunks)} chunks",
            extra={
                "document_id": document.id,
                "doc_type": doc_type.value,
                "failed_chunks": len(failed_chunk_ids),
            },
        )

        extract = request.extract_memories
        if extract is None:
            extract = self.config.extract_memories

        memory_ids: list[str] = []
        if extract:
            embedded = [c for c in chunks if c.status == ChunkStatus.EMBEDDED]
            memories = await self.extract_memories(embedded, document.container_tag)
            memory_ids = [m.id for m in memories]

        return IngestionResult(
            document_id=document.id,
            status=IngestionStatus.COMPLETED,
            state=document.status,
            chunk_count=len(chunks),
            failed_chunk_ids=failed_chunk_ids,
            memory_ids=memory_ids,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    async def _find_existing(self, request: IngestRequest, content_hash: str) -> Document | None:
        if request.document_id:
            existing = await self.repository.get_document(request.document_id)
            if existing is not None:
                return existing
        return await self.repository.find_document_by_hash(request.container_tag, content_hash)

    async def _mark_failed(self, document: Document, error: str) -> None:
        document.status = ProcessingState.FAILED
        document.error = error
        try:
            await self.repository.update_document(document)
        except StoreError as e:
            logger.error(
                "Could not mark document {} as failed: {}",
                document.id,
                e,
                extra={"document_id": document.id, "error": str(e)},
            )

    # ═══════════════════════════════════════════════════════════
    # EMBEDDING
    # ═══════════════════════════════════════════════════════════

    async def _embed_chunks(self, chunks: list[Chunk]) -> list[str]:
        """
        Embed chunks with at most ``max_concurrency`` in flight.

        Returns:
            IDs of chunks that failed

        Raises:
            StoreError: If a chunk status can't be persisted
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def embed_one(chunk: Chunk) -> None:
            async with semaphore:
                try:
                    chunk.embedding = await self.retry.run(
                        lambda: self.embedder.embed(chunk.text_for_embedding), "embed_chunk"
                    )
                    chunk.status = ChunkStatus.EMBEDDED
                    chunk.error = None
                except (ProviderError, ValidationError) as e:
                    chunk.status = ChunkStatus.FAILED
                    chunk.error = str(e)
                    logger.warning(
                        "Chunk {} failed to embed: {}",
                        chunk.id,
                        e,
                        extra={"chunk_id": chunk.id, "kind": e.kind},
                    )
                await self.repository.update_chunk(chunk)

        tasks = [asyncio.create_task(embed_one(chunk)) for chunk in chunks]
        try:
            await asyncio.gather(*tasks)
        finally:
            # No chunk task outlives the pass
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        return [c.id for c in chunks if c.status == ChunkStatus.FAILED]

    async def retry_failed_chunks(self, document_id: str) -> IngestionResult:
        """
        Re-embed the failed chunks of a document.

        Args:
            document_id: Document to repair

        Returns:
            IngestionResult with the chunks that still fail

        Raises:
            NotFoundError: If the document doesn't exist
            PipelineError: If storage fails mid-pass
        """
        start_time = time.time()

        document = await self.repository.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}", {"document_id": document_id})

        chunks = await self.repository.get_chunks(document_id)
        failed = [c for c in chunks if c.status != ChunkStatus.EMBEDDED]

        try:
            still_failed = await self._embed_chunks(failed)
            document.failed_chunk_ids = still_failed
            document.status = ProcessingState.PERSISTED
            document.error = None
            await self.repository.update_document(document)
        except StoreError as e:
            await self._mark_failed(document, str(e))
            raise PipelineError(
                f"Retry of {document_id} failed: {e}",
                {
                    "document_id": document_id,
                    "failed_chunk_ids": [c.id for c in failed if c.status != ChunkStatus.EMBEDDED],
                },
            ) from e

        logger.info(
            f"Retried {len(failed)} chunks of {document_id}, {len(still_failed)} still failing",
            extra={"document_id": document_id},
        )

        memory_ids: list[str] = []
        repaired = [c for c in failed if c.status == ChunkStatus.EMBEDDED]
        if repaired and self.config.extract_memories:
            memories = await self.extract_memories(repaired, document.container_tag)
            memory_ids = [m.id for m in memories]

        return IngestionResult(
            document_id=document_id,
            status=IngestionStatus.COMPLETED,
            state=document.status,
            chunk_count=len(chunks),
            failed_chunk_ids=still_failed,
            memory_ids=memory_ids,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    # ═══════════════════════════════════════════════════════════
    # MEMORIES
    # ═══════════════════════════════════════════════════════════

    async def extract_memories(self, chunks: list[Chunk], container_tag: str) -> list[Memory]:
        """
        Extract, commit and resolve memories from chunks.

        Args:
            chunks: Chunks to read
            container_tag: Container of the memories

        Returns:
            Committed memories (some may be superseded by resolution)
        """
        if self.memory_extractor is None or not chunks:
            return []

        candidates = await self.memory_extractor.extract(chunks, container_tag)
        memories = await self.memory_extractor.commit(candidates)

        if self.resolver is not None and memories:
            await self.resolver.resolve(memories, container_tag)
        return memories
