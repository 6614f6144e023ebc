"""
Search Service - hybrid retrieval over memories and document chunks.

Vector similarity selects candidates, an optional reranker rescales them,
the temporal ranker adjusts memories for the query's time context, and the
result is ordered deterministically. Document search ranks embedded chunks
grouped by document; hybrid search merges both.
"""

import asyncio
from datetime import datetime

from engram.config import SearchConfig
from engram.core.embeddings.base import Embedder
from engram.core.reranker.base import Reranker
from engram.core.storage.base import Repository
from engram.models.search import (
    ChunkHit,
    DocumentHit,
    HybridHit,
    Neighborhood,
    SearchHit,
    SearchOptions,
)
from engram.services.query_rewriter import QueryRewriter
from engram.services.temporal import TemporalRanker
from engram.utils.exceptions import EngramError, NotFoundError, StoreError, ValidationError
from engram.utils.logger import get_logger
from engram.utils.retry import RetryPolicy

logger = get_logger(__name__)


class SearchService:
    """
    Query-time retrieval.

    Only active memories are eligible; state is evaluated by the repository
    at read time, so memories superseded or forgotten concurrently never
    leak into results.
    """

    def __init__(
        self,
        repository: Repository,
        embedder: Embedder,
        config: SearchConfig | None = None,
        reranker: Reranker | None = None,
        temporal: TemporalRanker | None = None,
        retry: RetryPolicy | None = None,
        rewriter: QueryRewriter | None = None,
    ):
        """
        Initialize search service.

        Args:
            repository: Persistence layer
            embedder: Embedder for query vectors
            config: Search defaults
            reranker: Optional reranker
            temporal: Temporal ranker (default settings when omitted)
            retry: Retry policy for provider calls
            rewriter: Optional LLM query rewriter
        """
        self.repository = repository
        self.embedder = embedder
        self.config = config or SearchConfig()
        self.reranker = reranker
        self.temporal = temporal or TemporalRanker()
        self.retry = retry or RetryPolicy()
        self.rewriter = rewriter

    # ═══════════════════════════════════════════════════════════
    # MEMORY SEARCH
    # ═══════════════════════════════════════════════════════════

    async def search(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[SearchHit]:
        """
        Search memories of a container.

        Args:
            query: Natural language query
            container_tag: Container to search
            options: Per-query options; unset fields use SearchConfig

        Returns:
            Hits ordered by final score (descending), later event-time, then id

        Raises:
            ValidationError: If the query or container is empty
            ProviderError: If the query can't be embedded
        """
        self._validate(query, container_tag)
        options = options or SearchOptions()

        search_query = await self._rewrite(query, options)
        vector = await self._embed_query(search_query)

        hits = await self._memory_hits(query, search_query, vector, container_tag, options)
        hits = hits[: self._limit(options)]
        await self._track_access([h.memory.id for h in hits], container_tag, options)

        logger.info(
            f"Search returned {len(hits)} hits",
            extra={"container_tag": container_tag, "reranked": self._rerank_enabled(options)},
        )
        return hits

    async def _memory_hits(
        self,
        query: str,
        search_query: str,
        vector: list[float],
        container_tag: str,
        options: SearchOptions,
    ) -> list[SearchHit]:
        """Ranked memory hits, not yet limited; time context comes from the caller's own query."""
        top_k = options.top_k or self.config.top_k
        threshold = self._threshold(options)

        candidates = await self.repository.vector_search(container_tag, vector, k=top_k)
        hits = [
            SearchHit(memory=memory, similarity=similarity, score=similarity)
            for memory, similarity in candidates
            if similarity >= threshold
        ]

        logger.debug(
            f"Vector search returned {len(hits)} candidates",
            extra={"container_tag": container_tag, "top_k": top_k},
        )

        if self._rerank_enabled(options) and hits:
            scores = await self._rerank_scores(search_query, [h.memory.content for h in hits])
            if scores is not None:
                hits = self._apply_rerank(hits, scores, self._floor(options))

        factors = self.temporal.factors(query, [h.memory for h in hits]) if options.temporal else [1.0] * len(hits)
        for hit, factor in zip(hits, factors, strict=True):
            hit.temporal_factor = factor
            hit.score = hit.base_score * factor

        hits.sort(key=lambda h: (-h.score, -h.memory.effective_time.timestamp(), h.memory.id))
        return hits

    # ═══════════════════════════════════════════════════════════
    # DOCUMENT SEARCH
    # ═══════════════════════════════════════════════════════════

    async def search_documents(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[DocumentHit]:
        """
        Search the embedded chunks of a container's documents.

        Args:
            query: Natural language query
            container_tag: Container to search
            options: Per-query options; ``limit`` caps documents, ``top_k`` chunks

        Returns:
            Documents ordered by their best chunk score, then id; each with its
            matching chunks, best first

        Raises:
            ValidationError: If the query or container is empty
            ProviderError: If the query can't be embedded
        """
        self._validate(query, container_tag)
        options = options or SearchOptions()

        search_query = await self._rewrite(query, options)
        vector = await self._embed_query(search_query)

        chunk_hits = await self._chunk_hits(search_query, vector, container_tag, options)
        documents = await self._group_by_document(chunk_hits)

        logger.info(
            f"Document search returned {len(documents)} documents",
            extra={"container_tag": container_tag, "chunks": len(chunk_hits)},
        )
        return documents[: self._limit(options)]

    async def _chunk_hits(
        self,
        search_query: str,
        vector: list[float],
        container_tag: str,
        options: SearchOptions,
    ) -> list[ChunkHit]:
        top_k = options.top_k or self.config.top_k
        threshold = self._threshold(options)

        candidates = await self.repository.chunk_vector_search(container_tag, vector, k=top_k)
        hits = [
            ChunkHit(chunk=chunk, similarity=similarity)
            for chunk, similarity in candidates
            if similarity >= threshold
        ]

        if self._rerank_enabled(options) and hits:
            scores = await self._rerank_scores(search_query, [h.chunk.content for h in hits])
            if scores is not None:
                hits = self._apply_rerank(hits, scores, self._floor(options))

        hits.sort(key=lambda h: (-h.score, h.chunk.id))
        return hits

    async def _group_by_document(self, chunk_hits: list[ChunkHit]) -> list[DocumentHit]:
        by_document: dict[str, list[ChunkHit]] = {}
        for hit in chunk_hits:
            by_document.setdefault(hit.chunk.document_id, []).append(hit)

        # Documents deleted since the chunk scan are dropped
        documents = await self.repository.get_documents(list(by_document))
        results = [DocumentHit(document=document, chunks=by_document[document.id]) for document in documents]
        results.sort(key=lambda d: (-d.score, d.document.id))
        return results

    # ═══════════════════════════════════════════════════════════
    # HYBRID SEARCH
    # ═══════════════════════════════════════════════════════════

    async def search_hybrid(
        self,
        query: str,
        container_tag: str,
        options: SearchOptions | None = None,
    ) -> list[HybridHit]:
        """
        Search memories and document chunks together.

        Both sides share one query embedding and run concurrently. When one
        side fails the other is still returned; chunks from documents that
        already back a returned memory are dropped.

        Args:
            query: Natural language query
            container_tag: Container to search
            options: Per-query options

        Returns:
            Memory and chunk hits ordered by score (descending), then id

        Raises:
            ValidationError: If the query or container is empty
            ProviderError: If the query can't be embedded
            EngramError: If both sides fail (the memory side's error)
        """
        self._validate(query, container_tag)
        options = options or SearchOptions()

        search_query = await self._rewrite(query, options)
        vector = await self._embed_query(search_query)

        memory_result, chunk_result = await asyncio.gather(
            self._memory_hits(query, search_query, vector, container_tag, options),
            self._chunk_hits(search_query, vector, container_tag, options),
            return_exceptions=True,
        )
        for result in (memory_result, chunk_result):
            # Cancellation is never a partial failure
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        if isinstance(memory_result, Exception) and isinstance(chunk_result, Exception):
            raise memory_result
        if isinstance(memory_result, Exception):
            logger.warning(
                "Hybrid memory search failed, returning chunks only: {}",
                memory_result,
                extra={"container_tag": container_tag},
            )
            memory_result = []
        if isinstance(chunk_result, Exception):
            logger.warning(
                "Hybrid document search failed, returning memories only: {}",
                chunk_result,
                extra={"container_tag": container_tag},
            )
            chunk_result = []

        if memory_result and chunk_result:
            chunk_result = await self._drop_covered_chunks(memory_result, chunk_result)

        results = [HybridHit(kind="memory", score=hit.score, memory=hit) for hit in memory_result]
        results.extend(
            HybridHit(kind="chunk", score=hit.score, chunk=hit, document_id=hit.chunk.document_id)
            for hit in chunk_result
        )
        results.sort(key=lambda r: (-r.score, r.id))
        results = results[: self._limit(options)]

        await self._track_access(
            [r.memory.memory.id for r in results if r.memory is not None], container_tag, options
        )

        logger.info(
            f"Hybrid search returned {len(results)} hits",
            extra={
                "container_tag": container_tag,
                "memories": sum(1 for r in results if r.kind == "memory"),
            },
        )
        return results

    async def _drop_covered_chunks(
        self, memory_hits: list[SearchHit], chunk_hits: list[ChunkHit]
    ) -> list[ChunkHit]:
        """Remove chunks of documents that are already sources of returned memories."""
        try:
            sources = await self.repository.get_sources([h.memory.id for h in memory_hits])
        except StoreError as e:
            logger.warning("Failed to load memory sources for hybrid dedup: {}", e)
            return chunk_hits
        covered = {s.document_id for s in sources}
        return [hit for hit in chunk_hits if hit.chunk.document_id not in covered]

    # ═══════════════════════════════════════════════════════════
    # SHARED STEPS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def _validate(query: str, container_tag: str) -> None:
        if not query or not query.strip():
            raise ValidationError("Search query cannot be empty")
        if not container_tag:
            raise ValidationError("container_tag is required")

    def _limit(self, options: SearchOptions) -> int:
        return options.limit or self.config.limit

    def _threshold(self, options: SearchOptions) -> float:
        if options.similarity_threshold is not None:
            return options.similarity_threshold
        return self.config.similarity_threshold

    def _floor(self, options: SearchOptions) -> float:
        return options.relevance_floor if options.relevance_floor is not None else self.config.relevance_floor

    def _rerank_enabled(self, options: SearchOptions) -> bool:
        rerank = options.rerank if options.rerank is not None else True
        return rerank and self.reranker is not None

    async def _rewrite(self, query: str, options: SearchOptions) -> str:
        enabled = options.rewrite_query if options.rewrite_query is not None else self.config.rewrite_query
        if not enabled or self.rewriter is None:
            return query
        return await self.rewriter.rewrite(query) or query

    async def _embed_query(self, query: str) -> list[float]:
        return await self.retry.run(lambda: self.embedder.embed(query), "embed_query")

    async def _track_access(self, memory_ids: list[str], container_tag: str, options: SearchOptions) -> None:
        track_access = options.track_access if options.track_access is not None else self.config.track_access
        if not track_access or not memory_ids:
            return
        try:
            await self.repository.touch_memories(memory_ids, datetime.now())
        except StoreError as e:
            logger.warning(
                "Failed to track access: {}",
                e,
                extra={"container_tag": container_tag, "error": str(e)},
            )

    async def _rerank_scores(self, query: str, texts: list[str]) -> dict[int, float] | None:
        """Rerank scores by candidate index; None when the reranker fails or returns nothing usable."""
        try:
            results = await self.reranker.rerank(query, texts)
        except EngramError as e:
            logger.warning(
                "Reranker failed, falling back to similarity: {}",
                e,
                extra={"error": str(e), "kind": e.kind},
            )
            return None

        scores: dict[int, float] = {}
        for result in results:
            if 0 <= result.index < len(texts):
                scores.setdefault(result.index, result.score)

        if not scores:
            logger.warning("Reranker returned no usable scores, falling back to similarity")
            return None
        return scores

    @staticmethod
    def _apply_rerank(hits: list, scores: dict[int, float], floor: float) -> list:
        """Keep hits scored at or above the floor; unscored hits are dropped."""
        reranked = []
        for index, hit in enumerate(hits):
            score = scores.get(index)
            if score is None or score < floor:
                continue
            hit.rerank_score = score
            reranked.append(hit)
        return reranked

    async def neighborhood(self, seed_ids: list[str], depth: int = 1) -> Neighborhood:
        """
        Subgraph around seed memories.

        Breadth-first in both edge directions, bounded by ``depth`` hops and
        cycle-safe through a visited set.

        Args:
            seed_ids: Starting memories
            depth: Maximum hops from any seed

        Returns:
            Neighborhood with reachable memories, the edges among them and the
            documents referenced by their sources

        Raises:
            ValidationError: If no seeds are given or depth is negative
            NotFoundError: If a seed doesn't exist
        """
        if not seed_ids:
            raise ValidationError("At least one seed memory is required")
        if depth < 0:
            raise ValidationError("depth must be non-negative", {"depth": depth})

        seeds = await self.repository.get_memories(seed_ids)
        found = {m.id for m in seeds}
        missing = [seed for seed in seed_ids if seed not in found]
        if missing:
            raise NotFoundError(f"Memory not found: {missing[0]}", {"missing": missing})

        memories = {m.id: m for m in seeds}
        edges = {}
        frontier = list(memories)

        for _ in range(depth):
            if not frontier:
                break
            next_frontier = []
            for edge in await self.repository.get_edges(frontier, direction="both"):
                edges[edge.key] = edge
                for node in (edge.source_id, edge.target_id):
                    if node not in memories and node not in next_frontier:
                        next_frontier.append(node)

            for memory in await self.repository.get_memories(next_frontier):
                memories[memory.id] = memory
            frontier = [node for node in next_frontier if node in memories]

        # Only edges with both endpoints inside the neighborhood
        kept_edges = [e for e in edges.values() if e.source_id in memories and e.target_id in memories]

        sources = await self.repository.get_sources(list(memories))
        document_ids = sorted({s.document_id for s in sources})
        documents = await self.repository.get_documents(document_ids)

        return Neighborhood(
            memories=sorted(memories.values(), key=lambda m: m.id),
            edges=sorted(kept_edges, key=lambda e: e.key),
            documents=documents,
        )
