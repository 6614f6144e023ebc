"""
Query Rewriter - optional LLM expansion of search queries.

Rewrites are cached per query text in a bounded LRU. Any failure, timeout
or useless answer falls back to the original query; rewriting never fails a
search.
"""

import asyncio
import hashlib
from collections import OrderedDict

from engram.core.llm.base import LLMProvider
from engram.utils.exceptions import EngramError
from engram.utils.logger import get_logger

logger = get_logger(__name__)

MIN_QUERY_CHARS = 3
MAX_QUERY_CHARS = 500

REWRITE_PROMPT = """Rewrite the following search query to improve semantic search results.
Expand abbreviations, add context, and make the query more specific.

Original query: {query}

Respond with only the rewritten query, no explanation."""


class QueryRewriter:
    """LLM query rewriting with an LRU cache."""

    def __init__(self, llm: LLMProvider, cache_size: int = 256, timeout: float = 5.0):
        """
        Initialize query rewriter.

        Args:
            llm: LLM provider (plain text completion)
            cache_size: Maximum cached rewrites; least recently used are evicted
            timeout: Seconds to wait for the LLM before using the original query
        """
        if cache_size < 1:
            raise ValueError("cache_size must be positive")
        self.llm = llm
        self.cache_size = cache_size
        self.timeout = timeout
        self._cache: OrderedDict[str, str] = OrderedDict()

    @staticmethod
    def cache_key(query: str) -> str:
        return hashlib.sha256(query.encode("utf-8")).hexdigest()

    def cached(self, query: str) -> str | None:
        key = self.cache_key(query)
        rewritten = self._cache.get(key)
        if rewritten is not None:
            self._cache.move_to_end(key)
        return rewritten

    def remember(self, query: str, rewritten: str) -> None:
        key = self.cache_key(query)
        self._cache[key] = rewritten
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def rewrite(self, query: str) -> str | None:
        """
        Rewrite a query.

        Args:
            query: Original search query

        Returns:
            The rewritten query, or None when the original should be used
        """
        if not MIN_QUERY_CHARS <= len(query) <= MAX_QUERY_CHARS:
            return None

        cached = self.cached(query)
        if cached is not None:
            return cached

        try:
            answer = await asyncio.wait_for(
                self.llm.complete(REWRITE_PROMPT.format(query=query), temperature=0.0),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Query rewrite timed out, using original query")
            return None
        except EngramError as e:
            logger.warning("Query rewrite failed, using original query: {}", e, extra={"kind": e.kind})
            return None

        rewritten = str(answer).strip()
        if len(rewritten) < MIN_QUERY_CHARS or rewritten == query:
            return None

        self.remember(query, rewritten)
        logger.info(
            "Query rewritten: '{}...' -> '{}...'",
            query[:20],
            rewritten[:20],
        )
        return rewritten
