"""
Embedding dimension guard.

The first successful embedding fixes the dimension for the lifetime of the
store; it is recorded in repository metadata so restarts with a different
model are caught instead of silently mixing vector spaces.
"""

import asyncio
from typing import Protocol

from engram.core.embeddings.base import Embedder
from engram.utils.exceptions import ProviderPermanentError
from engram.utils.logger import get_logger

logger = get_logger(__name__)

DIMENSION_KEY = "embedding_dimension"


class MetadataStore(Protocol):
    async def get_metadata(self, key: str) -> str | None: ...

    async def set_metadata(self, key: str, value: str) -> None: ...


class DimensionCheckedEmbedder(Embedder):
    """Embedder wrapper that records and enforces the embedding dimension."""

    def __init__(
        self,
        embedder: Embedder,
        metadata_store: MetadataStore,
        expected_dimension: int | None = None,
    ):
        self.embedder = embedder
        self.metadata_store = metadata_store
        self._dimension = expected_dimension
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def dimension(self) -> int | None:
        return self._dimension

    async def _load(self) -> None:
        if self._loaded:
            return
        stored = await self.metadata_store.get_metadata(DIMENSION_KEY)
        if stored is not None:
            stored_dim = int(stored)
            if self._dimension is not None and self._dimension != stored_dim:
                raise ProviderPermanentError(
                    f"Configured embedding dimension {self._dimension} does not match "
                    f"stored dimension {stored_dim}",
                    {"configured": self._dimension, "stored": stored_dim},
                )
            self._dimension = stored_dim
        self._loaded = True

    async def _check(self, vector: list[float]) -> list[float]:
        async with self._lock:
            await self._load()
            if self._dimension is None:
                self._dimension = len(vector)
                await self.metadata_store.set_metadata(DIMENSION_KEY, str(self._dimension))
                logger.info(f"Recorded embedding dimension {self._dimension}")
                return vector

        if len(vector) != self._dimension:
            raise ProviderPermanentError(
                f"Embedding dimension mismatch: expected {self._dimension}, got {len(vector)}",
                {"expected": self._dimension, "actual": len(vector)},
            )
        return vector

    async def embed(self, text: str, **kwargs) -> list[float]:
        vector = await self.embedder.embed(text, **kwargs)
        return await self._check(vector)

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        vectors = await self.embedder.batch_embed(texts, batch_size=batch_size, **kwargs)
        return [await self._check(v) for v in vectors]

    async def get_dimension(self) -> int:
        async with self._lock:
            await self._load()
        if self._dimension is None:
            return await self.embedder.get_dimension()
        return self._dimension

    async def close(self):
        await self.embedder.close()
