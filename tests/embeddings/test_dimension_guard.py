"""
Tests for DimensionCheckedEmbedder.
"""

import pytest

from engram.core.embeddings import DimensionCheckedEmbedder
from engram.core.embeddings.dimension import DIMENSION_KEY
from engram.utils.exceptions import ProviderPermanentError


class MemoryMetadata:
    """In-memory metadata store."""

    def __init__(self, values: dict[str, str] | None = None):
        self.values = dict(values or {})

    async def get_metadata(self, key: str) -> str | None:
        return self.values.get(key)

    async def set_metadata(self, key: str, value: str) -> None:
        self.values[key] = value


@pytest.mark.unit
@pytest.mark.asyncio
class TestDimensionGuard:
    """Test the embedding dimension is pinned and enforced."""

    async def test_first_vector_records_dimension(self, embedder):
        store = MemoryMetadata()
        guarded = DimensionCheckedEmbedder(embedder, store)

        vector = await guarded.embed("user likes tea")

        assert len(vector) == 256
        assert store.values[DIMENSION_KEY] == "256"
        assert guarded.dimension == 256

    async def test_stored_dimension_enforced(self, embedder):
        guarded = DimensionCheckedEmbedder(embedder, MemoryMetadata({DIMENSION_KEY: "128"}))

        with pytest.raises(ProviderPermanentError):
            await guarded.embed("user likes tea")

    async def test_configured_dimension_must_match_store(self, embedder):
        guarded = DimensionCheckedEmbedder(
            embedder, MemoryMetadata({DIMENSION_KEY: "256"}), expected_dimension=512
        )

        with pytest.raises(ProviderPermanentError):
            await guarded.embed("user likes tea")

    async def test_configured_dimension_checked_before_recording(self, embedder):
        store = MemoryMetadata()
        guarded = DimensionCheckedEmbedder(embedder, store, expected_dimension=512)

        with pytest.raises(ProviderPermanentError):
            await guarded.embed("user likes tea")

        assert DIMENSION_KEY not in store.values

    async def test_batch_embed(self, embedder):
        guarded = DimensionCheckedEmbedder(embedder, MemoryMetadata())

        vectors = await guarded.batch_embed(["one", "two"])

        assert [len(v) for v in vectors] == [256, 256]

    async def test_get_dimension_prefers_stored(self, embedder):
        guarded = DimensionCheckedEmbedder(embedder, MemoryMetadata({DIMENSION_KEY: "256"}))

        assert await guarded.get_dimension() == 256
        assert embedder.calls == 0

    async def test_close_delegates(self, embedder):
        await DimensionCheckedEmbedder(embedder, MemoryMetadata()).close()

        assert embedder.closed is True

    async def test_persists_across_instances(self, embedder, repository):
        first = DimensionCheckedEmbedder(embedder, repository)
        await first.embed("user likes tea")

        second = DimensionCheckedEmbedder(embedder, repository, expected_dimension=256)

        assert await second.get_dimension() == 256
