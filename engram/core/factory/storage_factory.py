"""
Factory for creating repositories.
"""

from engram.config import QdrantConfig, StorageConfig
from engram.core.storage.base import Repository
from engram.core.storage.sqlite_store import SQLiteRepository
from engram.core.vector_store.base import VectorStore
from engram.core.vector_store.qdrant import QdrantStore
from engram.utils.exceptions import ConfigurationError


class RepositoryFactory:
    """Factory for creating repositories from configuration."""

    @staticmethod
    def create_vector_store(storage: StorageConfig, qdrant: QdrantConfig) -> VectorStore | None:
        if storage.vector_backend == "sqlite":
            return None
        if storage.vector_backend == "qdrant":
            return QdrantStore(
                url=qdrant.url,
                collection_name=qdrant.collection_name,
                use_grpc=qdrant.use_grpc,
                hnsw_m=qdrant.hnsw_m,
                hnsw_ef_construct=qdrant.hnsw_ef_construct,
                on_disk=qdrant.on_disk,
                timeout=qdrant.timeout,
            )
        raise ConfigurationError(f"Unsupported vector backend: {storage.vector_backend}")

    @staticmethod
    def create(storage: StorageConfig, qdrant: QdrantConfig | None = None) -> Repository:
        """
        Create repository from configuration.

        Raises:
            ConfigurationError: If backend is not supported
        """
        if storage.backend != "sqlite":
            raise ConfigurationError(f"Unsupported storage backend: {storage.backend}")

        vector_store = RepositoryFactory.create_vector_store(storage, qdrant or QdrantConfig())
        return SQLiteRepository(db_path=storage.sqlite_path, vector_store=vector_store)
