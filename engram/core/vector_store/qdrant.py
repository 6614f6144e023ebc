"""
Qdrant vector index.

Holds memory vectors with a small filter payload; memory content lives in
the repository.
"""

from uuid import NAMESPACE_DNS, UUID, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    HnswConfigDiff,
    MatchAny,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from engram.core.vector_store.base import VectorHit, VectorStore
from engram.models.memory import Memory, MemoryState
from engram.utils.exceptions import ValidationError, VectorStoreError
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class QdrantStore(VectorStore):
    """
    Qdrant-backed vector index for memory embeddings.

    Features:
    - HNSW indexing for fast search
    - Payload indexing on container, state and derived flag
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        collection_name: str = "memories",
        use_grpc: bool = False,
        hnsw_m: int = 16,
        hnsw_ef_construct: int = 100,
        on_disk: bool = False,
        timeout: int = 30,
        client: AsyncQdrantClient | None = None,
    ):
        """
        Initialize Qdrant store.

        Args:
            url: Qdrant URL (":memory:" for an in-process instance)
            collection_name: Collection name
            use_grpc: Use gRPC connection (faster)
            hnsw_m: HNSW M parameter (connections per node)
            hnsw_ef_construct: HNSW ef_construct parameter
            on_disk: Store vectors on disk (reduces RAM usage)
            timeout: Request timeout in seconds
            client: Pre-built client, mainly for tests
        """
        self.url = url
        self.collection_name = collection_name
        self.use_grpc = use_grpc
        self.hnsw_m = hnsw_m
        self.hnsw_ef_construct = hnsw_ef_construct
        self.on_disk = on_disk
        self.timeout = timeout
        self.client = client

    def _to_uuid(self, id_str: str) -> str:
        """
        Convert string ID to UUID format consistently.

        Args:
            id_str: String identifier

        Returns:
            UUID string
        """
        try:
            UUID(id_str)
            return id_str
        except ValueError:
            return str(uuid5(NAMESPACE_DNS, id_str))

    async def connect(self) -> None:
        """
        Establish connection to Qdrant.

        Raises:
            VectorStoreError: If connection fails
        """
        if self.client is None:
            try:
                if self.url == ":memory:":
                    self.client = AsyncQdrantClient(location=":memory:")
                else:
                    self.client = AsyncQdrantClient(
                        url=self.url, prefer_grpc=self.use_grpc, timeout=self.timeout
                    )
            except Exception as e:
                logger.error(
                    "Failed to connect to Qdrant: {}",
                    e,
                    extra={"url": self.url, "error": str(e)},
                )
                raise VectorStoreError(f"Failed to connect to Qdrant: {e}") from e

    async def initialize(self, dimension: int) -> None:
        """
        Create the collection and payload indices if missing.

        Raises:
            VectorStoreError: If initialization fails
        """
        try:
            await self.connect()

            if await self.client.collection_exists(self.collection_name):
                return

            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=dimension,
                    distance=Distance.COSINE,
                    hnsw_config=HnswConfigDiff(
                        m=self.hnsw_m,
                        ef_construct=self.hnsw_ef_construct,
                        full_scan_threshold=10000,
                    ),
                    on_disk=self.on_disk,
                ),
            )

            for field_name, schema in (
                ("container_tag", "keyword"),
                ("state", "keyword"),
                ("is_derived", "bool"),
            ):
                await self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )
        except Exception as e:
            logger.error(
                "Failed to initialize Qdrant collection: {}",
                e,
                extra={"collection": self.collection_name, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to initialize Qdrant collection: {e}") from e

    async def upsert(self, memory: Memory) -> None:
        if not memory.embedding:
            raise ValidationError("Memory must have an embedding", {"memory_id": memory.id})

        try:
            await self.connect()
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(
                        id=self._to_uuid(memory.id),
                        vector=memory.embedding,
                        payload={
                            "memory_id": memory.id,
                            "container_tag": memory.container_tag,
                            "state": memory.state.value,
                            "is_derived": memory.is_derived,
                        },
                    )
                ],
                wait=True,  # Wait for write to complete for consistency
            )
        except Exception as e:
            logger.error(
                "Failed to upsert memory {}: {}",
                memory.id,
                e,
                extra={"memory_id": memory.id, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to upsert memory: {e}", {"memory_id": memory.id}) from e

    async def set_state(self, memory_id: str, state: MemoryState) -> None:
        try:
            await self.connect()
            await self.client.set_payload(
                collection_name=self.collection_name,
                payload={"state": state.value},
                points=[self._to_uuid(memory_id)],
                wait=True,
            )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to update state of {memory_id}: {e}", {"memory_id": memory_id}
            ) from e

    async def delete(self, memory_ids: list[str]) -> None:
        if not memory_ids:
            return
        try:
            await self.connect()
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[self._to_uuid(m) for m in memory_ids]),
                wait=True,  # Wait for delete to complete for consistency
            )
        except Exception as e:
            logger.error(
                "Failed to delete memories: {}",
                e,
                extra={"memory_ids": memory_ids, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to delete memories: {e}") from e

    async def search(
        self,
        vector: list[float],
        container_tag: str,
        limit: int,
        states: list[MemoryState] | None = None,
        include_derived: bool = True,
    ) -> list[VectorHit]:
        conditions = [FieldCondition(key="container_tag", match=MatchValue(value=container_tag))]
        if states:
            conditions.append(
                FieldCondition(key="state", match=MatchAny(any=[s.value for s in states]))
            )
        if not include_derived:
            conditions.append(FieldCondition(key="is_derived", match=MatchValue(value=False)))

        try:
            await self.connect()
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=limit,
                query_filter=Filter(must=conditions),
                with_payload=True,
            )
        except Exception as e:
            logger.error("Qdrant search failed: {}", e, extra={"container_tag": container_tag})
            raise VectorStoreError(f"Qdrant search failed: {e}") from e

        return [
            VectorHit(memory_id=point.payload["memory_id"], score=point.score)
            for point in response.points
        ]

    async def close(self) -> None:
        """Close the connection to Qdrant."""
        if self.client is not None:
            await self.client.close()
            self.client = None
