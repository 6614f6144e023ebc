"""
SQLite repository implementation.

Single-connection aiosqlite store. Writes are grouped into explicit
BEGIN IMMEDIATE transactions. Reads and writes share one asyncio lock, so a
read never runs inside another task's open transaction. Vector search is
brute-force cosine unless an external VectorStore is attached, in which case
candidates come from the index and their state is re-read here.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from engram.core.storage.base import Repository
from engram.core.vector_store.base import VectorStore
from engram.models.document import (
    Chunk,
    ChunkStatus,
    Document,
    DocumentType,
    ProcessingState,
)
from engram.models.memory import Memory, MemorySource, MemoryState, MemoryType
from engram.models.profile import CachedProfile
from engram.models.relationships import EdgeType, GraphEdge
from engram.utils.exceptions import (
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
    VectorStoreError,
)
from engram.utils.logger import get_logger
from engram.utils.similarity import batch_cosine_similarity

logger = get_logger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        container_tag TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT,
        source_url TEXT,
        source_path TEXT,
        content_hash TEXT NOT NULL,
        metadata TEXT DEFAULT '{}',
        status TEXT NOT NULL,
        word_count INTEGER DEFAULT 0,
        chunk_count INTEGER DEFAULT 0,
        failed_chunk_ids TEXT DEFAULT '[]',
        error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunks (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL,
        content TEXT NOT NULL,
        embedded_content TEXT,
        embedding TEXT,
        position INTEGER NOT NULL,
        overlap_chars INTEGER DEFAULT 0,
        token_estimate INTEGER DEFAULT 0,
        status TEXT NOT NULL,
        error TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (document_id, position),
        FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        container_tag TEXT NOT NULL,
        content TEXT NOT NULL,
        content_hash TEXT NOT NULL,
        embedding TEXT,
        memory_type TEXT NOT NULL,
        importance REAL DEFAULT 0.5,
        confidence REAL DEFAULT 1.0,
        state TEXT NOT NULL,
        pinned INTEGER DEFAULT 0,
        superseded_by TEXT,
        is_derived INTEGER DEFAULT 0,
        derived_from TEXT DEFAULT '[]',
        metadata TEXT DEFAULT '{}',
        access_count INTEGER DEFAULT 0,
        last_accessed TEXT,
        event_time TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_sources (
        memory_id TEXT NOT NULL,
        document_id TEXT NOT NULL,
        chunk_id TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        PRIMARY KEY (memory_id, document_id, chunk_id),
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE,
        FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS edges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id TEXT NOT NULL,
        target_id TEXT NOT NULL,
        type TEXT NOT NULL,
        confidence REAL DEFAULT 1.0,
        metadata TEXT DEFAULT '{}',
        created_at TEXT NOT NULL,
        UNIQUE (source_id, target_id, type),
        FOREIGN KEY (source_id) REFERENCES memories(id) ON DELETE CASCADE,
        FOREIGN KEY (target_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS containers (
        container_tag TEXT PRIMARY KEY,
        last_mutation TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
        container_tag TEXT PRIMARY KEY,
        data TEXT NOT NULL,
        cached_at TEXT NOT NULL
    )
    """,
]

INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(container_tag, content_hash)",
    "CREATE INDEX IF NOT EXISTS idx_memories_container ON memories(container_tag, state)",
    "CREATE INDEX IF NOT EXISTS idx_memories_hash ON memories(container_tag, content_hash)",
    "CREATE INDEX IF NOT EXISTS idx_sources_document ON memory_sources(document_id)",
    "CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source_id)",
    "CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_id)",
]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _placeholders(values: list[Any]) -> str:
    return ",".join("?" * len(values))


class SQLiteRepository(Repository):
    """
    SQLite-based repository for documents, memories and the memory graph.

    Features:
    - Fast local storage
    - JSON columns for metadata and embeddings
    - Foreign keys with cascading deletes
    - Explicit transactions for multi-row writes
    """

    def __init__(self, db_path: str = "data/engram.db", vector_store: VectorStore | None = None):
        """
        Initialize SQLite repository.

        Args:
            db_path: Path to SQLite database file (":memory:" for in-memory)
            vector_store: Optional external vector index
        """
        self.db_path = db_path
        self.vector_store = vector_store
        self.connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._vector_store_ready = False

        if db_path != ":memory:":
            # Ensure directory exists
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            try:
                # Autocommit mode; transactions are opened explicitly
                self.connection = await aiosqlite.connect(self.db_path, isolation_level=None)
                self.connection.row_factory = aiosqlite.Row
                await self.connection.execute("PRAGMA foreign_keys = ON")
                if self.db_path != ":memory:":
                    await self.connection.execute("PRAGMA journal_mode = WAL")
            except aiosqlite.Error as e:
                raise StoreError(f"Failed to open SQLite database: {e}", {"path": self.db_path}) from e

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        async with self._transaction() as conn:
            for statement in SCHEMA:
                await conn.execute(statement)
            for statement in INDICES:
                await conn.execute(statement)

        logger.info(f"SQLite repository initialized at {self.db_path}")

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
        if self.vector_store is not None:
            await self.vector_store.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Serialized write transaction.

        Rolls back on any exception, cancellation included, and maps driver
        errors to StoreError.
        """
        await self.connect()
        async with self._lock:
            try:
                await self.connection.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as e:
                raise StoreError(f"Failed to begin transaction: {e}") from e
            try:
                yield self.connection
                await self.connection.commit()
            except BaseException as e:
                await self.connection.rollback()
                if isinstance(e, aiosqlite.Error):
                    raise StoreError(f"SQLite write failed: {e}") from e
                raise

    async def _fetchall(self, query: str, params: list[Any] | tuple = ()) -> list[aiosqlite.Row]:
        """
        Read outside any transaction.

        Waits for an in-flight write to commit or roll back first; the
        connection is shared, so reading mid-transaction would expose
        uncommitted rows.
        """
        await self.connect()
        async with self._lock:
            try:
                cursor = await self.connection.execute(query, params)
                return await cursor.fetchall()
            except aiosqlite.Error as e:
                raise StoreError(f"SQLite read failed: {e}", {"query": query.split()[0]}) from e

    async def _fetchone(self, query: str, params: list[Any] | tuple = ()) -> aiosqlite.Row | None:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    async def _bump_container(self, conn: aiosqlite.Connection, container_tag: str) -> None:
        await conn.execute(
            """
            INSERT INTO containers (container_tag, last_mutation) VALUES (?, ?)
            ON CONFLICT(container_tag) DO UPDATE SET last_mutation = excluded.last_mutation
            """,
            (container_tag, datetime.now().isoformat()),
        )

    # ═══════════════════════════════════════════════════════════
    # METADATA
    # ═══════════════════════════════════════════════════════════

    async def get_metadata(self, key: str) -> str | None:
        row = await self._fetchone("SELECT value FROM metadata WHERE key = ?", (key,))
        return row["value"] if row else None

    async def set_metadata(self, key: str, value: str) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value)
            )

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS & CHUNKS
    # ═══════════════════════════════════════════════════════════

    async def add_document(self, document: Document) -> None:
        async with self._transaction() as conn:
            cursor = await conn.execute("SELECT 1 FROM documents WHERE id = ?", (document.id,))
            if await cursor.fetchone() is not None:
                raise ConflictError(
                    f"Document {document.id} already exists", {"document_id": document.id}
                )
            await conn.execute(
                """
                INSERT INTO documents (
                    id, container_tag, type, title, source_url, source_path, content_hash,
                    metadata, status, word_count, chunk_count, failed_chunk_ids, error,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.container_tag,
                    document.type.value,
                    document.title,
                    document.source_url,
                    document.source_path,
                    document.content_hash,
                    json.dumps(document.metadata),
                    document.status.value,
                    document.word_count,
                    document.chunk_count,
                    json.dumps(document.failed_chunk_ids),
                    document.error,
                    document.created_at.isoformat(),
                    document.updated_at.isoformat(),
                ),
            )

    async def update_document(self, document: Document) -> None:
        document.updated_at = datetime.now()
        async with self._transaction() as conn:
            await conn.execute(
                """
                UPDATE documents
                SET title = ?, status = ?, word_count = ?, chunk_count = ?,
                    failed_chunk_ids = ?, error = ?, metadata = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    document.title,
                    document.status.value,
                    document.word_count,
                    document.chunk_count,
                    json.dumps(document.failed_chunk_ids),
                    document.error,
                    json.dumps(document.metadata),
                    document.updated_at.isoformat(),
                    document.id,
                ),
            )

    async def get_document(self, document_id: str) -> Document | None:
        row = await self._fetchone("SELECT * FROM documents WHERE id = ?", (document_id,))
        return self._row_to_document(row) if row else None

    async def get_documents(self, document_ids: list[str]) -> list[Document]:
        if not document_ids:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM documents WHERE id IN ({_placeholders(document_ids)}) ORDER BY id",
            document_ids,
        )
        return [self._row_to_document(row) for row in rows]

    async def find_document_by_hash(self, container_tag: str, content_hash: str) -> Document | None:
        row = await self._fetchone(
            """
            SELECT * FROM documents WHERE container_tag = ? AND content_hash = ?
            ORDER BY created_at DESC LIMIT 1
            """,
            (container_tag, content_hash),
        )
        return self._row_to_document(row) if row else None

    async def delete_document(self, document_id: str) -> bool:
        async with self._transaction() as conn:
            await conn.execute("DELETE FROM memory_sources WHERE document_id = ?", (document_id,))
            await conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            cursor = await conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            return cursor.rowcount > 0

    async def add_chunks(self, chunks: list[Chunk]) -> None:
        if not chunks:
            return
        async with self._transaction() as conn:
            await conn.executemany(
                """
                INSERT INTO chunks (
                    id, document_id, content, embedded_content, embedding, position,
                    overlap_chars, token_estimate, status, error, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.id,
                        chunk.document_id,
                        chunk.content,
                        chunk.embedded_content,
                        json.dumps(chunk.embedding) if chunk.embedding else None,
                        chunk.position,
                        chunk.overlap_chars,
                        chunk.token_estimate,
                        chunk.status.value,
                        chunk.error,
                        chunk.created_at.isoformat(),
                    )
                    for chunk in chunks
                ],
            )

    async def update_chunk(self, chunk: Chunk) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE chunks SET embedding = ?, status = ?, error = ? WHERE id = ?",
                (
                    json.dumps(chunk.embedding) if chunk.embedding else None,
                    chunk.status.value,
                    chunk.error,
                    chunk.id,
                ),
            )

    async def get_chunks(self, document_id: str) -> list[Chunk]:
        rows = await self._fetchall(
            "SELECT * FROM chunks WHERE document_id = ? ORDER BY position", (document_id,)
        )
        return [self._row_to_chunk(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # MEMORIES & PROVENANCE
    # ═══════════════════════════════════════════════════════════

    async def add_memory(
        self,
        memory: Memory,
        sources: list[MemorySource],
        edges: list[GraphEdge] | None = None,
    ) -> None:
        if not sources and not memory.is_derived:
            raise ValidationError(
                "Memory requires at least one source", {"memory_id": memory.id}
            )

        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO memories (
                    id, container_tag, content, content_hash, embedding, memory_type,
                    importance, confidence, state, pinned, superseded_by, is_derived,
                    derived_from, metadata, access_count, last_accessed, event_time,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._memory_params(memory),
            )
            for source in sources:
                await conn.execute(
                    """
                    INSERT OR IGNORE INTO memory_sources (memory_id, document_id, chunk_id, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (memory.id, source.document_id, source.chunk_id or "", source.created_at.isoformat()),
                )
            for edge in edges or []:
                await self._insert_edge(conn, edge)
            await self._bump_container(conn, memory.container_tag)

        if self.vector_store is not None and memory.embedding:
            await self._index(memory)

    async def update_memory(self, memory: Memory) -> None:
        memory.updated_at = datetime.now()
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE memories
                SET content = ?, content_hash = ?, embedding = ?, memory_type = ?,
                    importance = ?, confidence = ?, state = ?, pinned = ?, superseded_by = ?,
                    derived_from = ?, metadata = ?, access_count = ?, last_accessed = ?,
                    event_time = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    memory.content,
                    memory.content_hash,
                    json.dumps(memory.embedding) if memory.embedding else None,
                    memory.memory_type.value,
                    memory.importance,
                    memory.confidence,
                    memory.state.value,
                    int(memory.pinned),
                    memory.superseded_by,
                    json.dumps(memory.derived_from),
                    json.dumps(memory.metadata),
                    memory.access_count,
                    _iso(memory.last_accessed),
                    _iso(memory.event_time),
                    memory.updated_at.isoformat(),
                    memory.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Memory {memory.id} not found", {"memory_id": memory.id})
            await self._bump_container(conn, memory.container_tag)

        if self.vector_store is not None and memory.embedding:
            await self._index(memory)

    async def get_memory(self, memory_id: str) -> Memory | None:
        row = await self._fetchone("SELECT * FROM memories WHERE id = ?", (memory_id,))
        return self._row_to_memory(row) if row else None

    async def get_memories(self, memory_ids: list[str]) -> list[Memory]:
        if not memory_ids:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM memories WHERE id IN ({_placeholders(memory_ids)})", memory_ids
        )
        by_id = {row["id"]: self._row_to_memory(row) for row in rows}
        return [by_id[m] for m in dict.fromkeys(memory_ids) if m in by_id]

    async def list_memories(
        self,
        container_tag: str,
        states: list[MemoryState] | None = None,
        limit: int | None = None,
    ) -> list[Memory]:
        query = "SELECT * FROM memories WHERE container_tag = ?"
        params: list[Any] = [container_tag]
        if states:
            query += f" AND state IN ({_placeholders(states)})"
            params.extend(s.value for s in states)
        query += " ORDER BY created_at DESC, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self._fetchall(query, params)
        return [self._row_to_memory(row) for row in rows]

    async def find_memory_by_hash(self, container_tag: str, content_hash: str) -> Memory | None:
        row = await self._fetchone(
            "SELECT * FROM memories WHERE container_tag = ? AND content_hash = ? LIMIT 1",
            (container_tag, content_hash),
        )
        return self._row_to_memory(row) if row else None

    async def touch_memories(self, memory_ids: list[str], accessed_at: datetime) -> None:
        if not memory_ids:
            return
        async with self._transaction() as conn:
            await conn.execute(
                f"""
                UPDATE memories
                SET last_accessed = ?, access_count = access_count + 1
                WHERE id IN ({_placeholders(memory_ids)})
                """,
                [accessed_at.isoformat(), *memory_ids],
            )

    async def set_pinned(self, memory_id: str, pinned: bool) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE memories SET pinned = ?, updated_at = ? WHERE id = ?",
                (int(pinned), datetime.now().isoformat(), memory_id),
            )
            return cursor.rowcount > 0

    async def add_source(self, source: MemorySource) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO memory_sources (memory_id, document_id, chunk_id, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (source.memory_id, source.document_id, source.chunk_id or "", source.created_at.isoformat()),
            )
            return cursor.rowcount > 0

    async def get_sources(self, memory_ids: list[str]) -> list[MemorySource]:
        if not memory_ids:
            return []
        rows = await self._fetchall(
            f"""
            SELECT * FROM memory_sources WHERE memory_id IN ({_placeholders(memory_ids)})
            ORDER BY memory_id, document_id, chunk_id
            """,
            memory_ids,
        )
        return [
            MemorySource(
                memory_id=row["memory_id"],
                document_id=row["document_id"],
                chunk_id=row["chunk_id"] or None,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # ═══════════════════════════════════════════════════════════
    # EDGE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def add_edge(self, edge: GraphEdge) -> bool:
        async with self._transaction() as conn:
            return await self._insert_edge(conn, edge)

    async def _insert_edge(self, conn: aiosqlite.Connection, edge: GraphEdge) -> bool:
        cursor = await conn.execute(
            "SELECT id FROM memories WHERE id IN (?, ?)", (edge.source_id, edge.target_id)
        )
        found = {row["id"] for row in await cursor.fetchall()}
        missing = {edge.source_id, edge.target_id} - found
        if missing:
            raise NotFoundError(
                "Edge endpoint does not exist",
                {"missing": sorted(missing), "type": edge.type.value},
            )

        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO edges (source_id, target_id, type, confidence, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                edge.source_id,
                edge.target_id,
                edge.type.value,
                edge.confidence,
                json.dumps(edge.metadata),
                edge.created_at.isoformat(),
            ),
        )
        return cursor.rowcount > 0

    async def get_edge_between(
        self, source_id: str, target_id: str, edge_type: EdgeType | None = None
    ) -> GraphEdge | None:
        query = "SELECT * FROM edges WHERE source_id = ? AND target_id = ?"
        params: list[Any] = [source_id, target_id]
        if edge_type:
            query += " AND type = ?"
            params.append(edge_type.value)
        query += " LIMIT 1"
        row = await self._fetchone(query, params)
        return self._row_to_edge(row) if row else None

    async def get_edges(
        self,
        memory_ids: list[str],
        direction: str = "both",
        edge_types: list[EdgeType] | None = None,
    ) -> list[GraphEdge]:
        if not memory_ids:
            return []

        marks = _placeholders(memory_ids)
        if direction == "outgoing":
            query = f"SELECT * FROM edges WHERE source_id IN ({marks})"
            params: list[Any] = list(memory_ids)
        elif direction == "incoming":
            query = f"SELECT * FROM edges WHERE target_id IN ({marks})"
            params = list(memory_ids)
        elif direction == "both":
            query = f"SELECT * FROM edges WHERE (source_id IN ({marks}) OR target_id IN ({marks}))"
            params = [*memory_ids, *memory_ids]
        else:
            raise ValidationError(f"Invalid edge direction: {direction}")

        if edge_types:
            query += f" AND type IN ({_placeholders(edge_types)})"
            params.extend(t.value for t in edge_types)
        query += " ORDER BY id"

        rows = await self._fetchall(query, params)
        return [self._row_to_edge(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # SEARCH
    # ═══════════════════════════════════════════════════════════

    async def vector_search(
        self,
        container_tag: str,
        vector: list[float],
        k: int,
        states: list[MemoryState] | None = None,
        include_derived: bool = True,
        exclude_ids: list[str] | None = None,
    ) -> list[tuple[Memory, float]]:
        if k <= 0 or not vector:
            return []
        states = states or [MemoryState.ACTIVE]
        excluded = set(exclude_ids or [])

        if self.vector_store is not None:
            return await self._indexed_search(
                container_tag, vector, k, states, include_derived, excluded
            )

        query = f"""
            SELECT * FROM memories
            WHERE container_tag = ? AND state IN ({_placeholders(states)})
              AND embedding IS NOT NULL
        """
        params: list[Any] = [container_tag, *(s.value for s in states)]
        if not include_derived:
            query += " AND is_derived = 0"

        rows = await self._fetchall(query, params)

        memories = []
        for row in rows:
            if row["id"] in excluded:
                continue
            memory = self._row_to_memory(row)
            if len(memory.embedding) != len(vector):
                logger.warning(
                    f"Skipping memory {memory.id} with mismatched embedding dimension",
                    extra={"expected": len(vector), "actual": len(memory.embedding)},
                )
                continue
            memories.append(memory)

        scores = batch_cosine_similarity(vector, [m.embedding for m in memories])
        # Rounded so identical vectors tie exactly
        scored = [(memory, round(score, 9)) for memory, score in zip(memories, scores)]
        scored.sort(key=lambda pair: (-pair[1], pair[0].id))
        return scored[:k]

    async def chunk_vector_search(
        self,
        container_tag: str,
        vector: list[float],
        k: int,
    ) -> list[tuple[Chunk, float]]:
        if k <= 0 or not vector:
            return []

        rows = await self._fetchall(
            """
            SELECT chunks.* FROM chunks
            JOIN documents ON documents.id = chunks.document_id
            WHERE documents.container_tag = ? AND chunks.status = ?
              AND chunks.embedding IS NOT NULL
            """,
            (container_tag, ChunkStatus.EMBEDDED.value),
        )
        chunks = [
            chunk
            for chunk in (self._row_to_chunk(row) for row in rows)
            if len(chunk.embedding) == len(vector)
        ]

        scores = batch_cosine_similarity(vector, [c.embedding for c in chunks])
        scored = [(chunk, round(score, 9)) for chunk, score in zip(chunks, scores)]
        scored.sort(key=lambda pair: (-pair[1], pair[0].id))
        return scored[:k]

    async def _indexed_search(
        self,
        container_tag: str,
        vector: list[float],
        k: int,
        states: list[MemoryState],
        include_derived: bool,
        excluded: set[str],
    ) -> list[tuple[Memory, float]]:
        await self._ensure_index(len(vector))
        # Over-fetch: the index payload may lag behind state changes
        hits = await self.vector_store.search(
            vector,
            container_tag,
            limit=k * 2 + len(excluded),
            states=states,
            include_derived=include_derived,
        )
        memories = {m.id: m for m in await self.get_memories([h.memory_id for h in hits])}

        results = []
        for hit in hits:
            memory = memories.get(hit.memory_id)
            if memory is None or memory.id in excluded or memory.state not in states:
                continue
            if not include_derived and memory.is_derived:
                continue
            results.append((memory, hit.score))

        results.sort(key=lambda pair: (-pair[1], pair[0].id))
        return results[:k]

    async def _ensure_index(self, dimension: int) -> None:
        if not self._vector_store_ready:
            await self.vector_store.initialize(dimension)
            self._vector_store_ready = True

    async def _index(self, memory: Memory) -> None:
        try:
            await self._ensure_index(len(memory.embedding))
            await self.vector_store.upsert(memory)
        except VectorStoreError as e:
            # SQLite already committed; search re-reads state from here
            logger.error("Failed to index memory {}: {}", memory.id, e, extra={"memory_id": memory.id})
            raise

    # ═══════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════

    async def apply_supersession(
        self,
        winner_id: str,
        loser_id: str,
        edges: list[GraphEdge],
    ) -> bool:
        changed = False
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT id, state, container_tag FROM memories WHERE id IN (?, ?)",
                (winner_id, loser_id),
            )
            rows = {row["id"]: row for row in await cursor.fetchall()}
            if winner_id not in rows or loser_id not in rows:
                raise NotFoundError(
                    "Supersession endpoint does not exist",
                    {"winner_id": winner_id, "loser_id": loser_id},
                )

            for edge in edges:
                if await self._insert_edge(conn, edge):
                    changed = True

            if rows[loser_id]["state"] == MemoryState.ACTIVE.value:
                await conn.execute(
                    """
                    UPDATE memories SET state = ?, superseded_by = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        MemoryState.SUPERSEDED.value,
                        winner_id,
                        datetime.now().isoformat(),
                        loser_id,
                    ),
                )
                changed = True

            if changed:
                await self._bump_container(conn, rows[loser_id]["container_tag"])

        if changed and self.vector_store is not None:
            await self.vector_store.set_state(loser_id, MemoryState.SUPERSEDED)

        return changed

    async def get_forgetting_candidates(self, cutoff: datetime) -> list[Memory]:
        rows = await self._fetchall(
            """
            SELECT * FROM memories
            WHERE pinned = 0
              AND (state IN (?, ?) OR COALESCE(last_accessed, created_at) <= ?)
            ORDER BY id
            """,
            (
                MemoryState.SUPERSEDED.value,
                MemoryState.FORGOTTEN_PENDING.value,
                cutoff.isoformat(),
            ),
        )
        return [self._row_to_memory(row) for row in rows]

    async def forget_memory(
        self,
        memory_id: str,
        still_eligible: Callable[[Memory], bool] | None = None,
    ) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute("SELECT * FROM memories WHERE id = ?", (memory_id,))
            row = await cursor.fetchone()
            if row is None:
                return False

            # Re-read under the write lock: the memory may have been pinned,
            # touched or revived since it was selected
            current = self._row_to_memory(row)
            if current.pinned or (still_eligible is not None and not still_eligible(current)):
                logger.debug(f"Memory {memory_id} no longer eligible for forgetting")
                return False

            await conn.execute("DELETE FROM memory_sources WHERE memory_id = ?", (memory_id,))
            await conn.execute(
                "DELETE FROM edges WHERE source_id = ? OR target_id = ?", (memory_id, memory_id)
            )
            await conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            await self._bump_container(conn, current.container_tag)

        if self.vector_store is not None:
            try:
                await self.vector_store.delete([memory_id])
            except VectorStoreError as e:
                # Orphan vectors are filtered out at search time
                logger.warning(f"Failed to remove vector for {memory_id}: {e}")

        return True

    # ═══════════════════════════════════════════════════════════
    # PROFILE CACHE
    # ═══════════════════════════════════════════════════════════

    async def last_mutation(self, container_tag: str) -> datetime | None:
        row = await self._fetchone(
            "SELECT last_mutation FROM containers WHERE container_tag = ?", (container_tag,)
        )
        return _dt(row["last_mutation"]) if row else None

    async def get_profile(self, container_tag: str) -> CachedProfile | None:
        row = await self._fetchone(
            "SELECT data FROM profiles WHERE container_tag = ?", (container_tag,)
        )
        return CachedProfile.model_validate_json(row["data"]) if row else None

    async def put_profile(self, profile: CachedProfile) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO profiles (container_tag, data, cached_at) VALUES (?, ?, ?)",
                (profile.container_tag, profile.model_dump_json(), profile.cached_at.isoformat()),
            )

    # ═══════════════════════════════════════════════════════════
    # ROW MAPPING
    # ═══════════════════════════════════════════════════════════

    def _memory_params(self, memory: Memory) -> tuple:
        return (
            memory.id,
            memory.container_tag,
            memory.content,
            memory.content_hash,
            json.dumps(memory.embedding) if memory.embedding else None,
            memory.memory_type.value,
            memory.importance,
            memory.confidence,
            memory.state.value,
            int(memory.pinned),
            memory.superseded_by,
            int(memory.is_derived),
            json.dumps(memory.derived_from),
            json.dumps(memory.metadata),
            memory.access_count,
            _iso(memory.last_accessed),
            _iso(memory.event_time),
            memory.created_at.isoformat(),
            memory.updated_at.isoformat(),
        )

    def _row_to_memory(self, row: aiosqlite.Row) -> Memory:
        """Convert database row to Memory object."""
        return Memory(
            id=row["id"],
            container_tag=row["container_tag"],
            content=row["content"],
            content_hash=row["content_hash"],
            embedding=json.loads(row["embedding"]) if row["embedding"] else [],
            memory_type=MemoryType(row["memory_type"]),
            importance=row["importance"],
            confidence=row["confidence"],
            state=MemoryState(row["state"]),
            pinned=bool(row["pinned"]),
            superseded_by=row["superseded_by"],
            is_derived=bool(row["is_derived"]),
            derived_from=json.loads(row["derived_from"]) if row["derived_from"] else [],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            access_count=row["access_count"],
            last_accessed=_dt(row["last_accessed"]),
            event_time=_dt(row["event_time"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_document(self, row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            container_tag=row["container_tag"],
            type=DocumentType(row["type"]),
            title=row["title"],
            source_url=row["source_url"],
            source_path=row["source_path"],
            content_hash=row["content_hash"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            status=ProcessingState(row["status"]),
            word_count=row["word_count"],
            chunk_count=row["chunk_count"],
            failed_chunk_ids=json.loads(row["failed_chunk_ids"]) if row["failed_chunk_ids"] else [],
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_chunk(self, row: aiosqlite.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            content=row["content"],
            embedded_content=row["embedded_content"],
            embedding=json.loads(row["embedding"]) if row["embedding"] else [],
            position=row["position"],
            overlap_chars=row["overlap_chars"],
            token_estimate=row["token_estimate"],
            status=ChunkStatus(row["status"]),
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_edge(self, row: aiosqlite.Row) -> GraphEdge:
        return GraphEdge(
            source_id=row["source_id"],
            target_id=row["target_id"],
            type=EdgeType(row["type"]),
            confidence=row["confidence"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )
