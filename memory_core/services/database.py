"""PostgreSQL chunk store backed by an asyncpg connection pool."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg

from memory_core.core.exceptions import (
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from memory_core.models.chunk import Chunk, ChunkQuery, SourceType, validate_chunk
from memory_core.models.document import Document, DocumentStatus
from memory_core.services.chunk_store import ChunkStore, empty_stats

logger = logging.getLogger(__name__)

# Server-side SQLSTATE class 22 errors and client-side argument encoding errors.
DATA_ERRORS = (asyncpg.DataError, ValueError)

SCHEMA = """
CREATE TABLE IF NOT EXISTS memory_documents (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    name TEXT NOT NULL,
    file_ref TEXT,
    file_type TEXT,
    file_size BIGINT,
    status TEXT NOT NULL,
    chunk_count INTEGER,
    error_message TEXT,
    uploaded_at TIMESTAMPTZ NOT NULL,
    processed_at TIMESTAMPTZ,
    access_count INTEGER NOT NULL DEFAULT 0,
    last_accessed_at TIMESTAMPTZ
);

ALTER TABLE memory_documents
    ADD COLUMN IF NOT EXISTS access_count INTEGER NOT NULL DEFAULT 0,
    ADD COLUMN IF NOT EXISTS last_accessed_at TIMESTAMPTZ;

CREATE TABLE IF NOT EXISTS memory_chunks (
    seq BIGSERIAL UNIQUE,
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    source_type TEXT NOT NULL CHECK (source_type IN ('chat', 'document')),
    message_id TEXT,
    document_id TEXT REFERENCES memory_documents (id) ON DELETE CASCADE,
    chunk_index INTEGER,
    text TEXT NOT NULL,
    vector DOUBLE PRECISION[] NOT NULL,
    model TEXT NOT NULL,
    metadata TEXT,
    created_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS memory_chunks_session_idx
    ON memory_chunks (session_id, source_type, seq);
CREATE INDEX IF NOT EXISTS memory_chunks_document_idx
    ON memory_chunks (document_id, chunk_index);
"""

CHUNK_COLUMNS = (
    "id, session_id, source_type, message_id, document_id, chunk_index, "
    "text, vector, model, metadata, created_at"
)

DOCUMENT_COLUMNS = (
    "id, session_id, name, file_ref, file_type, file_size, status, "
    "chunk_count, error_message, uploaded_at, processed_at, access_count, "
    "last_accessed_at"
)


def _build_where(query: ChunkQuery) -> Tuple[str, List[Any]]:
    """
    Translate a ChunkQuery into a WHERE clause and its parameters.

    Args:
        query: Typed chunk filter.

    Returns:
        Tuple of (clause, params). The clause is empty when no filter is set.
    """
    conditions = []
    params: List[Any] = []

    if query.session_id is not None:
        params.append(query.session_id)
        conditions.append(f"session_id = ${len(params)}")
    if query.source_type is not None:
        params.append(query.source_type.value)
        conditions.append(f"source_type = ${len(params)}")
    if query.document_id is not None:
        params.append(query.document_id)
        conditions.append(f"document_id = ${len(params)}")

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def _row_to_chunk(row: Any) -> Chunk:
    return Chunk(
        id=row["id"],
        session_id=row["session_id"],
        source_type=SourceType(row["source_type"]),
        message_id=row["message_id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        vector=tuple(row["vector"]),
        model=row["model"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_document(row: Any) -> Document:
    return Document(
        id=row["id"],
        session_id=row["session_id"],
        name=row["name"],
        file_ref=row["file_ref"],
        file_type=row["file_type"],
        file_size=row["file_size"],
        status=DocumentStatus(row["status"]),
        chunk_count=row["chunk_count"],
        error_message=row["error_message"],
        uploaded_at=row["uploaded_at"],
        processed_at=row["processed_at"],
        access_count=row["access_count"],
        last_accessed_at=row["last_accessed_at"],
    )


class PostgresChunkStore(ChunkStore):
    """Chunk store persisted in PostgreSQL."""

    def __init__(
        self, postgres_url: str, min_size: int = 2, max_size: int = 10
    ) -> None:
        """
        Initialize the store.

        Args:
            postgres_url: asyncpg connection DSN.
            min_size: Minimum pool size.
            max_size: Maximum pool size.
        """
        self.postgres_url = postgres_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and ensure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                self.postgres_url,
                min_size=self.min_size,
                max_size=self.max_size,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to connect to database: {str(e)}") from e
        logger.info("Postgres chunk store connected")

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise StoreUnavailableError("Database not connected")
        return self.pool

    async def ping(self) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as e:
            raise StoreUnavailableError(f"Database ping failed: {str(e)}") from e

    # ── Chunks ───────────────────────────────────────────────

    async def put(self, chunk: Chunk) -> str:
        validate_chunk(chunk)
        pool = self._require_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO memory_chunks ({CHUNK_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    """,
                    chunk.id,
                    chunk.session_id,
                    chunk.source_type.value,
                    chunk.message_id,
                    chunk.document_id,
                    chunk.chunk_index,
                    chunk.text,
                    list(chunk.vector),
                    chunk.model,
                    chunk.metadata,
                    chunk.created_at,
                )
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFoundError(f"Document {chunk.document_id} not found") from e
        except asyncpg.UniqueViolationError as e:
            raise ValidationError(f"Chunk {chunk.id} already exists") from e
        except DATA_ERRORS as e:
            raise ValidationError(f"Invalid chunk data: {str(e)}") from e
        except Exception as e:
            raise StoreUnavailableError(f"Failed to insert chunk: {str(e)}") from e

        return chunk.id

    async def get(self, chunk_id: str) -> Optional[Chunk]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {CHUNK_COLUMNS} FROM memory_chunks WHERE id = $1",
                    chunk_id,
                )
        except Exception as e:
            raise StoreUnavailableError(f"Failed to fetch chunk: {str(e)}") from e
        return _row_to_chunk(row) if row else None

    async def find(self, query: ChunkQuery) -> List[Chunk]:
        pool = self._require_pool()
        where, params = _build_where(query)
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {CHUNK_COLUMNS} FROM memory_chunks {where} ORDER BY seq",
                    *params,
                )
        except Exception as e:
            raise StoreUnavailableError(f"Failed to fetch chunks: {str(e)}") from e
        return [_row_to_chunk(row) for row in rows]

    async def get_recent_by_session(
        self, session_id: str, source_type: SourceType, limit: int
    ) -> List[Chunk]:
        pool = self._require_pool()
        if limit <= 0:
            return []
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {CHUNK_COLUMNS} FROM (
                        SELECT seq, {CHUNK_COLUMNS} FROM memory_chunks
                        WHERE session_id = $1 AND source_type = $2
                        ORDER BY seq DESC
                        LIMIT $3
                    ) recent
                    ORDER BY seq
                    """,
                    session_id,
                    source_type.value,
                    limit,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to fetch recent chunks: {str(e)}") from e
        return [_row_to_chunk(row) for row in rows]

    async def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {CHUNK_COLUMNS} FROM memory_chunks
                    WHERE source_type = 'document' AND document_id = $1
                    ORDER BY chunk_index ASC NULLS LAST, seq
                    """,
                    document_id,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to fetch document chunks: {str(e)}") from e
        return [_row_to_chunk(row) for row in rows]

    async def delete(self, chunk_id: str) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute("DELETE FROM memory_chunks WHERE id = $1", chunk_id)
        except Exception as e:
            raise StoreUnavailableError(f"Failed to delete chunk: {str(e)}") from e

    async def delete_by_document(self, document_id: str) -> int:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM memory_chunks WHERE document_id = $1",
                    document_id,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to delete document chunks: {str(e)}") from e
        return _affected_rows(result)

    async def sweep_orphan_chunks(self) -> int:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    DELETE FROM memory_chunks c
                    WHERE c.source_type = 'document'
                      AND NOT EXISTS (
                          SELECT 1 FROM memory_documents d WHERE d.id = c.document_id
                      )
                    """
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to sweep orphan chunks: {str(e)}") from e

        removed = _affected_rows(result)
        if removed:
            logger.info(f"Swept {removed} orphan document chunks")
        return removed

    # ── Documents ────────────────────────────────────────────

    async def put_document(self, document: Document) -> str:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO memory_documents ({DOCUMENT_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                    """,
                    document.id,
                    document.session_id,
                    document.name,
                    document.file_ref,
                    document.file_type,
                    document.file_size,
                    document.status.value,
                    document.chunk_count,
                    document.error_message,
                    document.uploaded_at,
                    document.processed_at,
                    document.access_count,
                    document.last_accessed_at,
                )
        except asyncpg.UniqueViolationError as e:
            raise ValidationError(f"Document {document.id} already exists") from e
        except DATA_ERRORS as e:
            raise ValidationError(f"Invalid document data: {str(e)}") from e
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to create document: {str(e)}") from e
        return document.id

    async def get_document(self, document_id: str) -> Optional[Document]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM memory_documents WHERE id = $1",
                    document_id,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to fetch document: {str(e)}") from e
        return _row_to_document(row) if row else None

    async def update_document(
        self, document: Document, expected_status: Optional[DocumentStatus] = None
    ) -> None:
        pool = self._require_pool()
        expected = expected_status.value if expected_status is not None else None
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE memory_documents
                    SET status = $2, chunk_count = $3, error_message = $4,
                        processed_at = $5
                    WHERE id = $1 AND ($6::text IS NULL OR status = $6)
                    """,
                    document.id,
                    document.status.value,
                    document.chunk_count,
                    document.error_message,
                    document.processed_at,
                    expected,
                )
                found = None
                if _affected_rows(result) == 0 and expected is not None:
                    found = await conn.fetchval(
                        "SELECT status FROM memory_documents WHERE id = $1",
                        document.id,
                    )
        except DATA_ERRORS as e:
            raise ValidationError(f"Invalid document data: {str(e)}") from e
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to update document: {str(e)}") from e

        if _affected_rows(result) > 0:
            return
        if found is None:
            raise NotFoundError(f"Document {document.id} not found")
        raise ValidationError(
            f"Document {document.id} changed status concurrently: "
            f"expected {expected}, found {found}"
        )

    async def record_document_access(self, document_ids: Sequence[str]) -> None:
        ids = sorted(set(document_ids))
        if not ids:
            return
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE memory_documents
                    SET access_count = access_count + 1, last_accessed_at = now()
                    WHERE id = ANY($1::text[])
                    """,
                    ids,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to record document access: {str(e)}") from e

    async def list_documents(
        self, session_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[Document], int]:
        pool = self._require_pool()
        where = "WHERE session_id = $1" if session_id is not None else ""
        params: List[Any] = [session_id] if session_id is not None else []
        try:
            async with pool.acquire() as conn:
                total = await conn.fetchval(
                    f"SELECT COUNT(*) FROM memory_documents {where}", *params)
                rows = await conn.fetch(
                    f"""
                    SELECT {DOCUMENT_COLUMNS} FROM memory_documents {where}
                    ORDER BY uploaded_at DESC
                    LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                    """,
                    *params,
                    limit,
                    offset,
                )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to fetch documents: {str(e)}") from e
        return [_row_to_document(row) for row in rows], total

    async def delete_document(self, document_id: str) -> bool:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    removed = await conn.execute(
                        "DELETE FROM memory_chunks WHERE document_id = $1",
                        document_id,
                    )
                    result = await conn.execute(
                        "DELETE FROM memory_documents WHERE id = $1",
                        document_id,
                    )
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to delete document: {str(e)}") from e

        existed = result == "DELETE 1"
        if existed:
            logger.info(
                f"Deleted document {document_id} and "
                f"{_affected_rows(removed)} chunks")
        return existed

    async def stats(self) -> Dict[str, Dict[str, int]]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                chunk_rows = await conn.fetch(
                    "SELECT source_type, COUNT(*) AS n FROM memory_chunks GROUP BY source_type")
                doc_rows = await conn.fetch(
                    "SELECT status, COUNT(*) AS n FROM memory_documents GROUP BY status")
        except Exception as e:
            raise StoreUnavailableError(f"Failed to compute stats: {str(e)}") from e

        result = empty_stats()
        for row in chunk_rows:
            result["chunks"][row["source_type"]] = row["n"]
        for row in doc_rows:
            result["documents"][row["status"]] = row["n"]
        result["chunks"]["total"] = sum(row["n"] for row in chunk_rows)
        result["documents"]["total"] = sum(row["n"] for row in doc_rows)
        return result


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command status like 'DELETE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
