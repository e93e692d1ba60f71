"""
Chunk store contract and in-process implementation.

The chunk store is the only shared mutable resource of the retrieval
core. It persists chunks (text + vector + provenance) and the documents
that own document-sourced chunks. It holds no ranking logic.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from memory_core.core.exceptions import (
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from memory_core.models.chunk import (
    Chunk,
    ChunkQuery,
    SourceType,
    document_chunk_order,
    validate_chunk,
)
from memory_core.models.document import Document, DocumentStatus

logger = logging.getLogger(__name__)


class ChunkStore(ABC):
    """Durable repository of chunks and documents."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the backend connection."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the backend connection."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailableError if the backend is unreachable."""

    # ── Chunks ───────────────────────────────────────────────

    @abstractmethod
    async def put(self, chunk: Chunk) -> str:
        """
        Insert a new chunk.

        Returns:
            The chunk id.

        Raises:
            ValidationError: If the chunk is malformed.
            NotFoundError: If a document chunk references an unknown document.
        """

    @abstractmethod
    async def get(self, chunk_id: str) -> Optional[Chunk]:
        """Get a chunk by id, or None."""

    @abstractmethod
    async def find(self, query: ChunkQuery) -> List[Chunk]:
        """Return every chunk matching *query* in insertion order."""

    @abstractmethod
    async def get_recent_by_session(
        self, session_id: str, source_type: SourceType, limit: int
    ) -> List[Chunk]:
        """Return the last *limit* matching chunks, oldest first."""

    @abstractmethod
    async def delete(self, chunk_id: str) -> None:
        """Delete a chunk. Unknown ids are ignored."""

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk of a document. Returns the number removed."""

    @abstractmethod
    async def sweep_orphan_chunks(self) -> int:
        """Delete document chunks whose document no longer exists."""

    async def get_by_session(
        self, session_id: str, source_type: Optional[SourceType] = None
    ) -> List[Chunk]:
        return await self.find(
            ChunkQuery(session_id=session_id, source_type=source_type))

    async def get_all_document_chunks(self) -> List[Chunk]:
        """Every document chunk across all sessions."""
        return await self.find(ChunkQuery(source_type=SourceType.DOCUMENT))

    async def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        """Chunks of one document ordered by chunk_index, unindexed last."""
        chunks = await self.find(
            ChunkQuery(source_type=SourceType.DOCUMENT, document_id=document_id))
        return sorted(chunks, key=document_chunk_order)

    # ── Documents ────────────────────────────────────────────

    @abstractmethod
    async def put_document(self, document: Document) -> str:
        """Insert a new document record."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Document]:
        """Get a document by id, or None."""

    @abstractmethod
    async def update_document(
        self, document: Document, expected_status: Optional[DocumentStatus] = None
    ) -> None:
        """
        Replace an existing document record.

        When *expected_status* is set the write only happens if the stored
        status still equals it, checked atomically with the write.

        Raises:
            NotFoundError: If the document does not exist.
            ValidationError: If the stored status differs from
                *expected_status*.
        """

    @abstractmethod
    async def record_document_access(self, document_ids: Sequence[str]) -> None:
        """
        Bump access_count and stamp last_accessed_at on each document.

        Unknown ids are ignored.
        """

    @abstractmethod
    async def list_documents(
        self, session_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[Document], int]:
        """Return a page of documents (newest first) and the total count."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document and all of its chunks atomically.

        Returns:
            True if the document existed.
        """

    @abstractmethod
    async def stats(self) -> Dict[str, Dict[str, int]]:
        """Chunk counts by source type and document counts by status."""


def empty_stats() -> Dict[str, Dict[str, int]]:
    return {
        "chunks": {t.value: 0 for t in SourceType},
        "documents": {s.value: 0 for s in DocumentStatus},
    }


class InMemoryChunkStore(ChunkStore):
    """
    Process-local chunk store.

    Chunks live in an insertion-ordered dict, so ``find`` returns them
    in write order. A single asyncio lock serialises mutations, which
    gives read-after-write for any caller awaiting its own write.
    """

    def __init__(self) -> None:
        """Initialize in-memory store."""
        self._chunks: Dict[str, Chunk] = {}
        self._documents: Dict[str, Document] = {}
        self._lock = asyncio.Lock()
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def ping(self) -> None:
        self._check_connected()

    def _check_connected(self) -> None:
        if not self._connected:
            raise StoreUnavailableError("Chunk store not connected")

    async def put(self, chunk: Chunk) -> str:
        self._check_connected()
        validate_chunk(chunk)

        async with self._lock:
            if chunk.id in self._chunks:
                raise ValidationError(
                    f"Chunk {chunk.id} already exists")
            if (
                chunk.source_type == SourceType.DOCUMENT
                and chunk.document_id not in self._documents
            ):
                raise NotFoundError(f"Document {chunk.document_id} not found")
            self._chunks[chunk.id] = chunk

        return chunk.id

    async def get(self, chunk_id: str) -> Optional[Chunk]:
        self._check_connected()
        return self._chunks.get(chunk_id)

    async def find(self, query: ChunkQuery) -> List[Chunk]:
        self._check_connected()
        return [c for c in list(self._chunks.values()) if query.matches(c)]

    async def get_recent_by_session(
        self, session_id: str, source_type: SourceType, limit: int
    ) -> List[Chunk]:
        if limit <= 0:
            self._check_connected()
            return []
        chunks = await self.find(
            ChunkQuery(session_id=session_id, source_type=source_type))
        return chunks[-limit:]

    async def delete(self, chunk_id: str) -> None:
        self._check_connected()
        async with self._lock:
            self._chunks.pop(chunk_id, None)

    async def delete_by_document(self, document_id: str) -> int:
        self._check_connected()
        async with self._lock:
            return self._delete_document_chunks(document_id)

    def _delete_document_chunks(self, document_id: str) -> int:
        doomed = [
            cid for cid, c in self._chunks.items()
            if c.source_type == SourceType.DOCUMENT and c.document_id == document_id
        ]
        for cid in doomed:
            del self._chunks[cid]
        return len(doomed)

    async def sweep_orphan_chunks(self) -> int:
        self._check_connected()
        async with self._lock:
            orphans = [
                cid for cid, c in self._chunks.items()
                if c.source_type == SourceType.DOCUMENT
                and c.document_id not in self._documents
            ]
            for cid in orphans:
                del self._chunks[cid]

        if orphans:
            logger.info(f"Swept {len(orphans)} orphan document chunks")
        return len(orphans)

    async def put_document(self, document: Document) -> str:
        self._check_connected()
        async with self._lock:
            if document.id in self._documents:
                raise ValidationError(
                    f"Document {document.id} already exists")
            self._documents[document.id] = document
        return document.id

    async def get_document(self, document_id: str) -> Optional[Document]:
        self._check_connected()
        return self._documents.get(document_id)

    async def update_document(
        self, document: Document, expected_status: Optional[DocumentStatus] = None
    ) -> None:
        self._check_connected()
        async with self._lock:
            stored = self._documents.get(document.id)
            if stored is None:
                raise NotFoundError(f"Document {document.id} not found")
            if expected_status is not None and stored.status != expected_status:
                raise ValidationError(
                    f"Document {document.id} changed status concurrently: "
                    f"expected {expected_status.value}, found {stored.status.value}"
                )
            # Access tracking runs outside the status lifecycle.
            self._documents[document.id] = document.model_copy(update={
                "access_count": stored.access_count,
                "last_accessed_at": stored.last_accessed_at,
            })

    async def record_document_access(self, document_ids: Sequence[str]) -> None:
        self._check_connected()
        now = datetime.now(timezone.utc)
        async with self._lock:
            for document_id in set(document_ids):
                stored = self._documents.get(document_id)
                if stored is None:
                    continue
                self._documents[document_id] = stored.model_copy(update={
                    "access_count": stored.access_count + 1,
                    "last_accessed_at": now,
                })

    async def list_documents(
        self, session_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[Document], int]:
        self._check_connected()
        docs = [
            d for d in self._documents.values()
            if session_id is None or d.session_id == session_id
        ]
        docs.reverse()
        return docs[offset:offset + limit], len(docs)

    async def delete_document(self, document_id: str) -> bool:
        self._check_connected()
        async with self._lock:
            existed = self._documents.pop(document_id, None) is not None
            removed = self._delete_document_chunks(document_id)

        if existed:
            logger.info(
                f"Deleted document {document_id} and {removed} chunks")
        return existed

    async def stats(self) -> Dict[str, Dict[str, int]]:
        self._check_connected()
        result = empty_stats()
        for chunk in self._chunks.values():
            result["chunks"][chunk.source_type.value] += 1
        for doc in self._documents.values():
            result["documents"][doc.status.value] += 1
        result["chunks"]["total"] = len(self._chunks)
        result["documents"]["total"] = len(self._documents)
        return result
