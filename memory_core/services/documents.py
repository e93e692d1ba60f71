"""Document lifecycle management."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union

from memory_core.core.exceptions import NotFoundError, ValidationError
from memory_core.models.chunk import MAX_INT32, MAX_INT64, Chunk, check_storable_text
from memory_core.models.document import STATUS_TRANSITIONS, Document, DocumentStatus
from memory_core.services.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """Creates documents, moves them through their lifecycle, deletes them."""

    def __init__(self, store: ChunkStore) -> None:
        """
        Initialize document registry.

        Args:
            store: Chunk store holding documents and their chunks.
        """
        self.store = store

    async def create_document(
        self,
        session_id: str,
        name: str,
        file_ref: Optional[str] = None,
        file_type: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> str:
        """
        Register a new upload in ``uploading`` state.

        Returns:
            The new document id.
        """
        if not session_id:
            raise ValidationError("session_id is required")
        if not name:
            raise ValidationError("Document name is required")
        if file_size is not None and not 0 <= file_size <= MAX_INT64:
            raise ValidationError(f"file_size out of range: {file_size}")
        for field, value in (
            ("session_id", session_id),
            ("name", name),
            ("file_ref", file_ref),
            ("file_type", file_type),
        ):
            check_storable_text(field, value)

        document = Document(
            session_id=session_id,
            name=name,
            file_ref=file_ref,
            file_type=file_type,
            file_size=file_size,
        )
        await self.store.put_document(document)
        logger.info(f"Created document {document.id} ({name}) in session {session_id}")
        return document.id

    async def get_document(self, document_id: str) -> Document:
        """
        Get a document by id.

        Raises:
            NotFoundError: If the document does not exist.
        """
        document = await self.store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def list_documents(
        self, session_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[Document], int]:
        return await self.store.list_documents(
            session_id=session_id, limit=limit, offset=offset)

    async def update_document_status(
        self,
        document_id: str,
        status: Union[DocumentStatus, str],
        chunk_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> Document:
        """
        Move a document to *status*.

        ``ready`` stamps ``chunk_count`` (counted from the store when not
        given) and ``processed_at``; ``error`` stamps ``error_message`` and
        ``processed_at``. Terminal documents cannot change status. The
        write is conditional on the status read here, so a concurrent
        transition makes this call fail instead of overwriting it.

        Raises:
            NotFoundError: If the document does not exist.
            ValidationError: On an unknown status, a forbidden transition,
                an out-of-range chunk_count or a concurrent status change.
        """
        try:
            status = DocumentStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown document status: {status!r}") from e
        if chunk_count is not None and not 0 <= chunk_count <= MAX_INT32:
            raise ValidationError(f"chunk_count out of range: {chunk_count}")
        check_storable_text("error_message", error_message)

        document = await self.get_document(document_id)
        current = document.status

        if status == current and current.is_terminal:
            return document
        if status != current and status not in STATUS_TRANSITIONS[current]:
            raise ValidationError(
                f"Cannot move document {document_id} from "
                f"{current.value} to {status.value}"
            )

        updates = {"status": status}
        if status == DocumentStatus.READY:
            if chunk_count is None:
                chunk_count = len(await self.store.get_chunks_by_document(document_id))
            updates["chunk_count"] = chunk_count
            updates["processed_at"] = datetime.now(timezone.utc)
        elif status == DocumentStatus.ERROR:
            updates["error_message"] = error_message or "Processing failed"
            updates["processed_at"] = datetime.now(timezone.utc)
        elif chunk_count is not None:
            updates["chunk_count"] = chunk_count

        updated = document.model_copy(update=updates)
        await self.store.update_document(updated, expected_status=current)
        logger.info(
            f"Document {document_id}: {current.value} -> {status.value}")
        return updated

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document and cascade to all of its chunks.

        Deleting an unknown document is a no-op.

        Returns:
            True if the document existed.
        """
        return await self.store.delete_document(document_id)

    async def get_chunks_by_document(self, document_id: str) -> List[Chunk]:
        """Chunks of a document ordered by chunk_index; empty when unknown."""
        return await self.store.get_chunks_by_document(document_id)

    async def sweep_orphans(self) -> int:
        """Remove document chunks left behind by a partial delete."""
        return await self.store.sweep_orphan_chunks()

    async def stats(self) -> Dict[str, Dict[str, int]]:
        return await self.store.stats()
