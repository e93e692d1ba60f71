"""Document ingestion pipeline: split, embed, write, mark ready."""

import asyncio
import logging
import time
from typing import Optional

from memory_core.core.exceptions import (
    UpstreamEmbeddingError,
    ValidationError,
)
from memory_core.models.chunk import Provenance, SourceType
from memory_core.models.document import Document, DocumentStatus
from memory_core.monitoring.metrics import ingestion_duration_seconds, ingestion_total
from memory_core.services.chunking import ChunkingService
from memory_core.services.documents import DocumentRegistry
from memory_core.services.embedding import EmbeddingService
from memory_core.services.embedding_writer import EmbeddingWriter
from memory_core.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class DocumentIngestor:
    """Turns the text of an uploaded document into stored document chunks."""

    def __init__(
        self,
        registry: DocumentRegistry,
        writer: EmbeddingWriter,
        embedding_service: EmbeddingService,
        chunking_service: ChunkingService,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        retry_backoff_multiplier: float = 2.0,
    ) -> None:
        """
        Initialize document ingestor.

        Args:
            registry: Document registry driving the lifecycle.
            writer: Embedding writer used to persist slices.
            embedding_service: Embedding provider.
            chunking_service: Text splitter.
            max_retries: Retries for each embedding call.
            retry_delay: Initial retry delay in seconds.
            retry_backoff_multiplier: Multiplier for exponential backoff.
        """
        self.registry = registry
        self.writer = writer
        self.embedding_service = embedding_service
        self.chunking_service = chunking_service
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff_multiplier = retry_backoff_multiplier

    async def ingest_text(
        self, document_id: str, text: str, model: Optional[str] = None
    ) -> Document:
        """
        Ingest the extracted text of a document.

        The document moves to ``processing``, its slices are embedded and
        written with ascending chunk_index, then it is marked ``ready``.
        On failure the partial chunks are removed, the document is marked
        ``error`` and the original exception is raised.

        Args:
            document_id: Registered document in ``uploading`` or
                ``processing`` state.
            text: Extracted document text.
            model: Embedding model override.

        Returns:
            The document in its final ``ready`` state.

        Raises:
            NotFoundError: If the document does not exist.
            ValidationError: If the document is already terminal or the
                text produces no chunks.
            UpstreamEmbeddingError: If embedding fails after all retries.
        """
        document = await self.registry.get_document(document_id)
        if document.status.is_terminal:
            raise ValidationError(
                f"Document {document_id} is already {document.status.value}")

        start_time = time.time()
        model = model or self.embedding_service.model

        if document.status == DocumentStatus.UPLOADING:
            document = await self.registry.update_document_status(
                document_id, DocumentStatus.PROCESSING)

        try:
            slices = self.chunking_service.split(text)
            if not slices:
                raise ValidationError(
                    f"Document {document_id} has no text to ingest")

            async def generate_embeddings():
                return await self.embedding_service.embed_texts(slices, model=model)

            vectors = await retry_with_backoff(
                generate_embeddings,
                max_retries=self.max_retries,
                delay=self.retry_delay,
                backoff_multiplier=self.retry_backoff_multiplier,
                exceptions=(UpstreamEmbeddingError,),
            )
            if len(vectors) != len(slices):
                raise UpstreamEmbeddingError(
                    f"Expected {len(slices)} embeddings, got {len(vectors)}")

            for index, (content, vector) in enumerate(zip(slices, vectors)):
                await self.writer.write(
                    session_id=document.session_id,
                    source_type=SourceType.DOCUMENT,
                    text=content,
                    vector=vector,
                    model=model,
                    provenance=Provenance(document_id=document_id, chunk_index=index),
                )

            document = await self.registry.update_document_status(
                document_id, DocumentStatus.READY, chunk_count=len(slices))

        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Failed to ingest document {document_id}: {str(e)}")
            ingestion_total.labels(outcome="error").inc()
            await self._mark_failed(document_id, str(e) or type(e).__name__)
            raise

        processing_time = time.time() - start_time
        ingestion_duration_seconds.observe(processing_time)
        ingestion_total.labels(outcome="ready").inc()
        logger.info(
            f"Ingested document {document_id}: {len(slices)} chunks "
            f"in {processing_time:.2f}s"
        )
        return document

    async def _mark_failed(self, document_id: str, message: str) -> None:
        try:
            await self.registry.store.delete_by_document(document_id)
            await self.registry.update_document_status(
                document_id, DocumentStatus.ERROR, error_message=message)
        except Exception as e:
            logger.error(
                f"Could not mark document {document_id} as failed: {str(e)}")
