"""Dependency injection for services."""

import logging
from typing import Optional

from memory_core.core.config import Settings
from memory_core.services.chunk_store import ChunkStore, InMemoryChunkStore
from memory_core.services.chunking import ChunkingService
from memory_core.services.context_aggregator import ContextAggregator
from memory_core.services.database import PostgresChunkStore
from memory_core.services.documents import DocumentRegistry
from memory_core.services.embedding import EmbeddingService
from memory_core.services.embedding_writer import EmbeddingWriter
from memory_core.services.ingestion import DocumentIngestor
from memory_core.services.retriever import ScopedRetriever

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> ChunkStore:
    """Create the chunk store selected by ``store_backend``."""
    if settings.store_backend == "postgres":
        return PostgresChunkStore(
            settings.postgres_url,
            min_size=settings.postgres_pool_min_size,
            max_size=settings.postgres_pool_max_size,
        )
    if settings.store_backend == "memory":
        return InMemoryChunkStore()
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


class ServiceContainer:
    """Container for service instances."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[ChunkStore] = None,
        embedding_service: Optional[EmbeddingService] = None,
    ) -> None:
        """
        Initialize service container.

        Args:
            settings: Application settings.
            store: Chunk store override; built from settings when omitted.
            embedding_service: Embedding provider override.
        """
        self.settings = settings
        self.store = store or build_store(settings)
        self.embedding_service = embedding_service or EmbeddingService(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
        self.writer = EmbeddingWriter(
            self.store,
            expected_dimensions=(
                settings.embedding_dimensions if settings.enforce_dimensions else None
            ),
        )
        self.retriever = ScopedRetriever(self.store)
        self.aggregator = ContextAggregator(
            self.store,
            self.retriever,
            embedding_service=self.embedding_service,
            flash_window_size=settings.flash_window_size,
            semantic_top_k=settings.semantic_top_k,
            min_score=settings.semantic_min_score,
            max_context_chars=settings.max_context_chars,
        )
        self.registry = DocumentRegistry(self.store)
        self.chunking_service = ChunkingService(
            chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)
        self.ingestor = DocumentIngestor(
            self.registry,
            self.writer,
            self.embedding_service,
            self.chunking_service,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay_seconds,
            retry_backoff_multiplier=settings.retry_backoff_multiplier,
        )

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.store.connect()
        logger.info(f"Chunk store ready ({type(self.store).__name__})")

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.embedding_service.close()
        await self.store.disconnect()
