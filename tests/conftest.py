"""
Shared test fixtures for the memory core test suite.

Provides: connected in-memory chunk store, component fixtures, a
deterministic embedding provider and chunk/document factories.
"""

import zlib
from typing import List, Optional, Sequence

import pytest
import pytest_asyncio

from memory_core.core.exceptions import UpstreamEmbeddingError
from memory_core.models.chunk import Chunk, SourceType
from memory_core.models.document import Document
from memory_core.services.chunk_store import InMemoryChunkStore
from memory_core.services.documents import DocumentRegistry
from memory_core.services.embedding_writer import EmbeddingWriter
from memory_core.services.retriever import ScopedRetriever

FAKE_DIMENSIONS = 16
FAKE_MODEL = "fake-embedding"


class FakeEmbeddingService:
    """
    Deterministic embedding provider.

    Each lower-cased word is hashed into one of ``dimensions`` buckets,
    so texts sharing words have positive cosine similarity.
    """

    def __init__(self, dimensions: int = FAKE_DIMENSIONS, model: str = FAKE_MODEL) -> None:
        self.dimensions = dimensions
        self.model = model
        self.api_key = "test-key"
        self.calls = 0
        self.failures_left = 0

    def vector_for(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for word in text.lower().split():
            vector[zlib.crc32(word.encode("utf-8")) % self.dimensions] += 1.0
        return vector

    async def embed_texts(
        self, texts: List[str], model: Optional[str] = None
    ) -> List[List[float]]:
        self.calls += 1
        if self.failures_left:
            self.failures_left -= 1
            raise UpstreamEmbeddingError("provider unavailable")
        return [self.vector_for(t) for t in texts]

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        return (await self.embed_texts([text], model=model))[0]

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


@pytest_asyncio.fixture
async def store() -> InMemoryChunkStore:
    """Provide a connected in-memory chunk store."""
    chunk_store = InMemoryChunkStore()
    await chunk_store.connect()
    yield chunk_store
    await chunk_store.disconnect()


@pytest.fixture
def writer(store: InMemoryChunkStore) -> EmbeddingWriter:
    return EmbeddingWriter(store)


@pytest.fixture
def retriever(store: InMemoryChunkStore) -> ScopedRetriever:
    return ScopedRetriever(store)


@pytest.fixture
def registry(store: InMemoryChunkStore) -> DocumentRegistry:
    return DocumentRegistry(store)


@pytest.fixture
def fake_embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


def make_chunk(
    vector: Sequence[float],
    session_id: str = "session-1",
    source_type: SourceType = SourceType.CHAT,
    text: str = "hello",
    model: str = FAKE_MODEL,
    message_id: Optional[str] = "msg-1",
    document_id: Optional[str] = None,
    chunk_index: Optional[int] = None,
    chunk_id: Optional[str] = None,
) -> Chunk:
    """Build a chunk without going through the store."""
    fields = dict(
        session_id=session_id,
        source_type=source_type,
        text=text,
        vector=tuple(vector),
        model=model,
        message_id=message_id if source_type == SourceType.CHAT else None,
        document_id=document_id,
        chunk_index=chunk_index,
    )
    if chunk_id is not None:
        fields["id"] = chunk_id
    return Chunk(**fields)


async def add_document(
    store: InMemoryChunkStore, session_id: str = "session-1", name: str = "notes.pdf"
) -> Document:
    """Register a document directly in the store."""
    document = Document(session_id=session_id, name=name)
    await store.put_document(document)
    return document
