"""Pydantic models for the memory service API."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from memory_core.models.chunk import Chunk, Provenance, RankedChunk, SourceType
from memory_core.models.context import ContextFragment
from memory_core.models.document import Document, DocumentStatus


class DocumentCreate(BaseModel):
    """Model for registering an uploaded document."""

    session_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=500)
    file_ref: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)


class DocumentCreated(BaseModel):
    id: str


class DocumentStatusUpdate(BaseModel):
    """Model for a document status transition."""

    status: DocumentStatus
    chunk_count: Optional[int] = Field(None, ge=0)
    error_message: Optional[str] = None


class DocumentIngest(BaseModel):
    """Extracted document text to split, embed and store."""

    text: str = Field(..., min_length=1)
    model: Optional[str] = None


class DocumentListResponse(BaseModel):
    """Model for document list response."""

    documents: List[Document]
    total: int
    limit: int
    offset: int


class ChunkResponse(BaseModel):
    """A stored chunk without its vector."""

    id: str
    session_id: str
    source_type: SourceType
    text: str
    model: str
    dimensions: int
    message_id: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    created_at: datetime
    metadata: Optional[str] = None

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ChunkResponse":
        return cls(
            id=chunk.id,
            session_id=chunk.session_id,
            source_type=chunk.source_type,
            text=chunk.text,
            model=chunk.model,
            dimensions=chunk.dimensions,
            message_id=chunk.message_id,
            document_id=chunk.document_id,
            chunk_index=chunk.chunk_index,
            created_at=chunk.created_at,
            metadata=chunk.metadata,
        )


class ChunkWrite(BaseModel):
    """Content plus an externally produced embedding."""

    session_id: str
    source_type: SourceType
    text: str
    vector: List[float]
    model: str
    provenance: Provenance = Field(default_factory=Provenance)


class SessionSearchRequest(BaseModel):
    """
    Session search request.

    One of ``query_vector`` or ``query_text`` is required; text is
    embedded with the configured provider.
    """

    session_id: str
    query_vector: Optional[List[float]] = None
    query_text: Optional[str] = None
    source_type: Optional[SourceType] = None
    top_k: int = 5
    min_score: Optional[float] = None
    query_model: Optional[str] = None


class DocumentSearchRequest(BaseModel):
    query_vector: Optional[List[float]] = None
    query_text: Optional[str] = None
    top_k: int = 5
    min_score: Optional[float] = None
    query_model: Optional[str] = None


class SearchResponse(BaseModel):
    results: List[RankedChunk]
    latency_ms: float


class ContextRequest(BaseModel):
    """
    Context request for one agent turn.

    Either ``query_vector`` or ``query_text`` may be given. With neither,
    only the flash window is returned.
    """

    session_id: str = Field(..., min_length=1)
    query_vector: Optional[List[float]] = None
    query_text: Optional[str] = None
    query_model: Optional[str] = None


class ContextResponse(BaseModel):
    session_id: str
    fragments: List[ContextFragment]
    degraded: bool
    degraded_reason: Optional[str] = None
    formatted: str
    latency_ms: float


class StatsResponse(BaseModel):
    chunks: Dict[str, int]
    documents: Dict[str, int]


class SweepResponse(BaseModel):
    removed: int
