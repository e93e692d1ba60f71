"""Chunk models for the retrieval core."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from memory_core.core.exceptions import ValidationError

# Column limits shared by every store backend.
MAX_INT32 = 2**31 - 1
MAX_INT64 = 2**63 - 1


class SourceType(str, Enum):
    """Where a chunk's content came from."""

    CHAT = "chat"
    DOCUMENT = "document"


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chunk(BaseModel):
    """Atomic retrievable unit: a text slice plus its embedding vector."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    session_id: str
    source_type: SourceType
    text: str
    vector: Tuple[float, ...]
    model: str
    message_id: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: Optional[str] = None

    @property
    def dimensions(self) -> int:
        return len(self.vector)


class Provenance(BaseModel):
    """Source-specific identifiers attached to a chunk at write time."""

    message_id: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None
    metadata: Optional[str] = None


class ChunkQuery(BaseModel):
    """
    Typed chunk filter.

    Every field that is set is an equality constraint; unset fields
    do not constrain the result.
    """

    model_config = ConfigDict(frozen=True)

    session_id: Optional[str] = None
    source_type: Optional[SourceType] = None
    document_id: Optional[str] = None

    def matches(self, chunk: Chunk) -> bool:
        """Check whether *chunk* satisfies every set filter."""
        if self.session_id is not None and chunk.session_id != self.session_id:
            return False
        if self.source_type is not None and chunk.source_type != self.source_type:
            return False
        if self.document_id is not None and chunk.document_id != self.document_id:
            return False
        return True


class RankedChunk(BaseModel):
    """A chunk returned from similarity ranking, with its score."""

    chunk_id: str
    session_id: str
    source_type: SourceType
    text: str
    score: float
    created_at: datetime
    model: str
    message_id: Optional[str] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None

    @classmethod
    def from_chunk(cls, chunk: Chunk, score: float) -> "RankedChunk":
        return cls(
            chunk_id=chunk.id,
            session_id=chunk.session_id,
            source_type=chunk.source_type,
            text=chunk.text,
            score=score,
            created_at=chunk.created_at,
            model=chunk.model,
            message_id=chunk.message_id,
            document_id=chunk.document_id,
            chunk_index=chunk.chunk_index,
        )


def validate_chunk(chunk: Chunk) -> None:
    """
    Check the structural invariants every persisted chunk must satisfy.

    Raises:
        ValidationError: If the vector is empty, source-specific
            provenance fields are missing, or a field does not fit
            its column.
    """
    if not chunk.vector:
        raise ValidationError("Chunk vector must not be empty")
    if not chunk.session_id:
        raise ValidationError("Chunk session_id is required")
    for field in (
        "id", "session_id", "text", "model", "message_id", "document_id", "metadata"
    ):
        check_storable_text(field, getattr(chunk, field))

    if chunk.source_type == SourceType.CHAT:
        if not chunk.message_id:
            raise ValidationError("Chat chunks require a message_id")
    elif chunk.source_type == SourceType.DOCUMENT:
        if not chunk.document_id:
            raise ValidationError("Document chunks require a document_id")
        if chunk.chunk_index is None:
            raise ValidationError("Document chunks require a chunk_index")
        if chunk.chunk_index < 0:
            raise ValidationError(
                f"chunk_index must be non-negative, got {chunk.chunk_index}")
    if chunk.chunk_index is not None and not 0 <= chunk.chunk_index <= MAX_INT32:
        raise ValidationError(f"chunk_index out of range: {chunk.chunk_index}")


def check_storable_text(field: str, value: Optional[str]) -> None:
    """Reject NUL characters, which text columns cannot hold."""
    if value is not None and "\x00" in value:
        raise ValidationError(f"{field} must not contain NUL characters")


def document_chunk_order(chunk: Chunk) -> tuple:
    """Sort key: ascending chunk_index, chunks without one last."""
    if chunk.chunk_index is None:
        return (1, 0)
    return (0, chunk.chunk_index)
