"""Context aggregation output models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from memory_core.models.chunk import Chunk, RankedChunk, SourceType


class FragmentSource(str, Enum):
    """Which retrieval stage produced a context fragment."""

    FLASH = "flash"
    CHAT_SEMANTIC = "chat-semantic"
    DOCUMENT_SEMANTIC = "document-semantic"


class ContextFragment(BaseModel):
    """One piece of context handed to the LLM caller."""

    chunk_id: str
    provenance: FragmentSource
    source_type: SourceType
    session_id: str
    text: str
    created_at: datetime
    score: Optional[float] = None
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ContextFragment":
        return cls(
            chunk_id=chunk.id,
            provenance=FragmentSource.FLASH,
            source_type=chunk.source_type,
            session_id=chunk.session_id,
            text=chunk.text,
            created_at=chunk.created_at,
        )

    @classmethod
    def from_ranked(
        cls, ranked: RankedChunk, provenance: FragmentSource
    ) -> "ContextFragment":
        return cls(
            chunk_id=ranked.chunk_id,
            provenance=provenance,
            source_type=ranked.source_type,
            session_id=ranked.session_id,
            text=ranked.text,
            created_at=ranked.created_at,
            score=ranked.score,
            document_id=ranked.document_id,
            chunk_index=ranked.chunk_index,
        )


class ContextResult(BaseModel):
    """Ordered, deduplicated context for a single agent turn."""

    session_id: str
    fragments: List[ContextFragment] = Field(default_factory=list)
    degraded: bool = False
    degraded_reason: Optional[str] = None

    def by_provenance(self, provenance: FragmentSource) -> List[ContextFragment]:
        return [f for f in self.fragments if f.provenance == provenance]
