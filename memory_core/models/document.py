"""Document models for the retrieval core."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle states of an uploaded document."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.ERROR)


# Allowed status changes; terminal states have no outgoing edges.
STATUS_TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.UPLOADING: frozenset({DocumentStatus.PROCESSING, DocumentStatus.ERROR}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.ERROR}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}


class Document(BaseModel):
    """An uploaded artifact that owns a set of document chunks."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    name: str
    file_ref: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    status: DocumentStatus = DocumentStatus.UPLOADING
    chunk_count: Optional[int] = None
    error_message: Optional[str] = None
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
