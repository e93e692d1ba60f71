"""Embedding writer: validates content + vector and persists a chunk."""

import logging
import math
from numbers import Real
from typing import Optional, Sequence, Union

from memory_core.core.exceptions import ValidationError
from memory_core.models.chunk import Chunk, Provenance, SourceType
from memory_core.monitoring.metrics import chunk_write_errors_total, chunk_writes_total
from memory_core.services.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


def validate_vector(vector: Sequence[float]) -> None:
    """
    Check that *vector* is a non-empty sequence of finite numbers.

    Raises:
        ValidationError: On an empty vector, a non-numeric element,
            a boolean, NaN or infinity.
    """
    if isinstance(vector, (str, bytes)) or not isinstance(vector, Sequence):
        raise ValidationError("Vector must be a sequence of numbers")
    if len(vector) == 0:
        raise ValidationError("Vector must not be empty")

    for i, value in enumerate(vector):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise ValidationError(
                f"Vector element {i} is not a number: {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"Vector element {i} is not finite: {value}")


class EmbeddingWriter:
    """
    Converts one unit of content plus an externally produced vector
    into a persisted chunk.

    The writer never retries and never calls the embedding provider.
    """

    def __init__(
        self, store: ChunkStore, expected_dimensions: Optional[int] = None
    ) -> None:
        """
        Initialize the writer.

        Args:
            store: Chunk store to persist into.
            expected_dimensions: If set, reject vectors of any other length.
        """
        self.store = store
        self.expected_dimensions = expected_dimensions

    async def write(
        self,
        session_id: str,
        source_type: Union[SourceType, str],
        text: str,
        vector: Sequence[float],
        model: str,
        provenance: Optional[Provenance] = None,
    ) -> Chunk:
        """
        Validate and persist a chunk.

        Args:
            session_id: Owning conversation session.
            source_type: ``chat`` or ``document``.
            text: Content the vector represents.
            vector: Embedding produced by the external provider.
            model: Identifier of the model that produced the vector.
            provenance: message_id for chat, document_id and chunk_index
                for documents.

        Returns:
            The stored chunk.

        Raises:
            ValidationError: If any input is malformed.
            NotFoundError: If a document chunk references an unknown document.
        """
        try:
            chunk = self._build_chunk(
                session_id, source_type, text, vector, model, provenance)
        except ValidationError:
            chunk_write_errors_total.inc()
            raise

        await self.store.put(chunk)
        chunk_writes_total.labels(source_type=chunk.source_type.value).inc()
        logger.debug(
            f"Stored {chunk.source_type.value} chunk {chunk.id} "
            f"for session {session_id} ({len(chunk.vector)}d, {model})"
        )
        return chunk

    def _build_chunk(
        self,
        session_id: str,
        source_type: Union[SourceType, str],
        text: str,
        vector: Sequence[float],
        model: str,
        provenance: Optional[Provenance],
    ) -> Chunk:
        try:
            source_type = SourceType(source_type)
        except ValueError as e:
            raise ValidationError(f"Unknown source type: {source_type!r}") from e

        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("session_id is required")
        if not isinstance(text, str):
            raise ValidationError("text must be a string")
        if not isinstance(model, str) or not model:
            raise ValidationError("model is required")

        validate_vector(vector)
        if (
            self.expected_dimensions is not None
            and len(vector) != self.expected_dimensions
        ):
            raise ValidationError(
                f"Expected {self.expected_dimensions}-dimensional vector, "
                f"got {len(vector)}"
            )

        provenance = provenance or Provenance()
        if source_type == SourceType.CHAT and not provenance.message_id:
            raise ValidationError("Chat chunks require provenance.message_id")
        if source_type == SourceType.DOCUMENT and not provenance.document_id:
            raise ValidationError("Document chunks require provenance.document_id")

        return Chunk(
            session_id=session_id,
            source_type=source_type,
            text=text,
            vector=tuple(float(v) for v in vector),
            model=model,
            message_id=provenance.message_id,
            document_id=provenance.document_id,
            chunk_index=provenance.chunk_index,
            metadata=provenance.metadata,
        )
