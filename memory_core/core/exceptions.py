"""Custom exceptions for the retrieval core."""


class MemoryCoreError(Exception):
    """Base class for all retrieval core errors."""

    pass


class ValidationError(MemoryCoreError):
    """Raised when a chunk, vector or document update is malformed."""

    pass


class DimensionMismatchError(ValidationError):
    """Raised when vectors of different dimensionality are compared."""

    def __init__(self, expected: int, actual: int, chunk_id: str = None) -> None:
        self.expected = expected
        self.actual = actual
        self.chunk_id = chunk_id
        where = f" (chunk {chunk_id})" if chunk_id else ""
        super().__init__(
            f"Vector dimensionality mismatch{where}: expected {expected}, got {actual}")


class NotFoundError(MemoryCoreError):
    """Raised when an operation references a nonexistent document."""

    pass


class UpstreamEmbeddingError(MemoryCoreError):
    """Raised when the embedding provider fails."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class StoreUnavailableError(MemoryCoreError):
    """Raised when the chunk store cannot be reached."""

    pass
