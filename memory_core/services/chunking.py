"""Document chunking service."""

from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter


class ChunkingService:
    """Splits document text into slices for embedding."""

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Maximum characters per slice.
            chunk_overlap: Characters shared between neighbouring slices.
        """
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
        )

    def split(self, content: str) -> List[str]:
        """
        Split *content* into ordered, non-blank slices.

        The position of a slice in the returned list is its chunk_index.
        """
        return [s for s in self.splitter.split_text(content) if s.strip()]
