"""OpenAI embedding provider."""

import logging
from typing import List, Optional

from openai import (
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    PermissionDeniedError,
)

from memory_core.core.exceptions import UpstreamEmbeddingError
from memory_core.monitoring.metrics import embedding_tokens_total

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        dimensions: Optional[int] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            api_key: OpenAI API key. Calls fail with UpstreamEmbeddingError
                when it is missing.
            model: Default embedding model.
            dimensions: Requested output dimensionality, if the model
                supports it.
        """
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self.client is None:
            if not self.api_key:
                raise UpstreamEmbeddingError(
                    "OpenAI API key not configured", retryable=False)
            self.client = AsyncOpenAI(api_key=self.api_key)
        return self.client

    async def ping(self) -> None:
        """List models to verify the key and connectivity."""
        await self._get_client().models.list()

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None

    async def embed_texts(
        self, texts: List[str], model: Optional[str] = None
    ) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed.
            model: Model override; defaults to the configured model.

        Returns:
            List of embedding vectors, in input order.

        Raises:
            UpstreamEmbeddingError: If embedding generation fails.
        """
        if not texts:
            return []

        client = self._get_client()
        model = model or self.model
        kwargs = {"model": model, "input": texts}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        try:
            response = await client.embeddings.create(**kwargs)
        except (AuthenticationError, BadRequestError, PermissionDeniedError) as e:
            raise UpstreamEmbeddingError(
                f"Embedding request rejected: {str(e)}", retryable=False) from e
        except Exception as e:
            raise UpstreamEmbeddingError(
                f"Failed to generate embeddings: {str(e)}") from e

        if len(response.data) != len(texts):
            raise UpstreamEmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(response.data)}")

        if response.usage is not None:
            embedding_tokens_total.inc(response.usage.total_tokens)
            logger.info(
                f"Generated {len(texts)} embeddings ({model}), "
                f"usage: {response.usage.total_tokens} tokens"
            )

        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.
            model: Model override.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed_texts([text], model=model)
        return embeddings[0]
