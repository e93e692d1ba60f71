"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from memory_core.services.chunk_store import ChunkStore
from memory_core.services.embedding import EmbeddingService


async def check_store(store: ChunkStore) -> Dict[str, Any]:
    """
    Check chunk store connectivity.

    Args:
        store: ChunkStore instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        await store.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "backend": type(store).__name__,
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "backend": type(store).__name__,
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai(embedding_service: EmbeddingService) -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Returns:
        Health status dictionary.
    """
    if not embedding_service.api_key:
        return {"status": "not_configured", "error": "API key not set"}

    try:
        start_time = time.time()
        await embedding_service.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
