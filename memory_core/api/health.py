"""Health check utilities."""

from typing import Dict

from memory_core.services.chunk_store import ChunkStore
from memory_core.services.embedding import EmbeddingService
from memory_core.services.health import check_openai, check_store


async def check_all_dependencies(
    store: ChunkStore,
    embedding_service: EmbeddingService,
) -> Dict:
    """
    Check all service dependencies.

    A missing OpenAI key is reported but does not make the service
    unhealthy: context retrieval degrades to the flash window.

    Args:
        store: Chunk store.
        embedding_service: Embedding provider.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {}
    overall_status = "healthy"

    store_status = await check_store(store)
    services["store"] = store_status
    if store_status.get("status") != "healthy":
        overall_status = "unhealthy"

    openai_status = await check_openai(embedding_service)
    services["openai"] = openai_status
    if openai_status.get("status") == "unhealthy":
        overall_status = "degraded" if overall_status == "healthy" else overall_status

    return {"status": overall_status, "services": services}


async def check_readiness(store: ChunkStore) -> Dict:
    """
    Check service readiness.

    Args:
        store: Chunk store.

    Returns:
        Readiness status dictionary.
    """
    store_status = await check_store(store)
    ready = store_status.get("status") == "healthy"
    return {"ready": ready, "store": ready}
