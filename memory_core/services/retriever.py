"""
Scoped retrieval over the chunk store.

Two candidate universes:

* **session** - chunks owned by one conversation, optionally limited to
  one source type. Chat memory is private to its session.
* **global documents** - every document chunk in the system, whichever
  session uploaded it. Uploaded documents form a shared corpus.
"""

import logging
import time
from typing import List, Optional, Sequence

from memory_core.models.chunk import Chunk, RankedChunk, SourceType
from memory_core.monitoring.metrics import search_latency_seconds, search_requests_total
from memory_core.services.chunk_store import ChunkStore
from memory_core.services.embedding_writer import validate_vector
from memory_core.services.ranker import rank

logger = logging.getLogger(__name__)


class ScopedRetriever:
    """Applies the similarity ranker to a session or to the global corpus."""

    def __init__(self, store: ChunkStore) -> None:
        """
        Initialize retriever.

        Args:
            store: Chunk store to read candidates from.
        """
        self.store = store

    async def search_session(
        self,
        session_id: str,
        query_vector: Sequence[float],
        source_type: Optional[SourceType] = None,
        top_k: int = 5,
        min_score: Optional[float] = None,
        query_model: Optional[str] = None,
    ) -> List[RankedChunk]:
        """
        Rank the chunks of one session against *query_vector*.

        Args:
            session_id: Session whose chunks are candidates.
            query_vector: Query embedding.
            source_type: Restrict candidates to chat or document chunks.
            top_k: Maximum number of results.
            min_score: Minimum cosine similarity.
            query_model: If set, skip chunks embedded by another model.

        Returns:
            Ranked chunks, best first.
        """
        validate_vector(query_vector)
        start_time = time.time()
        candidates = await self.store.get_by_session(session_id, source_type)
        results = self._rank(query_vector, candidates, top_k, min_score, query_model)
        await self._track_document_access(results)

        search_requests_total.labels(scope="session").inc()
        search_latency_seconds.labels(scope="session").observe(
            time.time() - start_time)
        logger.debug(
            f"Session search {session_id}: {len(results)}/{len(candidates)} "
            f"chunks returned"
        )
        return results

    async def search_global_documents(
        self,
        query_vector: Sequence[float],
        top_k: int = 5,
        min_score: Optional[float] = None,
        query_model: Optional[str] = None,
    ) -> List[RankedChunk]:
        """
        Rank every document chunk in the store, ignoring session boundaries.

        Args:
            query_vector: Query embedding.
            top_k: Maximum number of results.
            min_score: Minimum cosine similarity.
            query_model: If set, skip chunks embedded by another model.

        Returns:
            Ranked chunks, best first. Each document with a returned chunk
            has its access count bumped once.
        """
        validate_vector(query_vector)
        start_time = time.time()
        candidates = await self.store.get_all_document_chunks()
        results = self._rank(query_vector, candidates, top_k, min_score, query_model)
        await self._track_document_access(results)

        search_requests_total.labels(scope="global").inc()
        search_latency_seconds.labels(scope="global").observe(
            time.time() - start_time)
        logger.debug(
            f"Global document search: {len(results)}/{len(candidates)} "
            f"chunks returned"
        )
        return results

    def _rank(
        self,
        query_vector: Sequence[float],
        candidates: List[Chunk],
        top_k: int,
        min_score: Optional[float],
        query_model: Optional[str],
    ) -> List[RankedChunk]:
        if query_model is not None:
            same_model = [c for c in candidates if c.model == query_model]
            skipped = len(candidates) - len(same_model)
            if skipped:
                logger.info(
                    f"Skipped {skipped} chunks embedded with a model other "
                    f"than {query_model}"
                )
            candidates = same_model
        return rank(query_vector, candidates, top_k, min_score)

    async def _track_document_access(self, results: List[RankedChunk]) -> None:
        document_ids = [r.document_id for r in results if r.document_id]
        if document_ids:
            await self.store.record_document_access(document_ids)
