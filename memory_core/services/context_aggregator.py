"""
Two-stage context aggregation for a single agent turn.

Stage 1 (flash window) takes the last N chat chunks of the session in
chronological order, whatever their relevance. Stage 2 (semantic window)
ranks the session's chat history and the global document corpus against
the query vector. The stages are merged, deduplicated by chunk id with
stage 1 winning, and tagged by provenance.

If the query embedding cannot be produced, stage 2 is skipped and the
result is flagged as degraded. Chunk store failures are never downgraded.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from memory_core.core.exceptions import UpstreamEmbeddingError
from memory_core.models.chunk import SourceType
from memory_core.models.context import ContextFragment, ContextResult, FragmentSource
from memory_core.monitoring.metrics import (
    context_degraded_total,
    context_latency_seconds,
    context_requests_total,
)
from memory_core.services.chunk_store import ChunkStore
from memory_core.services.embedding import EmbeddingService
from memory_core.services.retriever import ScopedRetriever

logger = logging.getLogger(__name__)

DEFAULT_FLASH_WINDOW = 10
DEFAULT_SEMANTIC_TOP_K = 5
DEFAULT_MIN_SCORE = 0.3


class ContextAggregator:
    """Builds the bounded context handed to the LLM caller."""

    def __init__(
        self,
        store: ChunkStore,
        retriever: ScopedRetriever,
        embedding_service: Optional[EmbeddingService] = None,
        flash_window_size: int = DEFAULT_FLASH_WINDOW,
        semantic_top_k: int = DEFAULT_SEMANTIC_TOP_K,
        min_score: float = DEFAULT_MIN_SCORE,
        max_context_chars: Optional[int] = None,
    ) -> None:
        """
        Initialize context aggregator.

        Args:
            store: Chunk store for the flash window.
            retriever: Scoped retriever for the semantic window.
            embedding_service: Provider used by ``retrieve_context_for_text``.
            flash_window_size: Number of recent chat chunks always included.
            semantic_top_k: Results taken from each semantic pool.
            min_score: Minimum similarity for semantic results.
            max_context_chars: Character budget for semantic fragments.
        """
        self.store = store
        self.retriever = retriever
        self.embedding_service = embedding_service
        self.flash_window_size = flash_window_size
        self.semantic_top_k = semantic_top_k
        self.min_score = min_score
        self.max_context_chars = max_context_chars

    async def retrieve_context(
        self,
        session_id: str,
        query_vector: Optional[Sequence[float]],
        query_model: Optional[str] = None,
    ) -> ContextResult:
        """
        Assemble context for one turn from a precomputed query vector.

        Args:
            session_id: Conversation session.
            query_vector: Embedding of the current user turn. ``None`` means
                no embedding is available and only the flash window is used.
            query_model: Model that produced *query_vector*; chunks from
                other models are excluded from semantic search.

        Returns:
            Ordered, deduplicated context fragments.
        """
        reason = None if query_vector is not None else "query embedding unavailable"
        return await self._assemble(session_id, query_vector, query_model, reason)

    async def retrieve_context_for_text(
        self, session_id: str, query_text: str, model: Optional[str] = None
    ) -> ContextResult:
        """
        Embed *query_text* and assemble context.

        An embedding failure degrades to the flash window instead of
        failing the turn.
        """
        query_vector = None
        query_model = None
        reason = None

        if self.embedding_service is None:
            reason = "no embedding provider configured"
        else:
            query_model = model or self.embedding_service.model
            try:
                query_vector = await self.embedding_service.embed(
                    query_text, model=query_model)
            except UpstreamEmbeddingError as e:
                reason = f"embedding failed: {str(e)}"

        return await self._assemble(session_id, query_vector, query_model, reason)

    async def _assemble(
        self,
        session_id: str,
        query_vector: Optional[Sequence[float]],
        query_model: Optional[str],
        degraded_reason: Optional[str],
    ) -> ContextResult:
        start_time = time.time()
        context_requests_total.inc()

        flash_chunks = await self.store.get_recent_by_session(
            session_id, SourceType.CHAT, self.flash_window_size)
        fragments = [ContextFragment.from_chunk(c) for c in flash_chunks]

        if query_vector is None:
            context_degraded_total.inc()
            logger.warning(
                f"Context for session {session_id} degraded to flash window: "
                f"{degraded_reason}"
            )
            context_latency_seconds.observe(time.time() - start_time)
            return ContextResult(
                session_id=session_id,
                fragments=fragments,
                degraded=True,
                degraded_reason=degraded_reason,
            )

        chat_hits, document_hits = await asyncio.gather(
            self.retriever.search_session(
                session_id,
                query_vector,
                source_type=SourceType.CHAT,
                top_k=self.semantic_top_k,
                min_score=self.min_score,
                query_model=query_model,
            ),
            self.retriever.search_global_documents(
                query_vector,
                top_k=self.semantic_top_k,
                min_score=self.min_score,
                query_model=query_model,
            ),
        )

        semantic = [
            ContextFragment.from_ranked(hit, FragmentSource.CHAT_SEMANTIC)
            for hit in chat_hits
        ] + [
            ContextFragment.from_ranked(hit, FragmentSource.DOCUMENT_SEMANTIC)
            for hit in document_hits
        ]
        fragments = self._merge(fragments, semantic)

        context_latency_seconds.observe(time.time() - start_time)
        logger.info(
            f"Context for session {session_id}: {len(flash_chunks)} flash, "
            f"{len(chat_hits)} chat, {len(document_hits)} document hits, "
            f"{len(fragments)} fragments after merge"
        )
        return ContextResult(session_id=session_id, fragments=fragments)

    def _merge(
        self, flash: List[ContextFragment], semantic: List[ContextFragment]
    ) -> List[ContextFragment]:
        """
        Append semantic fragments after the flash window.

        Duplicates of already-included chunks are skipped. Flash fragments
        are always kept; semantic ones stop at the first fragment that would
        exceed ``max_context_chars``.
        """
        merged = list(flash)
        seen = {f.chunk_id for f in flash}
        total_chars = sum(len(f.text) for f in flash)

        for fragment in semantic:
            if fragment.chunk_id in seen:
                continue
            if (
                self.max_context_chars is not None
                and total_chars + len(fragment.text) > self.max_context_chars
            ):
                break
            merged.append(fragment)
            seen.add(fragment.chunk_id)
            total_chars += len(fragment.text)

        return merged


_SECTION_TITLES = {
    FragmentSource.FLASH: "Recent conversation",
    FragmentSource.CHAT_SEMANTIC: "Related earlier conversation",
    FragmentSource.DOCUMENT_SEMANTIC: "Reference documents",
}


def format_context(result: ContextResult) -> str:
    """Render a context result as a prompt block, one section per stage."""
    sections = []
    for provenance, title in _SECTION_TITLES.items():
        fragments = result.by_provenance(provenance)
        if not fragments:
            continue
        lines = [f"[{title}]"]
        for fragment in fragments:
            if fragment.score is not None:
                lines.append(f"- ({fragment.score:.2f}) {fragment.text}")
            else:
                lines.append(f"- {fragment.text}")
        sections.append("\n".join(lines))

    if result.degraded:
        sections.append(
            "[Note] Long-term memory was unavailable for this turn; "
            "only recent conversation is shown.")

    if not sections:
        return "[Memory Context]\nNo stored context for this conversation."
    return "\n\n".join(sections)
