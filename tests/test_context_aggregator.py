"""Tests for two-stage context aggregation."""

from unittest.mock import AsyncMock

import pytest

from memory_core.core.exceptions import StoreUnavailableError, UpstreamEmbeddingError
from memory_core.models.chunk import SourceType
from memory_core.models.context import ContextResult, FragmentSource
from memory_core.services.chunk_store import InMemoryChunkStore
from memory_core.services.context_aggregator import ContextAggregator, format_context
from memory_core.services.retriever import ScopedRetriever
from tests.conftest import FakeEmbeddingService, add_document, make_chunk


@pytest.fixture
def aggregator(store, retriever) -> ContextAggregator:
    """Provide aggregator with a small flash window."""
    return ContextAggregator(store, retriever, flash_window_size=3)


async def put_chat(store, vector, text="chat", session_id="session-1"):
    chunk = make_chunk(vector, session_id=session_id, text=text, message_id=text)
    await store.put(chunk)
    return chunk


class TestRetrieveContext:
    """Test suite for ContextAggregator.retrieve_context."""

    @pytest.mark.asyncio
    async def test_flash_window_should_hold_last_n_in_order(
        self, store, aggregator
    ) -> None:
        chats = [await put_chat(store, [0.0, 1.0], text=f"t{i}") for i in range(5)]

        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        flash = result.by_provenance(FragmentSource.FLASH)
        assert [f.chunk_id for f in flash] == [c.id for c in chats[-3:]]
        assert all(f.score is None for f in flash)

    @pytest.mark.asyncio
    async def test_should_merge_flash_chat_and_document_stages(
        self, store, retriever
    ) -> None:
        # Arrange
        aggregator = ContextAggregator(store, retriever, flash_window_size=1)
        old = await put_chat(store, [1.0, 0.0], text="old relevant")
        recent = await put_chat(store, [0.0, 1.0], text="recent")
        document = await add_document(store, session_id="other-session")
        doc_chunk = make_chunk(
            [1.0, 0.1], session_id="other-session", source_type=SourceType.DOCUMENT,
            document_id=document.id, chunk_index=0, text="reference")
        await store.put(doc_chunk)

        # Act
        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        # Assert
        assert [(f.chunk_id, f.provenance) for f in result.fragments] == [
            (recent.id, FragmentSource.FLASH),
            (old.id, FragmentSource.CHAT_SEMANTIC),
            (doc_chunk.id, FragmentSource.DOCUMENT_SEMANTIC),
        ]
        assert result.degraded is False

    @pytest.mark.asyncio
    async def test_flash_should_win_duplicates(self, store, aggregator) -> None:
        chunk = await put_chat(store, [1.0, 0.0], text="both stages")

        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        assert [(f.chunk_id, f.provenance) for f in result.fragments] == [
            (chunk.id, FragmentSource.FLASH)]

    @pytest.mark.asyncio
    async def test_semantic_stage_should_exclude_other_sessions_chat(
        self, store, aggregator
    ) -> None:
        await put_chat(store, [1.0, 0.0], text="foreign", session_id="other")

        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        assert result.fragments == []

    @pytest.mark.asyncio
    async def test_semantic_stage_should_respect_min_score(self, store, retriever) -> None:
        aggregator = ContextAggregator(store, retriever, flash_window_size=0)
        await put_chat(store, [0.0, 1.0], text="unrelated")

        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        assert result.fragments == []

    @pytest.mark.asyncio
    async def test_none_vector_should_degrade_to_flash(self, store, aggregator) -> None:
        chunk = await put_chat(store, [1.0, 0.0])

        result = await aggregator.retrieve_context("session-1", None)

        assert result.degraded is True
        assert result.degraded_reason
        assert [f.chunk_id for f in result.fragments] == [chunk.id]

    @pytest.mark.asyncio
    async def test_max_context_chars_should_bound_semantic_only(
        self, store, retriever
    ) -> None:
        aggregator = ContextAggregator(
            store, retriever, flash_window_size=1, max_context_chars=12)
        await put_chat(store, [1.0, 0.0], text="a long relevant message")
        recent = await put_chat(store, [0.0, 1.0], text="recent turn that is long")

        result = await aggregator.retrieve_context("session-1", [1.0, 0.0])

        assert [f.chunk_id for f in result.fragments] == [recent.id]

    @pytest.mark.asyncio
    async def test_store_failure_should_propagate(self) -> None:
        store = InMemoryChunkStore()
        aggregator = ContextAggregator(store, ScopedRetriever(store))

        with pytest.raises(StoreUnavailableError):
            await aggregator.retrieve_context("session-1", [1.0, 0.0])


class TestRetrieveContextForText:
    """Test suite for ContextAggregator.retrieve_context_for_text."""

    @pytest.mark.asyncio
    async def test_should_embed_query_and_search(self, store, retriever) -> None:
        # Arrange
        embeddings = FakeEmbeddingService()
        aggregator = ContextAggregator(
            store, retriever, embedding_service=embeddings, flash_window_size=0)
        text = "green tea is my favourite drink"
        chunk = make_chunk(embeddings.vector_for(text), text=text, message_id="m1")
        await store.put(chunk)

        # Act
        result = await aggregator.retrieve_context_for_text("session-1", text)

        # Assert
        assert [f.chunk_id for f in result.fragments] == [chunk.id]
        assert result.fragments[0].score == pytest.approx(1.0)
        assert embeddings.calls == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_should_degrade(self, store, retriever) -> None:
        embeddings = AsyncMock()
        embeddings.model = "m"
        embeddings.embed.side_effect = UpstreamEmbeddingError("rate limited")
        aggregator = ContextAggregator(
            store, retriever, embedding_service=embeddings, flash_window_size=2)
        chunk = await put_chat(store, [1.0, 0.0])

        result = await aggregator.retrieve_context_for_text("session-1", "hello")

        assert result.degraded is True
        assert "rate limited" in result.degraded_reason
        assert [f.chunk_id for f in result.fragments] == [chunk.id]

    @pytest.mark.asyncio
    async def test_missing_provider_should_degrade(self, store, aggregator) -> None:
        result = await aggregator.retrieve_context_for_text("session-1", "hello")

        assert result.degraded is True
        assert result.fragments == []


class TestFormatContext:
    """Test suite for format_context."""

    @pytest.mark.asyncio
    async def test_should_render_one_section_per_stage(self, store, retriever) -> None:
        aggregator = ContextAggregator(store, retriever, flash_window_size=1)
        await put_chat(store, [1.0, 0.0], text="I like green tea")
        await put_chat(store, [0.0, 1.0], text="What should I drink?")

        text = format_context(await aggregator.retrieve_context("session-1", [1.0, 0.0]))

        assert "[Recent conversation]\n- What should I drink?" in text
        assert "[Related earlier conversation]\n- (1.00) I like green tea" in text
        assert "[Reference documents]" not in text

    def test_empty_result_should_render_placeholder(self) -> None:
        text = format_context(ContextResult(session_id="s"))

        assert "No stored context" in text

    def test_degraded_result_should_carry_note(self) -> None:
        text = format_context(
            ContextResult(session_id="s", degraded=True, degraded_reason="x"))

        assert "Long-term memory was unavailable" in text
