"""Tests for the embedding writer and vector validation."""

import math

import pytest

from memory_core.core.exceptions import NotFoundError, ValidationError
from memory_core.models.chunk import Provenance, SourceType
from memory_core.services.embedding_writer import EmbeddingWriter, validate_vector
from tests.conftest import add_document


class TestValidateVector:
    """Test suite for validate_vector."""

    def test_valid_vector_should_pass(self) -> None:
        validate_vector([0.1, -2, 3.5])

    def test_tuple_should_pass(self) -> None:
        validate_vector((1.0, 2.0))

    @pytest.mark.parametrize(
        "vector",
        [
            [],
            [1.0, math.nan],
            [math.inf, 1.0],
            [1.0, "2"],
            [True, 1.0],
            [1.0, None],
            "1.0",
        ],
    )
    def test_invalid_vector_should_raise(self, vector) -> None:
        with pytest.raises(ValidationError):
            validate_vector(vector)


class TestWrite:
    """Test suite for EmbeddingWriter.write."""

    @pytest.mark.asyncio
    async def test_write_chat_chunk_should_persist(self, writer, store) -> None:
        # Act
        chunk = await writer.write(
            session_id="session-1",
            source_type="chat",
            text="I like green tea",
            vector=[0.1, 0.2, 0.3],
            model="text-embedding-3-small",
            provenance=Provenance(message_id="msg-1"),
        )

        # Assert
        stored = await store.get(chunk.id)
        assert stored == chunk
        assert stored.source_type == SourceType.CHAT
        assert stored.vector == (0.1, 0.2, 0.3)
        assert stored.message_id == "msg-1"

    @pytest.mark.asyncio
    async def test_write_document_chunk_should_persist(self, writer, store) -> None:
        document = await add_document(store)

        chunk = await writer.write(
            session_id="session-1",
            source_type=SourceType.DOCUMENT,
            text="Section 1",
            vector=[1.0, 0.0],
            model="m",
            provenance=Provenance(document_id=document.id, chunk_index=0),
        )

        assert await store.get_chunks_by_document(document.id) == [chunk]

    @pytest.mark.asyncio
    async def test_write_should_coerce_integer_vector(self, writer) -> None:
        chunk = await writer.write(
            "session-1", SourceType.CHAT, "hi", [1, 2], "m",
            Provenance(message_id="msg-1"))

        assert chunk.vector == (1.0, 2.0)

    @pytest.mark.asyncio
    async def test_chat_without_message_id_should_raise(self, writer, store) -> None:
        with pytest.raises(ValidationError):
            await writer.write("session-1", SourceType.CHAT, "hi", [1.0], "m")

        assert await store.get_by_session("session-1") == []

    @pytest.mark.asyncio
    async def test_document_without_document_id_should_raise(self, writer) -> None:
        with pytest.raises(ValidationError):
            await writer.write(
                "session-1", SourceType.DOCUMENT, "hi", [1.0], "m",
                Provenance(chunk_index=0))

    @pytest.mark.asyncio
    async def test_document_for_unknown_document_should_raise_not_found(
        self, writer
    ) -> None:
        with pytest.raises(NotFoundError):
            await writer.write(
                "session-1", SourceType.DOCUMENT, "hi", [1.0], "m",
                Provenance(document_id="missing", chunk_index=0))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"source_type": "email"},
            {"session_id": ""},
            {"model": ""},
            {"vector": []},
            {"vector": [1.0, math.nan]},
            {"vector": [False, 1.0]},
        ],
    )
    async def test_malformed_input_should_raise(self, writer, kwargs) -> None:
        params = dict(
            session_id="session-1",
            source_type=SourceType.CHAT,
            text="hi",
            vector=[1.0, 2.0],
            model="m",
            provenance=Provenance(message_id="msg-1"),
        )
        params.update(kwargs)

        with pytest.raises(ValidationError):
            await writer.write(**params)

    @pytest.mark.asyncio
    async def test_expected_dimensions_should_reject_other_lengths(self, store) -> None:
        writer = EmbeddingWriter(store, expected_dimensions=3)

        with pytest.raises(ValidationError):
            await writer.write(
                "session-1", SourceType.CHAT, "hi", [1.0, 2.0], "m",
                Provenance(message_id="msg-1"))

        chunk = await writer.write(
            "session-1", SourceType.CHAT, "hi", [1.0, 2.0, 3.0], "m",
            Provenance(message_id="msg-1"))
        assert chunk.dimensions == 3
