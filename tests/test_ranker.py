"""Tests for cosine similarity and brute-force ranking."""

import math

import pytest

from memory_core.core.exceptions import DimensionMismatchError, ValidationError
from memory_core.services.ranker import cosine_similarity, rank
from tests.conftest import make_chunk


class TestCosineSimilarity:
    """Test suite for cosine_similarity."""

    def test_identical_vectors_should_score_one(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors_should_score_zero(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors_should_score_minus_one(self) -> None:
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_zero_vector_should_score_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_score_should_ignore_magnitude(self) -> None:
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        "a,b",
        [
            ([0.3, -0.7, 0.1], [0.9, 0.2, -0.4]),
            ([1e-9, 1e-9], [1e9, 1e9]),
            ([0.1] * 1536, [0.1] * 1536),
        ],
    )
    def test_score_should_stay_within_bounds(self, a, b) -> None:
        score = cosine_similarity(a, b)
        assert -1.0 <= score <= 1.0
        assert not math.isnan(score)

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ([1e200, 0.0], [-1e200, 0.0], -1.0),
            ([1e200, 1e200], [1e200, 0.0], math.sqrt(0.5)),
            ([1e-200, 0.0], [1e-200, 0.0], 1.0),
            ([5e-324, 0.0], [0.0, 5e-324], 0.0),
            ([1e-300, 1e-300], [1e300, -1e300], 0.0),
        ],
    )
    def test_extreme_magnitudes_should_score_by_direction(self, a, b, expected) -> None:
        assert cosine_similarity(a, b) == pytest.approx(expected, abs=1e-12)

    def test_non_finite_component_should_raise(self) -> None:
        with pytest.raises(ValidationError):
            cosine_similarity([math.inf, math.inf], [1.0, 0.0])

    def test_different_lengths_should_raise(self) -> None:
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 3


class TestRank:
    """Test suite for rank."""

    def test_concrete_example_should_order_and_score(self) -> None:
        # Arrange
        a = make_chunk([1.0, 0.0], text="A", chunk_id="A")
        b = make_chunk([0.0, 1.0], text="B", chunk_id="B")

        # Act
        results = rank([1.0, 0.0], [b, a], top_k=2)

        # Assert
        assert [r.chunk_id for r in results] == ["A", "B"]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.0)

    def test_concrete_example_with_threshold_should_drop_orthogonal(self) -> None:
        a = make_chunk([1.0, 0.0], chunk_id="A")
        b = make_chunk([0.0, 1.0], chunk_id="B")

        results = rank([1.0, 0.0], [a, b], top_k=2, min_score=0.5)

        assert [r.chunk_id for r in results] == ["A"]

    def test_results_should_be_sorted_descending(self) -> None:
        candidates = [
            make_chunk([0.0, 1.0], chunk_id="low"),
            make_chunk([1.0, 1.0], chunk_id="mid"),
            make_chunk([1.0, 0.1], chunk_id="high"),
            make_chunk([-1.0, 0.0], chunk_id="negative"),
        ]

        results = rank([1.0, 0.0], candidates, top_k=10)

        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert [r.chunk_id for r in results] == ["high", "mid", "low", "negative"]

    def test_ties_should_keep_candidate_order(self) -> None:
        candidates = [
            make_chunk([2.0, 0.0], chunk_id="first"),
            make_chunk([1.0, 0.0], chunk_id="second"),
            make_chunk([3.0, 0.0], chunk_id="third"),
        ]

        results = rank([1.0, 0.0], candidates, top_k=3)

        assert [r.chunk_id for r in results] == ["first", "second", "third"]

    def test_top_k_should_truncate(self) -> None:
        candidates = [make_chunk([1.0, float(i)]) for i in range(10)]

        assert len(rank([1.0, 0.0], candidates, top_k=3)) == 3

    def test_fewer_candidates_than_top_k_should_return_all(self) -> None:
        candidates = [make_chunk([1.0, 0.0]), make_chunk([0.0, 1.0])]

        assert len(rank([1.0, 0.0], candidates, top_k=5)) == 2

    def test_min_score_should_be_inclusive(self) -> None:
        exact = make_chunk([1.0, 1.0], chunk_id="exact")
        expected = cosine_similarity([1.0, 0.0], [1.0, 1.0])

        results = rank([1.0, 0.0], [exact], top_k=1, min_score=expected)

        assert [r.chunk_id for r in results] == ["exact"]

    def test_min_score_should_drop_opposite_large_vector(self) -> None:
        opposite = make_chunk([-1e200, 0.0], chunk_id="opposite")
        aligned = make_chunk([1e200, 0.0], chunk_id="aligned")

        results = rank([1e200, 0.0], [opposite, aligned], top_k=5, min_score=0.3)

        assert [r.chunk_id for r in results] == ["aligned"]
        assert results[0].score == pytest.approx(1.0)

    def test_empty_candidates_should_return_empty(self) -> None:
        assert rank([1.0, 0.0], [], top_k=5) == []

    def test_non_positive_top_k_should_return_empty(self) -> None:
        candidates = [make_chunk([1.0, 0.0])]

        assert rank([1.0, 0.0], candidates, top_k=0) == []
        assert rank([1.0, 0.0], candidates, top_k=-1) == []

    def test_empty_query_should_raise_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            rank([], [make_chunk([1.0])], top_k=1)

    def test_dimension_mismatch_should_fail_whole_call(self) -> None:
        # Arrange
        good = make_chunk([1.0, 0.0], chunk_id="good")
        bad = make_chunk([1.0, 0.0, 0.0], chunk_id="bad")

        # Act / Assert
        with pytest.raises(DimensionMismatchError) as exc_info:
            rank([1.0, 0.0], [good, bad], top_k=5)

        assert exc_info.value.chunk_id == "bad"

    def test_ranked_chunk_should_carry_provenance(self) -> None:
        chunk = make_chunk(
            [1.0, 0.0], text="hello there", model="m1", message_id="msg-42")

        result = rank([1.0, 0.0], [chunk], top_k=1)[0]

        assert result.chunk_id == chunk.id
        assert result.text == "hello there"
        assert result.model == "m1"
        assert result.message_id == "msg-42"
        assert result.session_id == chunk.session_id
        assert result.created_at == chunk.created_at

    def test_rank_should_not_mutate_candidates(self) -> None:
        candidates = [make_chunk([0.0, 1.0]), make_chunk([1.0, 0.0])]
        before = [c.id for c in candidates]

        rank([1.0, 0.0], candidates, top_k=2)

        assert [c.id for c in candidates] == before
