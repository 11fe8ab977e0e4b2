"""Tests for cosine similarity."""

import math

import numpy as np
import pytest

from src.errors import DimensionMismatchError
from src.memory.vector_math import cosine_similarities, cosine_similarity


class TestCosineSimilarity:
    @pytest.mark.parametrize(
        "vector",
        [[1.0, 0.0], [0.3, -2.5, 7.0], [1e-3, 4.0, 4.0, -1.0]],
    )
    def test_self_similarity_is_one(self, vector):
        assert cosine_similarity(vector, vector) == pytest.approx(1.0)

    @pytest.mark.parametrize("vector", [[1.0, 2.0, 3.0], [-0.5, 0.25]])
    def test_opposite_is_minus_one(self, vector):
        negated = [-x for x in vector]
        assert cosine_similarity(vector, negated) == pytest.approx(-1.0)

    def test_orthogonal_is_zero(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_known_value(self):
        assert cosine_similarity([1.0, 0.0], [0.75, math.sqrt(1 - 0.75**2)]) == pytest.approx(
            0.75
        )

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0])
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_mismatch_is_a_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [])

    def test_zero_vector_is_nan(self):
        assert math.isnan(cosine_similarity([0.0, 0.0], [1.0, 1.0]))
        assert math.isnan(cosine_similarity([1.0, 1.0], [0.0, 0.0]))

    def test_result_stays_in_range(self):
        v = [0.1] * 1000
        assert -1.0 <= cosine_similarity(v, v) <= 1.0


class TestCosineSimilarities:
    def test_scores_every_row(self):
        matrix = np.array([[1.0, 0.0], [0.0, 2.0], [-3.0, 0.0], [0.75, math.sqrt(1 - 0.75**2)]])
        scores = cosine_similarities([1.0, 0.0], matrix)
        assert scores.shape == (4,)
        assert scores == pytest.approx([1.0, 0.0, -1.0, 0.75])

    def test_zero_rows_are_nan(self):
        scores = cosine_similarities([1.0, 1.0], np.array([[0.0, 0.0], [1.0, 1.0]]))
        assert math.isnan(scores[0])
        assert scores[1] == pytest.approx(1.0)

    def test_zero_query_is_all_nan(self):
        scores = cosine_similarities([0.0, 0.0], np.array([[1.0, 0.0], [0.0, 1.0]]))
        assert np.isnan(scores).all()

    def test_column_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarities([1.0, 0.0, 0.0], np.ones((2, 2)))
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_agrees_with_pairwise(self):
        rng = np.random.default_rng(7)
        query = rng.normal(size=16)
        matrix = rng.normal(size=(10, 16))
        scores = cosine_similarities(query, matrix)
        for row, score in zip(matrix, scores, strict=True):
            assert score == pytest.approx(cosine_similarity(list(query), list(row)))
