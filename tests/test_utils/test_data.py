"""Tests for response pattern containers."""

import dataclasses

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from irtem.utils.data import ResponseData, ResponsePattern, validate_responses


class TestResponsePattern:
    def test_read_only(self):
        pattern = ResponsePattern([1, 0, -1], frequency=3)
        assert pattern.frequency == 3.0
        assert pattern.n_items == 3
        with pytest.raises(ValueError):
            pattern.responses[0] = 0
        with pytest.raises(dataclasses.FrozenInstanceError):
            pattern.frequency = 4.0

    def test_input_is_copied(self):
        source = np.array([1, 0])
        pattern = ResponsePattern(source)
        source[0] = 0
        assert pattern.responses[0] == 1

    def test_invalid_frequency(self):
        with pytest.raises(ValueError, match="frequency must be positive"):
            ResponsePattern([1, 0], frequency=0)

    def test_invalid_code(self):
        with pytest.raises(ValueError, match="missing code"):
            ResponsePattern([1, -2])

    def test_equality_and_hash(self):
        a = ResponsePattern([1, 0, 2], 2.0)
        b = ResponsePattern(np.array([1, 0, 2]), 2)
        assert a == b
        assert hash(a) == hash(b)
        assert a != ResponsePattern([1, 0, 2], 1.0)


class TestResponseData:
    def test_from_matrix_collapses_patterns(self):
        data = ResponseData.from_matrix([[1, 0], [0, 1], [1, 0], [1, 1], [1, 0]])
        assert data.n_patterns == 3
        assert data.n_persons == 5.0
        assert_array_equal(data.matrix, [[0, 1], [1, 0], [1, 1]])
        assert_allclose(data.frequencies, [1, 3, 1])

    def test_row_order_does_not_matter(self, rng):
        responses = rng.integers(0, 3, size=(50, 4))
        shuffled = responses[rng.permutation(50)]
        a = ResponseData.from_matrix(responses)
        b = ResponseData.from_matrix(shuffled)
        assert_array_equal(a.matrix, b.matrix)
        assert_array_equal(a.frequencies, b.frequencies)

    def test_from_patterns(self):
        data = ResponseData.from_patterns([[0, 0], [1, 1]], frequencies=[10, 20])
        assert data.n_persons == 30.0
        assert data.patterns[1] == ResponsePattern([1, 1], 20.0)

    def test_frequency_count_mismatch(self):
        with pytest.raises(ValueError, match="Expected 2 frequencies"):
            ResponseData.from_patterns([[0, 0], [1, 1]], frequencies=[1, 2, 3])

    def test_pattern_length_mismatch(self):
        with pytest.raises(ValueError, match="expected 2"):
            ResponseData([ResponsePattern([0, 1]), ResponsePattern([0, 1, 1])])

    def test_empty(self):
        with pytest.raises(ValueError, match="at least one pattern"):
            ResponseData([])

    def test_matrix_is_read_only(self):
        data = ResponseData.from_matrix([[0, 1], [1, 1]])
        with pytest.raises(ValueError):
            data.matrix[0, 0] = 1

    def test_sum_scores_ignore_missing(self):
        data = ResponseData.from_patterns([[2, -1, 1], [0, 0, 0]])
        assert_allclose(data.sum_scores(), [3.0, 0.0])

    def test_max_categories(self):
        data = ResponseData.from_patterns([[2, -1, 1], [0, -1, 3]])
        assert_array_equal(data.max_categories(), [2, -1, 3])

    def test_expand(self):
        data = ResponseData.from_patterns([[0, 1], [1, 1]], frequencies=[2, 1])
        assert_array_equal(data.expand(), [[0, 1], [0, 1], [1, 1]])

    def test_expand_fractional(self):
        data = ResponseData.from_patterns([[0, 1]], frequencies=[1.5])
        with pytest.raises(ValueError, match="non-integer"):
            data.expand()

    def test_len_and_repr(self):
        data = ResponseData.from_matrix([[0, 1], [1, 1], [1, 1]])
        assert len(data) == 2
        assert "n_persons=3" in repr(data)


class TestValidateResponses:
    def test_nan_becomes_missing(self):
        result = validate_responses(np.array([[1.0, np.nan], [0.0, 1.0]]))
        assert_array_equal(result, [[1, -1], [0, 1]])
        assert np.issubdtype(result.dtype, np.integer)

    def test_non_integer_codes(self):
        with pytest.raises(ValueError, match="integer category codes"):
            validate_responses(np.array([[0.5, 1.0]]))

    def test_wrong_dimension(self):
        with pytest.raises(ValueError, match="2D"):
            validate_responses(np.array([0, 1]))

    def test_negative_codes(self):
        with pytest.raises(ValueError, match="negative values"):
            validate_responses(np.array([[0, -3]]))

    def test_column_count(self):
        with pytest.raises(ValueError, match="expected 3"):
            validate_responses(np.zeros((2, 2), dtype=int), n_items=3)
