"""Response pattern containers and validation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from irtem.constants import MISSING
from irtem.typing import ResponseMatrix


@dataclass(frozen=True)
class ResponsePattern:
    """One unique response string and how many persons produced it.

    Attributes
    ----------
    responses : ndarray of shape (n_items,)
        Category codes; ``MISSING`` (-1) marks an unanswered item. The array
        is read-only.
    frequency : float
        Number of persons (or total weight) with this pattern, positive.
    """

    responses: NDArray[np.int_]
    frequency: float = 1.0

    def __post_init__(self) -> None:
        responses = np.array(self.responses, dtype=np.int_)
        if responses.ndim != 1:
            raise ValueError(f"A response pattern must be 1D, got {responses.ndim}D")
        if np.any(responses < MISSING):
            raise ValueError(
                f"Response codes must be non-negative or the missing code {MISSING}"
            )
        if not self.frequency > 0:
            raise ValueError(f"Pattern frequency must be positive, got {self.frequency}")
        responses.setflags(write=False)
        object.__setattr__(self, "responses", responses)
        object.__setattr__(self, "frequency", float(self.frequency))

    @property
    def n_items(self) -> int:
        return self.responses.size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResponsePattern):
            return NotImplemented
        return self.frequency == other.frequency and np.array_equal(
            self.responses, other.responses
        )

    def __hash__(self) -> int:
        return hash((self.responses.tobytes(), self.frequency))


class ResponseData:
    """Frequency-aggregated response patterns for a fixed set of items.

    Parameters
    ----------
    patterns : sequence of ResponsePattern
        Unique patterns in the order the E-step will visit them.
    n_items : int, optional
        Expected pattern length; inferred from the first pattern if omitted.

    Examples
    --------
    >>> data = ResponseData.from_matrix([[1, 0], [1, 0], [0, 1]])
    >>> data.n_patterns, data.n_persons
    (2, 3.0)
    """

    def __init__(
        self,
        patterns: Sequence[ResponsePattern],
        n_items: int | None = None,
    ) -> None:
        patterns = list(patterns)
        if not patterns:
            raise ValueError("ResponseData needs at least one pattern")
        if n_items is None:
            n_items = patterns[0].n_items
        for i, pattern in enumerate(patterns):
            if pattern.n_items != n_items:
                raise ValueError(
                    f"Pattern {i} has {pattern.n_items} responses, expected {n_items}"
                )
        self._patterns = tuple(patterns)
        self._n_items = int(n_items)
        self._matrix = np.vstack([p.responses for p in patterns]).astype(np.int_)
        self._matrix.setflags(write=False)
        self._frequencies = np.array([p.frequency for p in patterns], dtype=np.float64)
        self._frequencies.setflags(write=False)

    @classmethod
    def from_matrix(cls, responses) -> ResponseData:
        """Collapse a person-by-item matrix into unique patterns with counts.

        Patterns are ordered lexicographically, so the result does not depend
        on the row order of ``responses``.
        """
        responses = validate_responses(responses)
        unique, counts = np.unique(responses, axis=0, return_counts=True)
        patterns = [ResponsePattern(row, float(c)) for row, c in zip(unique, counts)]
        return cls(patterns, n_items=responses.shape[1])

    @classmethod
    def from_patterns(cls, patterns, frequencies=None) -> ResponseData:
        """Build from a matrix of unique patterns and a frequency per row."""
        patterns = validate_responses(patterns)
        if frequencies is None:
            frequencies = np.ones(patterns.shape[0])
        frequencies = np.asarray(frequencies, dtype=np.float64)
        if frequencies.shape != (patterns.shape[0],):
            raise ValueError(
                f"Expected {patterns.shape[0]} frequencies, got shape {frequencies.shape}"
            )
        return cls(
            [ResponsePattern(row, f) for row, f in zip(patterns, frequencies)],
            n_items=patterns.shape[1],
        )

    @property
    def patterns(self) -> tuple[ResponsePattern, ...]:
        return self._patterns

    @property
    def matrix(self) -> ResponseMatrix:
        """Read-only (n_patterns, n_items) matrix of category codes."""
        return self._matrix

    @property
    def frequencies(self) -> NDArray[np.float64]:
        return self._frequencies

    @property
    def n_patterns(self) -> int:
        return len(self._patterns)

    @property
    def n_persons(self) -> float:
        return float(self._frequencies.sum())

    @property
    def n_items(self) -> int:
        return self._n_items

    def sum_scores(self) -> NDArray[np.float64]:
        """Sum of non-missing category codes for each pattern."""
        return np.where(self._matrix == MISSING, 0, self._matrix).sum(axis=1).astype(np.float64)

    def max_categories(self) -> NDArray[np.int_]:
        """Largest observed category code per item (-1 if never observed)."""
        return self._matrix.max(axis=0)

    def expand(self) -> NDArray[np.int_]:
        """Person-level matrix, one row per person (frequencies must be integral)."""
        counts = np.rint(self._frequencies).astype(np.int_)
        if not np.allclose(counts, self._frequencies):
            raise ValueError("Cannot expand patterns with non-integer frequencies")
        return np.repeat(self._matrix, counts, axis=0)

    def __len__(self) -> int:
        return self.n_patterns

    def __repr__(self) -> str:
        return (
            f"ResponseData(n_patterns={self.n_patterns}, n_items={self.n_items}, "
            f"n_persons={self.n_persons:g})"
        )


def as_response_data(responses) -> ResponseData:
    if isinstance(responses, ResponseData):
        return responses
    return ResponseData.from_matrix(responses)


def validate_responses(
    responses,
    n_items: int | None = None,
) -> ResponseMatrix:
    """Validate and preprocess a response matrix.

    Parameters
    ----------
    responses : array-like of shape (n_persons, n_items)
        Response matrix; missing values coded as ``MISSING`` (-1).
    n_items : int, optional
        Expected number of items. If provided, validates column count.

    Returns
    -------
    ndarray of shape (n_persons, n_items)
        Validated response matrix with integer dtype.

    Raises
    ------
    ValueError
        If responses are invalid (wrong shape, empty, negative codes).
    """
    responses = np.asarray(responses)

    if responses.ndim != 2:
        raise ValueError(f"responses must be 2D array, got {responses.ndim}D")

    n_persons, n_cols = responses.shape

    if n_persons == 0 or n_cols == 0:
        raise ValueError("responses cannot be empty")

    if n_items is not None and n_cols != n_items:
        raise ValueError(f"responses has {n_cols} items, expected {n_items}")

    if np.issubdtype(responses.dtype, np.floating):
        if not np.all(np.isfinite(responses) | np.isnan(responses)):
            raise ValueError("responses contains infinite values")
        responses = np.where(np.isnan(responses), MISSING, responses)
        if not np.allclose(responses, np.round(responses)):
            raise ValueError("responses must be integer category codes")

    responses = responses.astype(np.int_)

    if np.any(responses < MISSING):
        raise ValueError(
            f"responses contains negative values other than missing code ({MISSING})"
        )

    return responses
