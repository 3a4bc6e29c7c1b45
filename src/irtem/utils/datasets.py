"""Sample datasets for IRT analysis.

This module provides classic IRT datasets commonly used in psychometric research.
Both are stored as the 32 binary patterns of five items (in binary counting
order) with their observed frequencies.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from irtem.utils.data import ResponseData


def load_dataset(name: str) -> dict[str, Any]:
    """Load a sample dataset by name.

    Parameters
    ----------
    name : str
        Name of the dataset (case-insensitive). Available datasets:
        - 'LSAT6': Law School Admission Test, Section 6 (1000 persons, 5 items)
        - 'LSAT7': Law School Admission Test, Section 7 (1000 persons, 5 items)

    Returns
    -------
    dict
        Dictionary containing:
        - 'patterns': Observed response patterns (NDArray)
        - 'frequencies': Number of persons per pattern (NDArray)
        - 'data': The same table as ``ResponseData``
        - 'description': Dataset description
        - 'n_persons': Number of respondents
        - 'n_items': Number of items
        - 'item_names': Item labels
        - 'source': Citation/reference
    """
    datasets = {
        "LSAT6": _load_lsat6,
        "LSAT7": _load_lsat7,
    }

    name_lower = name.lower()
    for key, loader in datasets.items():
        if key.lower() == name_lower:
            return loader()

    available = ", ".join(datasets.keys())
    raise ValueError(f"Unknown dataset: {name}. Available: {available}")


def list_datasets() -> list[str]:
    """List available dataset names."""
    return ["LSAT6", "LSAT7"]


def _binary_patterns(n_items: int) -> NDArray[np.int_]:
    codes = np.arange(2**n_items)
    shifts = np.arange(n_items - 1, -1, -1)
    return ((codes[:, None] >> shifts[None, :]) & 1).astype(np.int_)


def _table(frequencies: list[int], **metadata: Any) -> dict[str, Any]:
    patterns = _binary_patterns(5)
    frequencies = np.asarray(frequencies, dtype=np.int_)
    observed = frequencies > 0
    patterns = patterns[observed]
    frequencies = frequencies[observed]
    return {
        "patterns": patterns,
        "frequencies": frequencies,
        "data": ResponseData.from_patterns(patterns, frequencies),
        "n_persons": int(frequencies.sum()),
        "n_items": patterns.shape[1],
        "item_names": [f"Item{i + 1}" for i in range(patterns.shape[1])],
        **metadata,
    }


def _load_lsat6() -> dict[str, Any]:
    """LSAT Section 6 data from Bock & Lieberman (1970).

    5 binary items from the Law School Admission Test. Two of the 32
    patterns were never observed and are omitted.
    """
    # fmt: off
    frequencies = [
        3, 6, 2, 11, 1, 1, 3, 4, 1, 8, 0, 16, 0, 3, 2, 15,
        10, 29, 14, 81, 3, 28, 15, 80, 16, 56, 21, 173, 11, 61, 28, 298,
    ]
    # fmt: on
    return _table(
        frequencies,
        description="LSAT Section 6: 5 binary items from Law School Admission Test",
        source=(
            "Bock, R. D., & Lieberman, M. (1970). Fitting a response model for n "
            "dichotomously scored items. Psychometrika, 35, 179-197."
        ),
    )


def _load_lsat7() -> dict[str, Any]:
    """LSAT Section 7 data from Bock & Aitkin (1981).

    5 binary items from the Law School Admission Test.
    """
    # fmt: off
    frequencies = [
        12, 19, 1, 7, 3, 19, 3, 17, 10, 5, 3, 7, 7, 23, 8, 28,
        7, 39, 11, 34, 14, 51, 15, 90, 6, 25, 7, 35, 18, 136, 32, 308,
    ]
    # fmt: on
    return _table(
        frequencies,
        description="LSAT Section 7: 5 binary items from Law School Admission Test",
        source=(
            "Bock, R. D., & Aitkin, M. (1981). Marginal maximum likelihood estimation "
            "of item parameters. Psychometrika, 46, 443-459."
        ),
    )
