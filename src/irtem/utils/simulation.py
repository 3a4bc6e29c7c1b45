"""Data simulation utilities for IRT models."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from irtem.constants import LOGISTIC_D, MISSING
from irtem.typing import ModelType, ThetaArray

if TYPE_CHECKING:
    from irtem.models.base import BaseItemModel


def simulate_responses(
    items: Sequence[BaseItemModel],
    theta: ThetaArray | None = None,
    n_persons: int = 500,
    missing_rate: float = 0.0,
    seed: int | None = None,
) -> NDArray[np.int_]:
    """Simulate category responses from a set of item models.

    Parameters
    ----------
    items : sequence of BaseItemModel
        Items with their generating parameter values.
    theta : ndarray of shape (n_persons,), optional
        Person trait values. If None, sampled from N(0, 1).
    n_persons : int, default=500
        Number of persons when ``theta`` is not given.
    missing_rate : float, default=0.0
        Probability that a response is replaced by the missing code (-1).
    seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    ndarray of shape (n_persons, n_items)
        Simulated response matrix.

    Examples
    --------
    >>> items = generate_items("2PL", n_items=10, seed=1)
    >>> responses = simulate_responses(items, n_persons=500, seed=2)
    >>> responses.shape
    (500, 10)
    """
    if not 0.0 <= missing_rate < 1.0:
        raise ValueError("missing_rate must be in [0, 1)")
    rng = np.random.default_rng(seed)

    if theta is None:
        if n_persons < 1:
            raise ValueError("n_persons must be at least 1")
        theta = rng.standard_normal(n_persons)
    else:
        theta = np.asarray(theta, dtype=np.float64)
        if theta.ndim != 1:
            raise ValueError("theta must be 1D")

    responses = np.empty((theta.size, len(items)), dtype=np.int_)
    for j, item in enumerate(items):
        probs = item.category_probabilities(theta)
        cumulative = np.cumsum(probs, axis=1)
        u = rng.random(theta.size)
        responses[:, j] = np.minimum(
            (u[:, None] > cumulative).sum(axis=1), item.n_categories - 1
        )

    if missing_rate > 0:
        responses[rng.random(responses.shape) < missing_rate] = MISSING

    return responses


def generate_items(
    model: ModelType = "2PL",
    n_items: int = 20,
    n_categories: int = 2,
    scaling_constant: float = LOGISTIC_D,
    seed: int | None = None,
) -> list[BaseItemModel]:
    """Draw item models with plausible random parameters.

    Discrimination is sampled from LogN(0, 0.25), difficulty from N(0, 1);
    polytomous locations are sorted normal draws. 3PL/4PL items get a
    guessing value of 0.2 and 4PL items an upper asymptote of 0.95.
    """
    from irtem.models.dichotomous import LogisticItem
    from irtem.models.polytomous import (
        GeneralizedPartialCreditItem,
        GradedResponseItem,
        PartialCreditItem,
    )

    rng = np.random.default_rng(seed)
    discrimination = rng.lognormal(0, 0.25, size=n_items)
    items: list[BaseItemModel] = []

    for j in range(n_items):
        name = f"Item_{j + 1}"
        if model in ("1PL", "2PL", "3PL", "4PL"):
            items.append(
                LogisticItem(
                    model,
                    discrimination=1.0 if model == "1PL" else discrimination[j],
                    difficulty=rng.normal(0, 1),
                    guessing=0.2 if model in ("3PL", "4PL") else 0.0,
                    slipping=0.95 if model == "4PL" else 1.0,
                    scaling_constant=scaling_constant,
                    name=name,
                )
            )
            continue

        if n_categories < 2:
            raise ValueError("n_categories must be at least 2")
        locations = np.sort(rng.normal(0, 1, size=n_categories - 1))
        # Keep GRM thresholds strictly ordered
        locations += 0.05 * np.arange(n_categories - 1)
        if model == "GRM":
            item = GradedResponseItem(
                locations, discrimination[j], scaling_constant=scaling_constant, name=name
            )
        elif model == "GPCM":
            item = GeneralizedPartialCreditItem(
                locations, discrimination[j], scaling_constant=scaling_constant, name=name
            )
        elif model == "PCM":
            item = PartialCreditItem(locations, scaling_constant=scaling_constant, name=name)
        else:
            raise ValueError(f"Unknown model: {model}")
        items.append(item)

    return items
