"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from irtem import EMEstimator, LogisticItem, compute_starting_values, load_dataset


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


@pytest.fixture(scope="session")
def lsat7():
    """LSAT7 pattern table (1000 persons, 5 binary items)."""
    return load_dataset("LSAT7")


@pytest.fixture(scope="session")
def lsat7_2pl(lsat7):
    """2PL fit of LSAT7 in the logistic metric (D = 1)."""
    items = [LogisticItem("2PL", name=f"Item{j + 1}") for j in range(5)]
    compute_starting_values(lsat7["data"], items)
    estimator = EMEstimator(max_iter=500, tol=1e-5)
    return estimator.fit(items, lsat7["data"])


@pytest.fixture
def binary_responses(rng):
    """Small 2PL response matrix with known generating parameters."""
    n_persons = 400
    discrimination = np.array([0.8, 1.2, 1.5, 1.0, 0.7, 1.3])
    difficulty = np.array([-1.0, -0.5, 0.0, 0.3, 0.8, 1.2])

    theta = rng.standard_normal(n_persons)
    probs = 1 / (1 + np.exp(-discrimination * (theta[:, None] - difficulty)))
    responses = (rng.random(probs.shape) < probs).astype(int)

    return {
        "responses": responses,
        "theta": theta,
        "discrimination": discrimination,
        "difficulty": difficulty,
    }


@pytest.fixture
def polytomous_responses(rng):
    """GRM-like response matrix with four ordered categories."""
    n_persons = 300
    n_items = 5
    thresholds = np.array([-1.0, 0.0, 1.0])
    theta = rng.standard_normal(n_persons)

    cumulative = 1 / (1 + np.exp(-1.2 * (theta[:, None, None] - thresholds[None, None, :])))
    u = rng.random((n_persons, n_items))
    responses = (u[:, :, None] < cumulative).sum(axis=2)

    return {"responses": responses.astype(int), "theta": theta, "n_categories": 4}
