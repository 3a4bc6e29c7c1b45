"""Tests for the fit_mmle entry point."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from irtem import GradedResponseItem, LogisticItem, PartialCreditItem, fit_mmle


class TestFitMMLE:
    def test_lsat7_2pl(self, lsat7, lsat7_2pl):
        result = fit_mmle(lsat7["data"], model="2PL", tol=1e-5)
        assert result.converged
        assert result.item_names == [f"Item_{j}" for j in range(1, 6)]
        for fitted, reference in zip(result.items, lsat7_2pl.items):
            assert_allclose(fitted.discrimination, reference.discrimination, atol=1e-3)
            assert_allclose(fitted.difficulty, reference.difficulty, atol=1e-3)

    def test_raw_matrix(self, binary_responses):
        result = fit_mmle(binary_responses["responses"], model="1PL")
        assert all(isinstance(item, LogisticItem) for item in result.items)
        assert result.n_observations == 400
        assert result.n_parameters == 6

    def test_item_names(self, lsat7):
        names = list("ABCDE")
        result = fit_mmle(lsat7["data"], max_iter=3, item_names=names)
        assert list(result.coef().index) == names

    def test_item_names_length(self, lsat7):
        with pytest.raises(ValueError, match="Expected 5 item names"):
            fit_mmle(lsat7["data"], item_names=["A", "B"])

    def test_unknown_model(self, lsat7):
        with pytest.raises(ValueError, match="Unknown model"):
            fit_mmle(lsat7["data"], model="5PL")

    def test_grm_infers_categories(self, polytomous_responses):
        result = fit_mmle(polytomous_responses["responses"], model="GRM")
        assert all(isinstance(item, GradedResponseItem) for item in result.items)
        assert all(item.n_categories == 4 for item in result.items)
        assert result.n_parameters == 20

    def test_pcm_explicit_categories(self, polytomous_responses):
        result = fit_mmle(
            polytomous_responses["responses"], model="PCM", n_categories=4, max_iter=50
        )
        assert all(isinstance(item, PartialCreditItem) for item in result.items)
        assert np.isfinite(result.log_likelihood)

    def test_too_few_categories(self):
        with pytest.raises(ValueError, match="at least 2"):
            fit_mmle(np.zeros((5, 3), dtype=int), model="GPCM")

    def test_empirical_density(self, lsat7):
        result = fit_mmle(lsat7["data"], latent_density="empirical", max_iter=20)
        assert result.n_parameters == 10 + result.quadrature.n_points - 1
