"""Tests for the GRM, GPCM and PCM items."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from irtem.estimation.priors import NormalPrior
from irtem.models.polytomous import (
    GeneralizedPartialCreditItem,
    GradedResponseItem,
    PartialCreditItem,
)

THETA = np.linspace(-6, 6, 121)


def numeric_gradient(item, theta, category, h=1e-6):
    x = item.free_parameters
    grad = np.zeros((theta.size, x.size))
    for i in range(x.size):
        up, down = x.copy(), x.copy()
        up[i] += h
        down[i] -= h
        p_up = item.probabilities_at(theta, item.unpack(up))[:, category]
        p_down = item.probabilities_at(theta, item.unpack(down))[:, category]
        grad[:, i] = (p_up - p_down) / (2 * h)
    return grad


@pytest.fixture(params=["GRM", "GPCM", "PCM"])
def item(request):
    if request.param == "GRM":
        return GradedResponseItem([-1.0, 0.0, 1.2], discrimination=1.5)
    if request.param == "GPCM":
        return GeneralizedPartialCreditItem([-0.8, 0.6, 0.1], discrimination=0.9)
    return PartialCreditItem([-1.5, 0.0, 0.7], scaling_constant=1.7)


class TestOrderedCategoryProbabilities:
    def test_normalized(self, item):
        probs = item.category_probabilities(THETA)
        assert probs.shape == (THETA.size, 4)
        assert np.all(probs >= 0)
        assert_allclose(probs.sum(axis=1), 1.0, atol=1e-9)

    def test_log_probabilities_agree(self, item):
        assert_allclose(
            np.exp(item.log_probabilities(THETA)), item.category_probabilities(THETA), rtol=1e-8
        )

    def test_expected_value_increasing(self, item):
        assert np.all(np.diff(item.expected_value(THETA)) > 0)

    def test_saturation(self, item):
        probs = item.category_probabilities(np.array([-np.inf, np.inf]))
        assert np.all(np.isfinite(probs))
        assert_allclose(probs[0], [1.0, 0.0, 0.0, 0.0], atol=1e-12)
        assert_allclose(probs[1], [0.0, 0.0, 0.0, 1.0], atol=1e-12)
        assert np.all(np.isfinite(item.gradient(np.array([-np.inf, np.inf]), 2)))

    def test_invalid_category(self, item):
        with pytest.raises(ValueError, match="out of range"):
            item.probability(0.0, 4)


class TestOrderedCategoryDerivatives:
    @pytest.mark.parametrize("category", [0, 1, 2, 3])
    def test_gradient_matches_finite_difference(self, item, category):
        theta = np.linspace(-3, 3, 13)
        assert_allclose(
            item.gradient(theta, category), numeric_gradient(item, theta, category), atol=1e-6
        )

    def test_gradient_sums_to_zero(self, item):
        grad = item.probability_gradient_at(THETA, item.parameters)
        assert_allclose(grad.sum(axis=1), 0.0, atol=1e-12)

    def test_deriv_theta_matches_finite_difference(self, item):
        h = 1e-6
        numeric = (item.expected_value(THETA + h) - item.expected_value(THETA - h)) / (2 * h)
        assert_allclose(item.deriv_theta(THETA), numeric, atol=1e-6)

    def test_information_non_negative(self, item):
        info = item.information(THETA)
        assert info.shape == THETA.shape
        assert np.all(info >= 0)

    def test_gpcm_information_is_scaled_variance(self):
        item = GeneralizedPartialCreditItem([-0.5, 0.5], discrimination=1.3)
        probs = item.category_probabilities(THETA)
        k = np.arange(3)
        mean = probs @ k
        variance = probs @ k**2 - mean**2
        assert_allclose(item.information(THETA), 1.3**2 * variance, rtol=1e-8)


class TestOrderedCategoryScale:
    def test_scale_and_invert(self, item):
        original = item.free_parameters
        item.scale(0.5, 1.6)
        item.scale(-0.5 / 1.6, 1 / 1.6)
        assert_allclose(item.free_parameters, original, atol=1e-9)

    def test_scale_preserves_response_function(self, item):
        before = item.category_probabilities(THETA)
        item.scale(-0.3, 0.8)
        assert_allclose(item.category_probabilities(-0.3 + 0.8 * THETA), before, atol=1e-12)


class TestGradedResponseItem:
    def test_default_thresholds(self):
        item = GradedResponseItem(n_categories=5)
        assert item.n_categories == 5
        assert_allclose(item.thresholds, np.linspace(-1, 1, 4))

    def test_requires_thresholds_or_categories(self):
        with pytest.raises(ValueError, match="n_categories must be given"):
            GradedResponseItem()

    def test_unordered_thresholds(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            GradedResponseItem([0.5, -0.5])

    def test_accept_sorts_thresholds(self):
        item = GradedResponseItem([-1.0, 0.0, 1.0])
        item.set_proposal(np.array([1.0, 0.5, -0.5, 1.0]))
        item.accept_proposal()
        assert_allclose(item.thresholds, [-0.5, 0.5, 1.0])

    def test_matches_cumulative_difference(self):
        item = GradedResponseItem([-1.0, 1.0], discrimination=2.0)
        cumulative = 1 / (1 + np.exp(-2.0 * (THETA[:, None] - np.array([-1.0, 1.0]))))
        expected = np.column_stack(
            [1 - cumulative[:, 0], cumulative[:, 0] - cumulative[:, 1], cumulative[:, 1]]
        )
        assert_allclose(item.category_probabilities(THETA), expected, atol=1e-12)

    def test_parameter_names(self):
        item = GradedResponseItem([-1.0, 1.0])
        assert item.free_parameter_names == ["discrimination", "threshold_1", "threshold_2"]
        assert list(item.parameter_dict()) == item.free_parameter_names

    def test_threshold_prior(self):
        item = GradedResponseItem([-1.0, 1.0]).set_prior("thresholds", NormalPrior(0, 2))
        values = np.array([1.0, -1.0, 1.0])
        assert_allclose(item.log_prior(values), -0.25)
        assert_allclose(item.log_prior_gradient(values), [0.0, 0.25, -0.25])

    def test_working_round_trip(self):
        item = GradedResponseItem([-1.2, 0.3, 0.35, 2.0], discrimination=1.4)
        values = item.free_parameters
        assert_allclose(item.from_working(item.to_working(values)), values, atol=1e-12)

    def test_working_values_are_ordered(self, rng):
        item = GradedResponseItem(n_categories=5)
        for _ in range(20):
            working = rng.normal(scale=3.0, size=item.n_free)
            thresholds = item.from_working(working)[1:]
            assert np.all(np.diff(thresholds) > 0)

    def test_working_jacobian(self):
        item = GradedResponseItem([-1.0, 0.0, 1.5])
        working = item.to_working(item.free_parameters)
        h = 1e-6
        numeric = np.zeros((working.size, working.size))
        for i in range(working.size):
            up, down = working.copy(), working.copy()
            up[i] += h
            down[i] -= h
            numeric[:, i] = (item.from_working(up) - item.from_working(down)) / (2 * h)
        assert_allclose(item.working_jacobian(working), numeric, atol=1e-6)

    def test_working_bounds_cover_gaps(self):
        item = GradedResponseItem(n_categories=4)
        bounds = item.working_bounds()
        assert len(bounds) == item.n_free
        assert bounds[2][0] < 0 < bounds[2][1]


class TestPartialCreditItems:
    def test_gpcm_allows_unordered_steps(self):
        item = GeneralizedPartialCreditItem([0.5, -0.5])
        assert_allclose(item.steps, [0.5, -0.5])

    def test_two_categories_reduce_to_2pl(self):
        item = GeneralizedPartialCreditItem([0.3], discrimination=1.4)
        expected = 1 / (1 + np.exp(-1.4 * (THETA - 0.3)))
        assert_allclose(item.probability(THETA, 1), expected, rtol=1e-10)

    def test_pcm_discrimination_not_free(self):
        item = PartialCreditItem(n_categories=4)
        assert item.free_parameter_names == ["step_1", "step_2", "step_3"]
        item.set_proposal(np.array([0.1, 0.2, 0.3]))
        item.accept_proposal()
        assert item.discrimination == 1.0
        assert_allclose(item.steps, [0.1, 0.2, 0.3])

    def test_working_space_is_identity(self):
        item = GeneralizedPartialCreditItem([0.5, -0.5], discrimination=1.2)
        values = item.free_parameters
        assert_allclose(item.to_working(values), values)
        assert_allclose(item.working_jacobian(values), np.eye(3))
        assert item.working_bounds() == item.bounds()

    def test_step_prior_key(self):
        item = GeneralizedPartialCreditItem(n_categories=3)
        item.set_prior("steps", NormalPrior())
        with pytest.raises(ValueError, match="Unknown parameter"):
            item.set_prior("thresholds", NormalPrior())

    def test_invalid_discrimination(self):
        with pytest.raises(ValueError, match="discrimination must be positive"):
            GeneralizedPartialCreditItem([0.0], discrimination=-1.0)
