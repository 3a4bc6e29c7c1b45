"""Tests for the 1PL-4PL logistic item."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from irtem.estimation.priors import BetaPrior, NormalPrior
from irtem.models.dichotomous import LogisticItem

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


def make_item(model_type):
    return LogisticItem(
        model_type,
        discrimination=1.3,
        difficulty=0.4,
        guessing=0.15 if model_type in ("3PL", "4PL") else 0.0,
        slipping=0.9 if model_type == "4PL" else 1.0,
    )


class TestLogisticItemProbabilities:
    def test_half_way_at_difficulty(self):
        item = LogisticItem("2PL", discrimination=1.2, difficulty=-0.5)
        assert_allclose(item.probability(-0.5, 1), 0.5)

    def test_asymptotes(self):
        item = LogisticItem("4PL", discrimination=2.0, guessing=0.2, slipping=0.9)
        assert_allclose(item.probability(-50.0, 1), 0.2, atol=1e-12)
        assert_allclose(item.probability(50.0, 1), 0.9, atol=1e-12)
        assert_allclose(item.probability(0.0, 1), 0.55)

    @pytest.mark.parametrize("model_type", ["1PL", "2PL", "3PL", "4PL"])
    def test_categories_sum_to_one(self, model_type):
        probs = make_item(model_type).category_probabilities(THETA)
        assert probs.shape == (THETA.size, 2)
        assert np.all(probs >= 0)
        assert_allclose(probs.sum(axis=1), 1.0, atol=1e-9)

    def test_matches_logistic_formula(self):
        item = LogisticItem(
            "3PL", discrimination=0.8, difficulty=0.5, guessing=0.25, scaling_constant=1.7
        )
        expected = 0.25 + 0.75 / (1 + np.exp(-1.7 * 0.8 * (THETA - 0.5)))
        assert_allclose(item.probability(THETA, 1), expected, rtol=1e-10)

    def test_log_probabilities_consistent(self):
        item = make_item("4PL")
        assert_allclose(
            np.exp(item.log_probabilities(THETA)), item.category_probabilities(THETA), rtol=1e-12
        )

    def test_expected_value_increasing(self):
        ev = LogisticItem("2PL", discrimination=0.9, difficulty=1.0).expected_value(THETA)
        assert np.all(np.diff(ev) > 0)

    def test_scalar_and_array_theta(self):
        item = make_item("2PL")
        assert isinstance(item.probability(0.3, 1), float)
        assert item.probability(np.array([0.3, 0.4]), 1).shape == (2,)
        with pytest.raises(ValueError, match="scalar or 1D"):
            item.probability(np.zeros((2, 2)), 1)


class TestLogisticItemSaturation:
    @pytest.mark.parametrize("model_type", ["2PL", "3PL", "4PL"])
    def test_infinite_theta(self, model_type):
        item = make_item(model_type)
        probs = item.category_probabilities(np.array([-np.inf, np.inf]))
        assert np.all(np.isfinite(probs))
        p = item.parameters
        assert_allclose(probs[0, 1], p.guessing, atol=1e-12)
        assert_allclose(probs[1, 1], p.slipping, atol=1e-12)

    def test_huge_discrimination(self):
        item = LogisticItem("2PL", discrimination=1e6, difficulty=0.0)
        probs = item.category_probabilities(np.array([-1.0, 1e-9, 1.0]))
        assert np.all(np.isfinite(probs))
        assert_allclose(probs[:, 1], [0.0, 0.5 + 0.25e-3, 1.0], atol=1e-6)

    def test_gradient_finite_at_extremes(self):
        item = make_item("4PL")
        grad = item.gradient(np.array([-np.inf, 0.0, np.inf]), 1)
        assert np.all(np.isfinite(grad))


class TestLogisticItemDerivatives:
    @pytest.mark.parametrize("model_type", ["1PL", "2PL", "3PL", "4PL"])
    @pytest.mark.parametrize("category", [0, 1])
    def test_gradient_matches_finite_difference(self, model_type, category):
        item = make_item(model_type)
        theta = np.linspace(-3, 3, 13)
        assert_allclose(
            item.gradient(theta, category), numeric_gradient(item, theta, category), atol=1e-6
        )

    def test_gradient_shape(self):
        item = make_item("3PL")
        assert item.gradient(0.0, 1).shape == (3,)
        assert item.gradient(THETA, 1).shape == (THETA.size, 3)

    def test_deriv_theta_matches_finite_difference(self):
        item = make_item("4PL")
        h = 1e-6
        numeric = (item.expected_value(THETA + h) - item.expected_value(THETA - h)) / (2 * h)
        assert_allclose(item.deriv_theta(THETA), numeric, atol=1e-7)

    def test_information_2pl(self):
        item = LogisticItem("2PL", discrimination=1.4, difficulty=0.2, scaling_constant=1.7)
        p = item.probability(THETA, 1)
        assert_allclose(item.information(THETA), (1.7 * 1.4) ** 2 * p * (1 - p), rtol=1e-10)

    @pytest.mark.parametrize("model_type", ["1PL", "2PL", "3PL", "4PL"])
    def test_information_matches_generic_formula(self, model_type):
        item = make_item(model_type)
        theta = np.linspace(-4, 4, 17)
        probs = item.category_probabilities(theta)
        dprobs = item._theta_derivatives(theta)
        expected = (dprobs**2 / probs).sum(axis=1)
        info = item.information(theta)
        assert np.all(info >= 0)
        assert_allclose(info, expected, rtol=1e-8)

    def test_information_scalar(self):
        assert isinstance(make_item("2PL").information(0.0), float)


class TestLogisticItemValidation:
    def test_unknown_model_type(self):
        with pytest.raises(ValueError, match="Unknown model_type"):
            LogisticItem("5PL")

    def test_non_positive_discrimination(self):
        with pytest.raises(ValueError, match="discrimination must be positive"):
            LogisticItem("2PL", discrimination=0.0)

    def test_guessing_above_slipping(self):
        with pytest.raises(ValueError, match="guessing must be less than slipping"):
            LogisticItem("4PL", guessing=0.6, slipping=0.5)

    def test_asymptote_range(self):
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            LogisticItem("3PL", guessing=-0.1)

    def test_scaling_constant(self):
        with pytest.raises(ValueError, match="scaling_constant must be positive"):
            LogisticItem("2PL", scaling_constant=0.0)

    @pytest.mark.parametrize("category", [-1, 2])
    def test_invalid_category(self, category):
        item = make_item("2PL")
        with pytest.raises(ValueError, match="out of range"):
            item.probability(0.0, category)
        with pytest.raises(ValueError, match="out of range"):
            item.gradient(0.0, category)

    def test_free_parameters_by_model(self):
        assert LogisticItem("1PL").free_parameter_names == ["difficulty"]
        assert LogisticItem("2PL").free_parameter_names == ["discrimination", "difficulty"]
        assert LogisticItem("3PL").n_free == 3
        assert LogisticItem("4PL").free_parameter_names[-1] == "slipping"

    def test_unpack_shape(self):
        with pytest.raises(ValueError, match="Expected 2 free parameters"):
            LogisticItem("2PL").unpack(np.zeros(3))


class TestLogisticItemProposal:
    def test_proposal_does_not_touch_current(self):
        item = LogisticItem("2PL")
        item.set_proposal(np.array([1.5, 0.2]))
        assert item.discrimination == 1.0
        assert item.proposal.discrimination == 1.5

    def test_accept_returns_max_change(self):
        item = LogisticItem("2PL")
        item.set_proposal(np.array([1.5, -0.7]))
        assert item.accept_proposal() == pytest.approx(0.7)
        assert item.discrimination == 1.5
        assert item.difficulty == -0.7
        assert item.proposal == item.parameters
        assert item.accept_proposal() == 0.0

    def test_fixed_item_ignores_proposal(self):
        item = LogisticItem("2PL", discrimination=1.1, fixed=True)
        item.set_proposal(np.array([2.0, 1.0]))
        assert item.accept_proposal() == 0.0
        assert item.discrimination == 1.1

    def test_accept_clamps_asymptotes(self):
        item = LogisticItem("3PL")
        item.set_proposal(np.array([1.0, 0.0, -0.05]))
        item.accept_proposal()
        assert item.guessing == 0.0

    def test_accept_resolves_crossed_asymptotes(self):
        item = LogisticItem("4PL", guessing=0.2, slipping=0.9)
        item.set_proposal(np.array([1.0, 0.0, 0.7, 0.6]))
        item.accept_proposal()
        assert item.guessing <= item.slipping

    def test_copy_is_independent(self):
        item = LogisticItem("2PL", name="A")
        clone = item.copy()
        clone.set_proposal(np.array([2.0, 1.0]))
        clone.accept_proposal()
        assert item.discrimination == 1.0
        assert clone.name == "A"


class TestLogisticItemScale:
    def test_scale_and_invert(self):
        item = LogisticItem("2PL", discrimination=1.2, difficulty=0.5)
        item.scale(0.3, 2.0)
        assert_allclose([item.discrimination, item.difficulty], [0.6, 1.3])
        item.scale(-0.15, 0.5)
        assert_allclose([item.discrimination, item.difficulty], [1.2, 0.5], atol=1e-9)

    def test_scale_preserves_response_function(self):
        item = LogisticItem("3PL", discrimination=0.9, difficulty=-0.4, guessing=0.2)
        before = item.probability(THETA, 1)
        item.scale(1.0, 1.5)
        assert_allclose(item.probability(1.0 + 1.5 * THETA, 1), before, rtol=1e-10)

    def test_scale_standard_errors(self):
        item = LogisticItem("3PL")
        item.set_standard_errors(np.array([0.1, 0.2, 0.05]))
        item.scale(1.0, 2.0)
        se = item.standard_errors
        assert_allclose([se["discrimination"], se["difficulty"], se["guessing"]], [0.05, 0.4, 0.05])

    def test_non_positive_slope(self):
        with pytest.raises(ValueError, match="slope must be positive"):
            LogisticItem("2PL").scale(0.0, -1.0)


class TestLogisticItemPriors:
    def test_log_prior_uses_free_parameters(self):
        item = LogisticItem("3PL")
        prior = BetaPrior(5, 17)
        item.set_prior("guessing", prior)
        values = np.array([1.0, 0.0, 0.2])
        assert_allclose(item.log_prior(values), prior.log_density(0.2))
        assert_allclose(item.log_prior_gradient(values), [0.0, 0.0, prior.derivative(0.2)])

    def test_prior_on_fixed_parameter_is_inactive(self):
        item = LogisticItem("1PL")
        item.set_prior("discrimination", NormalPrior(1.0, 0.1))
        assert item.log_prior(np.array([0.3])) == 0.0

    def test_boundary_value_stays_finite(self):
        item = LogisticItem("3PL").set_prior("guessing", BetaPrior(5, 17))
        assert np.isfinite(item.log_prior(np.array([1.0, 0.0, 0.0])))

    def test_remove_prior(self):
        item = LogisticItem("2PL").set_prior("difficulty", NormalPrior())
        assert "difficulty" in item.priors
        item.set_prior("difficulty", None)
        assert item.priors == {}

    def test_unknown_parameter(self):
        with pytest.raises(ValueError, match="Unknown parameter"):
            LogisticItem("2PL").set_prior("thresholds", NormalPrior())

    def test_repr(self):
        text = repr(LogisticItem("2PL", discrimination=1.5, fixed=True))
        assert "LogisticItem" in text
        assert "discrimination=1.5000" in text
        assert "fixed" in text
