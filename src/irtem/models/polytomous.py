"""Polytomous IRT models: GRM, GPCM, PCM."""

import numpy as np
from numpy.typing import NDArray

from irtem._core import log_sigmoid, log_softmax, sigmoid
from irtem.constants import (
    DISCRIMINATION_BOUNDS,
    LOCATION_BOUNDS,
    LOGISTIC_D,
    THRESHOLD_GAP_BOUNDS,
)
from irtem.models.base import BaseItemModel, ItemParameters

_LOGIT_CLIP = 700.0
_STEP_CLIP = 1e6


def _default_locations(n_categories: int | None) -> NDArray[np.float64]:
    if n_categories is None:
        raise ValueError("Either thresholds/steps or n_categories must be given")
    if n_categories < 2:
        raise ValueError("n_categories must be at least 2")
    if n_categories == 2:
        return np.zeros(1)
    return np.linspace(-1.0, 1.0, n_categories - 1)


class _OrderedCategoryItem(BaseItemModel):
    """Shared plumbing for items with a slope and K-1 category locations."""

    location_prefix = "threshold"
    location_key = "thresholds"
    discrimination_free = True

    def __init__(
        self,
        locations,
        discrimination: float,
        scaling_constant: float,
        fixed: bool,
        name: str | None,
    ) -> None:
        locations = np.atleast_1d(np.asarray(locations, dtype=np.float64))
        if locations.ndim != 1 or locations.size < 1:
            raise ValueError("At least one threshold is required (two categories)")
        self._n_locations = locations.size
        names = [f"{self.location_prefix}_{k + 1}" for k in range(self._n_locations)]
        self._free_names = (["discrimination"] if self.discrimination_free else []) + names
        self.prior_keys = {"discrimination": "discrimination"}
        self.prior_keys.update({n: self.location_key for n in names})
        params = ItemParameters(
            discrimination=float(discrimination),
            thresholds=tuple(float(b) for b in locations),
        )
        super().__init__(params, scaling_constant=scaling_constant, fixed=fixed, name=name)

    @property
    def n_categories(self) -> int:
        return self._n_locations + 1

    @property
    def free_parameter_names(self) -> list[str]:
        return list(self._free_names)

    @property
    def discrimination(self) -> float:
        return self._current.discrimination

    def parameter_dict(self) -> dict[str, float]:
        names = [f"{self.location_prefix}_{k + 1}" for k in range(self._n_locations)]
        values = {"discrimination": self._current.discrimination}
        values.update(zip(names, self._current.thresholds))
        return values

    def _locations(self, params: ItemParameters) -> NDArray[np.float64]:
        return np.asarray(params.thresholds, dtype=np.float64)

    def _validate(self, params: ItemParameters) -> None:
        if params.discrimination <= 0:
            raise ValueError("discrimination must be positive")
        locations = self._locations(params)
        if locations.size != self._n_locations:
            raise ValueError(
                f"Expected {self._n_locations} {self.location_key}, got {locations.size}"
            )
        if not np.all(np.isfinite(locations)):
            raise ValueError(f"{self.location_key} must be finite")

    def _pack(self, params: ItemParameters) -> NDArray[np.float64]:
        head = [params.discrimination] if self.discrimination_free else []
        return np.concatenate([np.asarray(head, dtype=np.float64), self._locations(params)])

    def _unpack(self, values: NDArray[np.float64]) -> ItemParameters:
        if self.discrimination_free:
            return self._current.replace(discrimination=float(values[0]), thresholds=values[1:])
        return self._current.replace(thresholds=values)

    def _clamp(self, params: ItemParameters) -> ItemParameters:
        return params

    def bounds(self) -> list[tuple[float, float]]:
        head = [DISCRIMINATION_BOUNDS] if self.discrimination_free else []
        return head + [LOCATION_BOUNDS] * self._n_locations

    def scale(self, intercept: float, slope: float) -> None:
        """Linear transformation of the theta metric: θ* = intercept + slope·θ."""
        if slope <= 0:
            raise ValueError("slope must be positive")
        p = self._current
        scaled = p.replace(
            discrimination=p.discrimination / slope,
            thresholds=intercept + slope * self._locations(p),
        )
        self._current = scaled
        self._proposal = scaled
        self._scale_standard_errors(slope)


class GradedResponseItem(_OrderedCategoryItem):
    """Graded Response Model (GRM) item, Samejima (1969).

    Cumulative logits give the probability of responding in category k or
    higher:

    P*(X ≥ k|θ) = 1 / (1 + exp(-D·a·(θ - b_k)))

    and the category probability is ``P*_k - P*_{k+1}`` with ``P*_0 = 1``
    and ``P*_K = 0``.

    Parameters
    ----------
    thresholds : array-like, optional
        Strictly increasing category boundaries ``b_1 < ... < b_{K-1}``.
    discrimination : float, default=1.0
        Slope ``a``.
    n_categories : int, optional
        Used to build evenly spaced thresholds when ``thresholds`` is omitted.

    Examples
    --------
    >>> item = GradedResponseItem([-1.0, 0.0, 1.0], discrimination=1.5)
    >>> item.n_categories
    4
    """

    model_name = "GRM"

    def __init__(
        self,
        thresholds=None,
        discrimination: float = 1.0,
        n_categories: int | None = None,
        scaling_constant: float = LOGISTIC_D,
        fixed: bool = False,
        name: str | None = None,
    ) -> None:
        if thresholds is None:
            thresholds = _default_locations(n_categories)
        super().__init__(thresholds, discrimination, scaling_constant, fixed, name)

    @property
    def thresholds(self) -> NDArray[np.float64]:
        return self._locations(self._current)

    def _validate(self, params: ItemParameters) -> None:
        super()._validate(params)
        if np.any(np.diff(self._locations(params)) <= 0):
            raise ValueError("GRM thresholds must be strictly increasing")

    def _clamp(self, params: ItemParameters) -> ItemParameters:
        return params.replace(thresholds=np.sort(self._locations(params)))

    # The M-step searches (a, b_1, log(b_2 - b_1), ..., log(b_{K-1} - b_{K-2})),
    # so every candidate it evaluates has strictly increasing thresholds.

    def to_working(self, values):
        values = np.asarray(values, dtype=np.float64)
        gaps = np.maximum(np.diff(values[1:]), THRESHOLD_GAP_BOUNDS[0])
        return np.concatenate([values[:2], np.log(gaps)])

    def from_working(self, working):
        working = np.asarray(working, dtype=np.float64)
        thresholds = working[1] + np.concatenate([[0.0], np.cumsum(np.exp(working[2:]))])
        return np.concatenate([working[:1], thresholds])

    def working_jacobian(self, working):
        working = np.asarray(working, dtype=np.float64)
        gaps = np.exp(working[2:])
        jacobian = np.eye(working.size)
        jacobian[1:, 1] = 1.0
        for k in range(2, working.size):
            # b_k depends on every gap up to and including its own
            jacobian[k, 2 : k + 1] = gaps[: k - 1]
        return jacobian

    def working_bounds(self) -> list[tuple[float, float]]:
        low, high = np.log(THRESHOLD_GAP_BOUNDS)
        log_gap = (float(low), float(high))
        return [DISCRIMINATION_BOUNDS, LOCATION_BOUNDS] + [log_gap] * (self._n_locations - 1)

    def _cumulative_logits(self, theta, params) -> NDArray[np.float64]:
        z = self.D * params.discrimination * (theta[:, None] - self._locations(params)[None, :])
        return np.clip(z, -_LOGIT_CLIP, _LOGIT_CLIP)

    def log_probabilities_at(self, theta, params):
        z = self._cumulative_logits(theta, params)
        n = z.shape[0]
        upper = np.column_stack([np.full(n, np.inf), z])
        lower = np.column_stack([z, np.full(n, -np.inf)])
        # log(σ(x) - σ(y)) = log σ(x) + log σ(-y) + log(1 - exp(y - x))
        with np.errstate(divide="ignore", invalid="ignore"):
            return log_sigmoid(upper) + log_sigmoid(-lower) + np.log(-np.expm1(lower - upper))

    def probabilities_at(self, theta, params):
        cumulative = sigmoid(self._cumulative_logits(theta, params))
        n = cumulative.shape[0]
        padded = np.column_stack([np.ones(n), np.atleast_2d(cumulative), np.zeros(n)])
        return padded[:, :-1] - padded[:, 1:]

    def probability_gradient_at(self, theta, params):
        s = sigmoid(self._cumulative_logits(theta, params))
        ds = s * (1.0 - s)
        n, n_loc = ds.shape
        n_cat = n_loc + 1
        grad = np.zeros((n, n_cat, self.n_free))
        offset = 0
        if self.discrimination_free:
            with np.errstate(invalid="ignore"):
                dstar = np.where(
                    ds == 0.0,
                    0.0,
                    ds * self.D * (theta[:, None] - self._locations(params)[None, :]),
                )
            padded = np.column_stack([np.zeros(n), dstar, np.zeros(n)])
            grad[:, :, 0] = padded[:, :-1] - padded[:, 1:]
            offset = 1
        dstar_db = -ds * self.D * params.discrimination
        for j in range(n_loc):
            grad[:, j + 1, offset + j] = dstar_db[:, j]
            grad[:, j, offset + j] = -dstar_db[:, j]
        return grad

    def _theta_derivatives(self, theta):
        p = self._current
        s = sigmoid(self._cumulative_logits(theta, p))
        dstar = s * (1.0 - s) * self.D * p.discrimination
        n = dstar.shape[0]
        padded = np.column_stack([np.zeros(n), dstar, np.zeros(n)])
        return padded[:, :-1] - padded[:, 1:]


class GeneralizedPartialCreditItem(_OrderedCategoryItem):
    """Generalized Partial Credit Model (GPCM) item, Muraki (1992).

    P(X = k|θ) = exp(z_k) / Σ_j exp(z_j),  z_k = Σ_{v≤k} D·a·(θ - b_v),  z_0 = 0

    Step parameters need not be ordered.

    Parameters
    ----------
    steps : array-like, optional
        Step parameters ``b_1 ... b_{K-1}``.
    discrimination : float, default=1.0
        Slope ``a``.
    n_categories : int, optional
        Used to build evenly spaced steps when ``steps`` is omitted.
    """

    model_name = "GPCM"
    location_prefix = "step"
    location_key = "steps"

    def __init__(
        self,
        steps=None,
        discrimination: float = 1.0,
        n_categories: int | None = None,
        scaling_constant: float = LOGISTIC_D,
        fixed: bool = False,
        name: str | None = None,
    ) -> None:
        if steps is None:
            steps = _default_locations(n_categories)
        super().__init__(steps, discrimination, scaling_constant, fixed, name)

    @property
    def steps(self) -> NDArray[np.float64]:
        return self._locations(self._current)

    def _step_terms(self, theta, params) -> NDArray[np.float64]:
        with np.errstate(invalid="ignore"):
            terms = self.D * params.discrimination * (theta[:, None] - self._locations(params)[None, :])
        return np.clip(np.nan_to_num(terms, nan=0.0), -_STEP_CLIP, _STEP_CLIP)

    def _exponents(self, theta, params) -> NDArray[np.float64]:
        terms = self._step_terms(theta, params)
        return np.column_stack([np.zeros(terms.shape[0]), np.cumsum(terms, axis=1)])

    def log_probabilities_at(self, theta, params):
        return log_softmax(self._exponents(theta, params), axis=1)

    def probability_gradient_at(self, theta, params):
        z = self._exponents(theta, params)
        probs = np.exp(log_softmax(z, axis=1))
        n, n_cat = probs.shape
        dz = []
        if self.discrimination_free:
            dz.append(z / params.discrimination)
        include = np.tril(np.ones((n_cat, n_cat - 1)), k=-1)
        for v in range(n_cat - 1):
            column = -self.D * params.discrimination * include[:, v]
            dz.append(np.broadcast_to(column, (n, n_cat)))
        dz = np.stack(dz, axis=2)
        mean_dz = np.einsum("nk,nkp->np", probs, dz)
        return probs[:, :, None] * (dz - mean_dz[:, None, :])

    def _theta_derivatives(self, theta):
        p = self._current
        probs = self.probabilities_at(theta, p)
        k = self.scores
        mean_k = probs @ k
        return probs * self.D * p.discrimination * (k[None, :] - mean_k[:, None])


class PartialCreditItem(GeneralizedPartialCreditItem):
    """Partial Credit Model (PCM) item, Masters (1982).

    A GPCM with the slope held at ``discrimination`` (default 1); only the
    steps are estimated.
    """

    model_name = "PCM"
    discrimination_free = False
