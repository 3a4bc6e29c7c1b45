from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

import numpy as np
from numpy.typing import NDArray

from irtem.typing import ParameterArray

if TYPE_CHECKING:
    from irtem.estimation.priors import ItemPrior


@dataclass(frozen=True)
class ItemParameters:
    """One complete set of item parameter values.

    Every item keeps two of these: the committed ``current`` values and the
    ``proposal`` written by the M-step. Fields that a model family does not
    use keep their neutral defaults (no guessing, no slipping, no thresholds).
    """

    discrimination: float = 1.0
    difficulty: float = 0.0
    guessing: float = 0.0
    slipping: float = 1.0
    thresholds: tuple[float, ...] = field(default_factory=tuple)

    def max_abs_difference(self, other: ItemParameters) -> float:
        diffs = [
            abs(self.discrimination - other.discrimination),
            abs(self.difficulty - other.difficulty),
            abs(self.guessing - other.guessing),
            abs(self.slipping - other.slipping),
        ]
        if self.thresholds:
            diffs.append(
                float(np.max(np.abs(np.subtract(self.thresholds, other.thresholds))))
            )
        return float(max(diffs))

    def replace(self, **changes) -> ItemParameters:
        if "thresholds" in changes:
            changes["thresholds"] = tuple(float(t) for t in changes["thresholds"])
        return dataclasses.replace(self, **changes)


class BaseItemModel(ABC):
    """Probability model of a single test item.

    Subclasses supply the category log probabilities and their analytic
    gradient with respect to the free parameters; everything the EM engine
    needs (proposal lifecycle, priors, bounds, standard errors) lives here.

    Parameters
    ----------
    scaling_constant : float
        ``D``: 1.0 for the logistic metric, 1.7 for the normal ogive metric.
    fixed : bool, default=False
        Fixed items never move; proposal setters are no-ops.
    name : str, optional
        Item label used in reports.
    """

    model_name: str = "BaseModel"
    prior_keys: dict[str, str] = {}

    def __init__(
        self,
        parameters: ItemParameters,
        scaling_constant: float = 1.0,
        fixed: bool = False,
        name: str | None = None,
    ) -> None:
        if scaling_constant <= 0:
            raise ValueError("scaling_constant must be positive")
        self.D = float(scaling_constant)
        self.fixed = fixed
        self.name = name
        self.extreme = False
        self._validate(parameters)
        self._current = parameters
        self._proposal = parameters
        self._priors: dict[str, ItemPrior] = {}
        self._standard_errors: dict[str, float] = {}
        self.reset_standard_errors()

    @property
    @abstractmethod
    def n_categories(self) -> int: ...

    @property
    @abstractmethod
    def free_parameter_names(self) -> list[str]: ...

    @abstractmethod
    def _pack(self, params: ItemParameters) -> NDArray[np.float64]: ...

    @abstractmethod
    def _unpack(self, values: NDArray[np.float64]) -> ItemParameters: ...

    @abstractmethod
    def _validate(self, params: ItemParameters) -> None: ...

    @abstractmethod
    def log_probabilities_at(
        self,
        theta: NDArray[np.float64],
        params: ItemParameters,
    ) -> NDArray[np.float64]:
        """Log category probabilities, shape (n_theta, n_categories)."""
        ...

    @abstractmethod
    def probability_gradient_at(
        self,
        theta: NDArray[np.float64],
        params: ItemParameters,
    ) -> NDArray[np.float64]:
        """dP/dparam, shape (n_theta, n_categories, n_free)."""
        ...

    @abstractmethod
    def _theta_derivatives(self, theta: NDArray[np.float64]) -> NDArray[np.float64]:
        """dP_k/dtheta at current values, shape (n_theta, n_categories)."""
        ...

    @abstractmethod
    def _clamp(self, params: ItemParameters) -> ItemParameters: ...

    @abstractmethod
    def scale(self, intercept: float, slope: float) -> None: ...

    @abstractmethod
    def bounds(self) -> list[tuple[float, float]]: ...

    @property
    def parameters(self) -> ItemParameters:
        return self._current

    @property
    def proposal(self) -> ItemParameters:
        return self._proposal

    @property
    def parameter_names(self) -> list[str]:
        return self.free_parameter_names

    @property
    def n_free(self) -> int:
        return len(self.free_parameter_names)

    @property
    def free_parameters(self) -> ParameterArray:
        return self._pack(self._current)

    @property
    def scores(self) -> NDArray[np.float64]:
        return np.arange(self.n_categories, dtype=np.float64)

    def probabilities_at(
        self,
        theta: NDArray[np.float64],
        params: ItemParameters,
    ) -> NDArray[np.float64]:
        return np.exp(self.log_probabilities_at(theta, params))

    def unpack(self, values: NDArray[np.float64]) -> ItemParameters:
        """Build an ``ItemParameters`` from a free-parameter vector."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.n_free,):
            raise ValueError(
                f"Expected {self.n_free} free parameters, got shape {values.shape}"
            )
        return self._unpack(values)

    def clamp_values(self, values: ParameterArray) -> ParameterArray:
        """Free-parameter vector as ``accept_proposal`` would commit it."""
        return self._pack(self._clamp(self.unpack(values)))

    def to_working(self, values: ParameterArray) -> ParameterArray:
        """Map free parameters to the unconstrained space the M-step searches.

        The default is the identity; models with constraints beyond box
        bounds override the four ``working`` methods together.
        """
        return np.asarray(values, dtype=np.float64)

    def from_working(self, working: ParameterArray) -> ParameterArray:
        return np.asarray(working, dtype=np.float64)

    def working_jacobian(self, working: NDArray[np.float64]) -> NDArray[np.float64]:
        """d(free parameters)/d(working parameters), shape (n_free, n_free)."""
        return np.eye(np.asarray(working).size)

    def working_bounds(self) -> list[tuple[float, float]]:
        return self.bounds()

    def log_probabilities(self, theta) -> NDArray[np.float64]:
        """Log category probabilities at the current values."""
        theta_arr, _ = _as_theta(theta)
        return self.log_probabilities_at(theta_arr, self._current)

    def category_probabilities(self, theta) -> NDArray[np.float64]:
        """Category probabilities at the current values, shape (n_theta, n_categories)."""
        theta_arr, _ = _as_theta(theta)
        return self.probabilities_at(theta_arr, self._current)

    def probability(self, theta, category: int) -> NDArray[np.float64] | float:
        """Probability of responding in ``category`` at trait value ``theta``."""
        self.check_category(category)
        theta_arr, scalar = _as_theta(theta)
        probs = self.probabilities_at(theta_arr, self._current)[:, category]
        return float(probs[0]) if scalar else probs

    def expected_value(self, theta) -> NDArray[np.float64] | float:
        """Probability-weighted sum of category scores."""
        theta_arr, scalar = _as_theta(theta)
        ev = self.probabilities_at(theta_arr, self._current) @ self.scores
        return float(ev[0]) if scalar else ev

    def gradient(self, theta, category: int) -> NDArray[np.float64]:
        """Analytic derivatives of ``probability`` with respect to the free parameters.

        Returns shape (n_free,) for scalar ``theta``, else (n_theta, n_free).
        """
        self.check_category(category)
        theta_arr, scalar = _as_theta(theta)
        grad = self.probability_gradient_at(theta_arr, self._current)[:, category, :]
        return grad[0] if scalar else grad

    def deriv_theta(self, theta) -> NDArray[np.float64] | float:
        """Derivative of ``expected_value`` with respect to theta."""
        theta_arr, scalar = _as_theta(theta)
        deriv = self._theta_derivatives(theta_arr) @ self.scores
        return float(deriv[0]) if scalar else deriv

    def information(self, theta) -> NDArray[np.float64] | float:
        """Item Fisher information, sum over categories of P'^2 / P."""
        theta_arr, scalar = _as_theta(theta)
        probs = self.probabilities_at(theta_arr, self._current)
        dprobs = self._theta_derivatives(theta_arr)
        with np.errstate(divide="ignore", invalid="ignore"):
            terms = np.where(probs > 0.0, dprobs**2 / probs, 0.0)
        info = np.maximum(np.sum(terms, axis=1), 0.0)
        return float(info[0]) if scalar else info

    def check_category(self, category: int) -> None:
        if category < 0 or category >= self.n_categories:
            raise ValueError(
                f"Category {category} out of range [0, {self.n_categories}) "
                f"for {self.model_name} item"
            )

    def set_parameters(self, params: ItemParameters) -> Self:
        """Replace current and proposal values (outside of estimation)."""
        self._validate(params)
        self._current = params
        self._proposal = params
        return self

    def set_proposal(self, values: NDArray[np.float64]) -> None:
        """Write a free-parameter vector into the proposal slot."""
        if self.fixed:
            return
        self._proposal = self.unpack(values)

    def accept_proposal(self) -> float:
        """Commit the proposal and return the largest absolute parameter change."""
        if self.fixed:
            self._proposal = self._current
            return 0.0
        accepted = self._clamp(self._proposal)
        change = accepted.max_abs_difference(self._current)
        self._current = accepted
        self._proposal = accepted
        return change

    def set_prior(self, parameter: str, prior: ItemPrior | None) -> Self:
        """Attach (or with ``None`` remove) a prior on a parameter family."""
        valid = set(self.prior_keys.values())
        if parameter not in valid:
            raise ValueError(
                f"Unknown parameter: {parameter}. Valid parameters: {', '.join(sorted(valid))}"
            )
        if prior is None:
            self._priors.pop(parameter, None)
        else:
            self._priors[parameter] = prior
        return self

    @property
    def priors(self) -> dict[str, ItemPrior]:
        return dict(self._priors)

    def _free_priors(self):
        for i, name in enumerate(self.free_parameter_names):
            prior = self._priors.get(self.prior_keys.get(name, name))
            if prior is not None:
                yield i, prior

    def log_prior(self, values: NDArray[np.float64]) -> float:
        """Sum of attached prior log densities at a free-parameter vector."""
        total = 0.0
        for i, prior in self._free_priors():
            total += float(prior.log_density(prior.nearest_supported(float(values[i]))))
        return total

    def log_prior_gradient(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        grad = np.zeros(self.n_free)
        for i, prior in self._free_priors():
            grad[i] = float(prior.derivative(prior.nearest_supported(float(values[i]))))
        return grad

    def parameter_dict(self) -> dict[str, float]:
        """Reported parameter values keyed by name."""
        return dict(zip(self.free_parameter_names, self.free_parameters.tolist()))

    @property
    def standard_errors(self) -> dict[str, float]:
        return dict(self._standard_errors)

    def set_standard_errors(self, values: NDArray[np.float64]) -> None:
        self._standard_errors = {
            name: float(v) for name, v in zip(self.free_parameter_names, values)
        }

    def reset_standard_errors(self) -> None:
        self._standard_errors = {name: np.nan for name in self.free_parameter_names}

    def _scale_standard_errors(self, slope: float) -> None:
        scaled = {}
        for name, se in self._standard_errors.items():
            key = self.prior_keys.get(name, name)
            if key == "discrimination":
                scaled[name] = se / abs(slope)
            elif key in ("difficulty", "thresholds", "steps"):
                scaled[name] = se * abs(slope)
            else:
                scaled[name] = se
        self._standard_errors = scaled

    def copy(self) -> Self:
        new_item = self.__class__.__new__(self.__class__)
        new_item.__dict__.update(self.__dict__)
        new_item._priors = dict(self._priors)
        new_item._standard_errors = dict(self._standard_errors)
        return new_item

    def __repr__(self) -> str:
        values = ", ".join(
            f"{n}={v:.4f}" for n, v in zip(self.free_parameter_names, self.free_parameters)
        )
        fixed = ", fixed" if self.fixed else ""
        return f"{self.__class__.__name__}({values}{fixed})"


def _as_theta(theta) -> tuple[NDArray[np.float64], bool]:
    arr = np.asarray(theta, dtype=np.float64)
    if arr.ndim == 0:
        return arr.reshape(1), True
    if arr.ndim != 1:
        raise ValueError(f"theta must be a scalar or 1D, got {arr.ndim}D")
    return arr, False
