"""Dichotomous IRT models: 1PL, 2PL, 3PL, 4PL."""

import numpy as np
from numpy.typing import NDArray

from irtem._core import log_sigmoid, sigmoid
from irtem.constants import (
    ASYMPTOTE_BOUNDS,
    DISCRIMINATION_BOUNDS,
    LOCATION_BOUNDS,
    LOGISTIC_D,
)
from irtem.models.base import BaseItemModel, ItemParameters
from irtem.typing import DichotomousModelType

_FREE_NAMES: dict[str, list[str]] = {
    "1PL": ["difficulty"],
    "2PL": ["discrimination", "difficulty"],
    "3PL": ["discrimination", "difficulty", "guessing"],
    "4PL": ["discrimination", "difficulty", "guessing", "slipping"],
}


class LogisticItem(BaseItemModel):
    """Binary logistic item, the 1PL through 4PL family.

    P(X=1|θ) = c + (d - c) / (1 + exp(-D·a·(θ - b)))

    The model type only decides which parameters are free; the response
    function is the same for all four.

    Parameters
    ----------
    model_type : {"1PL", "2PL", "3PL", "4PL"}, default="2PL"
        1PL frees difficulty only, 2PL adds discrimination, 3PL adds the
        lower asymptote (guessing), 4PL the upper asymptote (slipping).
    discrimination : float, default=1.0
        Slope ``a``; held fixed for the 1PL.
    difficulty : float, default=0.0
        Location ``b``.
    guessing : float, default=0.0
        Lower asymptote ``c``.
    slipping : float, default=1.0
        Upper asymptote ``d``.
    scaling_constant : float, default=1.0
        ``D``; use 1.7 for the normal ogive metric.

    Examples
    --------
    >>> item = LogisticItem("2PL", discrimination=1.2, difficulty=-0.5)
    >>> round(item.probability(-0.5, 1), 3)
    0.5
    """

    prior_keys = {
        "discrimination": "discrimination",
        "difficulty": "difficulty",
        "guessing": "guessing",
        "slipping": "slipping",
    }

    def __init__(
        self,
        model_type: DichotomousModelType = "2PL",
        discrimination: float = 1.0,
        difficulty: float = 0.0,
        guessing: float = 0.0,
        slipping: float = 1.0,
        scaling_constant: float = LOGISTIC_D,
        fixed: bool = False,
        name: str | None = None,
    ) -> None:
        if model_type not in _FREE_NAMES:
            raise ValueError(
                f"Unknown model_type {model_type!r}. Use one of {', '.join(_FREE_NAMES)}"
            )
        self.model_type = model_type
        self.model_name = model_type
        self._free_names = list(_FREE_NAMES[model_type])
        params = ItemParameters(
            discrimination=float(discrimination),
            difficulty=float(difficulty),
            guessing=float(guessing),
            slipping=float(slipping),
        )
        super().__init__(params, scaling_constant=scaling_constant, fixed=fixed, name=name)

    @property
    def n_categories(self) -> int:
        return 2

    @property
    def free_parameter_names(self) -> list[str]:
        return list(self._free_names)

    @property
    def discrimination(self) -> float:
        return self._current.discrimination

    @property
    def difficulty(self) -> float:
        return self._current.difficulty

    @property
    def guessing(self) -> float:
        return self._current.guessing

    @property
    def slipping(self) -> float:
        return self._current.slipping

    def parameter_dict(self) -> dict[str, float]:
        p = self._current
        return {
            "discrimination": p.discrimination,
            "difficulty": p.difficulty,
            "guessing": p.guessing,
            "slipping": p.slipping,
        }

    def _validate(self, params: ItemParameters) -> None:
        if params.discrimination <= 0:
            raise ValueError("discrimination must be positive")
        if not np.isfinite(params.difficulty):
            raise ValueError("difficulty must be finite")
        lo, hi = ASYMPTOTE_BOUNDS
        if not (lo <= params.guessing <= hi and lo <= params.slipping <= hi):
            raise ValueError("guessing and slipping must lie in [0, 1]")
        if params.guessing >= params.slipping:
            raise ValueError("guessing must be less than slipping")

    def _pack(self, params: ItemParameters) -> NDArray[np.float64]:
        return np.array([getattr(params, name) for name in self._free_names], dtype=np.float64)

    def _unpack(self, values: NDArray[np.float64]) -> ItemParameters:
        return self._current.replace(
            **{name: float(v) for name, v in zip(self._free_names, values)}
        )

    def _clamp(self, params: ItemParameters) -> ItemParameters:
        lo, hi = ASYMPTOTE_BOUNDS
        c = float(np.clip(params.guessing, lo, hi))
        d = float(np.clip(params.slipping, lo, hi))
        if c > d:
            c = d = 0.5 * (c + d)
        return params.replace(guessing=c, slipping=d)

    def bounds(self) -> list[tuple[float, float]]:
        table = {
            "discrimination": DISCRIMINATION_BOUNDS,
            "difficulty": LOCATION_BOUNDS,
            "guessing": ASYMPTOTE_BOUNDS,
            "slipping": ASYMPTOTE_BOUNDS,
        }
        return [table[name] for name in self._free_names]

    def _logit(self, theta: NDArray[np.float64], params: ItemParameters) -> NDArray[np.float64]:
        with np.errstate(invalid="ignore"):
            z = self.D * params.discrimination * (theta - params.difficulty)
        return np.nan_to_num(z, nan=0.0)

    def log_probabilities_at(self, theta, params):
        z = self._logit(theta, params)
        log_s = log_sigmoid(z)
        log_1ms = log_sigmoid(-z)
        c, d = params.guessing, params.slipping
        with np.errstate(divide="ignore"):
            log_p1 = np.logaddexp(np.log(c) + log_1ms, np.log(d) + log_s)
            log_p0 = np.logaddexp(np.log(1.0 - c) + log_1ms, np.log(1.0 - d) + log_s)
        return np.column_stack([log_p0, log_p1])

    def probability_gradient_at(self, theta, params):
        z = self._logit(theta, params)
        s = sigmoid(z)
        ds = s * (1.0 - s)
        c, d = params.guessing, params.slipping
        columns = []
        for name in self._free_names:
            if name == "discrimination":
                with np.errstate(invalid="ignore"):
                    col = np.where(ds == 0.0, 0.0, (d - c) * ds * self.D * (theta - params.difficulty))
            elif name == "difficulty":
                col = -(d - c) * ds * self.D * params.discrimination
            elif name == "guessing":
                col = 1.0 - s
            else:
                col = s
            columns.append(col)
        dp1 = np.column_stack(columns)
        return np.stack([-dp1, dp1], axis=1)

    def _theta_derivatives(self, theta):
        p = self._current
        s = sigmoid(self._logit(theta, p))
        dp1 = (p.slipping - p.guessing) * self.D * p.discrimination * s * (1.0 - s)
        return np.column_stack([-dp1, dp1])

    def information(self, theta):
        """Fisher information ``(D a)^2 (P - c)^2 (d - P)^2 / ((d - c)^2 P Q)``."""
        p = self._current
        theta_arr = np.asarray(theta, dtype=np.float64)
        prob = np.exp(self.log_probabilities_at(np.atleast_1d(theta_arr), p)[:, 1])
        c, d = p.guessing, p.slipping
        num = (self.D * p.discrimination) ** 2 * (prob - c) ** 2 * (d - prob) ** 2
        den = (d - c) ** 2 * prob * (1.0 - prob)
        with np.errstate(divide="ignore", invalid="ignore"):
            info = np.where(den > 0.0, num / den, 0.0)
        info = np.maximum(info, 0.0)
        return float(info[0]) if theta_arr.ndim == 0 else info

    def scale(self, intercept: float, slope: float) -> None:
        """Linear transformation of the theta metric: θ* = intercept + slope·θ."""
        if slope <= 0:
            raise ValueError("slope must be positive")
        p = self._current
        scaled = p.replace(
            discrimination=p.discrimination / slope,
            difficulty=intercept + slope * p.difficulty,
        )
        self._current = scaled
        self._proposal = scaled
        self._scale_standard_errors(slope)
