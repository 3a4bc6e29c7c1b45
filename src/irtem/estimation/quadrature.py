"""Quadrature rules for the latent trait distribution.

A rule is a fixed set of points with non-negative weights summing to one.
During EM the points never move; only the weights may be re-estimated from
the posterior mass collected in the E-step.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.special import roots_hermite
from scipy.stats import norm

from irtem.constants import DEFAULT_QUADRATURE_POINTS, WEIGHT_TOLERANCE
from irtem.typing import ThetaArray, WeightArray


class QuadratureRule:
    """Discrete approximation of the latent trait distribution.

    Parameters
    ----------
    points : array-like of shape (n_points,)
        Quadrature nodes (theta values).
    weights : array-like of shape (n_points,)
        Non-negative weights summing to 1 within ``1e-10``.

    Examples
    --------
    >>> rule = QuadratureRule.normal(-4.0, 4.0, 41)
    >>> rule.n_points
    41
    >>> round(rule.mean, 6)
    0.0
    """

    def __init__(self, points, weights) -> None:
        points = np.asarray(points, dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)
        if points.ndim != 1 or weights.ndim != 1:
            raise ValueError("points and weights must be 1D arrays")
        if points.size == 0:
            raise ValueError("A quadrature rule needs at least one point")
        if points.shape != weights.shape:
            raise ValueError(
                f"points and weights must have the same length "
                f"({points.size} != {weights.size})"
            )
        if not np.all(np.isfinite(points)):
            raise ValueError("Quadrature points must be finite")
        if np.any(weights < 0) or not np.all(np.isfinite(weights)):
            raise ValueError("Quadrature weights must be non-negative")
        total = float(np.sum(weights))
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Quadrature weights must sum to 1 (got {total:.12g})")
        self._points = points.copy()
        self._weights = weights.copy()

    @classmethod
    def normal(
        cls,
        minimum: float = -4.0,
        maximum: float = 4.0,
        n_points: int = DEFAULT_QUADRATURE_POINTS,
        mean: float = 0.0,
        sd: float = 1.0,
    ) -> QuadratureRule:
        """Equally spaced points weighted by the normalised normal density."""
        points = _grid(minimum, maximum, n_points)
        if sd <= 0:
            raise ValueError("sd must be positive")
        density = norm.pdf(points, loc=mean, scale=sd)
        total = density.sum()
        if total <= 0:
            raise ValueError("Normal density vanishes on the whole grid")
        return cls(points, density / total)

    @classmethod
    def uniform(
        cls,
        minimum: float = -4.0,
        maximum: float = 4.0,
        n_points: int = DEFAULT_QUADRATURE_POINTS,
    ) -> QuadratureRule:
        """Equally spaced points with equal weights."""
        points = _grid(minimum, maximum, n_points)
        return cls(points, np.full(n_points, 1.0 / n_points))

    @classmethod
    def gauss_hermite(
        cls,
        n_points: int = 21,
        mean: float = 0.0,
        sd: float = 1.0,
    ) -> QuadratureRule:
        """Gauss-Hermite nodes and weights for a normal distribution."""
        if n_points < 1:
            raise ValueError("n_points must be at least 1")
        if sd <= 0:
            raise ValueError("sd must be positive")
        # scipy returns physicist's Hermite roots: ∫ f(x) exp(-x²) dx
        nodes, weights = roots_hermite(n_points)
        nodes = nodes * np.sqrt(2.0) * sd + mean
        weights = weights / np.sqrt(np.pi)
        return cls(nodes, weights / weights.sum())

    @classmethod
    def mirt_default(cls, n_points: int = DEFAULT_QUADRATURE_POINTS) -> QuadratureRule:
        """Standard normal grid on ``±0.8·sqrt(n_points)``."""
        limit = 0.8 * np.sqrt(n_points)
        return cls.normal(-limit, limit, n_points)

    @property
    def points(self) -> ThetaArray:
        return self._points.copy()

    @property
    def weights(self) -> WeightArray:
        return self._weights.copy()

    @property
    def n_points(self) -> int:
        return self._points.size

    @property
    def mean(self) -> float:
        return float(np.sum(self._weights * self._points))

    @property
    def variance(self) -> float:
        return float(np.sum(self._weights * (self._points - self.mean) ** 2))

    @property
    def sd(self) -> float:
        return float(np.sqrt(self.variance))

    def reestimate_weights(self, posterior_mass) -> None:
        """Replace the weights by the normalised posterior mass per point.

        Parameters
        ----------
        posterior_mass : array-like of shape (n_points,)
            Expected number of persons at each point (``n_k`` of the E-step).
        """
        mass = np.asarray(posterior_mass, dtype=np.float64)
        if mass.shape != self._points.shape:
            raise ValueError(
                f"posterior_mass must have shape {self._points.shape}, got {mass.shape}"
            )
        if np.any(mass < 0) or not np.all(np.isfinite(mass)):
            raise ValueError("posterior_mass must be finite and non-negative")
        total = float(mass.sum())
        if total <= 0:
            raise ValueError("posterior_mass must have a positive total")
        self._weights = mass / total

    def standardize(self) -> tuple[float, float]:
        """Return ``(intercept, slope)`` mapping this distribution to mean 0, sd 1.

        Applying ``item.scale(intercept, slope)`` to every item expresses the
        item parameters in the standardised metric. The rule itself is not
        modified.
        """
        sd = self.sd
        if sd <= 0:
            raise ValueError("Cannot standardize a degenerate distribution")
        slope = 1.0 / sd
        return -self.mean * slope, slope

    def copy(self) -> QuadratureRule:
        return QuadratureRule(self._points, self._weights)

    def __repr__(self) -> str:
        return (
            f"QuadratureRule(n_points={self.n_points}, "
            f"range=[{self._points.min():.3f}, {self._points.max():.3f}])"
        )


def _grid(minimum: float, maximum: float, n_points: int) -> NDArray[np.float64]:
    if n_points < 2:
        raise ValueError("n_points must be at least 2")
    if minimum >= maximum:
        raise ValueError("minimum must be less than maximum")
    return np.linspace(minimum, maximum, n_points)
