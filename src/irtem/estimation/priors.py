"""Prior densities for item parameters.

Priors turn the M-step maximum likelihood problem into Bayes modal (MAP)
estimation. Each prior reports the log density of a candidate parameter
value and its first derivative. By default the log density is the kernel of
the distribution (normalising constants drop out of the optimisation); pass
``normalized=True`` to include them.

Values outside the support never raise: the log density is ``-inf`` and the
derivative is zero. ``nearest_supported`` moves a value just inside the
support so the optimiser always sees a finite penalty.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray
from scipy.special import betaln


class ItemPrior(ABC):
    """Abstract base class for item parameter priors."""

    normalized: bool = False

    @abstractmethod
    def in_support(self, x: NDArray[np.float64] | float) -> NDArray[np.bool_]: ...

    @abstractmethod
    def _log_kernel(self, x: NDArray[np.float64]) -> NDArray[np.float64]: ...

    @abstractmethod
    def _kernel_derivative(self, x: NDArray[np.float64]) -> NDArray[np.float64]: ...

    @abstractmethod
    def nearest_supported(self, x: float) -> float: ...

    @property
    @abstractmethod
    def _interior(self) -> float: ...

    def _log_normalizer(self) -> float:
        return 0.0

    def log_density(self, x: NDArray[np.float64] | float) -> NDArray[np.float64] | float:
        """Log density (kernel unless ``normalized``) at ``x``."""
        arr = np.asarray(x, dtype=np.float64)
        inside = self.in_support(arr)
        safe = np.where(inside, arr, self._interior)
        with np.errstate(divide="ignore", invalid="ignore"):
            values = self._log_kernel(safe) + self._log_normalizer()
        result = np.where(inside, values, -np.inf)
        return float(result) if result.ndim == 0 else result

    def derivative(self, x: NDArray[np.float64] | float) -> NDArray[np.float64] | float:
        """First derivative of the log density at ``x`` (zero outside the support)."""
        arr = np.asarray(x, dtype=np.float64)
        inside = self.in_support(arr)
        safe = np.where(inside, arr, self._interior)
        with np.errstate(divide="ignore", invalid="ignore"):
            values = self._kernel_derivative(safe)
        result = np.where(inside, values, 0.0)
        return float(result) if result.ndim == 0 else result


class BetaPrior(ItemPrior):
    """Four-parameter beta prior on the interval ``(lower, upper)``.

    Used to keep discrimination positive and guessing/slipping inside
    [0, 1]. The kernel is

        (alpha - 1) log(x - lower) + (beta - 1) log(upper - x)

    Parameters
    ----------
    alpha, beta : float
        Shape parameters, both positive.
    lower, upper : float, default=(0, 1)
        Support of the distribution.
    normalized : bool, default=False
        Include the normalising constant in ``log_density``.
    """

    boundary_offset: float = 1e-3

    def __init__(
        self,
        alpha: float = 2.0,
        beta: float = 8.0,
        lower: float = 0.0,
        upper: float = 1.0,
        normalized: bool = False,
    ) -> None:
        if alpha <= 0 or beta <= 0:
            raise ValueError("alpha and beta must be positive")
        if lower >= upper:
            raise ValueError("lower must be less than upper")
        self.alpha = alpha
        self.beta = beta
        self.lower = lower
        self.upper = upper
        self.normalized = normalized

    def in_support(self, x):
        x = np.asarray(x, dtype=np.float64)
        return (x > self.lower) & (x < self.upper)

    @property
    def _interior(self) -> float:
        return 0.5 * (self.lower + self.upper)

    def nearest_supported(self, x: float) -> float:
        if x <= self.lower:
            return self.lower + self.boundary_offset
        if x >= self.upper:
            return self.upper - self.boundary_offset
        return x

    def _log_kernel(self, x):
        return (self.alpha - 1.0) * np.log(x - self.lower) + (self.beta - 1.0) * np.log(
            self.upper - x
        )

    def _kernel_derivative(self, x):
        return (self.alpha - 1.0) / (x - self.lower) - (self.beta - 1.0) / (
            self.upper - x
        )

    def _log_normalizer(self) -> float:
        if not self.normalized:
            return 0.0
        width = self.upper - self.lower
        return -(betaln(self.alpha, self.beta) + (self.alpha + self.beta - 1.0) * np.log(width))

    @property
    def mean(self) -> float:
        return self.lower + (self.upper - self.lower) * self.alpha / (self.alpha + self.beta)

    @property
    def variance(self) -> float:
        total = self.alpha + self.beta
        width = self.upper - self.lower
        return width**2 * self.alpha * self.beta / (total**2 * (total + 1.0))

    def __repr__(self) -> str:
        if self.lower == 0.0 and self.upper == 1.0:
            return f"BetaPrior(alpha={self.alpha}, beta={self.beta})"
        return (
            f"BetaPrior(alpha={self.alpha}, beta={self.beta}, "
            f"lower={self.lower}, upper={self.upper})"
        )


class LogNormalPrior(ItemPrior):
    """Log-normal prior, a vague positive prior for discrimination.

    Kernel: ``-(log x - mu)^2 / (2 sigma^2) - log x``.
    """

    def __init__(
        self,
        mu: float = 0.0,
        sigma: float = 0.5,
        normalized: bool = False,
    ) -> None:
        if sigma <= 0:
            raise ValueError("sigma must be positive")
        self.mu = mu
        self.sigma = sigma
        self.normalized = normalized

    def in_support(self, x):
        return np.asarray(x, dtype=np.float64) > 0.0

    @property
    def _interior(self) -> float:
        return 1.0

    def nearest_supported(self, x: float) -> float:
        return x if x > 0.0 else float(np.finfo(np.float64).eps)

    def _log_kernel(self, x):
        log_x = np.log(x)
        return -((log_x - self.mu) ** 2) / (2.0 * self.sigma**2) - log_x

    def _kernel_derivative(self, x):
        variance = self.sigma**2
        return -(np.log(x) - self.mu + variance) / (variance * x)

    def _log_normalizer(self) -> float:
        if not self.normalized:
            return 0.0
        return -np.log(self.sigma * np.sqrt(2.0 * np.pi))

    @property
    def mean(self) -> float:
        return float(np.exp(self.mu + self.sigma**2 / 2.0))

    @property
    def variance(self) -> float:
        return float((np.exp(self.sigma**2) - 1.0) * np.exp(2.0 * self.mu + self.sigma**2))

    def __repr__(self) -> str:
        return f"LogNormalPrior(mu={self.mu}, sigma={self.sigma})"


class NormalPrior(ItemPrior):
    """Normal prior, typically placed on difficulty or step parameters."""

    def __init__(
        self,
        mu: float = 0.0,
        sigma: float = 1.0,
        normalized: bool = False,
    ) -> None:
        if sigma <= 0:
            raise ValueError("sigma must be positive")
        self.mu = mu
        self.sigma = sigma
        self.normalized = normalized

    def in_support(self, x):
        return np.isfinite(np.asarray(x, dtype=np.float64))

    @property
    def _interior(self) -> float:
        return self.mu

    def nearest_supported(self, x: float) -> float:
        if np.isfinite(x):
            return x
        return self.mu

    def _log_kernel(self, x):
        return -((x - self.mu) ** 2) / (2.0 * self.sigma**2)

    def _kernel_derivative(self, x):
        return -(x - self.mu) / self.sigma**2

    def _log_normalizer(self) -> float:
        if not self.normalized:
            return 0.0
        return -np.log(self.sigma * np.sqrt(2.0 * np.pi))

    @property
    def mean(self) -> float:
        return self.mu

    @property
    def variance(self) -> float:
        return self.sigma**2

    def __repr__(self) -> str:
        return f"NormalPrior(mu={self.mu}, sigma={self.sigma})"
