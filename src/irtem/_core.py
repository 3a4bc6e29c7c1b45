"""Core utility functions with no internal dependencies.

This module provides fundamental numerical helpers used throughout the
codebase. It has no dependencies on other irtem modules, avoiding circular
import issues.
"""

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit
from scipy.special import logsumexp as _scipy_logsumexp


def sigmoid(x: NDArray[np.floating] | float) -> NDArray[np.floating] | float:
    """Compute the logistic function with numerical stability.

    Parameters
    ----------
    x : array_like or float
        Input values. Infinite values saturate to 0 or 1.

    Returns
    -------
    array_like or float
        Sigmoid of input, same shape as input.
    """
    result = expit(np.asarray(x, dtype=np.float64))
    return float(result) if result.ndim == 0 else result


def log_sigmoid(x: NDArray[np.floating] | float) -> NDArray[np.floating]:
    """Compute log(sigmoid(x)) without underflow for large negative x."""
    x = np.asarray(x, dtype=np.float64)
    return -np.logaddexp(0.0, -x)


def logsumexp(
    a: NDArray[np.floating],
    axis: int | None = None,
    keepdims: bool = False,
) -> NDArray[np.floating]:
    """Log of the sum of exponentials, stabilised by the maximum.

    Rows that are entirely ``-inf`` return ``-inf`` rather than NaN.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return _scipy_logsumexp(a, axis=axis, keepdims=keepdims)


def log_softmax(z: NDArray[np.floating], axis: int = -1) -> NDArray[np.floating]:
    """Log of the softmax along ``axis`` computed in log space.

    The maximum exponent is subtracted before exponentiation so very large
    exponents (extreme theta or discrimination) do not overflow.
    """
    z = np.asarray(z, dtype=np.float64)
    z_max = np.max(z, axis=axis, keepdims=True)
    z_max = np.where(np.isfinite(z_max), z_max, 0.0)
    shifted = z - z_max
    return shifted - np.log(np.sum(np.exp(shifted), axis=axis, keepdims=True))
