"""Base class for parameter estimation algorithms."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from irtem.constants import MISSING
from irtem.estimation.enums import EstimationStatus
from irtem.utils.data import ResponseData, as_response_data

if TYPE_CHECKING:
    from irtem.models.base import BaseItemModel
    from irtem.results.fit_result import FitResult

logger = logging.getLogger(__name__)


class BaseEstimator(ABC):
    """Abstract base class for IRT parameter estimation algorithms.

    Parameters
    ----------
    max_iter : int, default=500
        Maximum number of iterations.
    tol : float, default=1e-4
        Convergence tolerance on the largest parameter change.
    verbose : bool, default=False
        Log per-iteration progress at INFO instead of DEBUG.

    Attributes
    ----------
    status : EstimationStatus
        Lifecycle state of the most recent fit.
    """

    def __init__(
        self,
        max_iter: int = 500,
        tol: float = 1e-4,
        verbose: bool = False,
    ) -> None:
        if max_iter < 1:
            raise ValueError("max_iter must be at least 1")
        if tol <= 0:
            raise ValueError("tol must be positive")

        self.max_iter = max_iter
        self.tol = tol
        self.verbose = verbose
        self.status = EstimationStatus.INITIALIZED
        self._convergence_history: list[float] = []

    @abstractmethod
    def fit(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> FitResult:
        """Estimate item parameters from response data.

        Parameters
        ----------
        items : sequence of BaseItemModel
            One model per response column. Parameters are updated in place.
        responses : ResponseData or array-like of shape (n_persons, n_items)
            Response data. Missing values are coded as -1.

        Returns
        -------
        FitResult
            Fitted items, standard errors and fit statistics.
        """
        ...

    @property
    def convergence_history(self) -> list[float]:
        """Largest parameter change at each iteration."""
        return self._convergence_history.copy()

    def _check_convergence(self, delta: float) -> bool:
        return delta < self.tol

    def _validate_responses(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> ResponseData:
        """Check that every observed code is a valid category for its item."""
        if len(items) == 0:
            raise ValueError("At least one item is required")
        data = as_response_data(responses)

        if data.n_items != len(items):
            raise ValueError(
                f"responses has {data.n_items} items, expected {len(items)}"
            )

        matrix = data.matrix
        for j, item in enumerate(items):
            column = matrix[:, j]
            observed = column[column != MISSING]
            if observed.size and observed.max() >= item.n_categories:
                bad = int(observed.max())
                label = item.name or f"item {j}"
                raise ValueError(
                    f"Response code {bad} is not a valid category for {label} "
                    f"({item.n_categories} categories)"
                )

        return data

    def _log_iteration(
        self,
        iteration: int,
        log_likelihood: float,
        **kwargs,
    ) -> None:
        extras = ", ".join(f"{k}={v:.6f}" for k, v in kwargs.items())
        msg = f"Iteration {iteration:4d}: LL = {log_likelihood:.4f}"
        if extras:
            msg += f", {extras}"
        logger.log(logging.INFO if self.verbose else logging.DEBUG, msg)

    def _compute_aic(
        self,
        log_likelihood: float,
        n_parameters: int,
    ) -> float:
        """AIC = -2 × LL + 2 × k"""
        return -2 * log_likelihood + 2 * n_parameters

    def _compute_bic(
        self,
        log_likelihood: float,
        n_parameters: int,
        n_observations: float,
    ) -> float:
        """BIC = -2 × LL + k × log(n)"""
        return -2 * log_likelihood + n_parameters * np.log(n_observations)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"max_iter={self.max_iter}, "
            f"tol={self.tol})"
        )
