"""Result container for model fitting."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from irtem.estimation.enums import EstimationStatus

if TYPE_CHECKING:
    import pandas as pd

    from irtem.estimation.quadrature import QuadratureRule
    from irtem.models.base import BaseItemModel


@dataclass
class FitResult:
    """Container for MMLE/EM fitting results.

    Parameters
    ----------
    items : list of BaseItemModel
        The fitted items (the same objects passed to ``fit``).
    quadrature : QuadratureRule
        Latent distribution at termination; its weights differ from the
        starting rule when the density was re-estimated.
    log_likelihood : float
        Marginal log-likelihood at the accepted parameters.
    iteration_history : list of float
        Largest absolute parameter change per iteration.
    log_likelihood_history : list of float
        Marginal log-likelihood plus item log priors entering each iteration.
    status : EstimationStatus
        ``CONVERGED`` or ``MAX_ITER_REACHED``.
    n_iterations : int
        Number of completed EM cycles.
    standard_errors : list of dict
        Per item, free parameter name to standard error (NaN when undefined).
    aic, bic : float
        Information criteria.
    n_parameters : int
        Number of estimated parameters.
    n_observations : float
        Number of persons (sum of pattern frequencies).

    Examples
    --------
    >>> result = estimator.fit(items, responses)
    >>> print(result.summary())
    >>> params = result.coef()
    """

    items: list[BaseItemModel]
    quadrature: QuadratureRule
    log_likelihood: float
    iteration_history: list[float]
    log_likelihood_history: list[float]
    status: EstimationStatus
    n_iterations: int
    standard_errors: list[dict[str, float]] = field(default_factory=list)
    aic: float = np.nan
    bic: float = np.nan
    n_parameters: int = 0
    n_observations: float = 0.0

    @property
    def converged(self) -> bool:
        return self.status == EstimationStatus.CONVERGED

    @property
    def item_names(self) -> list[str]:
        return [item.name or f"Item_{j + 1}" for j, item in enumerate(self.items)]

    def summary(self) -> str:
        """Generate a formatted summary of the results.

        Returns
        -------
        str
            Formatted summary string.
        """
        lines = []
        width = 80

        lines.append("=" * width)
        lines.append(f"{'IRT MMLE/EM Results':^{width}}")
        lines.append("=" * width)

        models = sorted({item.model_name for item in self.items})
        lines.append(
            f"Models:             {', '.join(models):<20} "
            f"Log-Likelihood:    {self.log_likelihood:>12.4f}"
        )
        lines.append(
            f"No. Items:          {len(self.items):<20} "
            f"AIC:               {self.aic:>12.4f}"
        )
        lines.append(
            f"Quadrature points:  {self.quadrature.n_points:<20} "
            f"BIC:               {self.bic:>12.4f}"
        )
        lines.append(
            f"No. Persons:        {self.n_observations:<20g} "
            f"No. Parameters:    {self.n_parameters:>12}"
        )
        lines.append(
            f"Status:             {self.status.value:<20} "
            f"Iterations:        {self.n_iterations:>12}"
        )
        lines.append("-" * width)

        lines.append(f"{'Item':<15} {'Parameter':<16} {'Estimate':>10} {'Std.Err':>10}")
        lines.append("-" * width)
        for name, item, se in zip(self.item_names, self.items, self._padded_standard_errors()):
            for j, (param, value) in enumerate(item.parameter_dict().items()):
                label = name if j == 0 else ""
                err = se.get(param, np.nan)
                err_text = f"{err:>10.4f}" if np.isfinite(err) else f"{'--':>10}"
                lines.append(f"{label:<15} {param:<16} {value:>10.4f} {err_text}")
            if item.extreme:
                lines.append(f"{'':<15} (extreme item, not estimated)")

        lines.append("=" * width)
        return "\n".join(lines)

    def _padded_standard_errors(self) -> list[dict[str, float]]:
        if len(self.standard_errors) == len(self.items):
            return self.standard_errors
        return [item.standard_errors for item in self.items]

    def coef(self) -> pd.DataFrame:
        """Return item parameters as a DataFrame, one row per item.

        Parameters a model family does not have are NaN.
        """
        import pandas as pd

        rows = [item.parameter_dict() for item in self.items]
        df = pd.DataFrame(rows, index=self.item_names)
        df.insert(0, "model", [item.model_name for item in self.items])
        df.index.name = "item"
        return df

    def coef_with_se(self) -> pd.DataFrame:
        """Return item parameters with standard errors as a DataFrame.

        Each parameter column is followed by a ``<name>_se`` column.
        """
        import pandas as pd

        rows = []
        for item, se in zip(self.items, self._padded_standard_errors()):
            row: dict[str, Any] = {"model": item.model_name}
            for param, value in item.parameter_dict().items():
                row[param] = value
                row[f"{param}_se"] = se.get(param, np.nan)
            rows.append(row)

        df = pd.DataFrame(rows, index=self.item_names)
        df.index.name = "item"
        return df

    def fit_statistics(self) -> dict[str, Any]:
        """Return fit statistics as a dictionary."""
        return {
            "log_likelihood": self.log_likelihood,
            "aic": self.aic,
            "bic": self.bic,
            "n_parameters": self.n_parameters,
            "n_observations": self.n_observations,
            "converged": self.converged,
            "n_iterations": self.n_iterations,
            "status": self.status.value,
        }

    def __repr__(self) -> str:
        return (
            f"FitResult(n_items={len(self.items)}, "
            f"LL={self.log_likelihood:.2f}, "
            f"status={self.status.value})"
        )
