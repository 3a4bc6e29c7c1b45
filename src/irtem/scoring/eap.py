"""Expected A Posteriori (EAP) scoring."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from irtem.estimation.em import EMEstimator
from irtem.estimation.quadrature import QuadratureRule
from irtem.utils.data import ResponseData

if TYPE_CHECKING:
    from irtem.models.base import BaseItemModel


def eap_scores(
    items: Sequence[BaseItemModel],
    responses,
    quadrature: QuadratureRule | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Posterior mean and standard deviation of theta for each response row.

    θ_EAP = Σ_k θ_k L(x|θ_k) w_k / Σ_k L(x|θ_k) w_k

    The posterior standard deviation is returned as the standard error.

    Parameters
    ----------
    items : sequence of BaseItemModel
        Calibrated items.
    responses : ResponseData or array-like of shape (n_persons, n_items)
        A ``ResponseData`` is scored per pattern; a raw matrix per row, in
        row order.
    quadrature : QuadratureRule, optional
        Prior over theta, typically ``FitResult.quadrature``. Defaults to
        the estimator's standard normal grid.

    Returns
    -------
    theta : ndarray
        EAP estimates.
    se : ndarray
        Posterior standard deviations.
    """
    if not isinstance(responses, ResponseData):
        responses = ResponseData.from_patterns(responses)

    estimator = EMEstimator(quadrature=quadrature)
    posterior = estimator.e_step(items, responses).posterior
    points = estimator.quadrature.points

    theta = posterior @ points
    variance = posterior @ points**2 - theta**2
    return theta, np.sqrt(np.maximum(variance, 0.0))


class EAPScorer:
    """Expected A Posteriori (EAP) ability estimation over a quadrature rule.

    Parameters
    ----------
    quadrature : QuadratureRule, optional
        Prior over theta.

    Examples
    --------
    >>> scorer = EAPScorer(result.quadrature)
    >>> theta, se = scorer.score(result.items, responses)
    """

    def __init__(self, quadrature: QuadratureRule | None = None) -> None:
        self.quadrature = quadrature

    def score(
        self,
        items: Sequence[BaseItemModel],
        responses,
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        return eap_scores(items, responses, self.quadrature)

    def __repr__(self) -> str:
        return f"EAPScorer(quadrature={self.quadrature!r})"
