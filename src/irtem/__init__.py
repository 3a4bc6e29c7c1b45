import logging

import numpy as np

from irtem.constants import LOGISTIC_D, MISSING
from irtem.estimation.em import EMEstimator, EStepResult, IterationEvent
from irtem.estimation.enums import EstimationStatus
from irtem.estimation.priors import BetaPrior, ItemPrior, LogNormalPrior, NormalPrior
from irtem.estimation.quadrature import QuadratureRule
from irtem.models.base import BaseItemModel, ItemParameters
from irtem.models.dichotomous import LogisticItem
from irtem.models.polytomous import (
    GeneralizedPartialCreditItem,
    GradedResponseItem,
    PartialCreditItem,
)
from irtem.results.fit_result import FitResult
from irtem.scoring.eap import eap_scores
from irtem.typing import LatentDensityType, ModelType, StartingValueMethod
from irtem.utils.data import ResponseData, ResponsePattern, validate_responses
from irtem.utils.datasets import list_datasets, load_dataset
from irtem.utils.simulation import generate_items, simulate_responses
from irtem.utils.starting import classical_statistics, compute_starting_values

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def fit_mmle(
    data,
    model: ModelType = "2PL",
    n_categories: int | None = None,
    scaling_constant: float = LOGISTIC_D,
    quadrature: QuadratureRule | None = None,
    start: StartingValueMethod = "classical",
    latent_density: LatentDensityType = "fixed",
    max_iter: int = 500,
    tol: float = 1e-4,
    verbose: bool = False,
    item_names: list[str] | None = None,
    n_jobs: int = 1,
) -> FitResult:
    """Fit one item model family to every item with MMLE/EM.

    Parameters
    ----------
    data : ResponseData or array-like of shape (n_persons, n_items)
        Category codes, missing coded as -1.
    model : {"1PL", "2PL", "3PL", "4PL", "GRM", "GPCM", "PCM"}, default="2PL"
        Item model used for every item.
    n_categories : int, optional
        Number of categories for polytomous models; inferred from the data
        when omitted.
    scaling_constant : float, default=1.0
        ``D``; 1.7 approximates the normal ogive metric.
    quadrature : QuadratureRule, optional
        Latent distribution; defaults to the estimator's normal grid.
    start : {"classical", "prox"}, default="classical"
        Starting value method.
    latent_density : {"fixed", "empirical"}, default="fixed"
        Whether the quadrature weights are re-estimated.
    max_iter, tol, verbose, n_jobs
        Passed to ``EMEstimator``.
    item_names : list of str, optional
        Item labels.

    Returns
    -------
    FitResult

    Examples
    --------
    >>> result = fit_mmle(load_dataset("LSAT7")["data"], model="2PL")
    >>> result.coef()
    """
    data = data if isinstance(data, ResponseData) else ResponseData.from_matrix(data)
    n_items = data.n_items

    if item_names is None:
        item_names = [f"Item_{i + 1}" for i in range(n_items)]
    if len(item_names) != n_items:
        raise ValueError(f"Expected {n_items} item names, got {len(item_names)}")

    is_polytomous = model in ("GRM", "GPCM", "PCM")
    if is_polytomous and n_categories is None:
        n_categories = int(np.max(data.matrix)) + 1
    if is_polytomous and n_categories < 2:
        raise ValueError("n_categories must be at least 2")

    items: list[BaseItemModel] = []
    for name in item_names:
        if model in ("1PL", "2PL", "3PL", "4PL"):
            item = LogisticItem(model, scaling_constant=scaling_constant, name=name)
        elif model == "GRM":
            item = GradedResponseItem(
                n_categories=n_categories, scaling_constant=scaling_constant, name=name
            )
        elif model == "GPCM":
            item = GeneralizedPartialCreditItem(
                n_categories=n_categories, scaling_constant=scaling_constant, name=name
            )
        elif model == "PCM":
            item = PartialCreditItem(
                n_categories=n_categories, scaling_constant=scaling_constant, name=name
            )
        else:
            raise ValueError(f"Unknown model: {model}")
        items.append(item)

    compute_starting_values(data, items, method=start)

    estimator = EMEstimator(
        quadrature=quadrature,
        max_iter=max_iter,
        tol=tol,
        verbose=verbose,
        latent_density=latent_density,
        n_jobs=n_jobs,
    )
    return estimator.fit(items, data)


__all__ = [
    "__version__",
    "fit_mmle",
    "MISSING",
    # Models
    "BaseItemModel",
    "ItemParameters",
    "LogisticItem",
    "GradedResponseItem",
    "GeneralizedPartialCreditItem",
    "PartialCreditItem",
    # Estimation
    "EMEstimator",
    "EStepResult",
    "IterationEvent",
    "EstimationStatus",
    "QuadratureRule",
    "ItemPrior",
    "BetaPrior",
    "LogNormalPrior",
    "NormalPrior",
    # Results and scoring
    "FitResult",
    "eap_scores",
    # Utilities
    "ResponseData",
    "ResponsePattern",
    "validate_responses",
    "compute_starting_values",
    "classical_statistics",
    "load_dataset",
    "list_datasets",
    "simulate_responses",
    "generate_items",
]
