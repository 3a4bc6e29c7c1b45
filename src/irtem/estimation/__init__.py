from irtem.estimation.base import BaseEstimator
from irtem.estimation.em import EMEstimator, EStepResult, IterationEvent
from irtem.estimation.enums import EstimationStatus
from irtem.estimation.priors import BetaPrior, ItemPrior, LogNormalPrior, NormalPrior
from irtem.estimation.quadrature import QuadratureRule

__all__ = [
    "BaseEstimator",
    "EMEstimator",
    "EStepResult",
    "IterationEvent",
    "EstimationStatus",
    "QuadratureRule",
    "ItemPrior",
    "BetaPrior",
    "LogNormalPrior",
    "NormalPrior",
]
