from irtem.models.base import BaseItemModel, ItemParameters
from irtem.models.dichotomous import LogisticItem
from irtem.models.polytomous import (
    GeneralizedPartialCreditItem,
    GradedResponseItem,
    PartialCreditItem,
)

__all__ = [
    "BaseItemModel",
    "ItemParameters",
    "LogisticItem",
    "GradedResponseItem",
    "GeneralizedPartialCreditItem",
    "PartialCreditItem",
]
