"""Type definitions for the irtem package."""

from typing import Literal, Union

import numpy as np
from numpy.typing import NDArray

# Array types
ResponseMatrix = NDArray[np.int_]  # Shape: (n_patterns, n_items)
ThetaArray = NDArray[np.float64]  # Shape: (n_theta,)
ParameterArray = NDArray[np.float64]  # Free parameter vector of one item
WeightArray = NDArray[np.float64]  # Shape: (n_quadpts,)

# Model type literals
DichotomousModelType = Literal["1PL", "2PL", "3PL", "4PL"]
PolytomousModelType = Literal["GRM", "GPCM", "PCM"]
ModelType = Union[DichotomousModelType, PolytomousModelType]

# Latent density handling during EM
LatentDensityType = Literal["fixed", "empirical"]

# Starting value methods
StartingValueMethod = Literal["classical", "prox"]

# Stage of an EM iteration reported to callbacks
IterationStage = Literal["started", "finished"]
