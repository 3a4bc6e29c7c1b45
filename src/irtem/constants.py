"""Constants for numerical stability and default bounds.

These are true constants that should not be user-configurable.
For configurable values, use function arguments with defaults.
"""

PROB_EPSILON: float = 1e-10
"""Small value to prevent log(0) and division by zero in probability calculations."""

MISSING: int = -1
"""Category code marking a missing (not presented or omitted) response."""

LOGISTIC_D: float = 1.0
"""Scaling constant for the logistic metric."""

NORMAL_OGIVE_D: float = 1.7
"""Scaling constant that approximates the normal ogive metric."""

EXTREME_DIFFICULTY: float = 9.0
"""Bounded difficulty substituted for items nobody (or everybody) answered correctly."""

DISCRIMINATION_BOUNDS: tuple[float, float] = (1e-3, 20.0)
"""Box constraints for discrimination during the M-step."""

LOCATION_BOUNDS: tuple[float, float] = (-20.0, 20.0)
"""Box constraints for difficulty, threshold and step parameters during the M-step."""

THRESHOLD_GAP_BOUNDS: tuple[float, float] = (1e-4, 40.0)
"""Range of the gap between adjacent GRM thresholds during the M-step."""

ASYMPTOTE_BOUNDS: tuple[float, float] = (0.0, 1.0)
"""Box constraints for guessing and slipping parameters."""

DEFAULT_QUADRATURE_POINTS: int = 41
"""Number of quadrature nodes used when the caller does not supply a rule."""

WEIGHT_TOLERANCE: float = 1e-10
"""Tolerance on the sum of quadrature weights."""
