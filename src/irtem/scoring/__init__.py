"""Person scoring methods for IRT models."""

from irtem.scoring.eap import EAPScorer, eap_scores

__all__ = ["EAPScorer", "eap_scores"]
