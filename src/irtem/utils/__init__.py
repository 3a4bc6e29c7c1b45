from irtem.utils.data import ResponseData, ResponsePattern, validate_responses
from irtem.utils.datasets import list_datasets, load_dataset
from irtem.utils.simulation import generate_items, simulate_responses
from irtem.utils.starting import classical_statistics, compute_starting_values

__all__ = [
    "ResponseData",
    "ResponsePattern",
    "validate_responses",
    "load_dataset",
    "list_datasets",
    "simulate_responses",
    "generate_items",
    "compute_starting_values",
    "classical_statistics",
]
