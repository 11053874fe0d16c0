"""Utility functions for scoreval."""

from scoreval.utils.logging import level_from_verbosity, log_section, setup_logger
from scoreval.utils.random import apply_seed_global, iteration_seeds, set_random_seed
from scoreval.utils.serialization import load_json, save_json, save_table, to_jsonable

__all__ = [
    "setup_logger",
    "level_from_verbosity",
    "log_section",
    "set_random_seed",
    "apply_seed_global",
    "iteration_seeds",
    "save_json",
    "load_json",
    "save_table",
    "to_jsonable",
]
