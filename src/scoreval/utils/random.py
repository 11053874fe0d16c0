"""
Random seed management for reproducibility.

Provides deterministic per-iteration seed streams for the bootstrap engine,
plus an optional SEED_GLOBAL environment variable for single-threaded
reproducibility debugging.
"""

import logging
import os
import random

import numpy as np

logger = logging.getLogger(__name__)


def set_random_seed(seed: int):
    """
    Set random seed for all libraries.

    Args:
        seed: Random seed value
    """
    random.seed(seed)
    np.random.seed(seed)


def apply_seed_global() -> int | None:
    """
    Check SEED_GLOBAL environment variable and apply global seeding if set.

    Production runs should use the explicit seeds in the config file; this is
    intended for debugging only.

    Returns:
        The seed value applied, or None if SEED_GLOBAL was not set or invalid.

    Examples:
        >>> import os
        >>> os.environ["SEED_GLOBAL"] = "42"
        >>> seed = apply_seed_global()
        >>> seed
        42
        >>> del os.environ["SEED_GLOBAL"]
    """
    seed_str = os.environ.get("SEED_GLOBAL")
    if seed_str is None:
        return None

    seed_str = seed_str.strip()
    if not seed_str:
        return None

    try:
        seed = int(seed_str)
    except ValueError:
        logger.warning(
            "SEED_GLOBAL environment variable has non-integer value '%s'; ignoring.",
            seed_str,
        )
        return None

    if seed < 0 or seed > 2**32 - 1:
        logger.warning(
            "SEED_GLOBAL=%d out of valid range [0, 2^32-1]; ignoring.",
            seed,
        )
        return None

    set_random_seed(seed)
    logger.info("SEED_GLOBAL=%d applied (global RNG seeded for reproducibility).", seed)
    return seed


def iteration_seeds(base_seed: int, n: int) -> list[int]:
    """
    Generate one independent seed per bootstrap iteration.

    Seeds are derived with ``np.random.SeedSequence.spawn`` so that streams are
    statistically independent and do not depend on execution order, which
    keeps parallel runs reproducible.

    Args:
        base_seed: Base random seed
        n: Number of seeds to generate

    Returns:
        List of ``n`` non-negative 32-bit integer seeds
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    children = np.random.SeedSequence(int(base_seed)).spawn(n)
    return [int(child.generate_state(1)[0]) for child in children]
