"""
Shared pytest fixtures for scoreval tests.
"""

import logging

import numpy as np
import pandas as pd
import pytest
from scoreval.data.io import cohort_from_frame
from scoreval.models.specs import ModelSpec, Term, score_alone


def make_cohort_frame(n: int = 2300, seed: int = 0, missing_frac: float = 0.0) -> pd.DataFrame:
    """
    Synthetic validation cohort.

    Integer score 1-9, age loosely correlated with the score, binary
    outcome with roughly 20% prevalence generated from a logistic model on
    the score.

    Args:
        n: Number of subjects
        seed: Random seed
        missing_frac: Fraction of score values set to NaN

    Returns:
        DataFrame with columns subject_id, outcome, score, age
    """
    rng = np.random.default_rng(seed)
    score = rng.integers(1, 10, size=n).astype(float)
    age = np.round(rng.normal(60, 12, size=n) + 1.5 * (score - 5), 1)
    lp = -3.3 + 0.35 * score
    outcome = rng.binomial(1, 1.0 / (1.0 + np.exp(-lp)))

    df = pd.DataFrame(
        {
            "subject_id": [f"S{i:05d}" for i in range(n)],
            "outcome": outcome,
            "score": score,
            "age": age,
        }
    )
    if missing_frac > 0:
        n_missing = int(round(missing_frac * n))
        idx = rng.choice(n, size=n_missing, replace=False)
        df.loc[idx, "score"] = np.nan
    return df


@pytest.fixture
def cohort_frame():
    """Full-size synthetic cohort (n=2300, complete)."""
    return make_cohort_frame()


@pytest.fixture
def reference_cohort(cohort_frame):
    """Complete reference cohort with score and age predictors."""
    return cohort_from_frame(cohort_frame, predictors=["score", "age"])


@pytest.fixture
def small_cohort():
    """Smaller complete cohort for tests that fit many models."""
    return cohort_from_frame(make_cohort_frame(n=500, seed=1), predictors=["score", "age"])


@pytest.fixture
def incomplete_cohort():
    """Cohort with 3% of scores missing."""
    return cohort_from_frame(
        make_cohort_frame(n=1000, seed=2, missing_frac=0.03),
        predictors=["score", "age"],
    )


@pytest.fixture
def score_spec():
    return score_alone("score")


@pytest.fixture
def score_age_spec():
    return ModelSpec(name="score + age", terms=(Term("score"), Term("age")))


@pytest.fixture
def nonlinear_spec():
    return ModelSpec(name="nonlinear score + age", terms=(Term("score", "rcs", 5), Term("age")))


@pytest.fixture(autouse=True)
def reset_scoreval_logger():
    """Detach handlers added by CLI runs."""
    yield
    logger = logging.getLogger("scoreval")
    logger.handlers.clear()
    logger.propagate = True
