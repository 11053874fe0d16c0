"""
Model specifications.

A ModelSpec is an immutable, named formula: an ordered set of predictor
terms (linear, or restricted cubic spline with K knots) for a binary
outcome. The design matrix for a spec is built here; spline knots are
estimated on the fitting data and then frozen so predictions on any other
rows use the identical basis.
"""

from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd

from scoreval.models.splines import rcs_basis, rcs_column_names, rcs_knots

Transform = Literal["linear", "rcs"]

INTERCEPT = "Intercept"


@dataclass(frozen=True)
class Term:
    """One predictor term.

    Attributes:
        variable: Predictor column
        transform: "linear" or "rcs"
        knots: Number of spline knots (ignored for linear terms)
    """

    variable: str
    transform: Transform = "linear"
    knots: int = 5

    def __post_init__(self):
        if self.transform not in ("linear", "rcs"):
            raise ValueError(f"Unknown transform '{self.transform}' for '{self.variable}'")

    @property
    def label(self) -> str:
        if self.transform == "rcs":
            return f"rcs({self.variable}, {self.knots})"
        return self.variable


@dataclass(frozen=True)
class ModelSpec:
    """Named model formula.

    Attributes:
        name: Unique model name (e.g. "score alone")
        terms: Ordered predictor terms
    """

    name: str
    terms: tuple[Term, ...]

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))
        if not self.terms:
            raise ValueError(f"Model '{self.name}' has no terms")
        variables = [t.variable for t in self.terms]
        if len(set(variables)) != len(variables):
            raise ValueError(f"Model '{self.name}' repeats a variable: {variables}")

    @property
    def variables(self) -> list[str]:
        return [t.variable for t in self.terms]

    @property
    def formula(self) -> str:
        return "y ~ " + " + ".join(t.label for t in self.terms)

    @property
    def is_nonlinear(self) -> bool:
        return any(t.transform == "rcs" for t in self.terms)


def estimate_knots(df: pd.DataFrame, spec: ModelSpec) -> dict[str, np.ndarray]:
    """Knot locations for every spline term, estimated on ``df``."""
    return {
        t.variable: rcs_knots(df[t.variable].to_numpy(dtype=float), t.knots)
        for t in spec.terms
        if t.transform == "rcs"
    }


def design_matrix(
    df: pd.DataFrame,
    spec: ModelSpec,
    knots: dict[str, np.ndarray],
) -> pd.DataFrame:
    """
    Build the design matrix (with intercept) for ``spec`` on ``df``.

    Args:
        df: Frame holding the spec's variables
        spec: Model specification
        knots: Frozen knot locations per spline variable

    Returns:
        DataFrame indexed like ``df`` with an intercept column first

    Raises:
        KeyError: If a variable is absent or spline knots are missing
        ValueError: If a spline has fewer than 3 distinct knots
    """
    blocks = {INTERCEPT: np.ones(len(df))}
    for term in spec.terms:
        x = df[term.variable].to_numpy(dtype=float)
        if term.transform == "rcs":
            basis = rcs_basis(x, knots[term.variable])
            for name, col in zip(rcs_column_names(term.variable, basis.shape[1]), basis.T):
                blocks[name] = col
        else:
            blocks[term.variable] = x
    return pd.DataFrame(blocks, index=df.index)


def score_alone(variable: str = "score") -> ModelSpec:
    """Single linear predictor model."""
    return ModelSpec(name=f"{variable} alone", terms=(Term(variable),))


def default_model_specs(score: str = "score", age: str | None = "age", knots: int = 5):
    """
    The three standard variants: score alone, score + age, nonlinear score + age.

    Args:
        score: Score column
        age: Adjustment column (None gives only the score-alone model)
        knots: Spline knots for the nonlinear variant

    Returns:
        List of ModelSpec
    """
    specs = [score_alone(score)]
    if age is not None:
        specs.append(ModelSpec(name=f"{score} + {age}", terms=(Term(score), Term(age))))
        specs.append(
            ModelSpec(
                name=f"nonlinear {score} + {age}",
                terms=(Term(score, "rcs", knots), Term(age)),
            )
        )
    return specs
