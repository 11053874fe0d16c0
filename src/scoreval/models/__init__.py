"""
Models package for scoreval.

This package contains model-related functionality including:
- Model specifications (linear and restricted cubic spline terms)
- Logistic regression fitting with explicit failure signalling
- Prediction on arbitrary rows with a frozen basis
- Likelihood-ratio comparisons and linearity probes
"""

from .comparison import (
    compare_models,
    is_nested,
    likelihood_ratio_test,
    linearity_test,
    nested_pairs,
)
from .fitting import FitFailure, FittedModel, fit_model
from .predict import predict_risk, score_reference
from .specs import ModelSpec, Term, default_model_specs, design_matrix, score_alone
from .splines import rcs_basis, rcs_knots

__all__ = [
    # Specifications
    "ModelSpec",
    "Term",
    "default_model_specs",
    "score_alone",
    "design_matrix",
    "rcs_basis",
    "rcs_knots",
    # Fitting
    "FitFailure",
    "FittedModel",
    "fit_model",
    # Prediction
    "predict_risk",
    "score_reference",
    # Comparison
    "likelihood_ratio_test",
    "compare_models",
    "nested_pairs",
    "is_nested",
    "linearity_test",
]
