"""
scoreval: External validation of clinical risk scores

Discrimination, calibration and net benefit of parsimonious logistic risk
models on a reference cohort, plus bootstrap instability of their
predictions.
"""

# Enable pandas Copy-on-Write for pandas 3.0 compatibility and better memory efficiency
# See: https://pandas.pydata.org/docs/user_guide/copy_on_write.html
import pandas as pd

pd.options.mode.copy_on_write = True

__version__ = "0.1.0"
__license__ = "MIT"

from scoreval import (  # noqa: E402
    config,
    data,
    evaluation,
    metrics,
    models,
    stability,
    utils,
)

__all__ = [
    "__version__",
    "config",
    "data",
    "evaluation",
    "metrics",
    "models",
    "stability",
    "utils",
]
