"""
Prediction of risks from fitted models.

Predictions can be generated for any rows with the model's predictor
schema, including rows the model was not fit on.
"""

import numpy as np
import pandas as pd

from scoreval.data.cohort import FittingSample, ReferenceCohort
from scoreval.models.fitting import FittedModel


def predict_risk(
    model: FittedModel,
    data: ReferenceCohort | FittingSample | pd.DataFrame,
) -> np.ndarray:
    """
    Predicted probabilities via the logistic link.

    Args:
        model: Fitted model
        data: Cohort, fitting sample or plain frame with the model's variables

    Returns:
        Array of probabilities in [0, 1], one per row, in row order
    """
    frame = data.frame if isinstance(data, (ReferenceCohort, FittingSample)) else data
    return model.predict_proba(frame)


def score_reference(model: FittedModel, cohort: ReferenceCohort) -> pd.Series:
    """
    Score the fixed reference cohort, indexed by subject identifier.

    Args:
        model: Fitted model (fit on any sample)
        cohort: Reference cohort

    Returns:
        Series of probabilities indexed by subject identifier

    Raises:
        TypeError: If ``cohort`` is not a ReferenceCohort
    """
    if not isinstance(cohort, ReferenceCohort):
        raise TypeError(
            f"Scoring requires the ReferenceCohort, got {type(cohort).__name__}; "
            "bootstrap samples are for fitting only"
        )
    return pd.Series(
        predict_risk(model, cohort),
        index=pd.Index(cohort.subject_ids, name=cohort.id_col),
        name=model.name,
    )
