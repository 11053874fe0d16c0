"""
Data schema definitions and constants.

Defines default column names and labels used throughout the pipeline.
"""

# ============================================================================
# Column Names
# ============================================================================

# Identifier column
ID_COL = "subject_id"

# Binary outcome column (0/1)
OUTCOME_COL = "outcome"

# Primary predictor (the integer risk score being validated)
SCORE_COL = "score"

# Secondary predictor used by the adjusted model variants
AGE_COL = "age"

# ============================================================================
# Strategy Labels (net benefit)
# ============================================================================

TREAT_ALL = "treat_all"
TREAT_NONE = "treat_none"

REFERENCE_STRATEGIES = [TREAT_ALL, TREAT_NONE]

# ============================================================================
# Data Quality Constants
# ============================================================================

# Single imputation is only defensible for a small amount of missing data
MAX_MISSING_FRAC = 0.05

# Minimum number of observed values required to fit an imputation model
MIN_OBSERVED_ROWS = 10

# Outcome values accepted as binary
VALID_OUTCOME_VALUES = {0, 1}
