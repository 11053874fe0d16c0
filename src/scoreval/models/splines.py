"""
Restricted cubic spline basis.

Uses Harrell's default knot quantiles and the normalised truncated power
basis, so the fitted curve is linear beyond the outer knots. A spline on
``k`` knots expands one predictor into ``k - 1`` columns: the predictor
itself followed by ``k - 2`` nonlinear terms.

Reference:
    Harrell FE (2015). Regression Modeling Strategies (2nd ed.), Section 2.4.5.
"""

import numpy as np

# Knot quantiles by number of knots (Harrell 2015, Table 2.3)
KNOT_QUANTILES: dict[int, tuple[float, ...]] = {
    3: (0.10, 0.50, 0.90),
    4: (0.05, 0.35, 0.65, 0.95),
    5: (0.05, 0.275, 0.50, 0.725, 0.95),
    6: (0.05, 0.23, 0.41, 0.59, 0.77, 0.95),
    7: (0.025, 0.1833, 0.3417, 0.50, 0.6583, 0.8167, 0.975),
}


def rcs_knots(x: np.ndarray, n_knots: int) -> np.ndarray:
    """
    Place knots at Harrell's default quantiles of ``x``.

    Knots that coincide (common with integer-valued predictors) are collapsed,
    so the result may hold fewer than ``n_knots`` locations.

    Args:
        x: Predictor values (NaN ignored)
        n_knots: Requested number of knots (3-7)

    Returns:
        Sorted array of distinct knot locations

    Raises:
        ValueError: If ``n_knots`` is not supported
    """
    if n_knots not in KNOT_QUANTILES:
        raise ValueError(f"n_knots must be one of {sorted(KNOT_QUANTILES)}, got {n_knots}")
    x = np.asarray(x, dtype=float)
    x = x[np.isfinite(x)]
    if len(x) == 0:
        return np.array([])
    knots = np.quantile(x, KNOT_QUANTILES[n_knots])
    return np.unique(knots)


def rcs_basis(x: np.ndarray, knots: np.ndarray) -> np.ndarray:
    """
    Evaluate the restricted cubic spline basis at ``x``.

    Args:
        x: Predictor values
        knots: Sorted knot locations (at least 3)

    Returns:
        Array of shape (len(x), len(knots) - 1); column 0 is ``x`` itself

    Raises:
        ValueError: If fewer than 3 knots are given
    """
    x = np.asarray(x, dtype=float)
    t = np.asarray(knots, dtype=float)
    k = len(t)
    if k < 3:
        raise ValueError(f"Restricted cubic spline needs >= 3 distinct knots, got {k}")

    scale = (t[-1] - t[0]) ** 2
    t_last, t_penult = t[-1], t[-2]

    def pos3(v):
        return np.maximum(v, 0.0) ** 3

    cols = [x]
    for j in range(k - 2):
        term = (
            pos3(x - t[j])
            - pos3(x - t_penult) * (t_last - t[j]) / (t_last - t_penult)
            + pos3(x - t_last) * (t_penult - t[j]) / (t_last - t_penult)
        )
        cols.append(term / scale)
    return np.column_stack(cols)


def rcs_column_names(variable: str, n_columns: int) -> list[str]:
    """Column names ``x, x', x'', ...`` for a spline basis."""
    return [variable + "'" * i for i in range(n_columns)]
