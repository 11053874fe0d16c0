"""
Running aggregation of bootstrap iteration records.

Only running sums survive across iterations: per subject and model the sum
of absolute deviations from the reference prediction, the sum and sum of
squares of predictions, classification flips, plus per-model failure
counters and calibration curves evaluated on a fixed grid. Iteration
records are folded in one at a time and can then be discarded.

MAPE here is an instability measure: the deviation of a refit model's
prediction from the reference model's prediction for the same subject. It
is never computed against the observed outcome.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "model",
    "n_requested",
    "n_completed",
    "n_success",
    "n_failed",
    "failure_rate",
    "failure_reasons",
    "available",
    "diagnostic",
    "instability_index",
    "median_mape",
    "max_mape",
    "mean_sd",
    "classification_instability",
]


@dataclass
class IterationRecord:
    """
    Result of one bootstrap iteration.

    Attributes:
        iteration: Iteration index (1..B; 0 is the reference pass)
        seed: Seed the iteration's generator was built from
        predictions: Model name -> reference-cohort predictions indexed by
            subject identifier
        failures: Model name -> failure reason for models that did not fit
        curves: Model name -> calibration curve evaluated on the shared grid
        elapsed: Wall time of the iteration in seconds
    """

    iteration: int
    seed: int
    predictions: dict[str, pd.Series] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    curves: dict[str, np.ndarray] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def failed(self) -> bool:
        return bool(self.failures) and not self.predictions


@dataclass
class StabilityResult:
    """
    Aggregated instability output.

    Attributes:
        n_requested: Resampled iterations requested
        n_completed: Iterations that returned a record (successful or not)
        aborted: True if the run stopped early (deadline or stop request)
        summary: One row per model, including success/failure counts and
            the instability index (mean per-subject MAPE)
        subjects: Long table keyed by (subject identifier, model)
        calibration_bands: Percentile bands of bootstrap calibration curves
        reference_failures: Models dropped because the reference fit failed
    """

    n_requested: int
    n_completed: int
    aborted: bool
    summary: pd.DataFrame
    subjects: pd.DataFrame
    calibration_bands: pd.DataFrame
    reference_failures: dict[str, str] = field(default_factory=dict)

    def successes(self) -> dict[str, int]:
        """Successful iteration count per model."""
        return dict(zip(self.summary["model"], self.summary["n_success"].astype(int)))

    def instability_index(self) -> dict[str, float]:
        return dict(zip(self.summary["model"], self.summary["instability_index"]))


class InstabilityAccumulator:
    """
    Reducer over IterationRecords.

    Predictions are aligned on subject identifier, never on position. A
    record whose predictions do not cover every reference subject is
    rejected.

    Args:
        subject_ids: Reference cohort identifiers, in cohort order
        reference: Model name -> iteration-0 predictions indexed by subject id
        classification_threshold: Optional risk threshold for classification
            instability
        curve_grid: Probability grid calibration curves are evaluated on
    """

    def __init__(
        self,
        subject_ids,
        reference: dict[str, pd.Series],
        classification_threshold: float | None = None,
        curve_grid: np.ndarray | None = None,
    ):
        self.subject_ids = pd.Index(subject_ids)
        if self.subject_ids.has_duplicates:
            raise ValueError("Subject identifiers must be unique")
        self.models = list(reference)
        self.classification_threshold = classification_threshold
        self.curve_grid = None if curve_grid is None else np.asarray(curve_grid, dtype=float)

        n = len(self.subject_ids)
        self.reference = {m: self._align(m, reference[m]) for m in self.models}
        self.sum_abs_diff = {m: np.zeros(n) for m in self.models}
        self.sum_pred = {m: np.zeros(n) for m in self.models}
        self.sum_sq_pred = {m: np.zeros(n) for m in self.models}
        self.flips = {m: np.zeros(n, dtype=int) for m in self.models}
        self.n_success = dict.fromkeys(self.models, 0)
        self.failures = {m: Counter() for m in self.models}
        self.curves: dict[str, list[np.ndarray]] = {m: [] for m in self.models}
        self.n_completed = 0
        self._seen: set[int] = set()

    def _align(self, model: str, preds: pd.Series) -> np.ndarray:
        aligned = preds.reindex(self.subject_ids).to_numpy(dtype=float)
        if np.isnan(aligned).any():
            n_missing = int(np.isnan(aligned).sum())
            raise ValueError(
                f"Predictions for '{model}' are missing {n_missing} reference subjects"
            )
        return aligned

    def update(self, record: IterationRecord) -> None:
        """Fold one iteration record into the running sums."""
        if record.iteration in self._seen:
            raise ValueError(f"Iteration {record.iteration} was already aggregated")
        self._seen.add(record.iteration)
        self.n_completed += 1

        for model in self.models:
            if model in record.failures:
                self.failures[model][record.failures[model]] += 1
                continue
            if model not in record.predictions:
                self.failures[model]["missing"] += 1
                continue

            p = self._align(model, record.predictions[model])
            ref = self.reference[model]
            self.sum_abs_diff[model] += np.abs(p - ref)
            self.sum_pred[model] += p
            self.sum_sq_pred[model] += p * p
            if self.classification_threshold is not None:
                t = self.classification_threshold
                self.flips[model] += (p >= t) != (ref >= t)
            self.n_success[model] += 1

            curve = record.curves.get(model)
            if curve is not None and self.curve_grid is not None:
                self.curves[model].append(np.asarray(curve, dtype=float))

    # ------------------------------------------------------------------
    # Finalisation
    # ------------------------------------------------------------------

    def _availability(self, model: str, max_failure_frac: float) -> tuple[bool, str]:
        n_ok = self.n_success[model]
        n_fail = sum(self.failures[model].values())
        if self.n_completed == 0:
            return False, "no iterations completed"
        if n_ok == 0:
            return False, "every iteration failed"
        rate = n_fail / self.n_completed
        if rate > max_failure_frac:
            return False, (
                f"failure rate {rate:.1%} exceeds ceiling {max_failure_frac:.0%}; "
                "instability not reported"
            )
        return True, ""

    def _model_summary(self, model: str, n_requested: int, max_failure_frac: float) -> dict:
        n_ok = self.n_success[model]
        n_fail = sum(self.failures[model].values())
        available, diagnostic = self._availability(model, max_failure_frac)

        row = {
            "model": model,
            "n_requested": n_requested,
            "n_completed": self.n_completed,
            "n_success": n_ok,
            "n_failed": n_fail,
            "failure_rate": n_fail / self.n_completed if self.n_completed else np.nan,
            "failure_reasons": "; ".join(
                f"{reason}: {count}" for reason, count in sorted(self.failures[model].items())
            ),
            "available": available,
            "diagnostic": diagnostic,
            "instability_index": np.nan,
            "median_mape": np.nan,
            "max_mape": np.nan,
            "mean_sd": np.nan,
            "classification_instability": np.nan,
        }
        if available:
            mape = self.sum_abs_diff[model] / n_ok
            row["instability_index"] = float(np.mean(mape))
            row["median_mape"] = float(np.median(mape))
            row["max_mape"] = float(np.max(mape))
            row["mean_sd"] = float(np.mean(self._sd(model)))
            if self.classification_threshold is not None:
                row["classification_instability"] = float(np.mean(self.flips[model] / n_ok))
        return row

    def _sd(self, model: str) -> np.ndarray:
        n_ok = self.n_success[model]
        if n_ok < 2:
            return np.full(len(self.subject_ids), np.nan)
        mean = self.sum_pred[model] / n_ok
        var = (self.sum_sq_pred[model] - n_ok * mean * mean) / (n_ok - 1)
        return np.sqrt(np.clip(var, 0.0, None))

    def _subject_table(self, model: str, available: bool) -> pd.DataFrame:
        n_ok = self.n_success[model]
        nan = np.full(len(self.subject_ids), np.nan)
        usable = available and n_ok > 0
        table = pd.DataFrame(
            {
                self.subject_ids.name or "subject_id": self.subject_ids.to_numpy(),
                "model": model,
                "reference_prediction": self.reference[model],
                "mean_prediction": self.sum_pred[model] / n_ok if usable else nan,
                "sd_prediction": self._sd(model) if usable else nan,
                "mape": self.sum_abs_diff[model] / n_ok if usable else nan,
                "n_success": n_ok,
            }
        )
        if self.classification_threshold is not None:
            table["classification_instability"] = self.flips[model] / n_ok if usable else nan
        return table

    def _bands(self, model: str) -> pd.DataFrame:
        curves = self.curves[model]
        if not curves or self.curve_grid is None:
            return pd.DataFrame()
        stacked = np.vstack(curves)
        supported = np.isfinite(stacked).sum(axis=0)
        lower = np.full(len(self.curve_grid), np.nan)
        median = lower.copy()
        upper = lower.copy()
        cols = supported > 0
        if cols.any():
            lower[cols], median[cols], upper[cols] = np.nanpercentile(
                stacked[:, cols], [2.5, 50.0, 97.5], axis=0
            )
        return pd.DataFrame(
            {
                "model": model,
                "predicted": self.curve_grid,
                "lower": lower,
                "median": median,
                "upper": upper,
                "n_curves": supported,
            }
        )

    def finalize(
        self,
        n_requested: int,
        max_failure_frac: float = 0.5,
        aborted: bool = False,
        reference_failures: dict[str, str] | None = None,
    ) -> StabilityResult:
        """
        Compute per-subject and per-model summaries.

        Models whose failure rate exceeds ``max_failure_frac`` are reported
        as unavailable (NaN instability) with an explicit diagnostic.
        Models dropped at the reference fit are listed with zero successes.
        """
        reference_failures = dict(reference_failures or {})
        rows = []
        subject_tables = []
        band_tables = []
        for model in self.models:
            row = self._model_summary(model, n_requested, max_failure_frac)
            rows.append(row)
            subject_tables.append(self._subject_table(model, row["available"]))
            band_tables.append(self._bands(model))
            if not row["available"]:
                logger.warning(f"Instability for '{model}' unavailable: {row['diagnostic']}")

        for model, reason in reference_failures.items():
            rows.append(
                {
                    "model": model,
                    "n_requested": n_requested,
                    "n_completed": self.n_completed,
                    "n_success": 0,
                    "n_failed": 0,
                    "failure_rate": np.nan,
                    "failure_reasons": "",
                    "available": False,
                    "diagnostic": f"reference fit failed: {reason}",
                    "instability_index": np.nan,
                    "median_mape": np.nan,
                    "max_mape": np.nan,
                    "mean_sd": np.nan,
                    "classification_instability": np.nan,
                }
            )

        subjects = (
            pd.concat(subject_tables, ignore_index=True) if subject_tables else pd.DataFrame()
        )
        non_empty = [b for b in band_tables if not b.empty]
        bands = pd.concat(non_empty, ignore_index=True) if non_empty else pd.DataFrame()

        return StabilityResult(
            n_requested=n_requested,
            n_completed=self.n_completed,
            aborted=aborted,
            summary=pd.DataFrame(rows, columns=SUMMARY_COLUMNS),
            subjects=subjects,
            calibration_bands=bands,
            reference_failures=reference_failures,
        )
