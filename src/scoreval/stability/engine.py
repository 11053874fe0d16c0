"""
Bootstrap instability engine.

Each iteration is a pure function of (iteration, seed, reference cohort,
model specs): draw a fitting sample with replacement, impute it
independently, refit every model, and score the fixed reference cohort.
Iterations share nothing but read-only inputs, so they are dispatched with
joblib and folded into a single InstabilityAccumulator as they complete.

Iteration 0 is the unresampled reference pass. It is fit once on the
(single-pass imputed) reference cohort and scored through the same
``score_reference`` path as every bootstrap iteration.
"""

import logging
import time
from collections.abc import Callable, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from scoreval.config.defaults import DEFAULT_MAX_FAILURE_FRAC, DEFAULT_N_BOOT
from scoreval.data.cohort import ReferenceCohort, draw_fitting_sample
from scoreval.data.imputation import PMMImputer
from scoreval.metrics.calibration import (
    DEFAULT_LOWESS_FRAC,
    curve_on_grid,
    smoothed_calibration_curve,
)
from scoreval.models.fitting import FitFailure, FittedModel, fit_model
from scoreval.models.predict import score_reference
from scoreval.models.specs import ModelSpec
from scoreval.stability.accumulator import (
    InstabilityAccumulator,
    IterationRecord,
    StabilityResult,
)
from scoreval.utils.random import iteration_seeds

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"

Fitter = Callable[..., FittedModel]


def default_curve_grid(n_points: int = 101) -> np.ndarray:
    """Probability grid used for calibration stability bands."""
    return np.linspace(0.0, 1.0, n_points)


def fit_reference_models(
    cohort: ReferenceCohort,
    specs: Sequence[ModelSpec],
    fitter: Fitter = fit_model,
    fit_kwargs: dict | None = None,
) -> tuple[dict[str, FittedModel], dict[str, str]]:
    """
    Fit every model on the unresampled reference cohort (iteration 0).

    Returns:
        (fits by model name, failure reason by model name)
    """
    fit_kwargs = fit_kwargs or {}
    sample = cohort.as_fitting_sample()
    fits: dict[str, FittedModel] = {}
    failures: dict[str, str] = {}
    for spec in specs:
        try:
            fits[spec.name] = fitter(spec, sample, **fit_kwargs)
        except FitFailure as e:
            failures[spec.name] = e.reason
            logger.error(f"Reference fit failed for '{spec.name}': {e.reason}")
    return fits, failures


def run_iteration(
    iteration: int,
    seed: int,
    cohort: ReferenceCohort,
    specs: Sequence[ModelSpec],
    imputer: PMMImputer | None = None,
    fitter: Fitter = fit_model,
    fit_kwargs: dict | None = None,
    curve_grid: np.ndarray | None = None,
    lowess_frac: float = DEFAULT_LOWESS_FRAC,
    time_budget: float | None = None,
) -> IterationRecord:
    """
    Run one bootstrap iteration.

    Args:
        iteration: Iteration index (>= 1)
        seed: Seed owned by this iteration
        cohort: Fixed reference cohort (resampling source and scoring target)
        specs: Model specifications to refit
        imputer: Imputer applied to the fitting sample, or None
        fitter: Callable ``fitter(spec, sample, **fit_kwargs) -> FittedModel``
        fit_kwargs: Extra arguments for the fitter
        curve_grid: Grid for bootstrap calibration curves (None = skip curves)
        lowess_frac: LOWESS span for calibration curves
        time_budget: Seconds allowed for the iteration. Checked after each
            model fit; an over-budget iteration is discarded as a timeout.
            A single fit is never interrupted, so one slow fit still runs to
            completion before the iteration is abandoned.

    Returns:
        IterationRecord. A FitFailure affects only its own model.
    """
    start = time.perf_counter()
    fit_kwargs = fit_kwargs or {}
    rng = np.random.default_rng(seed)
    record = IterationRecord(iteration=iteration, seed=seed)

    sample = draw_fitting_sample(cohort, rng, iteration)
    if imputer is not None:
        sample = imputer.impute_sample(sample, rng)

    y_ref = cohort.outcome
    for spec in specs:
        try:
            model = fitter(spec, sample, **fit_kwargs)
        except FitFailure as e:
            record.failures[spec.name] = e.reason
            logger.debug(f"Iteration {iteration}: '{spec.name}' failed ({e.reason})")
        else:
            preds = score_reference(model, cohort)
            del model
            record.predictions[spec.name] = preds
            if curve_grid is not None:
                curve = smoothed_calibration_curve(y_ref, preds.to_numpy(), frac=lowess_frac)
                record.curves[spec.name] = curve_on_grid(curve, curve_grid)

        if time_budget is not None and time.perf_counter() - start > time_budget:
            logger.debug(f"Iteration {iteration}: exceeded {time_budget}s budget")
            record.predictions.clear()
            record.curves.clear()
            record.failures = {s.name: TIMEOUT_REASON for s in specs}
            break

    record.elapsed = time.perf_counter() - start
    return record


def _should_abort(
    start: float,
    deadline: float | None,
    should_stop: Callable[[], bool] | None,
) -> str | None:
    if deadline is not None and time.monotonic() - start > deadline:
        return f"deadline of {deadline}s reached"
    if should_stop is not None and should_stop():
        return "stop requested"
    return None


def run_stability_analysis(
    cohort: ReferenceCohort,
    specs: Sequence[ModelSpec],
    n_boot: int = DEFAULT_N_BOOT,
    seed: int = 0,
    imputer: PMMImputer | None = None,
    fitter: Fitter = fit_model,
    fit_kwargs: dict | None = None,
    reference: dict[str, pd.Series] | None = None,
    reference_failures: dict[str, str] | None = None,
    n_jobs: int = 1,
    backend: str = "loky",
    iteration_timeout: float | None = None,
    deadline: float | None = None,
    should_stop: Callable[[], bool] | None = None,
    max_failure_frac: float = DEFAULT_MAX_FAILURE_FRAC,
    classification_threshold: float | None = None,
    curve_grid: np.ndarray | None = None,
    lowess_frac: float = DEFAULT_LOWESS_FRAC,
    progress_every: int = 25,
) -> StabilityResult:
    """
    Bootstrap instability of every model's predictions on the reference cohort.

    Args:
        cohort: Reference cohort (complete frame for scoring, raw rows for
            resampling)
        specs: Model specifications
        n_boot: Number of resampled iterations (iteration 0 is extra)
        seed: Base seed; one independent child seed per iteration
        imputer: Imputer re-run on every fitting sample
        fitter: Model fitting callable
        fit_kwargs: Extra fitter arguments
        reference: Precomputed iteration-0 predictions by model name. When
            None the reference models are fit here.
        reference_failures: Reasons for models missing from ``reference``
        n_jobs: joblib worker count (1 runs in-process)
        backend: joblib backend, or "sequential"
        iteration_timeout: Per-iteration time budget in seconds. Enforced
            after each model fit, not during one: the wait for an iteration
            is bounded by the budget plus the duration of its slowest fit.
        deadline: Wall-clock budget for the whole run in seconds
        should_stop: Callable polled after each completed iteration; True
            aborts the run
        max_failure_frac: Failure rate above which a model's instability is
            reported unavailable
        classification_threshold: Optional risk threshold for
            classification instability
        curve_grid: Grid for calibration stability bands (default 101 points)
        lowess_frac: LOWESS span for calibration curves
        progress_every: Log progress every N completed iterations

    Returns:
        StabilityResult with completed vs requested iteration counts
    """
    if not isinstance(cohort, ReferenceCohort):
        raise TypeError(f"Expected ReferenceCohort, got {type(cohort).__name__}")
    if n_boot < 1:
        raise ValueError(f"n_boot must be >= 1, got {n_boot}")

    fit_kwargs = fit_kwargs or {}
    grid = default_curve_grid() if curve_grid is None else np.asarray(curve_grid, dtype=float)

    if reference is None:
        fits, reference_failures = fit_reference_models(cohort, specs, fitter, fit_kwargs)
        reference = {name: score_reference(model, cohort) for name, model in fits.items()}
        del fits
    else:
        known = dict(reference_failures or {})
        reference_failures = {
            s.name: known.get(s.name, "no reference prediction")
            for s in specs
            if s.name not in reference
        }

    active = [s for s in specs if s.name in reference]
    accumulator = InstabilityAccumulator(
        pd.Index(cohort.subject_ids, name=cohort.id_col),
        {s.name: reference[s.name] for s in active},
        classification_threshold=classification_threshold,
        curve_grid=grid,
    )

    if not active:
        logger.error("No model could be fit on the reference cohort; skipping bootstrap")
        return accumulator.finalize(n_boot, max_failure_frac, False, reference_failures)

    seeds = iteration_seeds(seed, n_boot)
    logger.info(
        f"Bootstrap instability: {n_boot} iterations, {len(active)} model(s), "
        f"n_jobs={n_jobs}, backend={backend}"
    )

    def _task(i: int):
        return delayed(run_iteration)(
            i,
            seeds[i - 1],
            cohort,
            active,
            imputer,
            fitter,
            fit_kwargs,
            grid,
            lowess_frac,
            iteration_timeout,
        )

    start = time.monotonic()
    aborted = False
    in_process = backend == "sequential" or n_jobs == 1

    if in_process:
        records = (fn(*args, **kwargs) for fn, args, kwargs in map(_task, range(1, n_boot + 1)))
    else:
        records = Parallel(n_jobs=n_jobs, backend=backend, return_as="generator_unordered")(
            _task(i) for i in range(1, n_boot + 1)
        )

    try:
        for record in records:
            accumulator.update(record)
            done = accumulator.n_completed
            if done % progress_every == 0 or done == n_boot:
                logger.info(f"  Completed {done}/{n_boot} iterations")
            reason = _should_abort(start, deadline, should_stop)
            if reason is not None and done < n_boot:
                aborted = True
                logger.warning(
                    f"Aborting bootstrap ({reason}); aggregating {done}/{n_boot} iterations"
                )
                break
    finally:
        records.close()

    result = accumulator.finalize(n_boot, max_failure_frac, aborted, reference_failures)
    for row in result.summary.itertuples(index=False):
        logger.info(
            f"  {row.model}: {row.n_success}/{n_boot} iterations succeeded "
            f"({row.n_failed} failed), instability index={row.instability_index:.4f}"
        )
    logger.info(f"Bootstrap finished in {time.monotonic() - start:.1f}s")
    return result
