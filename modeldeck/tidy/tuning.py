"""Resample fitting, grid tuning and result collection for workflows.

    folds = vfold_cv(train, v=5, seed=42)
    res = tune_grid(wf, folds, grid=grid_regular(wf, levels=3, data=train))
    collect_metrics(res)
    best = select_best(res, "rmse")
    final = last_fit(finalize_workflow(wf, best), split)
"""

import sys
import time
from dataclasses import dataclass

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import qmc

from ..modeling.partition import resample_names
from .recipes import parse_formula
from .rsample import ResampleSet, Split
from .workflows import Workflow
from .yardstick import MetricSet, default_metrics


# ---------------------------------------------------------------------------
# Parameter ranges
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParamRange:
    """A tuning parameter range; ``trans`` is ``None``, ``"log10"`` or ``"log2"``."""
    name: str
    low: float
    high: float
    integer: bool = False
    trans: str | None = None

    def _back(self, v):
        if self.trans == "log10":
            return 10 ** v
        if self.trans == "log2":
            return 2 ** v
        return v

    def value_at(self, fraction: float):
        """Value at ``fraction`` (0-1) of the way through the (transformed) range."""
        value = self._back(self.low + fraction * (self.high - self.low))
        return int(round(value)) if self.integer else float(value)

    def regular(self, levels: int) -> list:
        if levels == 1:
            return [self.value_at(0.5)]
        values = [self.value_at(f) for f in np.linspace(0, 1, levels)]
        return list(dict.fromkeys(values))


# Transformed-scale bounds for log parameters.
PARAM_RANGES = {
    "trees": ParamRange("trees", 1, 2000, integer=True),
    "min_n": ParamRange("min_n", 2, 40, integer=True),
    "tree_depth": ParamRange("tree_depth", 1, 15, integer=True),
    "learn_rate": ParamRange("learn_rate", -3, -0.5, trans="log10"),
    "cost": ParamRange("cost", -10, 5, trans="log2"),
    "rbf_sigma": ParamRange("rbf_sigma", -10, 0, trans="log10"),
    "margin": ParamRange("margin", 0, 0.2),
    "neighbors": ParamRange("neighbors", 1, 15, integer=True),
    "penalty": ParamRange("penalty", -10, 0, trans="log10"),
    "mixture": ParamRange("mixture", 0.05, 1),
    "cost_complexity": ParamRange("cost_complexity", -10, -1, trans="log10"),
}


def _workflow_of(obj) -> Workflow:
    if isinstance(obj, Workflow):
        return obj
    return Workflow().add_model(obj)


def _n_predictors(wf: Workflow, data: pd.DataFrame) -> int:
    if wf.recipe is not None:
        baked = wf.recipe.prep(data).bake()
        return baked.shape[1] - len(wf.recipe.outcomes)
    if wf.formula is not None:
        return len(parse_formula(wf.formula, data.columns)[1])
    return data.shape[1] - 1


def parameter_ranges(spec_or_wf, data: pd.DataFrame | None = None) -> list[ParamRange]:
    """Ranges of the arguments marked with ``tune()``.

    ``mtry`` depends on the number of predictors, so it needs ``data``.
    """
    wf = _workflow_of(spec_or_wf)
    ranges = []
    for name in wf.spec.tunable():
        if name == "mtry":
            if data is None:
                raise ValueError("mtry's range depends on the data; pass data=")
            ranges.append(ParamRange("mtry", 1, max(_n_predictors(wf, data), 1), integer=True))
        elif name in PARAM_RANGES:
            ranges.append(PARAM_RANGES[name])
        else:
            raise ValueError(f"No default range for tuning parameter '{name}'")
    return ranges


def grid_regular(spec_or_wf, levels: int = 3, data: pd.DataFrame | None = None) -> pd.DataFrame:
    """Every combination of ``levels`` evenly spaced values per parameter."""
    if levels < 1:
        raise ValueError(f"levels must be at least 1, got {levels}")
    ranges = parameter_ranges(spec_or_wf, data)
    rows = [{}]
    for rng in ranges:
        rows = [dict(r, **{rng.name: v}) for r in rows for v in rng.regular(levels)]
    return pd.DataFrame(rows, columns=[r.name for r in ranges])


def grid_latin_hypercube(spec_or_wf, size: int = 5, data: pd.DataFrame | None = None,
                         seed=None) -> pd.DataFrame:
    """Space-filling design of ``size`` candidates."""
    ranges = parameter_ranges(spec_or_wf, data)
    if not ranges:
        return pd.DataFrame()
    sample = qmc.LatinHypercube(d=len(ranges), rng=np.random.default_rng(seed)).random(size)
    rows = [{r.name: r.value_at(f) for r, f in zip(ranges, point)} for point in sample]
    return pd.DataFrame(rows).drop_duplicates().reset_index(drop=True)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ControlResamples:
    """Options for resample fitting: keep hold-out predictions, parallel jobs."""
    save_pred: bool = False
    n_jobs: int = 1
    verbose: bool = False


@dataclass
class ResampleResults:
    """Per-resample metrics (and optionally predictions) for every candidate."""
    metrics: pd.DataFrame
    predictions: pd.DataFrame | None
    params: list[str]
    grid: pd.DataFrame
    workflow: Workflow
    metric_set: MetricSet
    resamples: ResampleSet
    notes: list[str]

    def __repr__(self) -> str:
        return (f"# Resampling results: {len(self.resamples)} resamples, "
                f"{len(self.grid)} candidate(s), metrics: {', '.join(self.metric_set.names)}")


@dataclass
class LastFit:
    """Final fit on the training set, evaluated once on the test set."""
    workflow: Workflow
    metrics: pd.DataFrame
    predictions: pd.DataFrame
    split: Split

    def extract_workflow(self) -> Workflow:
        return self.workflow

    def __repr__(self) -> str:
        shown = ", ".join(f"{m}={v:.4g}" for m, v in
                          zip(self.metrics[".metric"], self.metrics[".estimate"]))
        return f"# Last fit on {len(self.split.in_id)} rows, tested on {len(self.split.out_id)}: {shown}"


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------

def _truth_levels(data: pd.DataFrame, outcome: str):
    col = data[outcome]
    if pd.api.types.is_numeric_dtype(col) and not pd.api.types.is_bool_dtype(col):
        return None
    if isinstance(col.dtype, pd.CategoricalDtype):
        return [str(c) for c in col.cat.categories]
    return sorted({str(v) for v in col.dropna()})


def _predict_frame(fitted: Workflow, data: pd.DataFrame, outcome: str, levels) -> pd.DataFrame:
    if levels is None:
        pred = fitted.predict(data)
        truth = data[outcome].astype(float)
    else:
        pred = fitted.predict(data, type="class")
        estimator = fitted.extract_fit_engine()
        if hasattr(estimator, "predict_proba"):
            pred = pd.concat([pred, fitted.predict(data, type="prob")], axis=1)
        truth = pd.Categorical(data[outcome].astype(str), categories=levels)
    pred = pred.copy()
    pred[outcome] = truth
    return pred


def _fit_one(wf, params, config, split, outcome, levels, metrics, save_pred, verbose):
    label = split.id if split.id2 is None else f"{split.id}/{split.id2}"
    if verbose:
        print(f"i {label}: {config}", file=sys.stderr)
    candidate = wf.update_model(wf.spec.set_args(**params)) if params else wf
    try:
        fitted = candidate.fit(split.analysis())
        assessment = split.assessment()
        pred = _predict_frame(fitted, assessment, outcome, levels)
    except Exception as exc:
        if verbose:
            print(f"x {label}: {config}: {exc}", file=sys.stderr)
        return None, None, f"{label}, {config}: {exc}"

    scores = metrics.evaluate(pred, outcome, levels)
    ids = {"id": split.id}
    if split.id2 is not None:
        ids["id2"] = split.id2
    scores = scores.assign(**ids, **params, **{".config": config})
    saved = None
    if save_pred:
        saved = pred.assign(**ids, **{".row": split.out_id}, **params, **{".config": config})
    return scores, saved, None


def _grid_frame(wf: Workflow, grid, resamples: ResampleSet) -> pd.DataFrame:
    tunable = wf.spec.tunable()
    if isinstance(grid, int):
        if not tunable:
            return pd.DataFrame()
        return grid_latin_hypercube(wf, size=grid, data=resamples[0].analysis(), seed=0)
    if isinstance(grid, dict):
        rows = [{}]
        for key, values in grid.items():
            values = values if isinstance(values, (list, tuple, np.ndarray)) else [values]
            rows = [dict(r, **{key: v}) for r in rows for v in values]
        grid = pd.DataFrame(rows)
    if not isinstance(grid, pd.DataFrame):
        raise TypeError("grid must be an int, a dict of values or a DataFrame")
    if sorted(grid.columns) != sorted(tunable):
        raise ValueError(
            f"grid columns ({', '.join(grid.columns)}) must match the tunable "
            f"parameters ({', '.join(tunable) or 'none'})"
        )
    return grid.reset_index(drop=True)


def tune_grid(wf: Workflow, resamples: ResampleSet, grid=5, metrics: MetricSet | None = None,
              control: ControlResamples | None = None) -> ResampleResults:
    """Evaluate every candidate in ``grid`` on every resample."""
    if not isinstance(resamples, ResampleSet):
        raise TypeError("resamples must come from vfold_cv, bootstraps or mc_cv")
    wf._check_complete()
    control = control or ControlResamples()
    data = resamples[0].data
    outcome = wf.outcome
    if outcome not in data.columns:
        raise KeyError(f"Outcome '{outcome}' not found in the resampled data")
    levels = _truth_levels(data, outcome)
    metrics = metrics or default_metrics(levels is not None)
    if metrics.is_numeric != (levels is None):
        raise ValueError("The metric set does not match the outcome type")

    grid_frame = _grid_frame(wf, grid, resamples)
    candidates = grid_frame.to_dict(orient="records") if len(grid_frame.columns) else [{}]
    configs = [f"Preprocessor1_{name}" for name in resample_names("Model", len(candidates))]

    started = time.perf_counter()
    tasks = [
        delayed(_fit_one)(wf, params, config, split, outcome, levels, metrics,
                          control.save_pred, control.verbose)
        for params, config in zip(candidates, configs)
        for split in resamples
    ]
    outcomes = Parallel(n_jobs=control.n_jobs)(tasks)

    scores, saved, notes = [], [], []
    for score, pred, note in outcomes:
        if note is not None:
            notes.append(note)
            continue
        scores.append(score)
        if pred is not None:
            saved.append(pred)
    if not scores:
        raise ValueError(f"All models failed. First error: {notes[0]}")
    if control.verbose:
        print(f"i Finished {len(tasks)} fits in {time.perf_counter() - started:.1f}s",
              file=sys.stderr)

    grid_frame = grid_frame.assign(**{".config": configs}) if len(grid_frame.columns) \
        else pd.DataFrame({".config": configs})
    return ResampleResults(
        metrics=pd.concat(scores, ignore_index=True),
        predictions=pd.concat(saved, ignore_index=True) if saved else None,
        params=list(grid_frame.columns.drop(".config")),
        grid=grid_frame,
        workflow=wf,
        metric_set=metrics,
        resamples=resamples,
        notes=notes,
    )


def fit_resamples(wf: Workflow, resamples: ResampleSet, metrics: MetricSet | None = None,
                  control: ControlResamples | None = None) -> ResampleResults:
    """Fit one workflow on every resample and score each assessment set."""
    pending = wf.spec.tunable() if wf.spec is not None else []
    if pending:
        raise ValueError(
            f"Arguments still marked for tuning: {', '.join(pending)}; use tune_grid"
        )
    return tune_grid(wf, resamples, grid=pd.DataFrame(), metrics=metrics, control=control)


# ---------------------------------------------------------------------------
# Collecting results
# ---------------------------------------------------------------------------

def collect_metrics(results, summarize: bool = True) -> pd.DataFrame:
    """Mean, count and standard error of each metric per candidate."""
    if isinstance(results, LastFit):
        return results.metrics.copy()
    raw = results.metrics
    if not summarize:
        return raw.copy()
    keys = results.params + [".metric", ".estimator", ".config"]
    grouped = raw.groupby(keys, sort=False, dropna=False)[".estimate"]
    summary = grouped.agg(mean="mean", n="count", std="std").reset_index()
    summary["std_err"] = summary["std"] / np.sqrt(summary["n"])
    columns = results.params + [".metric", ".estimator", "mean", "n", "std_err", ".config"]
    return summary[columns]


def collect_predictions(results) -> pd.DataFrame:
    if isinstance(results, LastFit):
        return results.predictions.copy()
    if results.predictions is None:
        raise ValueError("No predictions were saved; use ControlResamples(save_pred=True)")
    return results.predictions.copy()


def show_best(results: ResampleResults, metric: str | None = None, n: int = 5) -> pd.DataFrame:
    """Top ``n`` candidates for ``metric`` (default: the first metric of the set)."""
    metric = metric or results.metric_set.names[0]
    direction = results.metric_set.direction(metric)
    summary = collect_metrics(results)
    summary = summary[summary[".metric"] == metric]
    ordered = summary.sort_values("mean", ascending=direction == "minimize", kind="stable")
    return ordered.head(n).reset_index(drop=True)


def select_best(results: ResampleResults, metric: str | None = None) -> dict:
    """Parameters (plus ``.config``) of the best candidate."""
    best = show_best(results, metric, n=1)
    if best.empty:
        raise ValueError("No results to select from")
    row = best.iloc[0]
    chosen = {name: row[name] for name in results.params}
    chosen[".config"] = row[".config"]
    return {k: v.item() if isinstance(v, np.generic) else v for k, v in chosen.items()}


def finalize_model(spec, params: dict):
    return spec.set_args(**{k: v for k, v in params.items() if not k.startswith(".")})


def finalize_workflow(wf: Workflow, params: dict) -> Workflow:
    """Replace ``tune()`` placeholders with chosen values."""
    return wf.update_model(finalize_model(wf.extract_spec(), params))


def last_fit(wf: Workflow, split: Split, metrics: MetricSet | None = None) -> LastFit:
    """Fit on the training portion of ``split`` and evaluate on the test portion."""
    pending = wf.extract_spec().tunable()
    if pending:
        raise ValueError(f"Finalize the workflow first; still tuning: {', '.join(pending)}")
    fitted = wf.fit(split.analysis())
    test = split.assessment()
    outcome = wf.outcome
    levels = _truth_levels(split.data, outcome)
    metrics = metrics or default_metrics(levels is not None)
    pred = _predict_frame(fitted, test, outcome, levels)
    pred = pred.assign(**{"id": "train/test split", ".row": split.out_id,
                          ".config": "Preprocessor1_Model1"})
    scores = metrics.evaluate(pred, outcome, levels).assign(**{".config": "Preprocessor1_Model1"})
    return LastFit(workflow=fitted, metrics=scores, predictions=pred.reset_index(drop=True),
                   split=split)
