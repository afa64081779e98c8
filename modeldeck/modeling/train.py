"""Unified model training with resampling-based tuning.

``train`` evaluates every candidate in a tuning grid on every resample,
picks the winning candidate, and refits it on the full data. Usage::

    from modeldeck.modeling import TrainControl, train

    ctrl = TrainControl(method="cv", number=5, seed=42)
    fit = train(x, y, method="rf", preprocess=["center", "scale"],
                tr_control=ctrl, tune_length=3, ntree=100)
    print(fit)
    fit.predict(new_x)
"""

import sys
import time
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .control import TrainControl
from .metrics import MINIMIZE, SUMMARY_FUNCTIONS
from .preprocess import DummyVars, PreProcess
from .registry import CLASSIFICATION, REGRESSION, FitContext, ModelInfo, get_model_info


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class TrainedModel:
    """A tuned and refit model with its resampling history."""
    method: str
    model_info: ModelInfo
    model_type: str                       # "Regression" or "Classification"
    best_tune: dict
    results: pd.DataFrame                 # one row per candidate: means and SDs
    final_model: Any
    dummies: DummyVars
    preprocess: PreProcess | None
    control: TrainControl
    metric: str
    maximize: bool
    levels: list[str] | None = None
    resample: pd.DataFrame | None = None  # per-resample metrics
    pred: pd.DataFrame | None = None      # saved hold-out predictions
    resample_index: dict = field(default_factory=dict)
    training_x: pd.DataFrame | None = None
    training_y: pd.Series | None = None
    times: dict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_classification(self) -> bool:
        return self.model_type == CLASSIFICATION

    @property
    def feature_names(self) -> list[str]:
        """Predictor names as seen by the final estimator."""
        if self.preprocess is not None:
            return list(self.preprocess.output_columns_)
        return list(self.dummies.transform(self.training_x.head(1)).columns)

    def model_matrix(self, newdata: pd.DataFrame) -> pd.DataFrame:
        """Dummy-encode and preprocess ``newdata`` the way training data was."""
        x = self.dummies.transform(newdata)
        if self.preprocess is not None:
            x = self.preprocess.transform(x)
        return x

    def predict(self, newdata: pd.DataFrame, type: str = "raw"):
        """Predict outcomes (``raw``) or class probabilities (``prob``).

        Returns a Series for ``raw`` (categorical for classification) and a
        DataFrame with one column per class level for ``prob``.
        """
        if type not in ("raw", "prob"):
            raise ValueError(f"type must be 'raw' or 'prob', got {type!r}")
        x = self.model_matrix(newdata).to_numpy(dtype=float)
        if type == "prob":
            if not self.is_classification:
                raise ValueError("Class probabilities are only available for classification")
            return _probabilities(self.final_model, x, self.levels, newdata.index)
        pred = self.final_model.predict(x)
        if self.is_classification:
            return pd.Series(pd.Categorical(pred.astype(str), categories=self.levels),
                             index=newdata.index, name="pred")
        return pd.Series(pred.astype(float), index=newdata.index, name="pred")

    def __str__(self) -> str:
        n, p = self.training_x.shape
        lines = [self.model_info.label, "",
                 f"{n} samples", f"{p} predictors"]
        if self.levels:
            quoted = ", ".join(f"'{lvl}'" for lvl in self.levels)
            lines.append(f"{len(self.levels)} classes: {quoted}")
        lines.append("")
        if self.preprocess is not None:
            steps = ", ".join(f"{m} ({len(cols)})" for m, cols
                              in self.preprocess.summary().items())
            lines.append(f"Pre-processing: {steps}")
        else:
            lines.append("No pre-processing")
        lines.append(f"Resampling: {self.control.describe()}")
        if self.resample_index:
            sizes = [len(tr) for tr, _ in self.resample_index.values()]
            shown = ", ".join(str(s) for s in sizes[:3])
            more = ", ..." if len(sizes) > 3 else ""
            lines.append(f"Summary of sample sizes: {shown}{more}")
        if not self.results.empty:
            lines.append("Resampling results across tuning parameters:")
            lines.append("")
            lines.append(self.results.to_string(index=False, float_format=lambda v: f"{v:.4g}"))
            lines.append("")
            direction = "largest" if self.maximize else "smallest"
            lines.append(f"{self.metric} was used to select the optimal model "
                         f"using the {direction} value.")
        chosen = ", ".join(f"{k} = {_fmt_param(v)}" for k, v in self.best_tune.items())
        lines.append(f"The final values used for the model were {chosen}.")
        return "\n".join(lines)


def _fmt_param(value) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_classification(y: pd.Series) -> bool:
    return not (pd.api.types.is_numeric_dtype(y) and not pd.api.types.is_bool_dtype(y))


def _as_factor(y: pd.Series) -> pd.Series:
    if isinstance(y.dtype, pd.CategoricalDtype):
        y = y.cat.remove_unused_categories()
        categories = [str(c) for c in y.cat.categories]
        return pd.Series(pd.Categorical(y.astype(str), categories=categories))
    categories = sorted({str(v) for v in y})
    return pd.Series(pd.Categorical(y.astype(str), categories=categories))


def _probabilities(estimator, x, levels, index=None) -> pd.DataFrame:
    if not hasattr(estimator, "predict_proba"):
        raise ValueError(f"{type(estimator).__name__} does not produce class probabilities")
    probs = estimator.predict_proba(x)
    classes = [str(c) for c in estimator.classes_]
    frame = pd.DataFrame(probs, columns=classes, index=index)
    return frame.reindex(columns=levels, fill_value=0.0)


def _grid_records(tune_grid, info: ModelInfo) -> list[dict]:
    if isinstance(tune_grid, pd.DataFrame):
        records = tune_grid.to_dict(orient="records")
    elif isinstance(tune_grid, dict):
        records = [{}]
        for key, values in tune_grid.items():
            values = values if isinstance(values, (list, tuple, np.ndarray)) else [values]
            records = [dict(r, **{key: v}) for r in records for v in values]
    else:
        records = [dict(r) for r in tune_grid]
    if not records:
        raise ValueError("tune_grid has no rows")
    expected = set(info.parameter_names)
    for row in records:
        if set(row) != expected:
            raise ValueError(
                f"tune_grid for '{info.method}' must have columns: "
                f"{', '.join(info.parameter_names)}"
            )
    return records


def _preprocess_template(preprocess, options):
    if preprocess is None:
        return None
    if isinstance(preprocess, PreProcess):
        return dict(method=preprocess.method, thresh=preprocess.thresh,
                    pca_comp=preprocess.pca_comp, k=preprocess.k,
                    cutoff=preprocess.cutoff, freq_cut=preprocess.freq_cut,
                    unique_cut=preprocess.unique_cut)
    spec = dict(options)
    spec["method"] = [preprocess] if isinstance(preprocess, str) else list(preprocess)
    PreProcess(**spec)
    return spec


def default_metric(classification: bool, summary_function: str) -> str:
    if not classification:
        return "RMSE"
    if summary_function == "two_class":
        return "ROC"
    return "Accuracy"


# ---------------------------------------------------------------------------
# One fit on one resample
# ---------------------------------------------------------------------------

def _fit_resample(method, params, config, name, train_idx, holdout_idx,
                  x, y, pp_spec, ctx_kwargs, summary, levels, keep_pred, verbose):
    label = ", ".join(f"{k}={_fmt_param(v)}" for k, v in params.items())
    if verbose:
        print(f"+ {name}: {label}", file=sys.stderr)

    x_train, x_hold = x.iloc[train_idx], x.iloc[holdout_idx]
    y_train, y_hold = y.iloc[train_idx], y.iloc[holdout_idx]
    target = y_train.astype(str).to_numpy() if levels else y_train.to_numpy(dtype=float)
    # Any failure here is recorded against this one fit.
    try:
        if pp_spec is not None:
            pp = PreProcess(**pp_spec).fit(x_train)
            x_train, x_hold = pp.transform(x_train), pp.transform(x_hold)
        ctx = FitContext(n_obs=len(train_idx), n_features=x_train.shape[1], **ctx_kwargs)
        estimator = get_model_info(method).create(params, ctx)
        estimator.fit(x_train.to_numpy(dtype=float), target)
        pred = estimator.predict(x_hold.to_numpy(dtype=float))
    except Exception as exc:
        if verbose:
            print(f"- {name}: {label} failed: {exc}", file=sys.stderr)
        return config, name, None, None, f"{name} ({label}): {exc}"

    data = pd.DataFrame({
        "obs": y_hold.astype(str).to_numpy() if levels else y_hold.to_numpy(dtype=float),
        "pred": pred.astype(str) if levels else pred.astype(float),
    })
    if levels and ctx.class_probs:
        probs = _probabilities(estimator, x_hold.to_numpy(dtype=float), levels)
        data = pd.concat([data, probs.reset_index(drop=True)], axis=1)

    metrics = summary(data, levels)
    if verbose:
        print(f"- {name}: {label}", file=sys.stderr)

    saved = None
    if keep_pred:
        saved = data.assign(rowIndex=np.asarray(holdout_idx), Resample=name, **params)
    return config, name, metrics, saved, None


# ---------------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------------

def _select(results: pd.DataFrame, info: ModelInfo, metric: str, maximize: bool,
            selection: str, n_resamples: int, tolerance: float) -> int:
    values = results[metric]
    if values.isna().all():
        raise ValueError(f"All values of the {metric} metric are missing")
    best_value = values.max() if maximize else values.min()
    if selection == "best":
        idx = values.idxmax() if maximize else values.idxmin()
        return int(results.loc[idx, "_config"])

    if selection == "one_se":
        se = results.loc[values == best_value, f"{metric}SD"].iloc[0] / np.sqrt(max(n_resamples, 1))
        se = 0.0 if np.isnan(se) else se
        ok = values >= best_value - se if maximize else values <= best_value + se
    else:
        scale = abs(best_value) if best_value else 1.0
        loss = (best_value - values) if maximize else (values - best_value)
        ok = loss / scale * 100 <= tolerance

    candidates = results[ok.fillna(False)]
    ordered = info.sort(candidates[info.parameter_names + ["_config"]])
    return int(ordered["_config"].iloc[0])


# ---------------------------------------------------------------------------
# train
# ---------------------------------------------------------------------------

def train(x, y, method: str = "rf", preprocess=None, metric: str | None = None,
          maximize: bool | None = None, tr_control: TrainControl | None = None,
          tune_grid=None, tune_length: int = 3, preprocess_options: dict | None = None,
          **fixed) -> TrainedModel:
    """Tune and fit a model.

    Args:
        x: Predictor DataFrame. Categorical columns are dummy-encoded.
        y: Outcome. Categorical/object/bool means classification.
        method: Registered method name (see ``model_lookup()``).
        preprocess: Preprocessing method names, or an unfitted ``PreProcess``.
            Re-estimated inside every resample.
        metric: Metric used to select the best candidate.
        maximize: Whether larger metric values are better.
        tr_control: Resampling options; defaults to ``TrainControl()``.
        tune_grid: DataFrame, list of dicts, or dict of lists of candidates.
        tune_length: Size of the default or random grid.
        preprocess_options: Extra ``PreProcess`` keyword arguments.
        **fixed: Non-tuned model options. Aliases such as ``ntree`` are
            translated; other keywords are passed to the estimator.

    Raises:
        ValueError: On inconsistent inputs or when every fit fails.
    """
    started = time.perf_counter()
    info = get_model_info(method)
    control = tr_control if tr_control is not None else TrainControl()

    x = pd.DataFrame(x).reset_index(drop=True)
    y = pd.Series(y).reset_index(drop=True)
    if len(x) != len(y):
        raise ValueError(f"x and y have different numbers of rows ({len(x)} != {len(y)})")
    if len(y) == 0:
        raise ValueError("Cannot train on empty data")
    if y.isna().any():
        raise ValueError("The outcome contains missing values")
    if tune_length < 1:
        raise ValueError(f"tune_length must be at least 1, got {tune_length}")

    classification = _is_classification(y)
    model_type = CLASSIFICATION if classification else REGRESSION
    if not info.supports(model_type):
        raise ValueError(
            f"Wrong model type for {model_type.lower()}: '{method}' supports "
            f"{', '.join(info.types)}"
        )

    levels = None
    if classification:
        y = _as_factor(y)
        levels = list(y.cat.categories)
        if len(levels) < 2:
            raise ValueError("Classification needs at least two outcome classes")
    if control.summary_function == "two_class":
        if not classification or len(levels) != 2:
            raise ValueError("The two_class summary needs a two-level class outcome")
        if not control.class_probs:
            raise ValueError("The two_class summary needs class_probs=True")

    if metric is None:
        metric = default_metric(classification, control.summary_function)
    if maximize is None:
        maximize = metric not in MINIMIZE

    dummies = DummyVars(full_rank=True).fit(x)
    x_model = dummies.transform(x)
    pp_spec = _preprocess_template(preprocess, preprocess_options or {})
    rng = np.random.default_rng(control.seed)

    if tune_grid is None:
        x_grid = PreProcess(**pp_spec).fit_transform(x_model) if pp_spec else x_model
        records = info.grid(x_grid, y, tune_length, control.search, rng)
    else:
        records = _grid_records(tune_grid, info)
    grid = pd.DataFrame(records)
    grid["_config"] = range(len(grid))

    resamples = control.make_resamples(y)
    if not resamples and len(grid) > 1:
        raise ValueError("Only one candidate may be given when resampling method is 'none'")

    summary = SUMMARY_FUNCTIONS[control.summary_function]
    ctx_kwargs = dict(classification=classification, seed=control.seed,
                      class_probs=bool(classification and control.class_probs),
                      fixed=fixed)
    keep_pred = control.save_predictions != "none"
    # Reject unknown fixed options before any fitting.
    info.create(records[0], FitContext(n_obs=len(x_model), n_features=x_model.shape[1],
                                       **ctx_kwargs))

    warnings: list[str] = []
    results = pd.DataFrame(columns=list(info.parameter_names))
    resample_frame = None
    pred_frame = None
    best_config = 0

    if resamples:
        tasks = [
            delayed(_fit_resample)(method, records[config], config, name, tr, ho,
                                   x_model, y, pp_spec, ctx_kwargs, summary, levels,
                                   keep_pred, control.verbose_iter)
            for config in range(len(records))
            for name, (tr, ho) in resamples.items()
        ]
        n_jobs = control.n_jobs if control.parallel else 1
        outcomes = Parallel(n_jobs=n_jobs)(tasks)

        rows, saved = [], []
        for config, name, metrics, pred, error in outcomes:
            if error is not None:
                warnings.append(f"Model fit failed for {error}")
                continue
            rows.append({"_config": config, "Resample": name, **metrics})
            if pred is not None:
                saved.append(pred.assign(_config=config))
        if not rows:
            raise ValueError(f"Every model fit failed. First error: {warnings[0]}")

        per_resample = pd.DataFrame(rows)
        metric_names = [c for c in per_resample.columns if c not in ("_config", "Resample")]
        if metric not in metric_names:
            raise ValueError(
                f"Metric '{metric}' is not computed by the "
                f"{control.summary_function} summary. Available: {', '.join(metric_names)}"
            )
        means = per_resample.groupby("_config")[metric_names].mean()
        sds = per_resample.groupby("_config")[metric_names].std(ddof=1)
        sds.columns = [f"{c}SD" for c in metric_names]
        results = grid.merge(means.join(sds), left_on="_config", right_index=True, how="left")

        best_config = _select(results, info, metric, maximize, control.selection_function,
                              len(resamples), control.tolerance)
        results = results.drop(columns="_config").reset_index(drop=True)

        if control.return_resamp != "none":
            subset = per_resample
            if control.return_resamp == "final":
                subset = per_resample[per_resample["_config"] == best_config]
            resample_frame = subset.merge(grid, on="_config")
            if control.return_resamp == "final":
                resample_frame = resample_frame.drop(columns=list(info.parameter_names))
            resample_frame = resample_frame.drop(columns="_config").reset_index(drop=True)
        if saved:
            pred_frame = pd.concat(saved, ignore_index=True)
            if control.save_predictions == "final":
                pred_frame = pred_frame[pred_frame["_config"] == best_config]
            pred_frame = pred_frame.drop(columns="_config").reset_index(drop=True)
    best_tune = {k: records[best_config][k] for k in info.parameter_names}

    final_started = time.perf_counter()
    final_pp = PreProcess(**pp_spec).fit(x_model) if pp_spec else None
    x_final = final_pp.transform(x_model) if final_pp else x_model
    final_ctx = FitContext(n_obs=len(x_final), n_features=x_final.shape[1],
                           **dict(ctx_kwargs, class_probs=classification))
    final_model = info.create(best_tune, final_ctx)
    target = y.astype(str).to_numpy() if classification else y.to_numpy(dtype=float)
    final_model.fit(x_final.to_numpy(dtype=float), target)
    finished = time.perf_counter()

    return TrainedModel(
        method=method,
        model_info=info,
        model_type=model_type,
        best_tune=best_tune,
        results=results,
        final_model=final_model,
        dummies=dummies,
        preprocess=final_pp,
        control=control,
        metric=metric,
        maximize=maximize,
        levels=levels,
        resample=resample_frame,
        pred=pred_frame,
        resample_index=resamples,
        training_x=x,
        training_y=y,
        times={"everything": finished - started, "final": finished - final_started},
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Prediction helpers
# ---------------------------------------------------------------------------

def predict(model: TrainedModel, newdata: pd.DataFrame, type: str = "raw"):
    """Functional form of ``TrainedModel.predict``."""
    return model.predict(newdata, type=type)


def extract_prediction(models: dict[str, TrainedModel], test_x: pd.DataFrame | None = None,
                       test_y=None) -> pd.DataFrame:
    """Long frame of observed vs predicted values for several models.

    Training-set predictions are always included; test-set rows are added
    when ``test_x`` and ``test_y`` are given.
    """
    if (test_x is None) != (test_y is None):
        raise ValueError("test_x and test_y must be given together")
    frames = []
    for name, model in models.items():
        frames.append(pd.DataFrame({
            "obs": model.training_y.to_numpy(),
            "pred": model.predict(model.training_x).to_numpy(),
            "model": name,
            "dataType": "Training",
        }))
        if test_x is not None:
            frames.append(pd.DataFrame({
                "obs": pd.Series(test_y).to_numpy(),
                "pred": model.predict(test_x).to_numpy(),
                "model": name,
                "dataType": "Test",
            }))
    if not frames:
        raise ValueError("No models given")
    return pd.concat(frames, ignore_index=True)
