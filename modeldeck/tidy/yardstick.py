"""Tidy performance metrics.

Every metric takes a frame plus column names and returns a one-row frame
with ``.metric``, ``.estimator`` and ``.estimate``. For class outcomes the
first factor level is the event::

    rmse(preds, truth="sale_price", estimate=".pred")
    roc_auc(preds, "price_class", ".pred_high")
    metric_set(accuracy, kap)(preds, truth="price_class", estimate=".pred_class")
"""

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    log_loss,
    mean_absolute_error,
    r2_score,
    roc_auc_score,
)


NUMERIC = "numeric"
CLASS = "class"
PROB = "prob"


def _metric(kind, direction="maximize"):
    def wrap(fn):
        fn.kind = kind
        fn.direction = direction
        return fn
    return wrap


def _result(name, estimator, value) -> pd.DataFrame:
    return pd.DataFrame({".metric": [name], ".estimator": [estimator],
                         ".estimate": [float(value)]})


def _numeric(data, truth, estimate):
    obs = data[truth].to_numpy(dtype=float)
    pred = data[estimate].to_numpy(dtype=float)
    keep = ~(np.isnan(obs) | np.isnan(pred))
    return obs[keep], pred[keep]


def _levels(col: pd.Series) -> list[str]:
    if isinstance(col.dtype, pd.CategoricalDtype):
        return [str(c) for c in col.cat.categories]
    return sorted({str(v) for v in col.dropna()})


def _classes(data, truth, estimate):
    levels = _levels(data[truth])
    keep = data[truth].notna() & data[estimate].notna()
    obs = data.loc[keep, truth].astype(str).to_numpy()
    pred = data.loc[keep, estimate].astype(str).to_numpy()
    return obs, pred, levels


def _class_estimator(levels) -> str:
    return "binary" if len(levels) == 2 else "macro"


# ---------------------------------------------------------------------------
# Numeric metrics
# ---------------------------------------------------------------------------

@_metric(NUMERIC, "minimize")
def rmse(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    obs, pred = _numeric(data, truth, estimate)
    return _result("rmse", "standard", np.sqrt(np.mean((obs - pred) ** 2)))


@_metric(NUMERIC)
def rsq(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    """Squared correlation of truth and estimate."""
    obs, pred = _numeric(data, truth, estimate)
    if len(obs) < 2 or np.std(obs) == 0 or np.std(pred) == 0:
        return _result("rsq", "standard", np.nan)
    return _result("rsq", "standard", np.corrcoef(obs, pred)[0, 1] ** 2)


@_metric(NUMERIC)
def rsq_trad(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    """Traditional R squared: 1 - SSE / SST."""
    obs, pred = _numeric(data, truth, estimate)
    return _result("rsq_trad", "standard", r2_score(obs, pred))


@_metric(NUMERIC, "minimize")
def mae(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    obs, pred = _numeric(data, truth, estimate)
    return _result("mae", "standard", mean_absolute_error(obs, pred))


# ---------------------------------------------------------------------------
# Class metrics
# ---------------------------------------------------------------------------

@_metric(CLASS)
def accuracy(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    obs, pred, levels = _classes(data, truth, estimate)
    return _result("accuracy", "multiclass" if len(levels) > 2 else "binary",
                   accuracy_score(obs, pred))


@_metric(CLASS)
def kap(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    obs, pred, levels = _classes(data, truth, estimate)
    if len(set(obs) | set(pred)) < 2:
        value = np.nan
    else:
        value = cohen_kappa_score(obs, pred, labels=levels)
    return _result("kap", "multiclass" if len(levels) > 2 else "binary", value)


def _recall(obs, pred, level) -> float:
    mask = obs == level
    return float((pred[mask] == level).mean()) if mask.any() else np.nan


@_metric(CLASS)
def sens(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    """Sensitivity of the event level, or the macro average over levels."""
    obs, pred, levels = _classes(data, truth, estimate)
    if len(levels) == 2:
        value = _recall(obs, pred, levels[0])
    else:
        value = np.nanmean([_recall(obs, pred, lvl) for lvl in levels])
    return _result("sens", _class_estimator(levels), value)


@_metric(CLASS)
def spec(data: pd.DataFrame, truth: str, estimate: str) -> pd.DataFrame:
    """Specificity of the event level, or the macro average over levels."""
    obs, pred, levels = _classes(data, truth, estimate)

    def specificity(level):
        mask = obs != level
        return float((pred[mask] != level).mean()) if mask.any() else np.nan

    if len(levels) == 2:
        value = specificity(levels[0])
    else:
        value = np.nanmean([specificity(lvl) for lvl in levels])
    return _result("spec", _class_estimator(levels), value)


# ---------------------------------------------------------------------------
# Probability metrics
# ---------------------------------------------------------------------------

def _probs(data, truth, estimates):
    levels = _levels(data[truth])
    if not estimates:
        raise ValueError("Probability metrics need at least one probability column")
    keep = data[truth].notna()
    obs = data.loc[keep, truth].astype(str).to_numpy()
    probs = data.loc[keep, list(estimates)].to_numpy(dtype=float)
    return obs, probs, levels


@_metric(PROB)
def roc_auc(data: pd.DataFrame, truth: str, *estimate: str) -> pd.DataFrame:
    """Area under the ROC curve.

    Two classes: pass the event (first level) probability column. More
    classes: pass one column per level, in level order (Hand-Till average).
    """
    obs, probs, levels = _probs(data, truth, estimate)
    if len(levels) == 2:
        if probs.shape[1] != 1:
            raise ValueError("Binary roc_auc takes the event probability column only")
        is_event = obs == levels[0]
        if is_event.all() or not is_event.any():
            return _result("roc_auc", "binary", np.nan)
        return _result("roc_auc", "binary", roc_auc_score(is_event, probs[:, 0]))
    if probs.shape[1] != len(levels):
        raise ValueError(f"Multiclass roc_auc needs {len(levels)} probability columns")
    return _result("roc_auc", "hand_till",
                   roc_auc_score(obs, probs, multi_class="ovo", labels=levels))


@_metric(PROB, "minimize")
def mn_log_loss(data: pd.DataFrame, truth: str, *estimate: str) -> pd.DataFrame:
    """Mean log loss. Two classes may pass only the event probability column."""
    obs, probs, levels = _probs(data, truth, estimate)
    if len(levels) == 2 and probs.shape[1] == 1:
        probs = np.column_stack([probs[:, 0], 1 - probs[:, 0]])
    if probs.shape[1] != len(levels):
        raise ValueError(f"mn_log_loss needs {len(levels)} probability columns")
    estimator = "binary" if len(levels) == 2 else "multiclass"
    return _result("mn_log_loss", estimator, log_loss(obs, probs, labels=levels))


# ---------------------------------------------------------------------------
# Metric sets
# ---------------------------------------------------------------------------

class MetricSet:
    """Several metrics evaluated together."""

    def __init__(self, metrics):
        kinds = {m.kind for m in metrics}
        if NUMERIC in kinds and kinds & {CLASS, PROB}:
            raise ValueError("A metric set cannot mix numeric and class metrics")
        self.metrics = list(metrics)

    @property
    def names(self) -> list[str]:
        return [m.__name__ for m in self.metrics]

    @property
    def is_numeric(self) -> bool:
        return all(m.kind == NUMERIC for m in self.metrics)

    def direction(self, name: str) -> str:
        for m in self.metrics:
            if m.__name__ == name:
                return m.direction
        raise KeyError(f"Metric '{name}' is not in this set: {', '.join(self.names)}")

    def __call__(self, data: pd.DataFrame, truth: str, estimate: str | None = None,
                 *probs: str) -> pd.DataFrame:
        frames = []
        for m in self.metrics:
            if m.kind == PROB:
                frames.append(m(data, truth, *probs))
            else:
                if estimate is None:
                    raise ValueError(f"{m.__name__} needs an estimate column")
                frames.append(m(data, truth, estimate))
        return pd.concat(frames, ignore_index=True)

    def evaluate(self, predictions: pd.DataFrame, truth: str, levels=None) -> pd.DataFrame:
        """Score a tidy prediction frame (``.pred`` or ``.pred_class`` plus ``.pred_<level>``)."""
        if levels is None:
            return self(predictions, truth, ".pred")
        probs = [f".pred_{lvl}" for lvl in levels]
        if len(levels) == 2:
            probs = probs[:1]
        return self(predictions, truth, ".pred_class", *probs)

    def __repr__(self) -> str:
        return f"MetricSet({', '.join(self.names)})"


def metric_set(*metrics) -> MetricSet:
    if not metrics:
        raise ValueError("metric_set needs at least one metric")
    for m in metrics:
        if not callable(m) or not hasattr(m, "kind"):
            raise TypeError(f"{m!r} is not a metric function")
    return MetricSet(metrics)


def default_metrics(classification: bool) -> MetricSet:
    if classification:
        return metric_set(accuracy, roc_auc)
    return metric_set(rmse, rsq)
