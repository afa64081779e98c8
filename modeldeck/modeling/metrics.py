"""Performance summaries used during resampling, plus the confusion matrix.

Summary functions take a frame of hold-out predictions with columns
``obs`` and ``pred`` (and one probability column per class level when
class probabilities are computed) and return a dict of metric values.
For two-class problems the first level is the event of interest.
"""

import math
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy.stats import beta, binomtest
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    log_loss,
    mean_absolute_error,
    roc_auc_score,
)


# Metrics where a smaller value is better.
MINIMIZE = ("RMSE", "MAE", "logLoss")


# ---------------------------------------------------------------------------
# Scalar metrics
# ---------------------------------------------------------------------------

def rmse(obs, pred) -> float:
    obs = np.asarray(obs, dtype=float)
    pred = np.asarray(pred, dtype=float)
    return float(np.sqrt(np.mean((obs - pred) ** 2)))


def rsquared(obs, pred) -> float:
    """Squared correlation between observed and predicted; NaN when either is constant."""
    obs = np.asarray(obs, dtype=float)
    pred = np.asarray(pred, dtype=float)
    if len(obs) < 2 or np.std(obs) == 0 or np.std(pred) == 0:
        return float("nan")
    return float(np.corrcoef(obs, pred)[0, 1] ** 2)


def kappa(obs, pred, levels=None) -> float:
    obs = np.asarray(obs, dtype=object)
    pred = np.asarray(pred, dtype=object)
    if len(obs) == 0:
        return float("nan")
    if len(set(obs) | set(pred)) < 2:
        return float("nan")
    value = cohen_kappa_score(obs, pred, labels=levels)
    return float(value)


def safe_auc(is_event, score) -> float:
    """ROC AUC, or NaN when only one class is present."""
    is_event = np.asarray(is_event, dtype=bool)
    if is_event.all() or not is_event.any():
        return float("nan")
    return float(roc_auc_score(is_event, np.asarray(score, dtype=float)))


def post_resample(pred, obs) -> pd.Series:
    """Performance of a single set of predictions.

    Numeric outcomes give RMSE, Rsquared and MAE; class outcomes give
    Accuracy and Kappa.
    """
    obs_s = pd.Series(obs).reset_index(drop=True)
    pred_s = pd.Series(pred).reset_index(drop=True)
    if len(obs_s) != len(pred_s):
        raise ValueError(
            f"pred and obs must have the same length ({len(pred_s)} != {len(obs_s)})"
        )
    numeric = (pd.api.types.is_numeric_dtype(obs_s)
               and not pd.api.types.is_bool_dtype(obs_s))
    if numeric:
        return pd.Series({
            "RMSE": rmse(obs_s, pred_s),
            "Rsquared": rsquared(obs_s, pred_s),
            "MAE": float(mean_absolute_error(obs_s, pred_s)),
        })
    obs_a = obs_s.astype(str).to_numpy()
    pred_a = pred_s.astype(str).to_numpy()
    return pd.Series({
        "Accuracy": float(accuracy_score(obs_a, pred_a)),
        "Kappa": kappa(obs_a, pred_a),
    })


# ---------------------------------------------------------------------------
# Summary functions
# ---------------------------------------------------------------------------

def default_summary(data: pd.DataFrame, levels: list | None = None) -> dict:
    """RMSE/Rsquared/MAE for regression, Accuracy/Kappa for classification."""
    if levels is None:
        return post_resample(data["pred"], data["obs"]).to_dict()
    obs = data["obs"].astype(str).to_numpy()
    pred = data["pred"].astype(str).to_numpy()
    return {
        "Accuracy": float(accuracy_score(obs, pred)),
        "Kappa": kappa(obs, pred, levels=[str(v) for v in levels]),
    }


def _recall(obs, pred, level) -> float:
    mask = obs == level
    if not mask.any():
        return float("nan")
    return float((pred[mask] == level).mean())


def two_class_summary(data: pd.DataFrame, levels: list) -> dict:
    """Area under the ROC curve, sensitivity and specificity.

    Requires a probability column named after the first level.
    """
    if levels is None or len(levels) != 2:
        raise ValueError("two_class_summary requires exactly two class levels")
    event, other = str(levels[0]), str(levels[1])
    if event not in data.columns:
        raise ValueError(
            f"two_class_summary needs class probabilities (missing column '{event}')"
        )
    obs = data["obs"].astype(str).to_numpy()
    pred = data["pred"].astype(str).to_numpy()
    return {
        "ROC": safe_auc(obs == event, data[event]),
        "Sens": _recall(obs, pred, event),
        "Spec": _recall(obs, pred, other),
    }


def multi_class_summary(data: pd.DataFrame, levels: list) -> dict:
    """Accuracy, Kappa, mean one-vs-rest AUC and log loss."""
    out = default_summary(data, levels)
    names = [str(v) for v in levels]
    if all(name in data.columns for name in names):
        obs = data["obs"].astype(str).to_numpy()
        aucs = [safe_auc(obs == name, data[name]) for name in names]
        aucs = [a for a in aucs if not math.isnan(a)]
        out["AUC"] = float(np.mean(aucs)) if aucs else float("nan")
        probs = data[names].to_numpy(dtype=float)
        out["logLoss"] = float(log_loss(obs, probs, labels=names))
    return out


SUMMARY_FUNCTIONS = {
    "default": default_summary,
    "two_class": two_class_summary,
    "multi_class": multi_class_summary,
}


# ---------------------------------------------------------------------------
# Confusion matrix
# ---------------------------------------------------------------------------

def _clopper_pearson(k: int, n: int, conf_level: float = 0.95) -> tuple[float, float]:
    alpha = 1 - conf_level
    lower = 0.0 if k == 0 else float(beta.ppf(alpha / 2, k, n - k + 1))
    upper = 1.0 if k == n else float(beta.ppf(1 - alpha / 2, k + 1, n - k))
    return lower, upper


def _ratio(num, den) -> float:
    return float(num / den) if den else float("nan")


@dataclass
class ConfusionMatrix:
    """Cross-tabulation of predicted and observed classes with statistics."""
    table: pd.DataFrame
    positive: str | None
    overall: dict = field(default_factory=dict)
    by_class: dict | pd.DataFrame = field(default_factory=dict)

    @property
    def accuracy(self) -> float:
        return self.overall["Accuracy"]

    @property
    def kappa(self) -> float:
        return self.overall["Kappa"]

    def __str__(self) -> str:
        lines = ["Confusion Matrix and Statistics", "", "          Reference"]
        lines.append(self.table.to_string())
        lines.append("")
        lo, hi = self.overall["AccuracyLower"], self.overall["AccuracyUpper"]
        lines.append(f"               Accuracy : {self.overall['Accuracy']:.4f}")
        lines.append(f"                 95% CI : ({lo:.4f}, {hi:.4f})")
        lines.append(f"    No Information Rate : {self.overall['AccuracyNull']:.4f}")
        lines.append(f"    P-Value [Acc > NIR] : {self.overall['AccuracyPValue']:.4g}")
        lines.append(f"                  Kappa : {self.overall['Kappa']:.4f}")
        if isinstance(self.by_class, dict) and self.by_class:
            lines.append("")
            for name, value in self.by_class.items():
                lines.append(f"{name:>23} : {value:.4f}")
            lines.append(f"       'Positive' Class : {self.positive}")
        elif isinstance(self.by_class, pd.DataFrame):
            lines.append("")
            lines.append("Statistics by Class:")
            lines.append(self.by_class.round(4).to_string())
        return "\n".join(lines)


def _class_stats(table: np.ndarray, idx: int) -> dict:
    n = table.sum()
    tp = table[idx, idx]
    fn = table[:, idx].sum() - tp
    fp = table[idx, :].sum() - tp
    tn = n - tp - fn - fp
    sens = _ratio(tp, tp + fn)
    spec = _ratio(tn, tn + fp)
    return {
        "Sensitivity": sens,
        "Specificity": spec,
        "Pos Pred Value": _ratio(tp, tp + fp),
        "Neg Pred Value": _ratio(tn, tn + fn),
        "Prevalence": _ratio(tp + fn, n),
        "Detection Rate": _ratio(tp, n),
        "Detection Prevalence": _ratio(tp + fp, n),
        "Balanced Accuracy": (sens + spec) / 2,
    }


def confusion_matrix(data, reference, positive=None) -> ConfusionMatrix:
    """Confusion matrix of predicted classes ``data`` against ``reference``.

    Levels come from ``reference`` (its category order when categorical,
    sorted otherwise). For two classes, ``positive`` defaults to the
    first level.
    """
    data = pd.Series(data).reset_index(drop=True)
    reference = pd.Series(reference).reset_index(drop=True)
    if len(data) != len(reference):
        raise ValueError("data and reference must have the same length")
    if len(data) == 0:
        raise ValueError("confusion_matrix needs at least one prediction")

    if isinstance(reference.dtype, pd.CategoricalDtype):
        levels = [str(v) for v in reference.cat.categories]
    else:
        levels = sorted({str(v) for v in reference.dropna()})
    extra = sorted({str(v) for v in data.dropna()} - set(levels))
    if extra:
        raise ValueError(
            f"Predicted level(s) not present in reference: {', '.join(extra)}"
        )
    if len(levels) < 2:
        raise ValueError("confusion_matrix needs at least two class levels")

    pred = pd.Categorical(data.astype(str), categories=levels)
    obs = pd.Categorical(reference.astype(str), categories=levels)
    table = pd.crosstab(pd.Series(pred, name="Prediction"),
                        pd.Series(obs, name="Reference"), dropna=False)
    table = table.reindex(index=levels, columns=levels, fill_value=0)
    counts = table.to_numpy()

    n = int(counts.sum())
    correct = int(np.trace(counts))
    nir = float(counts.sum(axis=0).max() / n)
    lower, upper = _clopper_pearson(correct, n)
    overall = {
        "Accuracy": correct / n,
        "Kappa": kappa(np.asarray(obs).astype(str), np.asarray(pred).astype(str), levels),
        "AccuracyLower": lower,
        "AccuracyUpper": upper,
        "AccuracyNull": nir,
        "AccuracyPValue": float(binomtest(correct, n, nir, alternative="greater").pvalue),
    }

    if len(levels) == 2:
        positive = str(positive) if positive is not None else levels[0]
        if positive not in levels:
            raise ValueError(f"positive level '{positive}' not in {levels}")
        by_class = _class_stats(counts, levels.index(positive))
    else:
        positive = None
        by_class = pd.DataFrame(
            {f"Class: {lvl}": _class_stats(counts, i) for i, lvl in enumerate(levels)}
        ).T
    return ConfusionMatrix(table=table, positive=positive,
                           overall=overall, by_class=by_class)
