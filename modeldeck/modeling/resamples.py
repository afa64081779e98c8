"""Compare several trained models on their shared resamples."""

from dataclasses import dataclass
from itertools import combinations

import numpy as np
import pandas as pd
from scipy import stats

from .train import TrainedModel


ADJUSTMENTS = ("bonferroni", "none")


@dataclass
class ResampleDiff:
    """Pairwise differences between models, one row per (metric, pair)."""
    table: pd.DataFrame
    adjustment: str
    conf_level: float

    def __str__(self) -> str:
        lines = [f"Pairwise differences (p-value adjustment: {self.adjustment})", ""]
        for metric, rows in self.table.groupby("metric", sort=False):
            lines.append(f"{metric}:")
            shown = rows.drop(columns="metric")
            lines.append(shown.to_string(index=False, float_format=lambda v: f"{v:.4g}"))
            lines.append("")
        return "\n".join(lines).rstrip()


class Resamples:
    """Resampled performance of several models, aligned by resample name.

    ``values`` is wide: a ``Resample`` column followed by one
    ``<model>~<metric>`` column per model and metric.
    """

    def __init__(self, values: pd.DataFrame, models: list[str], metrics: list[str]):
        self.values = values
        self.models = models
        self.metrics = metrics

    def _column(self, model: str, metric: str) -> pd.Series:
        return self.values[f"{model}~{metric}"]

    def _check_metric(self, metric):
        metrics = self.metrics if metric is None else (
            [metric] if isinstance(metric, str) else list(metric))
        unknown = [m for m in metrics if m not in self.metrics]
        if unknown:
            raise ValueError(
                f"Unknown metric(s): {', '.join(unknown)}. "
                f"Available: {', '.join(self.metrics)}"
            )
        return metrics

    def summary(self, metric=None) -> dict[str, pd.DataFrame]:
        """Five-number summary, mean and missing count of each metric per model."""
        out = {}
        for name in self._check_metric(metric):
            rows = {}
            for model in self.models:
                col = self._column(model, name)
                rows[model] = {
                    "Min.": col.min(),
                    "1st Qu.": col.quantile(0.25),
                    "Median": col.median(),
                    "Mean": col.mean(),
                    "3rd Qu.": col.quantile(0.75),
                    "Max.": col.max(),
                    "NA's": int(col.isna().sum()),
                }
            out[name] = pd.DataFrame(rows).T
        return out

    def diff(self, metric=None, adjustment: str = "bonferroni",
             conf_level: float = 0.95) -> ResampleDiff:
        """Paired differences between every pair of models.

        Each comparison is a one-sample t-test of the per-resample
        differences against zero.
        """
        if adjustment not in ADJUSTMENTS:
            raise ValueError(
                f"Invalid adjustment '{adjustment}'. Valid values: {', '.join(ADJUSTMENTS)}"
            )
        if len(self.models) < 2:
            raise ValueError("diff needs at least two models")
        pairs = list(combinations(self.models, 2))
        rows = []
        for name in self._check_metric(metric):
            for first, second in pairs:
                delta = (self._column(first, name) - self._column(second, name)).dropna()
                estimate = float(delta.mean()) if len(delta) else float("nan")
                if len(delta) > 1 and delta.std(ddof=1) > 0:
                    test = stats.ttest_1samp(delta, 0.0)
                    p_value = float(test.pvalue)
                    low, high = test.confidence_interval(conf_level)
                else:
                    p_value = float("nan") if len(delta) < 2 else (0.0 if estimate else 1.0)
                    low = high = estimate
                adjusted = p_value
                if adjustment == "bonferroni" and not np.isnan(p_value):
                    adjusted = min(p_value * len(pairs), 1.0)
                rows.append({
                    "metric": name,
                    "model1": first,
                    "model2": second,
                    "estimate": estimate,
                    "conf_low": float(low),
                    "conf_high": float(high),
                    "p_value": p_value,
                    "p_adjusted": adjusted,
                })
        return ResampleDiff(table=pd.DataFrame(rows), adjustment=adjustment,
                            conf_level=conf_level)

    def __str__(self) -> str:
        lines = [f"Models: {', '.join(self.models)}",
                 f"Number of resamples: {len(self.values)}",
                 f"Performance metrics: {', '.join(self.metrics)}", ""]
        for name, frame in self.summary().items():
            lines.append(f"{name}")
            lines.append(frame.to_string(float_format=lambda v: f"{v:.4g}"))
            lines.append("")
        return "\n".join(lines).rstrip()


def resamples(models: dict[str, TrainedModel]) -> Resamples:
    """Collect the per-resample results of several models.

    Every model must have been trained with the same resample names and
    must have kept its final-candidate resample results.
    """
    if not models:
        raise ValueError("resamples needs at least one model")
    names = None
    metrics = None
    frames = []
    for label, model in models.items():
        frame = model.resample
        if frame is None or frame.empty:
            raise ValueError(f"Model '{label}' has no resampling results")
        if model.control.return_resamp == "all":
            selected = pd.Series(True, index=frame.index)
            for param, value in model.best_tune.items():
                selected &= frame[param] == value
            frame = frame[selected]
        current = sorted(frame["Resample"])
        if names is None:
            names = current
        elif current != names:
            raise ValueError(
                f"Model '{label}' was fit on different resamples; "
                "use the same seed and resampling options for every model"
            )
        model_metrics = [c for c in frame.columns
                         if c != "Resample" and c not in model.best_tune]
        metrics = model_metrics if metrics is None else [m for m in metrics if m in model_metrics]
        frames.append((label, frame.set_index("Resample")[model_metrics]))

    if not metrics:
        raise ValueError("The models share no performance metrics")
    wide = pd.DataFrame(index=names)
    for label, frame in frames:
        for name in metrics:
            wide[f"{label}~{name}"] = frame[name]
    wide = wide.rename_axis("Resample").reset_index()
    return Resamples(values=wide, models=list(models), metrics=metrics)
