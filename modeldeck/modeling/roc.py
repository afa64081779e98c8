"""Receiver operating characteristic curves for a binary outcome."""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import roc_auc_score, roc_curve


DIRECTIONS = ("auto", "<", ">")
BEST_METHODS = ("youden", "closest.topleft")


@dataclass
class RocCurve:
    """An empirical ROC curve.

    ``direction`` ``"<"`` means controls have lower predictor values than
    cases, so a row is called a case when ``predictor >= threshold``.
    Arrays are ordered from the strictest threshold to the most lenient.
    """
    thresholds: np.ndarray
    sensitivities: np.ndarray
    specificities: np.ndarray
    auc: float
    levels: tuple[str, str]
    direction: str
    cases: np.ndarray
    controls: np.ndarray

    def coords(self, x="best", best_method: str = "youden"):
        """Threshold coordinates.

        ``x="best"`` returns the optimal point as a dict, ``x="all"`` a
        DataFrame of every point, and a number the point at that threshold.
        """
        if isinstance(x, str) and x == "all":
            return pd.DataFrame({
                "threshold": self.thresholds,
                "specificity": self.specificities,
                "sensitivity": self.sensitivities,
            })
        if isinstance(x, str) and x == "best":
            if best_method not in BEST_METHODS:
                raise ValueError(
                    f"Invalid best_method '{best_method}'. "
                    f"Valid values: {', '.join(BEST_METHODS)}"
                )
            finite = np.isfinite(self.thresholds)
            sens = np.where(finite, self.sensitivities, np.nan)
            spec = np.where(finite, self.specificities, np.nan)
            if best_method == "youden":
                idx = int(np.nanargmax(sens + spec - 1))
            else:
                idx = int(np.nanargmin((1 - sens) ** 2 + (1 - spec) ** 2))
            return {
                "threshold": float(self.thresholds[idx]),
                "specificity": float(self.specificities[idx]),
                "sensitivity": float(self.sensitivities[idx]),
            }
        if isinstance(x, str):
            raise ValueError(f"x must be 'best', 'all' or a threshold, got {x!r}")
        threshold = float(x)
        if self.direction == "<":
            sens = float(np.mean(self.cases >= threshold))
            spec = float(np.mean(self.controls < threshold))
        else:
            sens = float(np.mean(self.cases <= threshold))
            spec = float(np.mean(self.controls > threshold))
        return {"threshold": threshold, "specificity": spec, "sensitivity": sens}

    def ci(self, conf_level: float = 0.95, boot_n: int = 2000, seed=None) -> tuple[float, float, float]:
        """Percentile bootstrap interval for the AUC: ``(lower, auc, upper)``.

        Cases and controls are resampled separately so every replicate
        keeps the original class balance.
        """
        if not 0 < conf_level < 1:
            raise ValueError(f"conf_level must be between 0 and 1, got {conf_level}")
        rng = np.random.default_rng(seed)
        sign = 1.0 if self.direction == "<" else -1.0
        labels = np.concatenate([np.ones(len(self.cases)), np.zeros(len(self.controls))])
        aucs = np.empty(boot_n)
        for i in range(boot_n):
            cases = rng.choice(self.cases, size=len(self.cases), replace=True)
            controls = rng.choice(self.controls, size=len(self.controls), replace=True)
            aucs[i] = roc_auc_score(labels, sign * np.concatenate([cases, controls]))
        alpha = (1 - conf_level) / 2
        lower, upper = np.quantile(aucs, [alpha, 1 - alpha])
        return float(lower), self.auc, float(upper)

    def plot(self, ax=None, legacy_axes: bool = False):
        """Plot sensitivity against specificity (reversed axis) or 1 - specificity."""
        import matplotlib.pyplot as plt

        if ax is None:
            _, ax = plt.subplots(figsize=(5, 5))
        if legacy_axes:
            ax.plot(1 - self.specificities, self.sensitivities)
            ax.plot([0, 1], [0, 1], linestyle="--", color="grey")
            ax.set_xlabel("1 - Specificity")
        else:
            ax.plot(self.specificities, self.sensitivities)
            ax.plot([1, 0], [0, 1], linestyle="--", color="grey")
            ax.set_xlim(1, 0)
            ax.set_xlabel("Specificity")
        ax.set_ylabel("Sensitivity")
        ax.set_title(f"AUC = {self.auc:.3f}")
        return ax

    def __str__(self) -> str:
        control, case = self.levels
        op = "<" if self.direction == "<" else ">"
        return (
            f"ROC curve: {len(self.controls)} controls ({control}) {op} "
            f"{len(self.cases)} cases ({case})\n"
            f"Area under the curve: {self.auc:.4f}"
        )


def roc(response, predictor, levels=None, direction: str = "auto") -> RocCurve:
    """Build an ROC curve.

    Args:
        response: Observed classes.
        predictor: Numeric score, e.g. a class probability.
        levels: ``(control, case)``; defaults to the sorted distinct
            response values. Rows with other responses are ignored.
        direction: ``"<"`` (controls score lower), ``">"``, or ``"auto"``
            to pick by comparing the group medians.

    Raises:
        ValueError: On length mismatch, an invalid direction, or when there
            is not at least one control and one case.
    """
    if direction not in DIRECTIONS:
        raise ValueError(
            f"Invalid direction '{direction}'. Valid values: {', '.join(DIRECTIONS)}"
        )
    response = pd.Series(response).reset_index(drop=True)
    predictor = pd.Series(predictor, dtype=float).reset_index(drop=True)
    if len(response) != len(predictor):
        raise ValueError(
            f"response and predictor must have the same length "
            f"({len(response)} != {len(predictor)})"
        )
    keep = response.notna() & predictor.notna()
    response = response[keep].astype(str)
    predictor = predictor[keep]

    if levels is None:
        distinct = sorted(response.unique())
        if len(distinct) != 2:
            raise ValueError(
                f"response must have exactly two levels when levels is not given, "
                f"found {len(distinct)}"
            )
        levels = distinct
    if len(levels) != 2:
        raise ValueError("levels must be a (control, case) pair")
    control, case = str(levels[0]), str(levels[1])

    cases = predictor[response == case].to_numpy()
    controls = predictor[response == control].to_numpy()
    if len(cases) == 0 or len(controls) == 0:
        raise ValueError(
            f"roc needs at least one control ('{control}') and one case ('{case}')"
        )

    if direction == "auto":
        direction = ">" if np.median(controls) > np.median(cases) else "<"
    sign = 1.0 if direction == "<" else -1.0

    labels = np.concatenate([np.ones(len(cases)), np.zeros(len(controls))])
    scores = sign * np.concatenate([cases, controls])
    fpr, tpr, thresholds = roc_curve(labels, scores, drop_intermediate=False)
    auc = float(roc_auc_score(labels, scores))

    return RocCurve(
        thresholds=sign * thresholds,
        sensitivities=tpr,
        specificities=1 - fpr,
        auc=auc,
        levels=(control, case),
        direction=direction,
        cases=cases,
        controls=controls,
    )
