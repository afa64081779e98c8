"""Variable importance through one call for every registered model."""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .metrics import safe_auc
from .preprocess import DummyVars
from .train import TrainedModel


@dataclass
class VarImp:
    """Importance scores indexed by predictor.

    ``importance`` has an ``Overall`` column for model-based scores, or one
    column per class for classification filter scores.
    """
    importance: pd.DataFrame
    model: str
    scaled: bool

    def _ranking(self) -> pd.Series:
        return self.importance.max(axis=1)

    def top(self, n: int = 10) -> pd.DataFrame:
        order = self._ranking().sort_values(ascending=False).index[:n]
        return self.importance.loc[order]

    def plot(self, top: int = 20, ax=None):
        """Horizontal bar chart of the ``top`` most important predictors."""
        import matplotlib.pyplot as plt

        if ax is None:
            _, ax = plt.subplots(figsize=(6, max(2, 0.3 * min(top, len(self.importance)))))
        ranking = self._ranking().sort_values(ascending=False).iloc[:top][::-1]
        ax.barh(list(ranking.index), ranking.to_numpy())
        ax.set_xlabel("Importance")
        ax.set_title(f"Variable importance ({self.model})")
        return ax

    def __str__(self) -> str:
        label = "scaled" if self.scaled else "unscaled"
        n = min(20, len(self.importance))
        lines = [f"{self.model} variable importance ({label})", ""]
        if n < len(self.importance):
            lines[0] += f", top {n} of {len(self.importance)}"
        lines.append(self.top(n).to_string(float_format=lambda v: f"{v:.2f}"))
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Model-free scores
# ---------------------------------------------------------------------------

def _t_statistic(x: np.ndarray, y: np.ndarray) -> float:
    mask = ~(np.isnan(x) | np.isnan(y))
    x, y = x[mask], y[mask]
    n = len(x)
    if n < 3 or np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    r = np.corrcoef(x, y)[0, 1]
    if abs(r) >= 1:
        return float("inf")
    return float(abs(r) * np.sqrt((n - 2) / (1 - r ** 2)))


def filter_var_imp(x: pd.DataFrame, y) -> pd.DataFrame:
    """Model-free importance of each predictor.

    For class outcomes each class gets a column holding the one-vs-rest ROC
    AUC of the predictor (flipped so it is at least 0.5). For numeric
    outcomes the single ``Overall`` column is the absolute t statistic of a
    univariate linear fit. Categorical predictors are dummy-encoded first.
    """
    x = pd.DataFrame(x).reset_index(drop=True)
    y = pd.Series(y).reset_index(drop=True)
    if len(x) != len(y):
        raise ValueError(f"x and y have different numbers of rows ({len(x)} != {len(y)})")
    if DummyVars.categorical_columns(x):
        x = DummyVars().fit_transform(x)

    numeric = pd.api.types.is_numeric_dtype(y) and not pd.api.types.is_bool_dtype(y)
    if numeric:
        target = y.to_numpy(dtype=float)
        scores = {col: _t_statistic(x[col].to_numpy(dtype=float), target) for col in x.columns}
        return pd.DataFrame({"Overall": scores})

    if isinstance(y.dtype, pd.CategoricalDtype):
        levels = [str(c) for c in y.cat.categories]
    else:
        levels = sorted({str(v) for v in y})
    labels = y.astype(str).to_numpy()
    table = {}
    for level in levels:
        is_level = labels == level
        column = {}
        for col in x.columns:
            values = x[col].to_numpy(dtype=float)
            keep = ~np.isnan(values)
            auc = safe_auc(is_level[keep], values[keep])
            column[col] = max(auc, 1 - auc) if not np.isnan(auc) else 0.5
        table[level] = column
    return pd.DataFrame(table)


# ---------------------------------------------------------------------------
# Model-based scores
# ---------------------------------------------------------------------------

def _linear_t(x: np.ndarray, y: np.ndarray, coef: np.ndarray, intercept: float) -> np.ndarray:
    """Absolute t statistics of OLS coefficients."""
    design = np.column_stack([np.ones(len(x)), x])
    beta = np.concatenate([[intercept], coef])
    resid = y - design @ beta
    dof = max(len(y) - design.shape[1], 1)
    sigma2 = resid @ resid / dof
    cov = sigma2 * np.linalg.pinv(design.T @ design)
    se = np.sqrt(np.clip(np.diag(cov)[1:], 0, None))
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.abs(coef / se)
    return np.nan_to_num(t, nan=0.0, posinf=0.0)


def _wald_z(x: np.ndarray, estimator) -> np.ndarray:
    """Absolute Wald z statistics of logistic-regression coefficients."""
    design = np.column_stack([np.ones(len(x)), x])
    p = estimator.predict_proba(x)[:, 1]
    weights = p * (1 - p)
    info = design.T @ (design * weights[:, None])
    se = np.sqrt(np.clip(np.diag(np.linalg.pinv(info))[1:], 0, None))
    with np.errstate(divide="ignore", invalid="ignore"):
        z = np.abs(estimator.coef_[0] / se)
    return np.nan_to_num(z, nan=0.0, posinf=0.0)


def _model_scores(model: TrainedModel) -> pd.DataFrame:
    kind = model.model_info.importance
    names = model.feature_names
    estimator = model.final_model

    if kind == "tree":
        return pd.DataFrame({"Overall": estimator.feature_importances_}, index=names)

    if kind in ("lm", "glm"):
        x = model.model_matrix(model.training_x).to_numpy(dtype=float)
        if model.is_classification:
            scores = _wald_z(x, estimator)
        else:
            scores = _linear_t(x, model.training_y.to_numpy(dtype=float),
                               estimator.coef_, float(estimator.intercept_))
        return pd.DataFrame({"Overall": scores}, index=names)

    if kind == "coef":
        final_step = estimator[-1] if hasattr(estimator, "steps") else estimator
        coef = np.atleast_2d(final_step.coef_)
        return pd.DataFrame({"Overall": np.abs(coef).max(axis=0)}, index=names)

    x = model.model_matrix(model.training_x)
    return filter_var_imp(x, model.training_y)


def var_imp(model: TrainedModel, scale: bool = True, use_model: bool = True) -> VarImp:
    """Importance of each predictor of a trained model.

    Args:
        model: Result of ``train``.
        scale: Map scores to 0-100 (per column).
        use_model: Use the model's own scores where it has them; otherwise
            use ``filter_var_imp`` on the training data.
    """
    if use_model:
        scores = _model_scores(model)
    else:
        scores = filter_var_imp(model.model_matrix(model.training_x), model.training_y)
    scores = scores.astype(float)
    if scale:
        low, high = scores.min(), scores.max()
        span = (high - low).replace(0, 1)
        scores = (scores - low) / span * 100
    return VarImp(importance=scores, model=model.method, scaled=scale)
