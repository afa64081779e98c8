"""Model registry: method name -> estimator factory, tuning grid and metadata.

Every model is a scikit-learn estimator. The registry adds what a unified
training interface needs on top: which outcome types a method supports,
its tuning parameters, how to build a default or random tuning grid from
the data, and how to order candidates from simplest to most complex.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist
from sklearn.ensemble import (
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet, LinearRegression, LogisticRegression
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC, SVR
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor


REGRESSION = "Regression"
CLASSIFICATION = "Classification"


@dataclass
class FitContext:
    """What a model factory needs to know besides its tuning parameters."""
    classification: bool
    seed: int | None = None
    class_probs: bool = False
    n_obs: int = 0
    n_features: int = 0
    fixed: dict = field(default_factory=dict)


@dataclass
class ModelInfo:
    """Registry entry for one training method."""
    method: str
    label: str
    types: tuple[str, ...]
    parameters: list[tuple[str, str]]          # (name, label)
    grid: Callable[..., list[dict]]            # (x, y, length, search, rng)
    build: Callable[[dict, FitContext], Any]
    importance: str                            # "tree", "lm", "glm", "coef", "filter"
    sort: Callable[[pd.DataFrame], pd.DataFrame]
    tags: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()              # fixed options read by ``build`` itself

    @property
    def parameter_names(self) -> list[str]:
        return [name for name, _ in self.parameters]

    def supports(self, model_type: str) -> bool:
        return model_type in self.types

    def create(self, params: dict, ctx: FitContext):
        """Build the estimator and pass the remaining fixed options to it.

        Options listed in ``aliases`` are translated by ``build``; anything
        else must be a keyword the underlying scikit-learn estimator accepts.

        Raises:
            ValueError: If a fixed option is not an estimator parameter.
        """
        estimator = self.build(params, ctx)
        rest = {k: v for k, v in ctx.fixed.items() if k not in self.aliases}
        if not rest:
            return estimator
        target = estimator.steps[-1][1] if isinstance(estimator, Pipeline) else estimator
        valid = target.get_params(deep=False)
        unknown = sorted(set(rest) - set(valid))
        if unknown:
            choices = sorted(set(valid) | set(self.aliases))
            raise ValueError(
                f"Unknown option(s) for '{self.method}': {', '.join(unknown)}. "
                f"Valid options: {', '.join(choices)}"
            )
        target.set_params(**rest)
        return estimator


# ---------------------------------------------------------------------------
# Grid helpers
# ---------------------------------------------------------------------------

def _n_predictors(x) -> int:
    return x.shape[1]


def _is_class(y) -> bool:
    return not (pd.api.types.is_numeric_dtype(y) and not pd.api.types.is_bool_dtype(y))


def _var_seq(p: int, classification: bool, length: int) -> list[int]:
    """Candidate ``mtry`` values."""
    if length == 1:
        value = math.floor(math.sqrt(p)) if classification else max(math.floor(p / 3), 1)
        return [max(value, 1)]
    if p <= 1:
        return [1]
    return sorted({int(v) for v in np.floor(np.linspace(2, p, length))})


def _sigest(x: pd.DataFrame, rng) -> tuple[float, float, float]:
    """Range of reasonable RBF ``sigma`` values: 1/quantiles of squared distances."""
    values = x.select_dtypes(include="number").to_numpy(dtype=float)
    values = values[~np.isnan(values).any(axis=1)]
    if len(values) > 250:
        values = values[rng.choice(len(values), size=250, replace=False)]
    dist = pdist(values, metric="sqeuclidean")
    dist = dist[dist > 0]
    if len(dist) == 0:
        return (1.0, 1.0, 1.0)
    q90, q50, q10 = np.quantile(dist, [0.9, 0.5, 0.1])
    return (1 / q90, 1 / q50, 1 / q10)


def _lambda_max(x: pd.DataFrame, y) -> float:
    """Smallest penalty at which every standardized coefficient is zero."""
    values = x.to_numpy(dtype=float)
    values = np.nan_to_num(values - np.nanmean(values, axis=0))
    sd = values.std(axis=0)
    sd[sd == 0] = 1.0
    values = values / sd
    if _is_class(y):
        codes = pd.Categorical(y).codes
        target = (codes == 0).astype(float)
    else:
        target = np.asarray(y, dtype=float)
    target = target - target.mean()
    lam = np.abs(values.T @ target).max() / len(target) if values.size else 1.0
    return float(lam) if lam > 0 else 1.0


def _expand(**params) -> list[dict]:
    keys = list(params)
    grid = [{}]
    for key in keys:
        grid = [dict(g, **{key: v}) for g in grid for v in params[key]]
    return grid


def _random_rows(length: int, rng, **samplers) -> list[dict]:
    rows = [{name: fn(rng) for name, fn in samplers.items()} for _ in range(length)]
    unique = []
    for row in rows:
        if row not in unique:
            unique.append(row)
    return unique


# ---------------------------------------------------------------------------
# Linear models
# ---------------------------------------------------------------------------

def _lm_grid(x, y, length, search, rng):
    return [{"intercept": True}]


def _lm_build(params, ctx):
    return LinearRegression(fit_intercept=bool(params.get("intercept", True)))


def _glm_grid(x, y, length, search, rng):
    return [{"parameter": "none"}]


def _glm_build(params, ctx):
    if ctx.classification:
        return LogisticRegression(penalty=None, max_iter=ctx.fixed.get("max_iter", 1000))
    return LinearRegression()


def _glmnet_grid(x, y, length, search, rng):
    lam_max = _lambda_max(x, y)
    if search == "random":
        return _random_rows(
            length, rng,
            alpha=lambda r: float(r.uniform(0, 1)),
            **{"lambda": lambda r: float(lam_max * 10 ** r.uniform(-3, 0))},
        )
    return _expand(
        alpha=[float(a) for a in np.linspace(0.1, 1, length)],
        **{"lambda": [float(lam_max * v) for v in np.logspace(-3, -1, length)]},
    )


def _glmnet_build(params, ctx):
    alpha = float(params["alpha"])
    lam = float(params["lambda"])
    if ctx.classification:
        n = max(ctx.n_obs, 1)
        model = LogisticRegression(
            penalty="elasticnet", solver="saga", l1_ratio=alpha,
            C=1.0 / (n * lam), max_iter=ctx.fixed.get("max_iter", 5000),
            random_state=ctx.seed,
        )
    else:
        model = ElasticNet(alpha=lam, l1_ratio=alpha,
                           max_iter=ctx.fixed.get("max_iter", 10000),
                           random_state=ctx.seed)
    return make_pipeline(StandardScaler(), model)


def _glmnet_sort(grid):
    return grid.sort_values(["lambda", "alpha"], ascending=[False, True])


# ---------------------------------------------------------------------------
# Tree ensembles
# ---------------------------------------------------------------------------

def _rf_grid(x, y, length, search, rng):
    p = _n_predictors(x)
    if search == "random":
        return _random_rows(length, rng,
                            mtry=lambda r: int(r.integers(1, max(p, 1) + 1)))
    return [{"mtry": m} for m in _var_seq(p, _is_class(y), length)]


def _rf_build(params, ctx):
    mtry = int(params["mtry"])
    if ctx.n_features:
        mtry = min(mtry, ctx.n_features)
    kwargs = dict(
        n_estimators=ctx.fixed.get("ntree", 500),
        max_features=max(mtry, 1),
        random_state=ctx.seed,
        n_jobs=ctx.fixed.get("n_jobs"),
    )
    if "nodesize" in ctx.fixed:
        kwargs["min_samples_leaf"] = ctx.fixed["nodesize"]
    if ctx.classification:
        return RandomForestClassifier(**kwargs)
    return RandomForestRegressor(**kwargs)


def _gbm_grid(x, y, length, search, rng):
    if search == "random":
        return _random_rows(
            length, rng,
            n_trees=lambda r: int(r.integers(1, 1001)),
            interaction_depth=lambda r: int(r.integers(1, 11)),
            shrinkage=lambda r: float(r.uniform(0.001, 0.6)),
            n_minobsinnode=lambda r: int(r.integers(5, 26)),
        )
    return _expand(
        interaction_depth=list(range(1, length + 1)),
        n_trees=[50 * i for i in range(1, length + 1)],
        shrinkage=[0.1],
        n_minobsinnode=[10],
    )


def _gbm_build(params, ctx):
    kwargs = dict(
        n_estimators=int(params["n_trees"]),
        max_depth=int(params["interaction_depth"]),
        learning_rate=float(params["shrinkage"]),
        min_samples_leaf=int(params["n_minobsinnode"]),
        subsample=ctx.fixed.get("bag_fraction", 0.5),
        random_state=ctx.seed,
    )
    if ctx.classification:
        return GradientBoostingClassifier(**kwargs)
    return GradientBoostingRegressor(**kwargs)


def _gbm_sort(grid):
    return grid.sort_values(["n_trees", "interaction_depth", "shrinkage"])


def _rpart_grid(x, y, length, search, rng):
    values = x.to_numpy(dtype=float)
    tree = DecisionTreeClassifier() if _is_class(y) else DecisionTreeRegressor()
    target = np.asarray(y.astype(str)) if _is_class(y) else np.asarray(y, dtype=float)
    path = tree.cost_complexity_pruning_path(values, target)
    alphas = np.unique(path.ccp_alphas[:-1])
    if len(alphas) == 0:
        alphas = np.array([0.0])
    if search == "random":
        picks = rng.choice(alphas, size=min(length, len(alphas)), replace=False)
        return [{"cp": float(a)} for a in sorted(picks)]
    positions = np.unique(np.floor(np.linspace(0, len(alphas) - 1, length)).astype(int))
    return [{"cp": float(a)} for a in alphas[positions]]


def _rpart_build(params, ctx):
    kwargs = dict(ccp_alpha=float(params["cp"]), random_state=ctx.seed,
                  min_samples_split=ctx.fixed.get("minsplit", 20))
    if ctx.classification:
        return DecisionTreeClassifier(**kwargs)
    return DecisionTreeRegressor(**kwargs)


def _rpart_sort(grid):
    return grid.sort_values("cp", ascending=False)


# ---------------------------------------------------------------------------
# Kernel and neighbour models
# ---------------------------------------------------------------------------

def _svm_grid(x, y, length, search, rng):
    lo, _, hi = _sigest(x, rng)
    if search == "random":
        return _random_rows(
            length, rng,
            sigma=lambda r: float(math.exp(r.uniform(math.log(lo), math.log(hi)))),
            C=lambda r: float(2 ** r.uniform(-5, 10)),
        )
    sigma = (lo + hi) / 2
    return [{"sigma": float(sigma), "C": float(2 ** (i - 2))} for i in range(length)]


def _svm_build(params, ctx):
    if ctx.classification:
        return SVC(kernel="rbf", gamma=float(params["sigma"]), C=float(params["C"]),
                   probability=ctx.class_probs, random_state=ctx.seed)
    return SVR(kernel="rbf", gamma=float(params["sigma"]), C=float(params["C"]),
               epsilon=ctx.fixed.get("epsilon", 0.1))


def _svm_sort(grid):
    return grid.sort_values("C")


def _knn_grid(x, y, length, search, rng):
    if search == "random":
        upper = max(len(x) // 2, 2)
        return _random_rows(length, rng, k=lambda r: int(r.integers(1, upper + 1)))
    return [{"k": 5 + 2 * i} for i in range(length)]


def _knn_build(params, ctx):
    k = int(params["k"])
    if ctx.n_obs:
        k = min(k, ctx.n_obs)
    if ctx.classification:
        return KNeighborsClassifier(n_neighbors=k)
    return KNeighborsRegressor(n_neighbors=k)


def _knn_sort(grid):
    return grid.sort_values("k", ascending=False)


def _no_sort(grid):
    return grid


def _ascending(column):
    return lambda grid: grid.sort_values(column)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

MODEL_REGISTRY: dict[str, ModelInfo] = {
    "lm": ModelInfo(
        method="lm", label="Linear Regression", types=(REGRESSION,),
        parameters=[("intercept", "intercept")],
        grid=_lm_grid, build=_lm_build, importance="lm", sort=_no_sort,
        tags=("Linear Regression",),
    ),
    "glm": ModelInfo(
        method="glm", label="Generalized Linear Model",
        types=(REGRESSION, CLASSIFICATION),
        parameters=[("parameter", "parameter")],
        grid=_glm_grid, build=_glm_build, importance="glm", sort=_no_sort,
        tags=("Generalized Linear Model", "Linear Classifier"),
        aliases=("max_iter",),
    ),
    "glmnet": ModelInfo(
        method="glmnet", label="Elastic Net (glmnet)",
        types=(REGRESSION, CLASSIFICATION),
        parameters=[("alpha", "Mixing Percentage"), ("lambda", "Regularization Parameter")],
        grid=_glmnet_grid, build=_glmnet_build, importance="coef", sort=_glmnet_sort,
        tags=("Linear Regression", "Implicit Feature Selection", "L1 Regularization"),
        aliases=("max_iter",),
    ),
    "rf": ModelInfo(
        method="rf", label="Random Forest", types=(REGRESSION, CLASSIFICATION),
        parameters=[("mtry", "#Randomly Selected Predictors")],
        grid=_rf_grid, build=_rf_build, importance="tree", sort=_ascending("mtry"),
        tags=("Random Forest", "Ensemble Model", "Bagging"),
        aliases=("ntree", "nodesize", "n_jobs"),
    ),
    "gbm": ModelInfo(
        method="gbm", label="Stochastic Gradient Boosting",
        types=(REGRESSION, CLASSIFICATION),
        parameters=[
            ("n_trees", "# Boosting Iterations"),
            ("interaction_depth", "Max Tree Depth"),
            ("shrinkage", "Shrinkage"),
            ("n_minobsinnode", "Min. Terminal Node Size"),
        ],
        grid=_gbm_grid, build=_gbm_build, importance="tree", sort=_gbm_sort,
        tags=("Tree-Based Model", "Boosting", "Ensemble Model"),
        aliases=("bag_fraction",),
    ),
    "svmRadial": ModelInfo(
        method="svmRadial", label="Support Vector Machines with Radial Basis Function Kernel",
        types=(REGRESSION, CLASSIFICATION),
        parameters=[("sigma", "Sigma"), ("C", "Cost")],
        grid=_svm_grid, build=_svm_build, importance="filter", sort=_svm_sort,
        tags=("Kernel Method", "Support Vector Machines", "Radial Basis Function"),
        aliases=("epsilon",),
    ),
    "knn": ModelInfo(
        method="knn", label="k-Nearest Neighbors", types=(REGRESSION, CLASSIFICATION),
        parameters=[("k", "#Neighbors")],
        grid=_knn_grid, build=_knn_build, importance="filter", sort=_knn_sort,
        tags=("Prototype Models",),
    ),
    "rpart": ModelInfo(
        method="rpart", label="CART", types=(REGRESSION, CLASSIFICATION),
        parameters=[("cp", "Complexity Parameter")],
        grid=_rpart_grid, build=_rpart_build, importance="tree", sort=_rpart_sort,
        tags=("Tree-Based Model", "Implicit Feature Selection"),
        aliases=("minsplit",),
    ),
}


def get_model_info(method: str) -> ModelInfo:
    """Look up a registry entry.

    Raises:
        KeyError: If the method is not registered.
    """
    if method not in MODEL_REGISTRY:
        available = ", ".join(sorted(MODEL_REGISTRY))
        raise KeyError(f"Unknown model method '{method}'. Available: {available}")
    return MODEL_REGISTRY[method]


def model_lookup(method: str | None = None) -> pd.DataFrame:
    """One row per (model, parameter) with the outcome types it supports."""
    methods = [method] if method else list(MODEL_REGISTRY)
    rows = []
    for name in methods:
        info = get_model_info(name)
        for param, label in info.parameters:
            rows.append({
                "model": name,
                "parameter": param,
                "label": label,
                "for_reg": info.supports(REGRESSION),
                "for_class": info.supports(CLASSIFICATION),
            })
    return pd.DataFrame(rows)
