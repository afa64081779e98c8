"""Model specifications: what kind of model, independent of how it is fit.

A spec names the model type and its main arguments. ``set_engine`` picks
the implementation, and ``set_mode`` chooses regression or classification.
Every engine maps onto a scikit-learn estimator::

    spec = rand_forest(mtry=3, trees=200).set_engine("ranger").set_mode("regression")
    fitted = spec.fit(train, "sale_price ~ .")
    fitted.predict(test)            # DataFrame with a ``.pred`` column
"""

import copy
import time
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import pandas as pd
from sklearn.ensemble import (
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet, LinearRegression, LogisticRegression
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC, SVR
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from ..modeling.preprocess import DummyVars
from .recipes import parse_formula


MODES = ("regression", "classification")
WEIGHT_FUNCTIONS = {"rectangular": "uniform", "inv": "distance"}


# ---------------------------------------------------------------------------
# Tuning placeholder
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TuneParameter:
    """Marks a model argument whose value is chosen by tuning."""
    id: str = ""

    def __repr__(self) -> str:
        return f"tune({self.id!r})" if self.id else "tune()"


def tune(id: str = "") -> TuneParameter:
    return TuneParameter(id)


def is_tune(value) -> bool:
    return isinstance(value, TuneParameter)


# ---------------------------------------------------------------------------
# Engine table
# ---------------------------------------------------------------------------

@dataclass
class ModelType:
    name: str
    title: str
    modes: tuple[str, ...]
    default_engine: str
    engines: dict[str, Callable[..., Any]]   # engine -> builder(args, mode, n_features, n_obs, engine_args)


def _seed(engine_args):
    return engine_args.get("random_state", engine_args.get("seed"))


def _arg(args, name, default, cast=float):
    """``args[name]`` converted with ``cast``; ``default`` only when unset."""
    value = args.get(name)
    return default if value is None else cast(value)


def _penalty(args) -> float:
    if args.get("penalty") is None:
        raise ValueError("The glmnet engine needs a penalty value")
    penalty = float(args["penalty"])
    if penalty < 0:
        raise ValueError(f"penalty must be non-negative, got {penalty}")
    return penalty


def _linear_reg_lm(args, mode, n_features, n_obs, engine_args):
    return LinearRegression()


def _linear_reg_glmnet(args, mode, n_features, n_obs, engine_args):
    penalty = _penalty(args)
    if penalty == 0:
        return make_pipeline(StandardScaler(), LinearRegression())
    return make_pipeline(StandardScaler(), ElasticNet(
        alpha=penalty, l1_ratio=_arg(args, "mixture", 1.0),
        max_iter=engine_args.get("max_iter", 10000)))


def _logistic_reg_glm(args, mode, n_features, n_obs, engine_args):
    return LogisticRegression(penalty=None, max_iter=engine_args.get("max_iter", 1000))


def _logistic_reg_glmnet(args, mode, n_features, n_obs, engine_args):
    penalty = _penalty(args)
    if penalty == 0:
        return make_pipeline(StandardScaler(), LogisticRegression(
            penalty=None, max_iter=engine_args.get("max_iter", 5000)))
    return make_pipeline(StandardScaler(), LogisticRegression(
        penalty="elasticnet", solver="saga", l1_ratio=_arg(args, "mixture", 1.0),
        C=1.0 / (max(n_obs, 1) * penalty),
        max_iter=engine_args.get("max_iter", 5000), random_state=_seed(engine_args)))


def _rand_forest(args, mode, n_features, n_obs, engine_args):
    mtry = args.get("mtry")
    if mtry is None:
        mtry = max(int(np.floor(np.sqrt(n_features))) if mode == "classification"
                   else n_features // 3, 1)
    kwargs = dict(
        n_estimators=_arg(args, "trees", 500, int),
        max_features=min(int(mtry), max(n_features, 1)),
        min_samples_split=_arg(args, "min_n", 2 if mode == "classification" else 5, int),
        random_state=_seed(engine_args),
        n_jobs=engine_args.get("num_threads", engine_args.get("n_jobs")),
    )
    if mode == "classification":
        return RandomForestClassifier(**kwargs)
    return RandomForestRegressor(**kwargs)


def _boost_tree(args, mode, n_features, n_obs, engine_args):
    kwargs = dict(
        n_estimators=_arg(args, "trees", 100, int),
        max_depth=_arg(args, "tree_depth", 6, int),
        learning_rate=_arg(args, "learn_rate", 0.3),
        min_samples_split=_arg(args, "min_n", 2, int),
        subsample=float(engine_args.get("sample_size", 1.0)),
        random_state=_seed(engine_args),
    )
    if mode == "classification":
        return GradientBoostingClassifier(**kwargs)
    return GradientBoostingRegressor(**kwargs)


def _svm_rbf(args, mode, n_features, n_obs, engine_args):
    gamma = args.get("rbf_sigma")
    kwargs = dict(kernel="rbf", C=_arg(args, "cost", 1.0),
                  gamma="scale" if gamma is None else float(gamma))
    if mode == "classification":
        return SVC(probability=True, random_state=_seed(engine_args), **kwargs)
    return SVR(epsilon=_arg(args, "margin", 0.1), **kwargs)


def _nearest_neighbor(args, mode, n_features, n_obs, engine_args):
    k = min(_arg(args, "neighbors", 5, int), max(n_obs, 1))
    weights = WEIGHT_FUNCTIONS.get(args.get("weight_func") or "rectangular", "uniform")
    if mode == "classification":
        return KNeighborsClassifier(n_neighbors=k, weights=weights)
    return KNeighborsRegressor(n_neighbors=k, weights=weights)


def _decision_tree(args, mode, n_features, n_obs, engine_args):
    kwargs = dict(
        ccp_alpha=_arg(args, "cost_complexity", 0.0),
        max_depth=_arg(args, "tree_depth", 30, int),
        min_samples_split=_arg(args, "min_n", 2, int),
        random_state=_seed(engine_args),
    )
    if mode == "classification":
        return DecisionTreeClassifier(**kwargs)
    return DecisionTreeRegressor(**kwargs)


MODEL_TYPES: dict[str, ModelType] = {
    "linear_reg": ModelType(
        "linear_reg", "Linear Regression", ("regression",), "lm",
        {"lm": _linear_reg_lm, "glmnet": _linear_reg_glmnet},
    ),
    "logistic_reg": ModelType(
        "logistic_reg", "Logistic Regression", ("classification",), "glm",
        {"glm": _logistic_reg_glm, "glmnet": _logistic_reg_glmnet},
    ),
    "rand_forest": ModelType(
        "rand_forest", "Random Forest", MODES, "ranger",
        {"ranger": _rand_forest, "randomForest": _rand_forest},
    ),
    "boost_tree": ModelType(
        "boost_tree", "Boosted Tree", MODES, "xgboost",
        {"xgboost": _boost_tree, "gbm": _boost_tree},
    ),
    "svm_rbf": ModelType(
        "svm_rbf", "Radial Basis Function Support Vector Machine", MODES, "kernlab",
        {"kernlab": _svm_rbf},
    ),
    "nearest_neighbor": ModelType(
        "nearest_neighbor", "K-Nearest Neighbor", MODES, "kknn",
        {"kknn": _nearest_neighbor},
    ),
    "decision_tree": ModelType(
        "decision_tree", "Decision Tree", MODES, "rpart",
        {"rpart": _decision_tree},
    ),
}


# ---------------------------------------------------------------------------
# Specification
# ---------------------------------------------------------------------------

class ModelSpec:
    """A model type with its main arguments, engine and mode."""

    def __init__(self, model: str, args: dict, mode: str | None = None,
                 engine: str | None = None, engine_args: dict | None = None):
        if model not in MODEL_TYPES:
            raise KeyError(f"Unknown model type '{model}'. "
                           f"Available: {', '.join(MODEL_TYPES)}")
        self.info = MODEL_TYPES[model]
        self.model = model
        self.args = dict(args)
        self.engine = engine or self.info.default_engine
        self.engine_args = dict(engine_args or {})
        if mode is None:
            mode = self.info.modes[0] if len(self.info.modes) == 1 else "unknown"
        if mode != "unknown" and mode not in self.info.modes:
            raise ValueError(
                f"Mode '{mode}' is not available for {model}. "
                f"Valid modes: {', '.join(self.info.modes)}"
            )
        self.mode = mode

    def _copy(self) -> "ModelSpec":
        return copy.deepcopy(self)

    def set_engine(self, engine: str, **engine_args) -> "ModelSpec":
        if engine not in self.info.engines:
            raise ValueError(
                f"Engine '{engine}' is not available for {self.model}. "
                f"Valid engines: {', '.join(self.info.engines)}"
            )
        spec = self._copy()
        spec.engine = engine
        spec.engine_args.update(engine_args)
        return spec

    def set_mode(self, mode: str) -> "ModelSpec":
        if mode not in self.info.modes:
            raise ValueError(
                f"Mode '{mode}' is not available for {self.model}. "
                f"Valid modes: {', '.join(self.info.modes)}"
            )
        spec = self._copy()
        spec.mode = mode
        return spec

    def set_args(self, **args) -> "ModelSpec":
        unknown = [k for k in args if k not in self.args]
        if unknown:
            raise ValueError(
                f"Unknown argument(s) for {self.model}: {', '.join(unknown)}. "
                f"Valid arguments: {', '.join(self.args)}"
            )
        spec = self._copy()
        spec.args.update(args)
        return spec

    def tunable(self) -> list[str]:
        """Arguments currently marked with ``tune()``."""
        return [name for name, value in self.args.items() if is_tune(value)]

    def _resolve_mode(self, y: pd.Series) -> str:
        classification = not (pd.api.types.is_numeric_dtype(y)
                              and not pd.api.types.is_bool_dtype(y))
        inferred = "classification" if classification else "regression"
        if self.mode == "unknown":
            if inferred not in self.info.modes:
                raise ValueError(f"{self.model} does not support {inferred}")
            return inferred
        if self.mode != inferred:
            raise ValueError(
                f"A {self.mode} model needs a "
                f"{'numeric' if self.mode == 'regression' else 'factor'} outcome"
            )
        return self.mode

    def fit_xy(self, x: pd.DataFrame, y) -> "ModelFit":
        """Fit on a predictor frame and an outcome vector."""
        pending = self.tunable()
        if pending:
            raise ValueError(
                f"Arguments still marked for tuning: {', '.join(pending)}. "
                "Finalize the model before fitting"
            )
        started = time.perf_counter()
        x = pd.DataFrame(x).reset_index(drop=True)
        y = pd.Series(y).reset_index(drop=True)
        if len(x) != len(y):
            raise ValueError(f"x and y have different numbers of rows ({len(x)} != {len(y)})")
        mode = self._resolve_mode(y)

        dummies = DummyVars(full_rank=True).fit(x)
        matrix = dummies.transform(x)
        levels = None
        if mode == "classification":
            if isinstance(y.dtype, pd.CategoricalDtype):
                levels = [str(c) for c in y.cat.remove_unused_categories().cat.categories]
            else:
                levels = sorted({str(v) for v in y})
            target = y.astype(str).to_numpy()
        else:
            target = y.to_numpy(dtype=float)

        builder = self.info.engines[self.engine]
        estimator = builder(self.args, mode, matrix.shape[1], len(matrix), self.engine_args)
        estimator.fit(matrix.to_numpy(dtype=float), target)
        return ModelFit(spec=self, mode=mode, estimator=estimator, dummies=dummies,
                        predictors=list(x.columns), outcome=y.name, levels=levels,
                        elapsed=time.perf_counter() - started)

    def fit(self, data: pd.DataFrame, formula: str) -> "ModelFit":
        """Fit using a formula (``"y ~ ."``, ``"y ~ a + b"``) or outcome name."""
        outcomes, predictors = parse_formula(formula, data.columns)
        if len(outcomes) != 1:
            raise ValueError("Exactly one outcome is required")
        return self.fit_xy(data[predictors], data[outcomes[0]])

    def __repr__(self) -> str:
        lines = [f"{self.info.title} Model Specification ({self.mode})"]
        set_args = {k: v for k, v in self.args.items() if v is not None}
        if set_args:
            lines += ["", "Main Arguments:"]
            lines += [f"  {k} = {v!r}" for k, v in set_args.items()]
        if self.engine_args:
            lines += ["", "Engine-Specific Arguments:"]
            lines += [f"  {k} = {v!r}" for k, v in self.engine_args.items()]
        lines += ["", f"Computational engine: {self.engine}"]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Fitted model
# ---------------------------------------------------------------------------

@dataclass
class ModelFit:
    """A fitted spec. Predictions come back as tidy frames."""
    spec: ModelSpec
    mode: str
    estimator: Any
    dummies: DummyVars
    predictors: list[str]
    outcome: str | None
    levels: list[str] | None
    elapsed: float = 0.0

    def extract_fit_engine(self):
        return self.estimator

    def _matrix(self, new_data):
        return self.dummies.transform(new_data[self.predictors]).to_numpy(dtype=float)

    def predict(self, new_data: pd.DataFrame, type: str | None = None) -> pd.DataFrame:
        """``numeric`` (``.pred``), ``class`` (``.pred_class``) or ``prob`` (``.pred_<level>``)."""
        if type is None:
            type = "class" if self.mode == "classification" else "numeric"
        valid = ("class", "prob") if self.mode == "classification" else ("numeric",)
        if type not in valid:
            raise ValueError(f"type '{type}' is not available for {self.mode}. "
                             f"Valid types: {', '.join(valid)}")
        missing = [c for c in self.predictors if c not in new_data.columns]
        if missing:
            raise KeyError(f"Columns not found in new data: {', '.join(missing)}")
        x = self._matrix(new_data)
        if type == "numeric":
            return pd.DataFrame({".pred": self.estimator.predict(x).astype(float)},
                                index=new_data.index)
        if type == "class":
            pred = self.estimator.predict(x).astype(str)
            return pd.DataFrame({".pred_class": pd.Categorical(pred, categories=self.levels)},
                                index=new_data.index)
        probs = self.estimator.predict_proba(x)
        classes = [str(c) for c in self.estimator.classes_]
        frame = pd.DataFrame(probs, columns=[f".pred_{c}" for c in classes],
                             index=new_data.index)
        return frame.reindex(columns=[f".pred_{lvl}" for lvl in self.levels], fill_value=0.0)

    def __repr__(self) -> str:
        return (f"parsnip model fit ({self.spec.model}, engine {self.spec.engine}, "
                f"{self.mode}) in {self.elapsed:.3f}s\n{self.estimator!r}")


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def linear_reg(penalty=None, mixture=None, mode="regression", engine="lm") -> ModelSpec:
    return ModelSpec("linear_reg", {"penalty": penalty, "mixture": mixture},
                     mode=mode).set_engine(engine)


def logistic_reg(penalty=None, mixture=None, mode="classification",
                 engine="glm") -> ModelSpec:
    return ModelSpec("logistic_reg", {"penalty": penalty, "mixture": mixture},
                     mode=mode).set_engine(engine)


def rand_forest(mtry=None, trees=None, min_n=None, mode="unknown",
                engine="ranger") -> ModelSpec:
    return ModelSpec("rand_forest", {"mtry": mtry, "trees": trees, "min_n": min_n},
                     mode=mode).set_engine(engine)


def boost_tree(trees=None, tree_depth=None, learn_rate=None, min_n=None,
               mode="unknown", engine="xgboost") -> ModelSpec:
    return ModelSpec("boost_tree", {"trees": trees, "tree_depth": tree_depth,
                                    "learn_rate": learn_rate, "min_n": min_n},
                     mode=mode).set_engine(engine)


def svm_rbf(cost=None, rbf_sigma=None, margin=None, mode="unknown",
            engine="kernlab") -> ModelSpec:
    return ModelSpec("svm_rbf", {"cost": cost, "rbf_sigma": rbf_sigma, "margin": margin},
                     mode=mode).set_engine(engine)


def nearest_neighbor(neighbors=None, weight_func=None, mode="unknown",
                     engine="kknn") -> ModelSpec:
    return ModelSpec("nearest_neighbor", {"neighbors": neighbors, "weight_func": weight_func},
                     mode=mode).set_engine(engine)


def decision_tree(cost_complexity=None, tree_depth=None, min_n=None, mode="unknown",
                  engine="rpart") -> ModelSpec:
    return ModelSpec("decision_tree", {"cost_complexity": cost_complexity,
                                       "tree_depth": tree_depth, "min_n": min_n},
                     mode=mode).set_engine(engine)
