"""Preprocessing recipes: declare steps, estimate them once, apply them anywhere.

A ``Recipe`` is built from a formula and a template frame, then extended one
step at a time. Every ``step_*`` call returns a new recipe::

    rec = (recipe("sale_price ~ .", data=train)
           .step_log(all_outcomes(), skip=True)
           .step_dummy(all_nominal_predictors())
           .step_zv(all_predictors())
           .step_normalize(all_numeric_predictors()))
    prepped = rec.prep()
    baked_train = prepped.bake()          # processed training data
    baked_test = prepped.bake(test)
"""

import copy
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.impute import KNNImputer
from sklearn.preprocessing import PowerTransformer

from ..modeling.partition import resample_names
from ..modeling.preprocess import find_correlation, near_zero_var


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Selector:
    """Role/type based column selection resolved against the current data."""
    kind: str

    def resolve(self, data: pd.DataFrame, outcomes: list[str]) -> list[str]:
        predictors = [c for c in data.columns if c not in outcomes]
        if self.kind == "predictors":
            return predictors
        if self.kind == "numeric_predictors":
            return [c for c in predictors if _is_numeric(data[c])]
        if self.kind == "nominal_predictors":
            return [c for c in predictors if not _is_numeric(data[c])]
        if self.kind == "outcomes":
            return [c for c in outcomes if c in data.columns]
        raise ValueError(f"Unknown selector '{self.kind}'")

    def __repr__(self) -> str:
        return f"all_{self.kind}()"


def all_predictors() -> Selector:
    return Selector("predictors")


def all_numeric_predictors() -> Selector:
    return Selector("numeric_predictors")


def all_nominal_predictors() -> Selector:
    return Selector("nominal_predictors")


def all_outcomes() -> Selector:
    return Selector("outcomes")


def _is_numeric(col: pd.Series) -> bool:
    return pd.api.types.is_numeric_dtype(col) and not pd.api.types.is_bool_dtype(col)


def _levels(col: pd.Series) -> list[str]:
    if isinstance(col.dtype, pd.CategoricalDtype):
        return [str(c) for c in col.cat.categories]
    return sorted({str(v) for v in col.dropna()})


def parse_formula(formula: str, columns) -> tuple[list[str], list[str]]:
    """``"y ~ ."``, ``"y ~ a + b"`` or a bare outcome name -> (outcomes, predictors)."""
    columns = list(columns)
    if "~" in formula:
        lhs, rhs = (part.strip() for part in formula.split("~", 1))
    else:
        lhs, rhs = formula.strip(), "."
    outcomes = [t.strip() for t in lhs.split("+") if t.strip()]
    terms = [t.strip() for t in rhs.split("+") if t.strip()]
    missing = [c for c in outcomes if c not in columns]
    if missing:
        raise KeyError(f"Outcome column(s) not found in data: {', '.join(missing)}")
    if terms == ["."]:
        predictors = [c for c in columns if c not in outcomes]
    else:
        missing = [t for t in terms if t not in columns]
        if missing:
            raise KeyError(f"Predictor column(s) not found in data: {', '.join(missing)}")
        predictors = terms
    return outcomes, predictors


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

class Step:
    """Base step. Subclasses implement ``_fit`` and ``_apply``."""
    operation = "step"

    def __init__(self, terms, skip: bool = False):
        if not terms:
            raise ValueError(f"{self.operation} needs at least one selector or column")
        self.terms = list(terms)
        self.skip = skip
        self.columns: list[str] = []
        self.trained = False
        self.id = ""

    def select(self, data: pd.DataFrame, outcomes: list[str]) -> list[str]:
        cols: list[str] = []
        for term in self.terms:
            if isinstance(term, Selector):
                found = term.resolve(data, outcomes)
            elif isinstance(term, str):
                if term not in data.columns:
                    raise KeyError(f"{self.operation}: column '{term}' not found")
                found = [term]
            else:
                raise TypeError(f"Selectors must be column names or Selector objects, "
                                f"got {type(term).__name__}")
            cols.extend(c for c in found if c not in cols)
        return cols

    def fit(self, data: pd.DataFrame, outcomes: list[str]) -> "Step":
        self.columns = self.select(data, outcomes)
        if self.columns:
            self._fit(data, self.columns)
        self.trained = True
        return self

    def apply(self, data: pd.DataFrame) -> pd.DataFrame:
        if not self.columns:
            return data
        missing = [c for c in self.columns if c not in data.columns]
        if missing:
            raise KeyError(f"{self.operation}: column(s) not found in new data: "
                           f"{', '.join(missing)}")
        return self._apply(data.copy())

    def _fit(self, data, cols):
        pass

    def _apply(self, data):
        return data

    def _require_numeric(self, data, cols):
        bad = [c for c in cols if not _is_numeric(data[c])]
        if bad:
            raise TypeError(f"{self.operation} needs numeric columns; not numeric: "
                            f"{', '.join(bad)}")


class StepLog(Step):
    operation = "log"

    def __init__(self, terms, base=np.e, offset=0.0, skip=False):
        super().__init__(terms, skip)
        self.base = base
        self.offset = offset

    def _fit(self, data, cols):
        self._require_numeric(data, cols)

    def _apply(self, data):
        for c in self.columns:
            data[c] = np.log(data[c].astype(float) + self.offset) / np.log(self.base)
        return data


class StepCenter(Step):
    operation = "center"

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.means = data[cols].mean()

    def _apply(self, data):
        data[self.columns] = data[self.columns].astype(float) - self.means
        return data


class StepScale(Step):
    operation = "scale"

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.sds = data[cols].std(ddof=1).replace(0, 1).fillna(1)

    def _apply(self, data):
        data[self.columns] = data[self.columns].astype(float) / self.sds
        return data


class StepNormalize(Step):
    operation = "normalize"

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.means = data[cols].mean()
        self.sds = data[cols].std(ddof=1).replace(0, 1).fillna(1)

    def _apply(self, data):
        data[self.columns] = (data[self.columns].astype(float) - self.means) / self.sds
        return data


class StepRange(Step):
    operation = "range"

    def __init__(self, terms, min=0.0, max=1.0, skip=False):
        super().__init__(terms, skip)
        self.min = min
        self.max = max

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.lows = data[cols].min()
        self.spans = (data[cols].max() - self.lows).replace(0, 1)

    def _apply(self, data):
        scaled = (data[self.columns].astype(float) - self.lows) / self.spans
        data[self.columns] = scaled * (self.max - self.min) + self.min
        return data


class StepDummy(Step):
    operation = "dummy"

    def __init__(self, terms, one_hot=False, skip=False):
        super().__init__(terms, skip)
        self.one_hot = one_hot

    def _fit(self, data, cols):
        numeric = [c for c in cols if _is_numeric(data[c])]
        if numeric:
            raise TypeError(f"dummy needs nominal columns; numeric: {', '.join(numeric)}")
        self.levels = {c: _levels(data[c]) for c in cols}

    def _apply(self, data):
        for c in self.columns:
            values = data[c].astype(object).where(data[c].notna(), None)
            levels = self.levels[c] if self.one_hot else self.levels[c][1:]
            position = list(data.columns).index(c)
            dummies = pd.DataFrame(
                {f"{c}_{lvl}": (values.astype(str) == lvl).astype(float) for lvl in levels},
                index=data.index,
            )
            data = pd.concat([data.iloc[:, :position], dummies,
                              data.iloc[:, position + 1:]], axis=1)
        return data


class StepOther(Step):
    operation = "other"

    def __init__(self, terms, threshold=0.05, other="other", skip=False):
        super().__init__(terms, skip)
        if not 0 <= threshold < 1:
            raise ValueError(f"threshold must be in [0, 1), got {threshold}")
        self.threshold = threshold
        self.other = other

    def _fit(self, data, cols):
        self.keep = {}
        for c in cols:
            freq = data[c].astype(str).value_counts(normalize=True)
            self.keep[c] = [lvl for lvl in _levels(data[c]) if freq.get(lvl, 0) >= self.threshold]

    def _apply(self, data):
        for c in self.columns:
            keep = self.keep[c]
            values = data[c].astype(object)
            collapsed = values.where(values.isna() | values.astype(str).isin(keep), self.other)
            categories = keep + ([self.other] if self.other not in keep else [])
            data[c] = pd.Categorical(collapsed.astype(object), categories=categories)
        return data


class StepZv(Step):
    operation = "zv"

    def _fit(self, data, cols):
        self.removed = [c for c in cols if data[c].nunique(dropna=True) <= 1]

    def _apply(self, data):
        return data.drop(columns=self.removed)


class StepNzv(Step):
    operation = "nzv"

    def __init__(self, terms, freq_cut=95 / 5, unique_cut=10, skip=False):
        super().__init__(terms, skip)
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

    def _fit(self, data, cols):
        if not cols:
            self.removed = []
            return
        flags = near_zero_var(data[cols], self.freq_cut, self.unique_cut)
        self.removed = list(flags.index[flags["nzv"]])

    def _apply(self, data):
        return data.drop(columns=self.removed)


class StepCorr(Step):
    operation = "corr"

    def __init__(self, terms, threshold=0.9, skip=False):
        super().__init__(terms, skip)
        self.threshold = threshold

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.removed = find_correlation(data[cols].dropna(), cutoff=self.threshold)

    def _apply(self, data):
        return data.drop(columns=self.removed)


class StepImputeMedian(Step):
    operation = "impute_median"

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.medians = data[cols].median()

    def _apply(self, data):
        data[self.columns] = data[self.columns].fillna(self.medians)
        return data


class StepImputeMode(Step):
    operation = "impute_mode"

    def _fit(self, data, cols):
        self.modes = {}
        for c in cols:
            counts = data[c].value_counts(dropna=True)
            if counts.empty:
                raise ValueError(f"impute_mode: column '{c}' has no observed values")
            self.modes[c] = counts.index[0]

    def _apply(self, data):
        for c in self.columns:
            data[c] = data[c].fillna(self.modes[c])
        return data


class StepImputeKnn(Step):
    operation = "impute_knn"

    def __init__(self, terms, neighbors=5, skip=False):
        super().__init__(terms, skip)
        self.neighbors = neighbors

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.imputer = KNNImputer(n_neighbors=self.neighbors)
        self.imputer.fit(data[cols].to_numpy(dtype=float))

    def _apply(self, data):
        data[self.columns] = self.imputer.transform(data[self.columns].to_numpy(dtype=float))
        return data


class StepYeoJohnson(Step):
    operation = "YeoJohnson"

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        self.transformed = [c for c in cols if data[c].nunique() > 2]
        self.transformer = None
        if self.transformed:
            self.transformer = PowerTransformer(method="yeo-johnson", standardize=False)
            self.transformer.fit(data[self.transformed].to_numpy(dtype=float))

    def _apply(self, data):
        if self.transformer is not None:
            data[self.transformed] = self.transformer.transform(
                data[self.transformed].to_numpy(dtype=float))
        return data


class StepPca(Step):
    operation = "pca"

    def __init__(self, terms, num_comp=5, threshold=None, prefix="PC", skip=False):
        super().__init__(terms, skip)
        self.num_comp = num_comp
        self.threshold = threshold
        self.prefix = prefix

    def _fit(self, data, cols):
        self._require_numeric(data, cols)
        values = data[cols].to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("pca: data has missing values; impute them first")
        n_components = self.threshold if self.threshold else min(self.num_comp, len(cols))
        self.pca = PCA(n_components=n_components, svd_solver="full").fit(values)
        self.names = resample_names(self.prefix, self.pca.n_components_)

    def _apply(self, data):
        scores = self.pca.transform(data[self.columns].to_numpy(dtype=float))
        rest = data.drop(columns=self.columns)
        return pd.concat([rest, pd.DataFrame(scores, columns=self.names, index=data.index)],
                         axis=1)


# ---------------------------------------------------------------------------
# Recipe
# ---------------------------------------------------------------------------

class Recipe:
    """An ordered list of steps plus the variable roles they operate on."""

    def __init__(self, template: pd.DataFrame, outcomes: list[str], predictors: list[str],
                 steps: list[Step] | None = None):
        self.template = template
        self.outcomes = outcomes
        self.predictors = predictors
        self.steps = steps or []
        self.trained = False
        self._training: pd.DataFrame | None = None

    @property
    def var_info(self) -> pd.DataFrame:
        rows = []
        for col in self.predictors + self.outcomes:
            rows.append({
                "variable": col,
                "type": "numeric" if _is_numeric(self.template[col]) else "nominal",
                "role": "outcome" if col in self.outcomes else "predictor",
            })
        return pd.DataFrame(rows)

    def _add(self, step: Step) -> "Recipe":
        if self.trained:
            raise ValueError("Cannot add steps to a recipe that has been prepped")
        step.id = f"{step.operation}_{len(self.steps) + 1}"
        return Recipe(self.template, self.outcomes, self.predictors, self.steps + [step])

    # -- step constructors --------------------------------------------------

    def step_log(self, *terms, base=np.e, offset=0.0, skip=False):
        return self._add(StepLog(terms, base=base, offset=offset, skip=skip))

    def step_center(self, *terms, skip=False):
        return self._add(StepCenter(terms, skip=skip))

    def step_scale(self, *terms, skip=False):
        return self._add(StepScale(terms, skip=skip))

    def step_normalize(self, *terms, skip=False):
        return self._add(StepNormalize(terms, skip=skip))

    def step_range(self, *terms, min=0.0, max=1.0, skip=False):
        return self._add(StepRange(terms, min=min, max=max, skip=skip))

    def step_dummy(self, *terms, one_hot=False, skip=False):
        return self._add(StepDummy(terms, one_hot=one_hot, skip=skip))

    def step_other(self, *terms, threshold=0.05, other="other", skip=False):
        return self._add(StepOther(terms, threshold=threshold, other=other, skip=skip))

    def step_zv(self, *terms, skip=False):
        return self._add(StepZv(terms, skip=skip))

    def step_nzv(self, *terms, freq_cut=95 / 5, unique_cut=10, skip=False):
        return self._add(StepNzv(terms, freq_cut=freq_cut, unique_cut=unique_cut, skip=skip))

    def step_corr(self, *terms, threshold=0.9, skip=False):
        return self._add(StepCorr(terms, threshold=threshold, skip=skip))

    def step_impute_median(self, *terms, skip=False):
        return self._add(StepImputeMedian(terms, skip=skip))

    def step_impute_mode(self, *terms, skip=False):
        return self._add(StepImputeMode(terms, skip=skip))

    def step_impute_knn(self, *terms, neighbors=5, skip=False):
        return self._add(StepImputeKnn(terms, neighbors=neighbors, skip=skip))

    def step_YeoJohnson(self, *terms, skip=False):
        return self._add(StepYeoJohnson(terms, skip=skip))

    def step_pca(self, *terms, num_comp=5, threshold=None, prefix="PC", skip=False):
        return self._add(StepPca(terms, num_comp=num_comp, threshold=threshold,
                                 prefix=prefix, skip=skip))

    # -- estimation and application ------------------------------------------

    def prep(self, training: pd.DataFrame | None = None) -> "Recipe":
        """Estimate every step, in order, on ``training`` (default: the template)."""
        data = self.template if training is None else training
        needed = self.predictors + self.outcomes
        missing = [c for c in needed if c not in data.columns]
        if missing:
            raise KeyError(f"Columns not found in training data: {', '.join(missing)}")
        data = data[needed].copy()

        steps = [copy.deepcopy(step) for step in self.steps]
        for step in steps:
            step.fit(data, self.outcomes)
            data = step.apply(data)

        prepped = Recipe(self.template, self.outcomes, self.predictors, steps)
        prepped.trained = True
        prepped._training = data
        return prepped

    def bake(self, new_data: pd.DataFrame | None = None) -> pd.DataFrame:
        """Apply the estimated steps.

        With no ``new_data`` the processed training data is returned,
        including the effect of ``skip`` steps; otherwise ``skip`` steps
        are left out.
        """
        if not self.trained:
            raise ValueError("The recipe must be prepped before bake")
        if new_data is None:
            return self._training.copy()
        keep = [c for c in self.predictors + self.outcomes if c in new_data.columns]
        missing = [c for c in self.predictors if c not in new_data.columns]
        if missing:
            raise KeyError(f"Columns not found in new data: {', '.join(missing)}")
        data = new_data[keep].copy()
        for step in self.steps:
            if step.skip:
                continue
            data = step.apply(data)
        return data

    def juice(self) -> pd.DataFrame:
        return self.bake()

    def tidy(self) -> pd.DataFrame:
        """One row per step: number, operation, trained, skip, id and columns."""
        return pd.DataFrame([
            {
                "number": i + 1,
                "operation": "step",
                "type": step.operation,
                "trained": step.trained,
                "skip": step.skip,
                "id": step.id,
                "columns": ", ".join(step.columns),
            }
            for i, step in enumerate(self.steps)
        ], columns=["number", "operation", "type", "trained", "skip", "id", "columns"])

    def __repr__(self) -> str:
        lines = [
            "Recipe",
            f"  outcome(s): {', '.join(self.outcomes) or 'none'}",
            f"  predictors: {len(self.predictors)}",
        ]
        for step in self.steps:
            terms = ", ".join(repr(t) if isinstance(t, Selector) else t for t in step.terms)
            status = " [trained]" if step.trained else ""
            lines.append(f"  - {step.operation}: {terms}{status}")
        return "\n".join(lines)


def recipe(formula: str, data: pd.DataFrame) -> Recipe:
    """Start a recipe.

    Args:
        formula: ``"y ~ ."``, ``"y ~ a + b"``, or just the outcome name.
        data: Template frame; defines the columns and their types.
    """
    if not isinstance(data, pd.DataFrame):
        raise TypeError(f"data must be a DataFrame, got {type(data).__name__}")
    outcomes, predictors = parse_formula(formula, data.columns)
    return Recipe(data, outcomes, predictors)


def prep(rec: Recipe, training: pd.DataFrame | None = None) -> Recipe:
    return rec.prep(training)


def bake(rec: Recipe, new_data: pd.DataFrame | None = None) -> pd.DataFrame:
    return rec.bake(new_data)


def juice(rec: Recipe) -> pd.DataFrame:
    return rec.bake()
