"""Predictor preprocessing: filters, transformations, imputation and PCA.

``PreProcess`` estimates everything on the data passed to ``fit`` and
applies the same transformation to new data. Numeric columns are
processed; other columns pass through unchanged. Methods always run in
the order of ``PREPROCESS_ORDER``.
"""

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.impute import KNNImputer, SimpleImputer
from sklearn.preprocessing import MinMaxScaler, OneHotEncoder, PowerTransformer


PREPROCESS_ORDER = (
    "zv", "nzv", "corr",
    "YeoJohnson", "BoxCox",
    "center", "scale", "range",
    "medianImpute", "knnImpute",
    "pca",
)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def near_zero_var(x: pd.DataFrame, freq_cut: float = 95 / 5,
                  unique_cut: float = 10) -> pd.DataFrame:
    """Diagnose predictors with (near) zero variance.

    ``freq_ratio`` is the count of the most common value over the count of
    the second most common; ``percent_unique`` is distinct values as a
    percentage of rows. A predictor is ``nzv`` when the ratio exceeds
    ``freq_cut`` and the percentage is at most ``unique_cut``, or when it
    has a single distinct value.
    """
    rows = []
    for col in x.columns:
        counts = x[col].value_counts(dropna=True)
        counts = counts[counts > 0]
        n_unique = len(counts)
        if n_unique == 0:
            freq_ratio = 0.0
        elif n_unique == 1:
            freq_ratio = 1.0
        else:
            freq_ratio = counts.iloc[0] / counts.iloc[1]
        percent_unique = 100 * n_unique / len(x) if len(x) else 0.0
        zero_var = n_unique <= 1
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)
        rows.append({
            "freq_ratio": float(freq_ratio),
            "percent_unique": float(percent_unique),
            "zero_var": bool(zero_var),
            "nzv": bool(nzv),
        })
    return pd.DataFrame(rows, index=list(x.columns))


def find_correlation(x: pd.DataFrame, cutoff: float = 0.9) -> list[str]:
    """Columns to remove so no absolute pairwise correlation exceeds ``cutoff``.

    Walks pairs from the most to the least correlated variable (by mean
    absolute correlation); from each offending pair the variable with the
    larger mean absolute correlation is dropped.
    """
    numeric = x.select_dtypes(include="number")
    if numeric.shape[1] < 2:
        return []
    values = numeric.corr().abs().fillna(0.0).to_numpy(copy=True)
    np.fill_diagonal(values, 0.0)
    corr = pd.DataFrame(values, index=numeric.columns, columns=numeric.columns)
    mean_abs = corr.mean(axis=0)
    order = mean_abs.sort_values(ascending=False).index.tolist()

    dropped: set[str] = set()
    for i, a in enumerate(order):
        if a in dropped:
            continue
        for b in order[i + 1:]:
            if b in dropped:
                continue
            if corr.loc[a, b] > cutoff:
                if mean_abs[a] >= mean_abs[b]:
                    dropped.add(a)
                    break
                dropped.add(b)
    return [c for c in numeric.columns if c in dropped]


# ---------------------------------------------------------------------------
# Dummy variables
# ---------------------------------------------------------------------------

class DummyVars:
    """One-hot encoding of categorical predictors.

    With ``full_rank`` the first level of each factor is dropped
    (reference coding). Levels not seen during ``fit`` encode as all zeros.
    """

    def __init__(self, full_rank: bool = False):
        self.full_rank = full_rank
        self.categorical_: list[str] = []
        self.encoder_: OneHotEncoder | None = None
        self.columns_: list[str] = []

    @staticmethod
    def categorical_columns(x: pd.DataFrame) -> list[str]:
        return [c for c in x.columns
                if not pd.api.types.is_numeric_dtype(x[c])
                or pd.api.types.is_bool_dtype(x[c])]

    def fit(self, x: pd.DataFrame) -> "DummyVars":
        self.categorical_ = self.categorical_columns(x)
        if self.categorical_:
            self.encoder_ = OneHotEncoder(
                drop="first" if self.full_rank else None,
                handle_unknown="ignore",
                sparse_output=False,
            )
            self.encoder_.fit(self._categorical_values(x))
        self.columns_ = list(x.columns)
        return self

    def _categorical_values(self, x):
        return x[self.categorical_].astype(object).where(
            x[self.categorical_].notna(), "NA").astype(str)

    def transform(self, x: pd.DataFrame) -> pd.DataFrame:
        if not self.columns_:
            raise ValueError("DummyVars must be fit before transform")
        missing = [c for c in self.columns_ if c not in x.columns]
        if missing:
            raise KeyError(f"Columns not found in new data: {', '.join(missing)}")
        numeric = [c for c in self.columns_ if c not in self.categorical_]
        out = x[numeric].astype(float).reset_index(drop=True)
        if self.encoder_ is not None:
            encoded = self.encoder_.transform(self._categorical_values(x))
            names = list(self.encoder_.get_feature_names_out(self.categorical_))
            dummies = pd.DataFrame(encoded, columns=names)
            out = pd.concat([out, dummies], axis=1)
        out.index = x.index
        return out

    def fit_transform(self, x: pd.DataFrame) -> pd.DataFrame:
        return self.fit(x).transform(x)


# ---------------------------------------------------------------------------
# PreProcess
# ---------------------------------------------------------------------------

class PreProcess:
    """Estimate and apply a sequence of preprocessing methods.

    Parameters
    ----------
    method : list[str]
        Any of ``PREPROCESS_ORDER``.
    thresh : float
        Cumulative variance PCA must retain (ignored when ``pca_comp`` is set).
    pca_comp : int, optional
        Fixed number of principal components.
    k : int
        Neighbours for ``knnImpute``.
    cutoff : float
        Absolute correlation limit for ``corr``.
    freq_cut, unique_cut : float
        ``nzv`` thresholds (see ``near_zero_var``).
    """

    def __init__(self, method=("center", "scale"), thresh: float = 0.95,
                 pca_comp: int | None = None, k: int = 5, cutoff: float = 0.9,
                 freq_cut: float = 95 / 5, unique_cut: float = 10):
        method = [method] if isinstance(method, str) else list(method)
        unknown = [m for m in method if m not in PREPROCESS_ORDER]
        if unknown:
            raise ValueError(
                f"Unknown preprocessing method(s): {', '.join(unknown)}. "
                f"Valid methods: {', '.join(PREPROCESS_ORDER)}"
            )
        if "BoxCox" in method and "YeoJohnson" in method:
            raise ValueError("Use only one of BoxCox and YeoJohnson")
        self.method = [m for m in PREPROCESS_ORDER if m in method]
        self.thresh = thresh
        self.pca_comp = pca_comp
        self.k = k
        self.cutoff = cutoff
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

        self.steps_: list[tuple[str, list[str], object]] = []
        self.fitted_ = False

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(self, x: pd.DataFrame) -> "PreProcess":
        self.steps_ = []
        self.input_columns_ = list(x.columns)
        data = x.copy()

        for method in self.method:
            numeric = self._numeric(data)
            if method == "zv":
                drop = self._flagged(data[numeric], zero_only=True)
                data = self._drop(data, method, drop)
            elif method == "nzv":
                drop = self._flagged(data[numeric], zero_only=False)
                data = self._drop(data, method, drop)
            elif method == "corr":
                drop = find_correlation(data[numeric].dropna(), cutoff=self.cutoff)
                data = self._drop(data, method, drop)
            elif method in ("YeoJohnson", "BoxCox"):
                cols = numeric
                if method == "BoxCox":
                    cols = [c for c in numeric if (data[c].dropna() > 0).all()]
                cols = [c for c in cols if data[c].nunique() > 2]
                transformer = PowerTransformer(
                    method="yeo-johnson" if method == "YeoJohnson" else "box-cox",
                    standardize=False,
                )
                data = self._fit_step(data, method, cols, transformer)
            elif method == "center":
                means = data[numeric].mean()
                self._record(method, numeric, means)
                data[numeric] = data[numeric] - means
            elif method == "scale":
                sds = data[numeric].std(ddof=1).replace(0, 1).fillna(1)
                self._record(method, numeric, sds)
                data[numeric] = data[numeric] / sds
            elif method == "range":
                data = self._fit_step(data, method, numeric, MinMaxScaler())
            elif method == "medianImpute":
                cols = [c for c in numeric if data[c].notna().any()]
                data = self._fit_step(data, method, cols,
                                      SimpleImputer(strategy="median"))
            elif method == "knnImpute":
                data = self._fit_step(data, method, numeric,
                                      KNNImputer(n_neighbors=self.k))
            elif method == "pca":
                data = self._fit_pca(data, numeric)

        self.output_columns_ = list(data.columns)
        self.fitted_ = True
        return self

    @staticmethod
    def _numeric(data):
        return [c for c in data.columns
                if pd.api.types.is_numeric_dtype(data[c])
                and not pd.api.types.is_bool_dtype(data[c])]

    def _flagged(self, data, zero_only):
        nzv = near_zero_var(data, self.freq_cut, self.unique_cut)
        if nzv.empty:
            return []
        mask = nzv["zero_var"] if zero_only else nzv["nzv"]
        return list(nzv.index[mask])

    def _drop(self, data, method, cols):
        self.steps_.append((method, list(cols), None))
        return data.drop(columns=list(cols))

    def _record(self, method, cols, params):
        self.steps_.append((method, list(cols), params))

    def _fit_step(self, data, method, cols, transformer):
        if not cols:
            self._record(method, [], None)
            return data
        transformer.fit(data[cols].to_numpy(dtype=float))
        self._record(method, cols, transformer)
        return self._apply(data, cols, transformer)

    @staticmethod
    def _apply(data, cols, transformer):
        data = data.copy()
        data[cols] = transformer.transform(data[cols].to_numpy(dtype=float))
        return data

    def _fit_pca(self, data, numeric):
        if not numeric:
            self._record("pca", [], None)
            return data
        values = data[numeric].to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("PCA cannot be applied to data with missing values; "
                             "add an imputation method")
        n_components = self.pca_comp if self.pca_comp else self.thresh
        pca = PCA(n_components=n_components, svd_solver="full")
        pca.fit(values)
        self._record("pca", numeric, pca)
        return self._apply_pca(data, numeric, pca)

    @staticmethod
    def _apply_pca(data, cols, pca):
        scores = pca.transform(data[cols].to_numpy(dtype=float))
        names = [f"PC{i + 1}" for i in range(scores.shape[1])]
        rest = data.drop(columns=cols)
        pcs = pd.DataFrame(scores, columns=names, index=data.index)
        return pd.concat([rest, pcs], axis=1)

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def transform(self, x: pd.DataFrame) -> pd.DataFrame:
        if not self.fitted_:
            raise ValueError("PreProcess must be fit before transform")
        missing = [c for c in self.input_columns_ if c not in x.columns]
        if missing:
            raise KeyError(f"Columns not found in new data: {', '.join(missing)}")
        data = x[self.input_columns_].copy()
        for method, cols, params in self.steps_:
            if method in ("zv", "nzv", "corr"):
                data = data.drop(columns=cols)
            elif not cols:
                continue
            elif method == "center":
                data[cols] = data[cols] - params
            elif method == "scale":
                data[cols] = data[cols] / params
            elif method == "pca":
                data = self._apply_pca(data, cols, params)
            else:
                data = self._apply(data, cols, params)
        return data

    def fit_transform(self, x: pd.DataFrame) -> pd.DataFrame:
        return self.fit(x).transform(x)

    def summary(self) -> dict[str, list[str]]:
        """Which columns each method removed or transformed."""
        if not self.fitted_:
            raise ValueError("PreProcess must be fit before summary")
        return {method: list(cols) for method, cols, _ in self.steps_}

    def __str__(self) -> str:
        if not self.fitted_:
            return f"PreProcess(method={self.method}) [not fit]"
        lines = [f"Pre-processing of {len(self.input_columns_)} predictor(s):"]
        for method, cols, _ in self.steps_:
            verb = "removed" if method in ("zv", "nzv", "corr") else "applied to"
            lines.append(f"  - {method} ({verb} {len(cols)})")
        return "\n".join(lines)
