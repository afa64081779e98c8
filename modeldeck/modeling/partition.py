"""Data splitting: stratified partitions, folds and bootstrap samples.

All functions work on positional row indices (0-based) so the result can be
used directly with ``DataFrame.iloc``. Numeric outcomes are stratified on
quantile bins, categorical outcomes on their classes.
"""

import math

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _as_series(y) -> pd.Series:
    if isinstance(y, pd.Series):
        return y.reset_index(drop=True)
    return pd.Series(y)


def _is_numeric_outcome(y: pd.Series) -> bool:
    return (pd.api.types.is_numeric_dtype(y)
            and not pd.api.types.is_bool_dtype(y))


def _rng(seed):
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def outcome_strata(y, cuts: int) -> np.ndarray:
    """Integer stratum codes for ``y``.

    Numeric values are cut at ``cuts`` evenly spaced quantile break points
    (so ``cuts - 1`` bins at most; duplicate breaks collapse). Missing
    values share the code -1.
    """
    y = _as_series(y)
    if not _is_numeric_outcome(y):
        return pd.Categorical(y).codes.astype(int)
    cuts = max(int(cuts), 2)
    values = y.astype(float)
    if values.notna().sum() == 0:
        return np.full(len(values), -1, dtype=int)
    breaks = np.unique(np.nanquantile(values, np.linspace(0, 1, cuts)))
    if len(breaks) < 2:
        return np.zeros(len(values), dtype=int)
    codes = pd.cut(values, breaks, include_lowest=True, labels=False)
    return codes.fillna(-1).astype(int).to_numpy()


def resample_names(prefix: str, n: int) -> list[str]:
    """Zero-padded names: ``Fold01``..``Fold10`` for n=10, ``Fold1``.. for n<10."""
    width = len(str(n))
    return [f"{prefix}{i:0{width}d}" for i in range(1, n + 1)]


def _validate_y(y: pd.Series) -> None:
    if len(y) == 0:
        raise ValueError("y must contain at least one value")


# ---------------------------------------------------------------------------
# Partitions
# ---------------------------------------------------------------------------

def create_data_partition(y, p: float = 0.5, times: int = 1,
                          groups: int = 5, seed=None) -> list[np.ndarray]:
    """Stratified random training-set indices.

    Each stratum contributes ``ceil(n_stratum * p)`` rows; a single-row
    stratum is always kept.

    Args:
        y: Outcome values.
        p: Fraction of rows to place in the training set.
        times: Number of partitions to create.
        groups: Number of quantile break points for numeric outcomes.
        seed: Seed or ``numpy.random.Generator``.

    Returns:
        List of ``times`` sorted integer index arrays.
    """
    y = _as_series(y)
    _validate_y(y)
    if not 0 < p < 1:
        raise ValueError(f"p must be between 0 and 1 (exclusive), got {p}")
    if times < 1:
        raise ValueError(f"times must be at least 1, got {times}")

    rng = _rng(seed)
    strata = outcome_strata(y, min(groups, len(y)))
    members = [np.flatnonzero(strata == code) for code in np.unique(strata)]

    partitions = []
    for _ in range(times):
        chosen = []
        for rows in members:
            if len(rows) == 1:
                chosen.append(rows)
                continue
            size = math.ceil(len(rows) * p)
            chosen.append(rng.choice(rows, size=size, replace=False))
        partitions.append(np.sort(np.concatenate(chosen)))
    return partitions


def _fold_vector(y: pd.Series, k: int, rng) -> np.ndarray:
    cuts = min(max(len(y) // k, 2), 5)
    strata = outcome_strata(y, cuts)
    folds = np.zeros(len(y), dtype=int)
    for code in np.unique(strata):
        rows = np.flatnonzero(strata == code)
        n = len(rows)
        min_reps, spares = divmod(n, k)
        if min_reps > 0:
            seq = np.tile(np.arange(k), min_reps)
            if spares:
                seq = np.concatenate([seq, rng.choice(k, size=spares, replace=False)])
            folds[rows] = rng.permutation(seq)
        else:
            folds[rows] = rng.choice(k, size=n, replace=False)
    return folds


def create_folds(y, k: int = 10, return_train: bool = False,
                 seed=None) -> dict[str, np.ndarray]:
    """Stratified k-fold split.

    Returns:
        Ordered dict ``{"Fold01": indices, ...}``. By default the arrays
        hold the held-out rows; with ``return_train`` they hold the
        complementary training rows.
    """
    y = _as_series(y)
    _validate_y(y)
    if k < 2:
        raise ValueError(f"k must be at least 2, got {k}")
    if k > len(y):
        raise ValueError(f"k ({k}) cannot exceed the number of rows ({len(y)})")

    folds = _fold_vector(y, k, _rng(seed))
    all_rows = np.arange(len(y))
    out = {}
    for i, name in enumerate(resample_names("Fold", k)):
        held_out = np.flatnonzero(folds == i)
        out[name] = np.setdiff1d(all_rows, held_out) if return_train else held_out
    return out


def create_multi_folds(y, k: int = 10, times: int = 5,
                       seed=None) -> dict[str, np.ndarray]:
    """Repeated k-fold training indices named ``FoldKK.RepR``."""
    if times < 1:
        raise ValueError(f"times must be at least 1, got {times}")
    rng = _rng(seed)
    rep_names = resample_names("Rep", times)
    out = {}
    for rep in rep_names:
        folds = create_folds(y, k=k, return_train=True, seed=rng)
        for fold, rows in folds.items():
            out[f"{fold}.{rep}"] = rows
    return out


def create_resample(y, times: int = 10, seed=None) -> dict[str, np.ndarray]:
    """Bootstrap samples (with replacement), named ``Resample01``.."""
    y = _as_series(y)
    _validate_y(y)
    if times < 1:
        raise ValueError(f"times must be at least 1, got {times}")
    rng = _rng(seed)
    n = len(y)
    return {
        name: np.sort(rng.integers(0, n, size=n))
        for name in resample_names("Resample", times)
    }
