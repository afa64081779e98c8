"""Data splitting objects: an initial train/test split and resample sets.

A ``Split`` keeps the full data plus the positional rows of its analysis
(modelling) and assessment (evaluation) sets::

    split = initial_split(housing, prop=0.75, strata="sale_price", seed=42)
    train, test = training(split), testing(split)
    folds = vfold_cv(train, v=5, strata="sale_price", seed=42)
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from ..modeling.partition import resample_names


POOL = 0.1


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass
class Split:
    """One analysis/assessment division of ``data``."""
    data: pd.DataFrame
    in_id: np.ndarray
    out_id: np.ndarray
    id: str = "train/test split"
    id2: str | None = None

    def analysis(self) -> pd.DataFrame:
        return self.data.iloc[self.in_id]

    def assessment(self) -> pd.DataFrame:
        return self.data.iloc[self.out_id]

    def __repr__(self) -> str:
        return f"<Analysis/Assess/Total> <{len(self.in_id)}/{len(self.out_id)}/{len(self.data)}>"


class ResampleSet:
    """An ordered collection of splits with identifiers."""

    def __init__(self, splits: list[Split], kind: str):
        self.splits = splits
        self.kind = kind

    def __len__(self) -> int:
        return len(self.splits)

    def __iter__(self):
        return iter(self.splits)

    def __getitem__(self, item) -> Split:
        return self.splits[item]

    @property
    def ids(self) -> pd.DataFrame:
        frame = pd.DataFrame({"id": [s.id for s in self.splits]})
        if any(s.id2 is not None for s in self.splits):
            frame["id2"] = [s.id2 for s in self.splits]
        return frame

    def labels(self) -> list[str]:
        """``id`` or ``id/id2`` for every split."""
        return [s.id if s.id2 is None else f"{s.id}/{s.id2}" for s in self.splits]

    def __repr__(self) -> str:
        return f"# {self.kind}: {len(self)} splits"


def training(split: Split) -> pd.DataFrame:
    return split.analysis()


def testing(split: Split) -> pd.DataFrame:
    return split.assessment()


# ---------------------------------------------------------------------------
# Strata
# ---------------------------------------------------------------------------

def _rng(seed):
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def _pool_small(codes: np.ndarray, pool: float) -> np.ndarray:
    """Merge strata holding less than ``pool`` of the rows into a neighbour."""
    codes = codes.copy()
    n = len(codes)
    while True:
        values, counts = np.unique(codes, return_counts=True)
        if len(values) < 2:
            return codes
        small = np.flatnonzero(counts / n < pool)
        if len(small) == 0:
            return codes
        i = small[np.argmin(counts[small])]
        neighbour = values[i + 1] if i + 1 < len(values) else values[i - 1]
        codes[codes == values[i]] = neighbour


def make_strata(x, breaks: int = 4, pool: float = POOL) -> np.ndarray:
    """Integer strata for a column: quantile bins when numeric, levels otherwise."""
    x = pd.Series(x).reset_index(drop=True)
    numeric = pd.api.types.is_numeric_dtype(x) and not pd.api.types.is_bool_dtype(x)
    if numeric:
        if breaks < 2:
            raise ValueError(f"breaks must be at least 2, got {breaks}")
        edges = np.unique(np.nanquantile(x.astype(float), np.linspace(0, 1, breaks + 1)))
        if len(edges) < 2:
            return np.zeros(len(x), dtype=int)
        codes = pd.cut(x.astype(float), edges, include_lowest=True, labels=False)
        codes = codes.fillna(-1).astype(int).to_numpy()
    else:
        codes = pd.Categorical(x).codes.astype(int)
    return _pool_small(codes, pool)


def _strata_groups(data: pd.DataFrame, strata, breaks: int) -> list[np.ndarray]:
    if strata is None:
        return [np.arange(len(data))]
    if strata not in data.columns:
        raise KeyError(f"Stratification column '{strata}' not found in data")
    codes = make_strata(data[strata], breaks=breaks)
    return [np.flatnonzero(codes == c) for c in np.unique(codes)]


def _check_prop(prop):
    if not 0 < prop < 1:
        raise ValueError(f"prop must be between 0 and 1 (exclusive), got {prop}")


def _check_data(data):
    if not isinstance(data, pd.DataFrame):
        raise TypeError(f"data must be a DataFrame, got {type(data).__name__}")
    if len(data) == 0:
        raise ValueError("data has no rows")


def _sample_in(groups, prop, rng) -> np.ndarray:
    chosen = [rng.choice(rows, size=int(np.floor(len(rows) * prop)), replace=False)
              for rows in groups]
    return np.sort(np.concatenate(chosen)).astype(int)


# ---------------------------------------------------------------------------
# Splitting functions
# ---------------------------------------------------------------------------

def initial_split(data: pd.DataFrame, prop: float = 0.75, strata: str | None = None,
                  breaks: int = 4, seed=None) -> Split:
    """Single random split; ``floor(n * prop)`` rows per stratum go to training."""
    _check_data(data)
    _check_prop(prop)
    rng = _rng(seed)
    in_id = _sample_in(_strata_groups(data, strata, breaks), prop, rng)
    out_id = np.setdiff1d(np.arange(len(data)), in_id)
    return Split(data=data, in_id=in_id, out_id=out_id)


def vfold_cv(data: pd.DataFrame, v: int = 10, repeats: int = 1, strata: str | None = None,
             breaks: int = 4, seed=None) -> ResampleSet:
    """V-fold cross-validation; each fold is the assessment set once."""
    _check_data(data)
    if v < 2:
        raise ValueError(f"v must be at least 2, got {v}")
    if v > len(data):
        raise ValueError(f"v ({v}) cannot exceed the number of rows ({len(data)})")
    if repeats < 1:
        raise ValueError(f"repeats must be at least 1, got {repeats}")
    rng = _rng(seed)
    groups = _strata_groups(data, strata, breaks)
    all_rows = np.arange(len(data))
    fold_names = resample_names("Fold", v)
    repeat_names = resample_names("Repeat", repeats)

    splits = []
    for repeat in repeat_names:
        folds = np.zeros(len(data), dtype=int)
        for rows in groups:
            folds[rows] = rng.permutation(np.resize(rng.permutation(v), len(rows)))
        for i, fold in enumerate(fold_names):
            out_id = np.flatnonzero(folds == i)
            split = Split(data=data, in_id=np.setdiff1d(all_rows, out_id), out_id=out_id,
                          id=fold if repeats == 1 else repeat,
                          id2=None if repeats == 1 else fold)
            splits.append(split)
    label = f"{v}-fold cross-validation"
    if repeats > 1:
        label += f" repeated {repeats} times"
    return ResampleSet(splits, label)


def bootstraps(data: pd.DataFrame, times: int = 25, strata: str | None = None,
               breaks: int = 4, seed=None) -> ResampleSet:
    """Bootstrap resamples; the assessment set is the out-of-bag rows."""
    _check_data(data)
    if times < 1:
        raise ValueError(f"times must be at least 1, got {times}")
    rng = _rng(seed)
    groups = _strata_groups(data, strata, breaks)
    all_rows = np.arange(len(data))
    splits = []
    for name in resample_names("Bootstrap", times):
        in_id = np.sort(np.concatenate(
            [rng.choice(rows, size=len(rows), replace=True) for rows in groups]))
        splits.append(Split(data=data, in_id=in_id,
                            out_id=np.setdiff1d(all_rows, in_id), id=name))
    return ResampleSet(splits, "Bootstrap sampling")


def mc_cv(data: pd.DataFrame, prop: float = 0.75, times: int = 25,
          strata: str | None = None, breaks: int = 4, seed=None) -> ResampleSet:
    """Monte Carlo cross-validation: repeated random train/test splits."""
    _check_data(data)
    _check_prop(prop)
    if times < 1:
        raise ValueError(f"times must be at least 1, got {times}")
    rng = _rng(seed)
    groups = _strata_groups(data, strata, breaks)
    all_rows = np.arange(len(data))
    splits = []
    for name in resample_names("Resample", times):
        in_id = _sample_in(groups, prop, rng)
        splits.append(Split(data=data, in_id=in_id,
                            out_id=np.setdiff1d(all_rows, in_id), id=name))
    return ResampleSet(splits, f"Monte Carlo cross-validation ({prop}/{1 - prop:.2g}) "
                               f"with {times} resamples")
