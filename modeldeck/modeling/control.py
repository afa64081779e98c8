"""Resampling control for ``train``."""

from dataclasses import dataclass

import numpy as np

from .partition import (
    create_data_partition,
    create_folds,
    create_multi_folds,
    create_resample,
    resample_names,
)


RESAMPLING_METHODS = ("boot", "cv", "repeatedcv", "LGOCV", "none")
SUMMARY_FUNCTIONS = ("default", "two_class", "multi_class")
SELECTION_FUNCTIONS = ("best", "one_se", "tolerance")
SEARCH_TYPES = ("grid", "random")
SAVE_PREDICTIONS = ("none", "all", "final")
RETURN_RESAMP = ("final", "all", "none")


def _check_choice(name, value, choices):
    if value not in choices:
        raise ValueError(
            f"Invalid {name} {value!r}. Valid values: {', '.join(choices)}"
        )


@dataclass
class TrainControl:
    """How ``train`` resamples, scores and selects tuning parameters.

    ``number`` defaults to 10 for ``cv``/``repeatedcv`` and 25 for the
    other methods. ``index`` may hold custom training-row arrays (keyed by
    resample name or as a list); ``index_out`` the matching hold-out rows,
    which default to the complement of each training set.
    """
    method: str = "boot"
    number: int | None = None
    repeats: int = 1
    p: float = 0.75
    class_probs: bool = False
    summary_function: str = "default"
    selection_function: str = "best"
    search: str = "grid"
    index: dict | list | None = None
    index_out: dict | list | None = None
    seed: int | None = None
    allow_parallel: bool = True
    n_jobs: int = 1
    verbose_iter: bool = False
    save_predictions: str = "none"
    return_resamp: str = "final"
    tolerance: float = 1.5

    def __post_init__(self) -> None:
        _check_choice("resampling method", self.method, RESAMPLING_METHODS)
        _check_choice("summary function", self.summary_function, SUMMARY_FUNCTIONS)
        _check_choice("selection function", self.selection_function,
                      SELECTION_FUNCTIONS)
        _check_choice("search", self.search, SEARCH_TYPES)
        _check_choice("save_predictions", self.save_predictions, SAVE_PREDICTIONS)
        _check_choice("return_resamp", self.return_resamp, RETURN_RESAMP)
        if self.number is None:
            self.number = 10 if self.method in ("cv", "repeatedcv") else 25
        if self.number < 1:
            raise ValueError(f"number must be at least 1, got {self.number}")
        if self.repeats < 1:
            raise ValueError(f"repeats must be at least 1, got {self.repeats}")
        if not 0 < self.p < 1:
            raise ValueError(f"p must be between 0 and 1 (exclusive), got {self.p}")

    @property
    def parallel(self) -> bool:
        return self.allow_parallel and self.n_jobs != 1

    def make_resamples(self, y) -> dict[str, tuple[np.ndarray, np.ndarray]]:
        """Build ``{name: (train_rows, holdout_rows)}`` for outcome ``y``."""
        n = len(y)
        all_rows = np.arange(n)

        if self.index is not None:
            train_sets = self._named(self.index, "Resample")
            if self.index_out is not None:
                out_sets = self._named(self.index_out, "Resample")
                if list(out_sets) != list(train_sets):
                    raise ValueError("index and index_out must have the same names")
            else:
                out_sets = {k: np.setdiff1d(all_rows, v) for k, v in train_sets.items()}
            return {k: (np.asarray(train_sets[k]), np.asarray(out_sets[k]))
                    for k in train_sets}

        if self.method == "none":
            return {}

        if self.method == "cv":
            train_sets = create_folds(y, k=self.number, return_train=True,
                                      seed=self.seed)
        elif self.method == "repeatedcv":
            train_sets = create_multi_folds(y, k=self.number, times=self.repeats,
                                            seed=self.seed)
        elif self.method == "LGOCV":
            parts = create_data_partition(y, p=self.p, times=self.number,
                                          seed=self.seed)
            train_sets = dict(zip(resample_names("Resample", self.number), parts))
        else:
            train_sets = create_resample(y, times=self.number, seed=self.seed)

        # Bootstrap hold-outs are the out-of-bag rows.
        return {
            name: (rows, np.setdiff1d(all_rows, rows))
            for name, rows in train_sets.items()
        }

    @staticmethod
    def _named(sets, prefix):
        if isinstance(sets, dict):
            return {k: np.asarray(v) for k, v in sets.items()}
        names = resample_names(prefix, len(sets))
        return {k: np.asarray(v) for k, v in zip(names, sets)}

    def describe(self) -> str:
        """Human-readable resampling description, e.g. 'Cross-Validated (10 fold, repeated 3 times)'."""
        if self.index is not None:
            return f"Custom resampling ({len(self.index)} resamples)"
        if self.method == "cv":
            return f"Cross-Validated ({self.number} fold)"
        if self.method == "repeatedcv":
            return (f"Cross-Validated ({self.number} fold, "
                    f"repeated {self.repeats} times)")
        if self.method == "LGOCV":
            return (f"Repeated Train/Test Splits Estimated "
                    f"({self.number} reps, {self.p:.0%})")
        if self.method == "boot":
            return f"Bootstrapped ({self.number} reps)"
        return "None"


def train_control(**kwargs) -> TrainControl:
    """Functional alias for ``TrainControl(**kwargs)``."""
    return TrainControl(**kwargs)

