"""Tests for stratified partitions, folds and bootstrap samples."""

import numpy as np
import pandas as pd
import pytest

from modeldeck.modeling import (
    create_data_partition,
    create_folds,
    create_multi_folds,
    create_resample,
)
from modeldeck.modeling.partition import outcome_strata, resample_names


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestResampleNames:
    def test_padding(self):
        assert resample_names("Fold", 10)[:2] == ["Fold01", "Fold02"]
        assert resample_names("Fold", 10)[-1] == "Fold10"

    def test_no_padding_below_ten(self):
        assert resample_names("Fold", 3) == ["Fold1", "Fold2", "Fold3"]


class TestOutcomeStrata:
    def test_classes(self):
        codes = outcome_strata(pd.Series(["a", "b", "a", "c"]), cuts=5)
        assert codes.tolist() == [0, 1, 0, 2]

    def test_numeric_bins(self):
        codes = outcome_strata(pd.Series(np.arange(100.0)), cuts=5)
        assert sorted(set(codes.tolist())) == [0, 1, 2, 3]

    def test_constant_numeric(self):
        codes = outcome_strata(pd.Series([1.0] * 10), cuts=5)
        assert set(codes.tolist()) == {0}


# ---------------------------------------------------------------------------
# create_data_partition
# ---------------------------------------------------------------------------

class TestCreateDataPartition:
    def test_size_and_order(self, housing):
        rows = create_data_partition(housing["sale_price"], p=0.75, seed=1)[0]
        assert 300 <= len(rows) <= 305
        assert np.all(np.diff(rows) > 0)

    def test_class_balance_preserved(self, homes):
        rows = create_data_partition(homes["price_class"], p=0.8, seed=3)[0]
        full = homes["price_class"].value_counts(normalize=True)
        part = homes["price_class"].iloc[rows].value_counts(normalize=True)
        assert abs(full["high"] - part["high"]) < 0.02

    def test_reproducible(self, housing):
        a = create_data_partition(housing["sale_price"], p=0.5, seed=9)[0]
        b = create_data_partition(housing["sale_price"], p=0.5, seed=9)[0]
        np.testing.assert_array_equal(a, b)

    def test_times(self, housing):
        parts = create_data_partition(housing["sale_price"], p=0.5, times=3, seed=0)
        assert len(parts) == 3
        assert not np.array_equal(parts[0], parts[1])

    def test_singleton_stratum_kept(self):
        y = pd.Series(["a", "a", "a", "a", "b"])
        rows = create_data_partition(y, p=0.5, seed=0)[0]
        assert 4 in rows

    def test_bad_p(self):
        with pytest.raises(ValueError, match="p must be"):
            create_data_partition([1, 2, 3], p=1.0)

    def test_empty(self):
        with pytest.raises(ValueError):
            create_data_partition([], p=0.5)


# ---------------------------------------------------------------------------
# Folds
# ---------------------------------------------------------------------------

class TestCreateFolds:
    def test_held_out_rows_partition_data(self, housing):
        folds = create_folds(housing["sale_price"], k=5, seed=2)
        assert list(folds) == ["Fold1", "Fold2", "Fold3", "Fold4", "Fold5"]
        combined = np.sort(np.concatenate(list(folds.values())))
        np.testing.assert_array_equal(combined, np.arange(len(housing)))

    def test_fold_sizes_balanced(self, housing):
        sizes = [len(v) for v in create_folds(housing["sale_price"], k=10, seed=2).values()]
        assert max(sizes) - min(sizes) <= 6

    def test_return_train(self, housing):
        held = create_folds(housing["sale_price"], k=4, seed=5)
        train = create_folds(housing["sale_price"], k=4, return_train=True, seed=5)
        for name in held:
            assert len(held[name]) + len(train[name]) == len(housing)
            assert not set(held[name]) & set(train[name])

    def test_k_too_large(self):
        with pytest.raises(ValueError, match="cannot exceed"):
            create_folds([1, 2, 3], k=5)

    def test_k_too_small(self):
        with pytest.raises(ValueError, match="at least 2"):
            create_folds([1, 2, 3], k=1)


class TestCreateMultiFolds:
    def test_names(self, housing):
        folds = create_multi_folds(housing["sale_price"], k=3, times=2, seed=0)
        assert list(folds) == ["Fold1.Rep1", "Fold2.Rep1", "Fold3.Rep1",
                               "Fold1.Rep2", "Fold2.Rep2", "Fold3.Rep2"]

    def test_repeats_differ(self, housing):
        folds = create_multi_folds(housing["sale_price"], k=3, times=2, seed=0)
        assert not np.array_equal(folds["Fold1.Rep1"], folds["Fold1.Rep2"])


class TestCreateResample:
    def test_bootstrap(self):
        samples = create_resample(np.arange(50), times=12, seed=0)
        assert list(samples)[0] == "Resample01"
        assert len(samples) == 12
        for rows in samples.values():
            assert len(rows) == 50
            assert len(np.unique(rows)) < 50
