"""Tests for initial splits and resample sets."""

import numpy as np
import pandas as pd
import pytest

from modeldeck.tidy import bootstraps, initial_split, mc_cv, training, vfold_cv
from modeldeck.tidy import testing as split_testing
from modeldeck.tidy.rsample import make_strata


@pytest.fixture
def frame():
    return pd.DataFrame({"x": np.arange(20.0), "g": ["a", "b"] * 10})


# ---------------------------------------------------------------------------
# Strata
# ---------------------------------------------------------------------------

class TestMakeStrata:
    def test_numeric_quartiles(self):
        codes = make_strata(np.arange(100.0))
        assert sorted(set(codes.tolist())) == [0, 1, 2, 3]

    def test_nominal_levels(self):
        codes = make_strata(["b", "a", "b", "a"], pool=0)
        assert codes.tolist() == [1, 0, 1, 0]

    def test_small_strata_pooled(self):
        values = ["a"] * 50 + ["b"] * 45 + ["c"] * 5
        codes = make_strata(values)
        assert len(set(codes.tolist())) == 2
        assert codes[-1] == codes[50]

    def test_constant_numeric(self):
        assert set(make_strata([3.0] * 10).tolist()) == {0}

    def test_breaks_validated(self):
        with pytest.raises(ValueError, match="breaks"):
            make_strata(np.arange(10.0), breaks=1)


# ---------------------------------------------------------------------------
# initial_split
# ---------------------------------------------------------------------------

class TestInitialSplit:
    def test_sizes_and_disjoint(self, frame):
        split = initial_split(frame, prop=0.75, seed=1)
        assert len(training(split)) == 15
        assert len(split_testing(split)) == 5
        assert not set(split.in_id) & set(split.out_id)
        assert repr(split) == "<Analysis/Assess/Total> <15/5/20>"

    def test_seed_reproducible(self, frame):
        a = initial_split(frame, seed=3)
        b = initial_split(frame, seed=3)
        np.testing.assert_array_equal(a.in_id, b.in_id)

    def test_stratified_housing(self, housing):
        split = initial_split(housing, prop=0.75, strata="sale_price", seed=42)
        train = training(split)
        assert 290 <= len(train) <= 300
        assert len(train) + len(split_testing(split)) == len(housing)
        ratio = train["sale_price"].median() / housing["sale_price"].median()
        assert 0.9 < ratio < 1.1

    def test_nominal_strata_balanced(self, frame):
        split = initial_split(frame, prop=0.5, strata="g", seed=0)
        assert training(split)["g"].value_counts().tolist() == [5, 5]

    def test_bad_prop(self, frame):
        with pytest.raises(ValueError, match="prop"):
            initial_split(frame, prop=1.0)

    def test_missing_strata(self, frame):
        with pytest.raises(KeyError, match="Stratification column"):
            initial_split(frame, strata="nope")

    def test_needs_dataframe(self):
        with pytest.raises(TypeError, match="DataFrame"):
            initial_split([1, 2, 3])

    def test_empty(self):
        with pytest.raises(ValueError, match="no rows"):
            initial_split(pd.DataFrame({"x": []}))


# ---------------------------------------------------------------------------
# Resample sets
# ---------------------------------------------------------------------------

class TestVfoldCv:
    def test_each_row_held_out_once(self, frame):
        folds = vfold_cv(frame, v=5, seed=2)
        assert len(folds) == 5
        held_out = np.concatenate([s.out_id for s in folds])
        assert sorted(held_out.tolist()) == list(range(20))
        assert all(len(s.assessment()) == 4 for s in folds)
        assert folds.labels() == ["Fold1", "Fold2", "Fold3", "Fold4", "Fold5"]
        assert repr(folds) == "# 5-fold cross-validation: 5 splits"

    def test_repeats(self, frame):
        folds = vfold_cv(frame, v=4, repeats=2, seed=2)
        assert len(folds) == 8
        assert list(folds.ids.columns) == ["id", "id2"]
        assert folds.labels()[0] == "Repeat1/Fold1"
        assert folds.labels()[-1] == "Repeat2/Fold4"
        assert "repeated 2 times" in folds.kind

    def test_stratified(self, frame):
        folds = vfold_cv(frame, v=2, strata="g", seed=5)
        for split in folds:
            assert split.assessment()["g"].value_counts().tolist() == [5, 5]

    def test_v_validated(self, frame):
        with pytest.raises(ValueError, match="at least 2"):
            vfold_cv(frame, v=1)
        with pytest.raises(ValueError, match="cannot exceed"):
            vfold_cv(frame, v=21)
        with pytest.raises(ValueError, match="repeats"):
            vfold_cv(frame, repeats=0)


class TestBootstraps:
    def test_out_of_bag(self, frame):
        boots = bootstraps(frame, times=3, seed=4)
        assert boots.labels() == ["Bootstrap1", "Bootstrap2", "Bootstrap3"]
        for split in boots:
            assert len(split.in_id) == 20
            assert not set(split.in_id) & set(split.out_id)

    def test_times_validated(self, frame):
        with pytest.raises(ValueError, match="times"):
            bootstraps(frame, times=0)


class TestMcCv:
    def test_sizes(self, frame):
        res = mc_cv(frame, prop=0.8, times=4, seed=9)
        assert len(res) == 4
        assert all(len(s.in_id) == 16 and len(s.out_id) == 4 for s in res)
        assert res[0].id == "Resample1"
        assert "Monte Carlo" in res.kind
