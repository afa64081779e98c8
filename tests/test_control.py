"""Tests for TrainControl."""

import numpy as np
import pandas as pd
import pytest

from modeldeck.modeling import TrainControl, train_control


@pytest.fixture
def y():
    return pd.Series(np.linspace(0, 1, 40))


class TestDefaults:
    def test_boot_default(self):
        ctrl = TrainControl()
        assert ctrl.method == "boot"
        assert ctrl.number == 25

    def test_cv_default_number(self):
        assert TrainControl(method="cv").number == 10

    def test_functional_alias(self):
        assert train_control(method="cv", number=3) == TrainControl(method="cv", number=3)

    @pytest.mark.parametrize("kwargs, match", [
        ({"method": "jackknife"}, "resampling method"),
        ({"summary_function": "fancy"}, "summary function"),
        ({"selection_function": "worst"}, "selection function"),
        ({"number": 0}, "number must be"),
        ({"repeats": 0}, "repeats must be"),
        ({"p": 1.5}, "p must be"),
    ])
    def test_invalid(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            TrainControl(**kwargs)

    def test_parallel_flag(self):
        assert not TrainControl().parallel
        assert TrainControl(n_jobs=2).parallel
        assert not TrainControl(n_jobs=2, allow_parallel=False).parallel


class TestMakeResamples:
    def test_cv(self, y):
        sets = TrainControl(method="cv", number=4, seed=1).make_resamples(y)
        assert list(sets) == ["Fold1", "Fold2", "Fold3", "Fold4"]
        for train, hold in sets.values():
            assert len(train) + len(hold) == 40
            assert not set(train) & set(hold)

    def test_repeated_cv(self, y):
        sets = TrainControl(method="repeatedcv", number=2, repeats=3, seed=1).make_resamples(y)
        assert len(sets) == 6
        assert "Fold2.Rep3" in sets

    def test_lgocv(self, y):
        sets = TrainControl(method="LGOCV", number=5, p=0.5, seed=1).make_resamples(y)
        assert list(sets)[0] == "Resample1"
        train, hold = sets["Resample1"]
        assert len(train) >= 20

    def test_boot_holdout_is_out_of_bag(self, y):
        sets = TrainControl(method="boot", number=3, seed=1).make_resamples(y)
        train, hold = sets["Resample1"]
        assert not set(train) & set(hold)
        assert set(train) | set(hold) == set(range(40))

    def test_none(self, y):
        assert TrainControl(method="none").make_resamples(y) == {}

    def test_seed_reproducible(self, y):
        a = TrainControl(method="cv", number=5, seed=7).make_resamples(y)
        b = TrainControl(method="cv", number=5, seed=7).make_resamples(y)
        for name in a:
            np.testing.assert_array_equal(a[name][1], b[name][1])

    def test_custom_index(self, y):
        ctrl = TrainControl(index=[np.arange(30), np.arange(10, 40)])
        sets = ctrl.make_resamples(y)
        assert list(sets) == ["Resample1", "Resample2"]
        np.testing.assert_array_equal(sets["Resample1"][1], np.arange(30, 40))

    def test_custom_index_out_names_must_match(self, y):
        ctrl = TrainControl(index={"a": np.arange(30)}, index_out={"b": np.arange(30, 40)})
        with pytest.raises(ValueError, match="same names"):
            ctrl.make_resamples(y)


class TestDescribe:
    @pytest.mark.parametrize("kwargs, text", [
        ({"method": "cv", "number": 10}, "Cross-Validated (10 fold)"),
        ({"method": "repeatedcv", "number": 5, "repeats": 3},
         "Cross-Validated (5 fold, repeated 3 times)"),
        ({"method": "boot", "number": 25}, "Bootstrapped (25 reps)"),
        ({"method": "LGOCV", "number": 5, "p": 0.75},
         "Repeated Train/Test Splits Estimated (5 reps, 75%)"),
        ({"method": "none"}, "None"),
    ])
    def test_describe(self, kwargs, text):
        assert TrainControl(**kwargs).describe() == text
