"""Tests for resampling summaries and the confusion matrix."""

import math

import numpy as np
import pandas as pd
import pytest

from modeldeck.modeling import (
    confusion_matrix,
    default_summary,
    multi_class_summary,
    post_resample,
    two_class_summary,
)
from modeldeck.modeling.metrics import kappa, rmse, rsquared, safe_auc


# ---------------------------------------------------------------------------
# Scalar metrics
# ---------------------------------------------------------------------------

class TestScalarMetrics:
    def test_rmse(self):
        assert rmse([1, 2, 3], [1, 2, 5]) == pytest.approx(math.sqrt(4 / 3))

    def test_rsquared_is_squared_correlation(self):
        assert rsquared([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_rsquared_constant_prediction(self):
        assert math.isnan(rsquared([1, 2, 3], [2, 2, 2]))

    def test_kappa_perfect(self):
        assert kappa(["a", "b", "a"], ["a", "b", "a"]) == pytest.approx(1.0)

    def test_kappa_single_class(self):
        assert math.isnan(kappa(["a", "a"], ["a", "a"]))

    def test_safe_auc_one_class(self):
        assert math.isnan(safe_auc([True, True], [0.2, 0.9]))


class TestPostResample:
    def test_regression(self):
        out = post_resample([1.0, 2.0, 3.0], [1.0, 2.0, 4.0])
        assert list(out.index) == ["RMSE", "Rsquared", "MAE"]
        assert out["MAE"] == pytest.approx(1 / 3)

    def test_classification(self):
        out = post_resample(["a", "b", "b", "a"], ["a", "b", "a", "a"])
        assert list(out.index) == ["Accuracy", "Kappa"]
        assert out["Accuracy"] == 0.75

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            post_resample([1.0], [1.0, 2.0])


# ---------------------------------------------------------------------------
# Summary functions
# ---------------------------------------------------------------------------

@pytest.fixture
def two_class_data():
    return pd.DataFrame({
        "obs": ["yes", "yes", "no", "no", "yes"],
        "pred": ["yes", "no", "no", "no", "yes"],
        "yes": [0.9, 0.4, 0.2, 0.3, 0.8],
        "no": [0.1, 0.6, 0.8, 0.7, 0.2],
    })


class TestSummaries:
    def test_default_regression(self):
        data = pd.DataFrame({"obs": [1.0, 2.0, 3.0], "pred": [1.0, 2.0, 3.0]})
        assert default_summary(data)["RMSE"] == 0.0

    def test_default_classification(self, two_class_data):
        out = default_summary(two_class_data, ["yes", "no"])
        assert out["Accuracy"] == pytest.approx(0.8)

    def test_two_class(self, two_class_data):
        out = two_class_summary(two_class_data, ["yes", "no"])
        assert out["ROC"] == pytest.approx(1.0)
        assert out["Sens"] == pytest.approx(2 / 3)
        assert out["Spec"] == pytest.approx(1.0)

    def test_two_class_event_is_first_level(self, two_class_data):
        out = two_class_summary(two_class_data, ["no", "yes"])
        assert out["Sens"] == pytest.approx(1.0)
        assert out["Spec"] == pytest.approx(2 / 3)

    def test_two_class_needs_probabilities(self, two_class_data):
        with pytest.raises(ValueError, match="class probabilities"):
            two_class_summary(two_class_data[["obs", "pred"]], ["yes", "no"])

    def test_two_class_needs_two_levels(self, two_class_data):
        with pytest.raises(ValueError, match="exactly two"):
            two_class_summary(two_class_data, ["yes", "no", "maybe"])

    def test_multi_class(self):
        data = pd.DataFrame({
            "obs": ["a", "b", "c", "a"],
            "pred": ["a", "b", "c", "b"],
            "a": [0.8, 0.1, 0.1, 0.4],
            "b": [0.1, 0.8, 0.1, 0.5],
            "c": [0.1, 0.1, 0.8, 0.1],
        })
        out = multi_class_summary(data, ["a", "b", "c"])
        assert set(out) == {"Accuracy", "Kappa", "AUC", "logLoss"}
        assert out["Accuracy"] == 0.75
        assert out["logLoss"] > 0


# ---------------------------------------------------------------------------
# Confusion matrix
# ---------------------------------------------------------------------------

class TestConfusionMatrix:
    def test_two_class(self):
        ref = pd.Series(pd.Categorical(["yes", "yes", "no", "no", "yes", "no"],
                                       categories=["yes", "no"]))
        pred = ["yes", "no", "no", "no", "yes", "yes"]
        cm = confusion_matrix(pred, ref)
        assert cm.positive == "yes"
        assert cm.table.loc["yes", "yes"] == 2
        assert cm.table.loc["no", "yes"] == 1
        assert cm.accuracy == pytest.approx(4 / 6)
        assert cm.by_class["Sensitivity"] == pytest.approx(2 / 3)
        assert cm.by_class["Specificity"] == pytest.approx(2 / 3)
        assert cm.overall["AccuracyNull"] == pytest.approx(0.5)
        assert cm.overall["AccuracyLower"] < cm.accuracy < cm.overall["AccuracyUpper"]

    def test_positive_override(self):
        cm = confusion_matrix(["a", "b", "b"], ["a", "b", "a"], positive="b")
        assert cm.positive == "b"
        assert cm.by_class["Sensitivity"] == pytest.approx(1.0)

    def test_multi_class_by_class_frame(self):
        cm = confusion_matrix(["a", "b", "c", "c"], ["a", "b", "c", "b"])
        assert isinstance(cm.by_class, pd.DataFrame)
        assert list(cm.by_class.index) == ["Class: a", "Class: b", "Class: c"]
        assert cm.positive is None

    def test_unknown_predicted_level(self):
        with pytest.raises(ValueError, match="not present"):
            confusion_matrix(["a", "z"], ["a", "b"])

    def test_bad_positive(self):
        with pytest.raises(ValueError, match="positive level"):
            confusion_matrix(["a", "b"], ["a", "b"], positive="c")

    def test_str(self):
        text = str(confusion_matrix(["a", "b", "b"], ["a", "b", "a"]))
        assert "Confusion Matrix and Statistics" in text
        assert "'Positive' Class : a" in text
        assert "No Information Rate" in text

    def test_all_correct_interval(self):
        cm = confusion_matrix(["a", "b"] * 5, ["a", "b"] * 5)
        assert cm.overall["AccuracyUpper"] == 1.0
        assert np.isclose(cm.kappa, 1.0)
