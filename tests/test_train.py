"""Tests for train, TrainedModel and the prediction helpers."""

import dataclasses
import importlib

import numpy as np
import pandas as pd
import pytest

from modeldeck.modeling import (
    PreProcess,
    TrainControl,
    extract_prediction,
    get_model_info,
    predict,
    train,
)
from modeldeck.modeling.train import default_metric


@pytest.fixture
def cv3():
    return TrainControl(method="cv", number=3, seed=11)


@pytest.fixture
def two_class_ctrl():
    return TrainControl(method="cv", number=3, class_probs=True,
                        summary_function="two_class", seed=11)


# ---------------------------------------------------------------------------
# Regression
# ---------------------------------------------------------------------------

class TestTrainRegression:
    def test_rf_grid_and_results(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="rf", tr_control=cv3, tune_length=2, ntree=20)
        assert fit.model_type == "Regression"
        assert fit.metric == "RMSE"
        assert fit.maximize is False
        assert list(fit.results.columns) == ["mtry", "RMSE", "Rsquared", "MAE",
                                             "RMSESD", "RsquaredSD", "MAESD"]
        assert len(fit.results) == 2
        best = fit.results.loc[fit.results["RMSE"].idxmin(), "mtry"]
        assert fit.best_tune == {"mtry": best}

    def test_dummy_encoding(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", tr_control=cv3)
        assert fit.feature_names == ["x1", "x2", "group_b", "group_c"]

    def test_resample_frame_final(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", tr_control=cv3)
        assert list(fit.resample["Resample"]) == ["Fold1", "Fold2", "Fold3"]
        assert "intercept" not in fit.resample.columns

    def test_return_resamp_all(self, regression_data):
        x, y = regression_data
        ctrl = TrainControl(method="cv", number=3, seed=1, return_resamp="all")
        fit = train(x, y, method="knn", tr_control=ctrl, tune_length=2)
        assert len(fit.resample) == 6
        assert "k" in fit.resample.columns

    def test_return_resamp_none(self, regression_data):
        x, y = regression_data
        ctrl = TrainControl(method="cv", number=3, seed=1, return_resamp="none")
        assert train(x, y, method="lm", tr_control=ctrl).resample is None

    def test_save_predictions(self, regression_data):
        x, y = regression_data
        ctrl = TrainControl(method="cv", number=3, seed=1, save_predictions="final")
        fit = train(x, y, method="knn", tr_control=ctrl, tune_length=2)
        assert len(fit.pred) == len(x)
        assert sorted(fit.pred["rowIndex"]) == list(range(len(x)))
        assert set(fit.pred["k"]) == {fit.best_tune["k"]}

    def test_predictions_good(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", tr_control=cv3)
        pred = fit.predict(x)
        assert isinstance(pred, pd.Series)
        assert np.corrcoef(pred, y)[0, 1] > 0.95
        pd.testing.assert_series_equal(predict(fit, x), pred)

    def test_preprocess_per_model(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="knn", preprocess=["center", "scale"], tr_control=cv3)
        assert isinstance(fit.preprocess, PreProcess)
        assert fit.preprocess.summary()["center"] == ["x1", "x2", "group_b", "group_c"]
        assert len(fit.predict(x.head(5))) == 5

    def test_preprocess_object(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", preprocess=PreProcess(["center"]), tr_control=cv3)
        assert list(fit.preprocess.summary()) == ["center"]

    def test_bad_preprocess(self, regression_data, cv3):
        x, y = regression_data
        with pytest.raises(ValueError, match="Unknown preprocessing"):
            train(x, y, method="lm", preprocess=["wiggle"], tr_control=cv3)

    def test_custom_grid_dict(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="knn", tr_control=cv3, tune_grid={"k": [3, 5]})
        assert fit.results["k"].tolist() == [3, 5]

    def test_custom_grid_wrong_columns(self, regression_data, cv3):
        x, y = regression_data
        with pytest.raises(ValueError, match="must have columns: k"):
            train(x, y, method="knn", tr_control=cv3, tune_grid={"neighbours": [3]})

    def test_one_se_prefers_simpler(self, regression_data):
        x, y = regression_data
        ctrl = TrainControl(method="cv", number=3, seed=1, selection_function="one_se")
        fit = train(x, y, method="knn", tr_control=ctrl, tune_grid={"k": [3, 5, 7, 9]})
        assert fit.best_tune["k"] in (3, 5, 7, 9)

    def test_method_none(self, regression_data):
        x, y = regression_data
        ctrl = TrainControl(method="none")
        fit = train(x, y, method="knn", tr_control=ctrl, tune_grid={"k": [5]})
        assert fit.results.empty
        assert fit.best_tune == {"k": 5}
        assert len(fit.predict(x)) == len(x)

    def test_method_none_needs_single_candidate(self, regression_data):
        x, y = regression_data
        with pytest.raises(ValueError, match="Only one candidate"):
            train(x, y, method="knn", tr_control=TrainControl(method="none"),
                  tune_grid={"k": [5, 7]})

    def test_str(self, regression_data, cv3):
        x, y = regression_data
        text = str(train(x, y, method="knn", tr_control=cv3, tune_length=2))
        assert "k-Nearest Neighbors" in text
        assert "60 samples" in text
        assert "Resampling: Cross-Validated (3 fold)" in text
        assert "RMSE was used to select the optimal model using the smallest value." in text
        assert "The final values used for the model were k = " in text

    def test_verbose_iter(self, regression_data, capsys):
        x, y = regression_data
        ctrl = TrainControl(method="cv", number=2, seed=1, verbose_iter=True)
        train(x, y, method="lm", tr_control=ctrl)
        err = capsys.readouterr().err
        assert "+ Fold1: intercept=True" in err
        assert "- Fold2: intercept=True" in err

    def test_fixed_options_reach_estimator(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="rf", tr_control=cv3, tune_length=1,
                    ntree=10, max_depth=1, nodesize=3)
        assert fit.final_model.n_estimators == 10
        assert fit.final_model.max_depth == 1
        assert fit.final_model.min_samples_leaf == 3
        assert fit.warnings == []

    def test_fixed_options_reach_pipeline_model(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="glmnet", tr_control=cv3, tune_length=1,
                    tol=0.01, max_iter=500)
        model = fit.final_model.steps[-1][1]
        assert model.tol == 0.01
        assert model.max_iter == 500

    def test_unknown_fixed_option(self, regression_data, cv3):
        x, y = regression_data
        with pytest.raises(ValueError, match="Unknown option.*wiggle.*Valid options"):
            train(x, y, method="rf", tr_control=cv3, tune_length=1, wiggle=3)

    def test_times_recorded(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", tr_control=cv3)
        assert fit.times["everything"] >= fit.times["final"] >= 0


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestTrainClassification:
    def test_two_class_roc(self, classification_data, two_class_ctrl):
        x, y = classification_data
        fit = train(x, y, method="glm", tr_control=two_class_ctrl)
        assert fit.metric == "ROC"
        assert fit.maximize is True
        assert fit.levels == ["yes", "no"]
        assert fit.results["ROC"].iloc[0] > 0.8

    def test_prob_predictions(self, classification_data, two_class_ctrl):
        x, y = classification_data
        fit = train(x, y, method="glm", tr_control=two_class_ctrl)
        probs = fit.predict(x, type="prob")
        assert list(probs.columns) == ["yes", "no"]
        np.testing.assert_allclose(probs.sum(axis=1), 1.0)

    def test_raw_predictions_categorical(self, classification_data, cv3):
        x, y = classification_data
        fit = train(x, y, method="rpart", tr_control=cv3, tune_length=2)
        pred = fit.predict(x)
        assert list(pred.cat.categories) == ["yes", "no"]

    def test_final_model_has_probabilities(self, classification_data, cv3):
        x, y = classification_data
        fit = train(x, y, method="svmRadial", tr_control=cv3, tune_length=1)
        assert fit.predict(x, type="prob").shape == (len(x), 2)

    def test_default_metric_accuracy(self, classification_data, cv3):
        x, y = classification_data
        fit = train(x, y, method="knn", tr_control=cv3, tune_length=1)
        assert fit.metric == "Accuracy"

    def test_string_outcome_levels_sorted(self, classification_data, cv3):
        x, y = classification_data
        fit = train(x, y.astype(str), method="knn", tr_control=cv3, tune_length=1)
        assert fit.levels == ["no", "yes"]

    def test_two_class_needs_class_probs(self, classification_data):
        x, y = classification_data
        ctrl = TrainControl(method="cv", number=3, summary_function="two_class")
        with pytest.raises(ValueError, match="class_probs=True"):
            train(x, y, method="glm", tr_control=ctrl)

    def test_prob_on_regression_rejected(self, regression_data, cv3):
        x, y = regression_data
        fit = train(x, y, method="lm", tr_control=cv3)
        with pytest.raises(ValueError, match="only available for classification"):
            fit.predict(x, type="prob")


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class TestTrainValidation:
    def test_wrong_model_type(self, classification_data, cv3):
        x, y = classification_data
        with pytest.raises(ValueError, match="Wrong model type"):
            train(x, y, method="lm", tr_control=cv3)

    def test_unknown_method(self, regression_data):
        x, y = regression_data
        with pytest.raises(KeyError):
            train(x, y, method="magic")

    def test_length_mismatch(self, regression_data):
        x, y = regression_data
        with pytest.raises(ValueError, match="different numbers of rows"):
            train(x, y.iloc[:-1], method="lm")

    def test_missing_outcome(self, regression_data):
        x, y = regression_data
        y = y.copy()
        y.iloc[0] = np.nan
        with pytest.raises(ValueError, match="missing values"):
            train(x, y, method="lm")

    def test_unknown_metric(self, regression_data, cv3):
        x, y = regression_data
        with pytest.raises(ValueError, match="Available"):
            train(x, y, method="lm", metric="ROC", tr_control=cv3)

    def test_every_fit_failing(self, regression_data, cv3, monkeypatch):
        class Broken:
            def fit(self, x, y):
                raise ValueError("cannot fit")

        broken = dataclasses.replace(get_model_info("lm"), build=lambda params, ctx: Broken())
        train_module = importlib.import_module("modeldeck.modeling.train")
        monkeypatch.setattr(train_module, "get_model_info", lambda method: broken)
        x, y = regression_data
        with pytest.raises(ValueError, match="Every model fit failed"):
            train(x, y, method="lm", tr_control=cv3)

    def test_preprocess_failure_costs_one_resample(self, regression_data, cv3, monkeypatch):
        calls = []

        class FlakyPreProcess(PreProcess):
            def fit(self, x):
                calls.append(len(x))
                if len(calls) == 1:
                    raise RuntimeError("imputation failed")
                return super().fit(x)

        train_module = importlib.import_module("modeldeck.modeling.train")
        monkeypatch.setattr(train_module, "PreProcess", FlakyPreProcess)
        x, y = regression_data
        fit = train(x, y, method="lm", preprocess=["center"], tr_control=cv3,
                    tune_grid={"intercept": [True]})
        assert len(fit.warnings) == 1
        assert "imputation failed" in fit.warnings[0]
        assert len(fit.resample) == 2
        assert isinstance(fit.preprocess, FlakyPreProcess)

    def test_default_metric(self):
        assert default_metric(False, "default") == "RMSE"
        assert default_metric(True, "two_class") == "ROC"
        assert default_metric(True, "default") == "Accuracy"


# ---------------------------------------------------------------------------
# extract_prediction
# ---------------------------------------------------------------------------

class TestExtractPrediction:
    def test_training_and_test_rows(self, regression_data, cv3):
        x, y = regression_data
        models = {
            "lm": train(x, y, method="lm", tr_control=cv3),
            "knn": train(x, y, method="knn", tr_control=cv3, tune_length=1),
        }
        out = extract_prediction(models, test_x=x.head(10), test_y=y.head(10))
        assert list(out.columns) == ["obs", "pred", "model", "dataType"]
        assert len(out) == 2 * (len(x) + 10)
        assert set(out["dataType"]) == {"Training", "Test"}

    def test_test_args_together(self, regression_data, cv3):
        x, y = regression_data
        models = {"lm": train(x, y, method="lm", tr_control=cv3)}
        with pytest.raises(ValueError, match="together"):
            extract_prediction(models, test_x=x)
