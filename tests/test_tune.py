"""Tests for resample fitting, grids and tuning."""

import pandas as pd
import pytest

from modeldeck.tidy import (
    ControlResamples,
    Workflow,
    accuracy,
    collect_metrics,
    collect_predictions,
    finalize_model,
    finalize_workflow,
    fit_resamples,
    grid_latin_hypercube,
    grid_regular,
    initial_split,
    last_fit,
    linear_reg,
    logistic_reg,
    mae,
    metric_set,
    nearest_neighbor,
    rand_forest,
    rmse,
    select_best,
    show_best,
    tune,
    tune_grid,
    vfold_cv,
    workflow,
)


@pytest.fixture
def reg_frame(regression_data):
    x, y = regression_data
    return x.assign(y=y)


@pytest.fixture
def folds(reg_frame):
    return vfold_cv(reg_frame, v=3, seed=1)


@pytest.fixture
def knn_wf():
    return workflow("y ~ .", nearest_neighbor(neighbors=tune()))


# ---------------------------------------------------------------------------
# Grids
# ---------------------------------------------------------------------------

class TestGrids:
    def test_regular_integer(self, knn_wf):
        grid = grid_regular(knn_wf, levels=3)
        assert grid["neighbors"].tolist() == [1, 8, 15]

    def test_regular_crossed(self):
        spec = linear_reg(penalty=tune(), mixture=tune(), engine="glmnet")
        grid = grid_regular(spec, levels=2)
        assert list(grid.columns) == ["penalty", "mixture"]
        assert len(grid) == 4
        assert sorted(set(grid["penalty"])) == [pytest.approx(1e-10), pytest.approx(1.0)]

    def test_mtry_needs_data(self, reg_frame):
        wf = workflow("y ~ .", rand_forest(mtry=tune()))
        with pytest.raises(ValueError, match="pass data="):
            grid_regular(wf)
        grid = grid_regular(wf, levels=3, data=reg_frame)
        assert grid["mtry"].tolist() == [1, 2, 3]

    def test_no_default_range(self):
        with pytest.raises(ValueError, match="No default range"):
            grid_regular(nearest_neighbor(weight_func=tune()))

    def test_levels_validated(self, knn_wf):
        with pytest.raises(ValueError, match="levels"):
            grid_regular(knn_wf, levels=0)

    def test_latin_hypercube(self, knn_wf):
        grid = grid_latin_hypercube(knn_wf, size=5, seed=2)
        assert 1 <= len(grid) <= 5
        assert grid["neighbors"].between(1, 15).all()
        pd.testing.assert_frame_equal(grid, grid_latin_hypercube(knn_wf, size=5, seed=2))

    def test_latin_hypercube_nothing_to_tune(self):
        assert grid_latin_hypercube(linear_reg()).empty


# ---------------------------------------------------------------------------
# fit_resamples
# ---------------------------------------------------------------------------

class TestFitResamples:
    def test_default_metrics(self, folds):
        res = fit_resamples(workflow("y ~ .", linear_reg()), folds)
        summary = collect_metrics(res)
        assert list(summary.columns) == [".metric", ".estimator", "mean", "n",
                                         "std_err", ".config"]
        assert summary[".metric"].tolist() == ["rmse", "rsq"]
        assert summary["n"].tolist() == [3, 3]
        assert summary[".config"].iloc[0] == "Preprocessor1_Model1"
        assert repr(res).startswith("# Resampling results: 3 resamples, 1 candidate(s)")

    def test_unsummarized(self, folds):
        res = fit_resamples(workflow("y ~ .", linear_reg()), folds,
                            metrics=metric_set(rmse, mae))
        raw = collect_metrics(res, summarize=False)
        assert len(raw) == 6
        assert sorted(set(raw["id"])) == ["Fold1", "Fold2", "Fold3"]

    def test_saved_predictions(self, folds, reg_frame):
        res = fit_resamples(workflow("y ~ .", linear_reg()), folds,
                            control=ControlResamples(save_pred=True))
        preds = collect_predictions(res)
        assert len(preds) == len(reg_frame)
        assert sorted(preds[".row"]) == list(range(len(reg_frame)))
        assert {".pred", "y", "id", ".config"} <= set(preds.columns)

    def test_predictions_not_saved(self, folds):
        res = fit_resamples(workflow("y ~ .", linear_reg()), folds)
        with pytest.raises(ValueError, match="save_pred=True"):
            collect_predictions(res)

    def test_classification(self, classification_data):
        x, y = classification_data
        data = x.assign(label=y)
        res = fit_resamples(workflow("label ~ .", logistic_reg()), vfold_cv(data, v=3, seed=4))
        summary = collect_metrics(res).set_index(".metric")
        assert summary.loc["accuracy", "mean"] > 0.7
        assert summary.loc["roc_auc", "mean"] > 0.8

    def test_metric_type_mismatch(self, folds):
        with pytest.raises(ValueError, match="does not match"):
            fit_resamples(workflow("y ~ .", linear_reg()), folds, metrics=metric_set(accuracy))

    def test_tunable_rejected(self, folds, knn_wf):
        with pytest.raises(ValueError, match="use tune_grid"):
            fit_resamples(knn_wf, folds)

    def test_every_fit_failing(self, folds):
        wf = workflow("y ~ .", linear_reg().set_engine("glmnet"))
        with pytest.raises(ValueError, match="All models failed"):
            fit_resamples(wf, folds)

    def test_one_failing_fit_becomes_a_note(self, folds, monkeypatch):
        original = Workflow.fit
        calls = []

        def flaky_fit(self, data):
            calls.append(len(data))
            if len(calls) == 1:
                raise RuntimeError("prep failed")
            return original(self, data)

        monkeypatch.setattr(Workflow, "fit", flaky_fit)
        res = fit_resamples(workflow("y ~ .", linear_reg()), folds)
        assert len(res.notes) == 1
        assert res.notes[0].startswith("Fold1, Preprocessor1_Model1: prep failed")
        assert collect_metrics(res)["n"].tolist() == [2, 2]

    def test_needs_resample_set(self, reg_frame):
        split = initial_split(reg_frame, seed=1)
        with pytest.raises(TypeError, match="vfold_cv"):
            fit_resamples(workflow("y ~ .", linear_reg()), split)

    def test_parallel_matches_serial(self, folds):
        wf = workflow("y ~ .", linear_reg())
        serial = collect_metrics(fit_resamples(wf, folds))
        parallel = collect_metrics(fit_resamples(wf, folds, control=ControlResamples(n_jobs=2)))
        pd.testing.assert_frame_equal(serial, parallel)

    def test_verbose(self, folds, capsys):
        fit_resamples(workflow("y ~ .", linear_reg()), folds,
                      control=ControlResamples(verbose=True))
        err = capsys.readouterr().err
        assert "i Fold1: Preprocessor1_Model1" in err
        assert "Finished 3 fits" in err


# ---------------------------------------------------------------------------
# tune_grid and finalizing
# ---------------------------------------------------------------------------

class TestTuneGrid:
    def test_grid_dict(self, knn_wf, folds):
        res = tune_grid(knn_wf, folds, grid={"neighbors": [3, 7]})
        summary = collect_metrics(res)
        assert list(summary.columns)[0] == "neighbors"
        assert len(summary) == 4
        assert res.params == ["neighbors"]
        assert res.grid[".config"].tolist() == ["Preprocessor1_Model1", "Preprocessor1_Model2"]

    def test_show_and_select_best(self, knn_wf, folds):
        res = tune_grid(knn_wf, folds, grid=grid_regular(knn_wf, levels=3))
        top = show_best(res, "rmse", n=3)
        assert top["mean"].is_monotonic_increasing
        best = select_best(res, "rmse")
        assert best["neighbors"] == top["neighbors"].iloc[0]
        assert isinstance(best["neighbors"], int)
        assert best[".config"].startswith("Preprocessor1_Model")

    def test_show_best_maximize(self, knn_wf, folds):
        res = tune_grid(knn_wf, folds, grid={"neighbors": [1, 5, 9]})
        assert show_best(res, "rsq")["mean"].is_monotonic_decreasing

    def test_integer_grid(self, knn_wf, folds):
        res = tune_grid(knn_wf, folds, grid=3)
        assert 1 <= len(res.grid) <= 3

    def test_grid_columns_checked(self, knn_wf, folds):
        with pytest.raises(ValueError, match="must match the tunable"):
            tune_grid(knn_wf, folds, grid={"k": [3]})

    def test_finalize(self, knn_wf):
        final = finalize_workflow(knn_wf, {"neighbors": 5, ".config": "Preprocessor1_Model2"})
        assert final.spec.args["neighbors"] == 5
        assert final.spec.tunable() == []
        assert knn_wf.spec.tunable() == ["neighbors"]
        assert finalize_model(nearest_neighbor(neighbors=tune()), {"neighbors": 3}) \
            .args["neighbors"] == 3


class TestLastFit:
    def test_evaluates_on_test_rows(self, reg_frame):
        split = initial_split(reg_frame, prop=0.75, seed=3)
        result = last_fit(workflow("y ~ .", linear_reg()), split)
        assert result.metrics[".metric"].tolist() == ["rmse", "rsq"]
        assert len(collect_predictions(result)) == len(split.out_id)
        assert collect_metrics(result).equals(result.metrics)
        assert result.extract_workflow().is_trained
        assert repr(result).startswith("# Last fit on 45 rows, tested on 15")

    def test_needs_finalized_workflow(self, reg_frame, knn_wf):
        with pytest.raises(ValueError, match="Finalize the workflow first"):
            last_fit(knn_wf, initial_split(reg_frame, seed=1))

    def test_tune_then_last_fit(self, reg_frame, knn_wf):
        split = initial_split(reg_frame, seed=5)
        folds = vfold_cv(split.analysis(), v=3, seed=5)
        res = tune_grid(knn_wf, folds, grid={"neighbors": [3, 9]})
        final = last_fit(finalize_workflow(knn_wf, select_best(res, "rmse")), split)
        assert final.metrics.set_index(".metric").loc["rsq", ".estimate"] > 0.5
