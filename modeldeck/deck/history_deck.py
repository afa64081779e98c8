"""Built-in deck: from the classic unified modeling interface to its successor.

The deck tells the story in three parts:
1. History (why a unified interface, how it grew, why it was split up)
2. The classic interface: one ``train`` call with resampling control
3. The successor: rsample, recipes, parsnip, workflows, tune, yardstick

Every code cell runs against the bundled housing data in one shared
namespace seeded with ``housing``, ``pd``, ``np`` and ``SEED``.
"""

from .models import CellKind, CodeCell, DeckSchema, Era, SlideSchema, SlideType


def _slide(index, name, title, slide_type, era, narration=None, cells=None, notes=""):
    return SlideSchema(
        index=index,
        name=name,
        title=title,
        slide_type=slide_type,
        era=era,
        narration=narration or [],
        cells=cells or [],
        notes=notes,
    )


def _cell(source, produces=None, caption=None, expect_error=False):
    return CodeCell(
        source=source.strip("\n"),
        produces=produces or [],
        caption=caption,
        expect_error=expect_error,
    )


def output_note(text: str, caption: str | None = None) -> CodeCell:
    """A cell that is shown on the slide but never executed."""
    return CodeCell(source=text.strip("\n"), kind=CellKind.OUTPUT_NOTE, caption=caption)


# ---------------------------------------------------------------------------
# Part 1: history
# ---------------------------------------------------------------------------

def _history_slides():
    return [
        _slide(0, "title", "From caret to tidymodels", SlideType.TITLE, Era.HISTORY,
               narration=[
                   "Fifteen years of unified modeling interfaces",
                   "Live code on a 400-row housing table",
               ]),
        _slide(1, "history_section", "A short history", SlideType.SECTION, Era.HISTORY),
        _slide(2, "why_caret", "One interface for many models", SlideType.NARRATIVE, Era.HISTORY,
               narration=[
                   "Work started in 2005 to put dozens of modeling packages behind one syntax",
                   "Each package had its own argument names, prediction types and data formats",
                   "First public release in 2007, followed by a journal paper in 2008",
                   "The same train() call tunes, resamples and refits any supported model",
               ],
               cells=[
                   output_note("""
train(Sale_Price ~ ., data = ames_train,
      method = "rf",
      preProcess = c("center", "scale"),
      trControl = trainControl(method = "cv", number = 10))
""", caption="The original R call"),
               ],
               notes="Emphasise that the models themselves were never reimplemented."),
        _slide(3, "growth", "Growth", SlideType.NARRATIVE, Era.HISTORY,
               narration=[
                   "Grew to cover more than 200 models",
                   "One of the first parallel processing implementations for resampling",
                   "Preprocessing, feature selection, variable importance and ROC tools were added",
                   "A single very large function became hard to extend",
               ]),
        _slide(4, "successor", "Why a successor", SlideType.NARRATIVE, Era.HISTORY,
               narration=[
                   "The successor splits the job into small packages with one purpose each",
                   "rsample splits data, recipes preprocesses, parsnip specifies models",
                   "workflows bundle the pieces; tune and yardstick evaluate them",
                   "Results come back as data frames that are easy to plot and filter",
               ]),
    ]


# ---------------------------------------------------------------------------
# Part 2: the classic interface
# ---------------------------------------------------------------------------

def _classic_slides(start):
    i = start
    return [
        _slide(i, "data_section", "The data", SlideType.SECTION, Era.CLASSIC),
        _slide(i + 1, "housing_data", "Housing prices", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Sale price plus lot, size, age, quality and location attributes",
                   "A derived two-class outcome: is the price above the median?",
               ],
               cells=[
                   _cell("""
from modeldeck.data import add_price_class

homes = add_price_class(housing)
predictors = [c for c in homes.columns if c not in ("sale_price", "price_class")]
print(homes.shape)
print(homes["price_class"].value_counts())
""", produces=["homes", "predictors"]),
               ]),
        _slide(i + 2, "classic_section", "The classic interface", SlideType.SECTION, Era.CLASSIC),
        _slide(i + 3, "data_splitting", "Stratified splitting", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Numeric outcomes are stratified on quantile groups",
                   "Class outcomes are stratified on the classes",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import create_data_partition

in_train = create_data_partition(homes["sale_price"], p=0.75, seed=SEED)[0]
train_df = homes.iloc[in_train]
test_df = homes.iloc[np.setdiff1d(np.arange(len(homes)), in_train)]
print(len(train_df), len(test_df))
""", produces=["in_train", "train_df", "test_df"]),
               ]),
        _slide(i + 4, "filters", "Filtering predictors", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Near-zero variance predictors break some models during resampling",
                   "Highly correlated predictors can be removed before fitting",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import find_correlation, near_zero_var

nzv = near_zero_var(train_df[predictors])
print(nzv[nzv["nzv"]])
print(find_correlation(train_df[predictors].select_dtypes("number"), cutoff=0.75))
""", produces=["nzv"]),
               ]),
        _slide(i + 5, "preprocessing", "Preprocessing", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Estimated on the training set, applied to any new data",
                   "Methods always run in a fixed order",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import PreProcess

numeric = train_df[predictors].select_dtypes("number")
pp = PreProcess(["YeoJohnson", "center", "scale"]).fit(numeric)
print(pp)
print(pp.transform(test_df[numeric.columns]).describe().loc[["mean", "std"]].round(2))
""", produces=["pp"]),
               ]),
        _slide(i + 6, "train_control", "Resampling control", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Bootstrap, cross-validation, repeated CV and leave-group-out",
                   "Set n_jobs to fit resamples in parallel",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import TrainControl

ctrl = TrainControl(method="cv", number=5, seed=SEED)
print(ctrl.describe())
""", produces=["ctrl"]),
               ]),
        _slide(i + 7, "train", "Training with a tuning grid", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Every candidate is evaluated on every resample",
                   "The best candidate is refit on the whole training set",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import train

x_train, y_train = train_df[predictors], train_df["sale_price"]
rf_fit = train(x_train, y_train, method="rf", tr_control=ctrl, tune_length=3, ntree=50)
print(rf_fit)
""", produces=["x_train", "y_train", "rf_fit"]),
                   _cell("""
gbm_grid = {"n_trees": [50, 100], "interaction_depth": [1, 3],
            "shrinkage": [0.1], "n_minobsinnode": [10]}
gbm_fit = train(x_train, y_train, method="gbm", tr_control=ctrl, tune_grid=gbm_grid)
print(gbm_fit.results.round(3))
""", produces=["gbm_grid", "gbm_fit"], caption="A custom grid"),
               ]),
        _slide(i + 8, "predict", "Prediction", SlideType.CODE, Era.CLASSIC,
               narration=["One predict() for every model type"],
               cells=[
                   _cell("""
from modeldeck.modeling import post_resample, predict

rf_pred = predict(rf_fit, test_df)
print(post_resample(rf_pred, test_df["sale_price"]).round(3))
""", produces=["rf_pred"]),
               ]),
        _slide(i + 9, "resamples", "Comparing models", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "Models fit with the same seed share their resamples",
                   "Paired differences remove the resample-to-resample noise",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import resamples

comparison = resamples({"rf": rf_fit, "gbm": gbm_fit})
print(comparison.summary()["RMSE"].round(1))
print(comparison.diff())
""", produces=["comparison"]),
               ]),
        _slide(i + 10, "var_imp", "Variable importance", SlideType.CODE, Era.CLASSIC,
               narration=["Model-specific scores through one call, scaled to 0-100"],
               cells=[
                   _cell("""
from modeldeck.modeling import var_imp

importance = var_imp(rf_fit)
print(importance.top(5).round(1))
ax = importance.plot(top=10)
""", produces=["importance"]),
               ]),
        _slide(i + 11, "roc", "Classification and ROC curves", SlideType.CODE, Era.CLASSIC,
               narration=[
                   "The first class level is the event of interest",
                   "Class probabilities feed the ROC curve",
               ],
               cells=[
                   _cell("""
from modeldeck.modeling import roc

cls_ctrl = TrainControl(method="cv", number=5, class_probs=True,
                        summary_function="two_class", seed=SEED)
glm_cls = train(train_df[predictors], train_df["price_class"], method="glm",
                preprocess=["center", "scale"], tr_control=cls_ctrl)
print(glm_cls.results.round(3))
probs = glm_cls.predict(test_df, type="prob")
curve = roc(test_df["price_class"], probs["high"], levels=("low", "high"))
print(curve)
print(curve.coords("best"))
""", produces=["cls_ctrl", "glm_cls", "probs", "curve"]),
               ]),
        _slide(i + 12, "confusion", "Confusion matrix", SlideType.CODE, Era.CLASSIC,
               narration=["Accuracy with an exact confidence interval and the no-information rate"],
               cells=[
                   _cell("""
from modeldeck.modeling import confusion_matrix

cm = confusion_matrix(glm_cls.predict(test_df), test_df["price_class"])
print(cm)
""", produces=["cm"]),
               ]),
        _slide(i + 13, "validation", "Inputs are checked", SlideType.CODE, Era.CLASSIC,
               narration=["ROC-based tuning needs class probabilities, so this call fails"],
               cells=[
                   _cell("""
bad_ctrl = TrainControl(method="cv", number=5, summary_function="two_class")
train(train_df[predictors], train_df["price_class"], method="glm", tr_control=bad_ctrl)
""", expect_error=True),
               ]),
    ]


# ---------------------------------------------------------------------------
# Part 3: the successor
# ---------------------------------------------------------------------------

def _tidy_slides(start):
    i = start
    return [
        _slide(i, "tidy_section", "Small pieces", SlideType.SECTION, Era.TIDY),
        _slide(i + 1, "rsample", "rsample", SlideType.CODE, Era.TIDY,
               narration=["Split objects remember both sides of the split"],
               cells=[
                   _cell("""
from modeldeck.tidy import initial_split, testing, training, vfold_cv

tidy_data = homes.drop(columns="price_class")
split = initial_split(tidy_data, prop=0.75, strata="sale_price", seed=SEED)
train_tbl, test_tbl = training(split), testing(split)
folds = vfold_cv(train_tbl, v=5, strata="sale_price", seed=SEED)
print(split)
print(folds)
""", produces=["tidy_data", "split", "train_tbl", "test_tbl", "folds"]),
               ]),
        _slide(i + 2, "recipes", "recipes", SlideType.CODE, Era.TIDY,
               narration=[
                   "Declare preprocessing steps with role-based selectors",
                   "prep() estimates them, bake() applies them",
               ],
               cells=[
                   _cell("""
from modeldeck.tidy import (all_nominal_predictors, all_numeric_predictors,
                            all_predictors, recipe)

rec = (recipe("sale_price ~ .", data=train_tbl)
       .step_other(all_nominal_predictors(), threshold=0.05)
       .step_dummy(all_nominal_predictors())
       .step_zv(all_predictors())
       .step_normalize(all_numeric_predictors()))
print(rec)
print(rec.prep().bake(test_tbl).shape)
""", produces=["rec"]),
               ]),
        _slide(i + 3, "parsnip", "parsnip", SlideType.CODE, Era.TIDY,
               narration=["Model type, engine and mode are separate choices"],
               cells=[
                   _cell("""
from modeldeck.tidy import linear_reg, rand_forest

lm_spec = linear_reg().set_engine("lm")
rf_spec = rand_forest(trees=50).set_engine("ranger", seed=SEED).set_mode("regression")
print(rf_spec)
""", produces=["lm_spec", "rf_spec"]),
               ]),
        _slide(i + 4, "workflows", "workflows", SlideType.CODE, Era.TIDY,
               narration=["A workflow carries the recipe and the model together"],
               cells=[
                   _cell("""
from modeldeck.tidy import workflow

lm_wf = workflow().add_recipe(rec).add_model(lm_spec)
lm_wf_fit = lm_wf.fit(train_tbl)
print(lm_wf_fit.predict(test_tbl).head())
""", produces=["lm_wf", "lm_wf_fit"]),
               ]),
        _slide(i + 5, "fit_resamples", "Resampling a workflow", SlideType.CODE, Era.TIDY,
               narration=["Metrics come back as a data frame"],
               cells=[
                   _cell("""
from modeldeck.tidy import collect_metrics, fit_resamples, mae, metric_set, rmse, rsq

rf_res = fit_resamples(lm_wf.update_model(rf_spec), folds,
                       metrics=metric_set(rmse, rsq, mae))
print(collect_metrics(rf_res))
""", produces=["rf_res"]),
               ]),
        _slide(i + 6, "tune", "Tuning and the last fit", SlideType.CODE, Era.TIDY,
               narration=[
                   "tune() marks the arguments to optimise",
                   "last_fit() trains once more and scores the test set",
               ],
               cells=[
                   _cell("""
from modeldeck.tidy import (finalize_workflow, grid_regular, last_fit, select_best,
                            show_best, tune, tune_grid)

tune_spec = rand_forest(mtry=tune(), trees=50).set_engine("ranger", seed=SEED).set_mode("regression")
tune_wf = lm_wf.update_model(tune_spec)
tuned = tune_grid(tune_wf, folds, grid=grid_regular(tune_wf, levels=3, data=train_tbl))
print(show_best(tuned, "rmse", n=3))
best = select_best(tuned, "rmse")
final = last_fit(finalize_workflow(tune_wf, best), split)
print(collect_metrics(final))
""", produces=["tune_spec", "tune_wf", "tuned", "best", "final"]),
               ]),
        _slide(i + 7, "wrap_up", "Wrap-up", SlideType.NARRATIVE, Era.TIDY,
               narration=[
                   "The classic interface still works and is still used",
                   "The successor favours composable pieces and tidy results",
                   "Both delegate the modeling itself to existing libraries",
               ]),
    ]


def build_history_deck() -> DeckSchema:
    """Build the built-in history deck."""
    slides = _history_slides()
    slides += _classic_slides(len(slides))
    slides += _tidy_slides(len(slides))
    return DeckSchema(
        name="caret_to_tidymodels",
        title="From caret to tidymodels",
        author="modeldeck",
        slides=slides,
    )

