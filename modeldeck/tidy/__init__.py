"""Successor-style modeling API.

Small composable pieces instead of one large function:

- rsample.py: initial splits and resample sets
- recipes.py: preprocessing recipes
- parsnip.py: model specifications
- yardstick.py: tidy metrics
- workflows.py: recipe + model bundles
- tuning.py: resample fitting, grid tuning, metric collection
"""

from .parsnip import (
    ModelFit,
    ModelSpec,
    boost_tree,
    decision_tree,
    linear_reg,
    logistic_reg,
    nearest_neighbor,
    rand_forest,
    svm_rbf,
    tune,
)
from .recipes import (
    Recipe,
    all_nominal_predictors,
    all_numeric_predictors,
    all_outcomes,
    all_predictors,
    bake,
    juice,
    prep,
    recipe,
)
from .rsample import (
    ResampleSet,
    Split,
    bootstraps,
    initial_split,
    mc_cv,
    testing,
    training,
    vfold_cv,
)
from .tuning import (
    ControlResamples,
    LastFit,
    ResampleResults,
    collect_metrics,
    collect_predictions,
    finalize_model,
    finalize_workflow,
    fit_resamples,
    grid_latin_hypercube,
    grid_regular,
    last_fit,
    select_best,
    show_best,
    tune_grid,
)
from .workflows import Workflow, workflow
from .yardstick import (
    MetricSet,
    accuracy,
    kap,
    mae,
    metric_set,
    mn_log_loss,
    rmse,
    roc_auc,
    rsq,
    rsq_trad,
    sens,
    spec,
)

__all__ = [
    # rsample
    "ResampleSet",
    "Split",
    "bootstraps",
    "initial_split",
    "mc_cv",
    "testing",
    "training",
    "vfold_cv",
    # recipes
    "Recipe",
    "all_nominal_predictors",
    "all_numeric_predictors",
    "all_outcomes",
    "all_predictors",
    "bake",
    "juice",
    "prep",
    "recipe",
    # parsnip
    "ModelFit",
    "ModelSpec",
    "boost_tree",
    "decision_tree",
    "linear_reg",
    "logistic_reg",
    "nearest_neighbor",
    "rand_forest",
    "svm_rbf",
    "tune",
    # yardstick
    "MetricSet",
    "accuracy",
    "kap",
    "mae",
    "metric_set",
    "mn_log_loss",
    "rmse",
    "roc_auc",
    "rsq",
    "rsq_trad",
    "sens",
    "spec",
    # workflows
    "Workflow",
    "workflow",
    # tuning
    "ControlResamples",
    "LastFit",
    "ResampleResults",
    "collect_metrics",
    "collect_predictions",
    "finalize_model",
    "finalize_workflow",
    "fit_resamples",
    "grid_latin_hypercube",
    "grid_regular",
    "last_fit",
    "select_best",
    "show_best",
    "tune_grid",
]
