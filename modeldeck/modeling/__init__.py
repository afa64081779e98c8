"""Classic unified modeling interface.

One set of calls covers the whole supervised-learning loop, whatever the
underlying scikit-learn estimator:

- partition.py: stratified splits, folds and bootstrap samples
- control.py: resampling options (TrainControl)
- preprocess.py: filters, transformations, imputation, PCA, dummy variables
- registry.py: model catalogue with default tuning grids
- metrics.py: resampling summaries and the confusion matrix
- train.py: tuning, final fit and prediction
- resamples.py: comparing models on shared resamples
- importance.py: variable importance
- roc.py: ROC curves and AUC
"""

from .control import TrainControl, train_control
from .importance import VarImp, filter_var_imp, var_imp
from .metrics import (
    ConfusionMatrix,
    confusion_matrix,
    default_summary,
    multi_class_summary,
    post_resample,
    two_class_summary,
)
from .partition import (
    create_data_partition,
    create_folds,
    create_multi_folds,
    create_resample,
)
from .preprocess import DummyVars, PreProcess, find_correlation, near_zero_var
from .registry import MODEL_REGISTRY, ModelInfo, get_model_info, model_lookup
from .resamples import ResampleDiff, Resamples, resamples
from .roc import RocCurve, roc
from .train import TrainedModel, extract_prediction, predict, train

__all__ = [
    # Partitioning
    "create_data_partition",
    "create_folds",
    "create_multi_folds",
    "create_resample",
    # Control
    "TrainControl",
    "train_control",
    # Preprocessing
    "DummyVars",
    "PreProcess",
    "find_correlation",
    "near_zero_var",
    # Registry
    "MODEL_REGISTRY",
    "ModelInfo",
    "get_model_info",
    "model_lookup",
    # Metrics
    "ConfusionMatrix",
    "confusion_matrix",
    "default_summary",
    "multi_class_summary",
    "post_resample",
    "two_class_summary",
    # Training
    "TrainedModel",
    "extract_prediction",
    "predict",
    "train",
    # Comparison
    "ResampleDiff",
    "Resamples",
    "resamples",
    # Importance
    "VarImp",
    "filter_var_imp",
    "var_imp",
    # ROC
    "RocCurve",
    "roc",
]
