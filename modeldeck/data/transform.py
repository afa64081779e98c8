"""Data transformation helpers for the housing dataset.

Derives modeling outcomes from the raw table and splits frames into
predictor/outcome pairs, the shape the training functions expect.
"""

import math

import pandas as pd


PRICE_CLASS_LEVELS = ["high", "low"]


def add_price_class(df: pd.DataFrame, threshold: float | None = None,
                    column: str = "price_class") -> pd.DataFrame:
    """Add a binary ``price_class`` outcome derived from ``sale_price``.

    Rows at or above the threshold are ``high``. ``high`` is the first
    category, which makes it the event level for two-class metrics.
    The threshold defaults to the median sale price.
    """
    if "sale_price" not in df.columns:
        raise KeyError("add_price_class requires a 'sale_price' column")
    out = df.copy()
    if threshold is None:
        threshold = float(out["sale_price"].median())
    if isinstance(threshold, float) and math.isnan(threshold):
        raise ValueError("Cannot derive price classes from an empty sale_price column")
    labels = out["sale_price"].ge(threshold).map({True: "high", False: "low"})
    out[column] = pd.Categorical(labels, categories=PRICE_CLASS_LEVELS)
    return out


def predictors_outcome(df: pd.DataFrame, outcome: str,
                       drop: list[str] | None = None):
    """Split a frame into ``(x, y)``.

    Args:
        df: Source frame.
        outcome: Outcome column name.
        drop: Extra columns to exclude from the predictors (e.g. a second
            outcome derived from the first).
    """
    if outcome not in df.columns:
        raise KeyError(f"Outcome column '{outcome}' not found")
    excluded = [outcome] + [c for c in (drop or []) if c in df.columns]
    x = df.drop(columns=excluded)
    y = df[outcome]
    return x, y
