"""Data package: ingestion and light transformation of the housing dataset."""

from .ingestion import (
    BUNDLED_DATASET,
    HOUSING_COLUMNS,
    OUTCOME,
    IngestionError,
    clean_columns,
    clean_numeric_columns,
    detect_encoding,
    load_housing,
    parse_numeric,
    read_table,
    validate_housing,
)
from .transform import PRICE_CLASS_LEVELS, add_price_class, predictors_outcome

__all__ = [
    "BUNDLED_DATASET",
    "HOUSING_COLUMNS",
    "OUTCOME",
    "IngestionError",
    "PRICE_CLASS_LEVELS",
    "add_price_class",
    "clean_columns",
    "clean_numeric_columns",
    "detect_encoding",
    "load_housing",
    "parse_numeric",
    "predictors_outcome",
    "read_table",
    "validate_housing",
]
