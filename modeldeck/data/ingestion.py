"""Data ingestion module for the demonstration housing dataset.

Handles reading, cleaning, and normalizing the housing table the deck's
code cells operate on:
- Bundled dataset (``housing.csv`` shipped inside this package)
- User-supplied CSV (UTF-8 or UTF-16 LE with BOM)
- User-supplied Excel workbook (.xlsx, first sheet)

Every source is normalized to snake_case column names and checked against
``HOUSING_COLUMNS`` before it is handed to the modeling code.
"""

import re
from pathlib import Path

import pandas as pd


BUNDLED_DATASET = Path(__file__).resolve().parent / "housing.csv"


class IngestionError(ValueError):
    """Raised when a dataset does not match the housing schema."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

HOUSING_COLUMNS = {
    "sale_price": "numeric",
    "lot_area": "numeric",
    "year_built": "numeric",
    "living_area": "numeric",
    "bedrooms": "numeric",
    "full_baths": "numeric",
    "garage_cars": "numeric",
    "overall_qual": "numeric",
    "neighborhood": "categorical",
    "building_type": "categorical",
    "central_air": "categorical",
    "has_pool": "numeric",
}

OUTCOME = "sale_price"


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_numeric(value):
    """Parse a numeric value that may contain commas or currency symbols.

    Examples:
        "63,571" -> 63571.0
        "$215,000" -> 215000.0
        "1,138,771" -> 1138771.0
        42 -> 42.0
        NaN -> NaN
    """
    if value is None:
        return float("nan")
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if pd.isna(value):
        return float("nan")
    s = str(value).strip().replace(",", "").lstrip("$")
    if not s:
        return float("nan")
    try:
        return float(s)
    except ValueError:
        return float("nan")


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def _snake_case(name):
    s = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name.strip())
    s = re.sub(r"[^0-9a-zA-Z]+", "_", s)
    return s.strip("_").lower()


def clean_columns(df):
    """Strip whitespace from column names and convert them to snake_case."""
    df.columns = [_snake_case(c) if isinstance(c, str) else c for c in df.columns]
    return df


def clean_numeric_columns(df, columns=None):
    """Apply parse_numeric to specified columns (or all object columns)."""
    if columns is None:
        columns = df.select_dtypes(include=["object", "string"]).columns.tolist()
    for col in columns:
        if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
            df[col] = df[col].apply(parse_numeric)
    return df


# ---------------------------------------------------------------------------
# Encoding detection and file reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    if raw[:3] == b"\xef\xbb\xbf":
        return "utf-8-sig", ","
    return "utf-8", ","


def read_table(path):
    """Read a .csv or .xlsx file into a DataFrame with cleaned columns."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        df = pd.read_excel(path, sheet_name=0, engine="openpyxl")
    elif suffix in (".csv", ".txt", ".tsv"):
        encoding, sep = detect_encoding(path)
        if suffix == ".tsv":
            sep = "\t"
        df = pd.read_csv(path, encoding=encoding, sep=sep)
    else:
        raise IngestionError(
            f"Unsupported file type '{suffix}'. Use .csv, .tsv or .xlsx"
        )
    return clean_columns(df)


# ---------------------------------------------------------------------------
# Housing dataset
# ---------------------------------------------------------------------------

def validate_housing(df):
    """Check required columns and coerce each one to its schema type.

    Raises:
        IngestionError: On missing columns or numeric columns with no
            parseable values.
    """
    missing = [c for c in HOUSING_COLUMNS if c not in df.columns]
    if missing:
        raise IngestionError(
            f"Housing data is missing required column(s): {', '.join(missing)}"
        )

    numeric = [c for c, kind in HOUSING_COLUMNS.items() if kind == "numeric"]
    clean_numeric_columns(df, numeric)
    for col in numeric:
        df[col] = pd.to_numeric(df[col], errors="coerce")
        if len(df) and df[col].isna().all():
            raise IngestionError(f"Column '{col}' has no numeric values")

    for col, kind in HOUSING_COLUMNS.items():
        if kind == "categorical":
            values = df[col].map(lambda v: v.strip() if isinstance(v, str) else v)
            df[col] = values.astype("category")
    return df


def load_housing(path=None):
    """Load the housing dataset.

    Args:
        path: Optional path to a .csv/.xlsx file. Defaults to the dataset
            bundled with the package.

    Returns:
        DataFrame with the columns of ``HOUSING_COLUMNS`` first (in schema
        order), followed by any extra columns in the source.
    """
    path = Path(path) if path is not None else BUNDLED_DATASET
    if not path.exists():
        raise IngestionError(f"Dataset not found: {path}")
    df = validate_housing(read_table(path))
    extra = [c for c in df.columns if c not in HOUSING_COLUMNS]
    return df[list(HOUSING_COLUMNS) + extra].reset_index(drop=True)
