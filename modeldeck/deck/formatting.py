"""Text formatting helpers for run reports and training summaries.

- Metrics: 4 significant digits, N/A for missing
- Percentages: X.X%
- Durations: XXms below one second, X.XXs below a minute, XmXXs above
- Frames: fixed-width text with metric formatting applied to floats
"""

import math

import pandas as pd


def _missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_metric(value: float | int | None, digits: int = 4) -> str:
    """Format a performance metric with ``digits`` significant digits."""
    if _missing(value):
        return "N/A"
    return f"{value:.{digits}g}"


def format_percentage(value: float | int | None) -> str:
    """Format a 0-1 proportion as X.X%."""
    if _missing(value):
        return "N/A"
    return f"{value * 100:.1f}%"


def format_duration(seconds: float | None) -> str:
    """Format an elapsed time.

    <1s   -> XXXms
    <60s  -> X.XXs
    60s+  -> XmXXs
    """
    if _missing(seconds):
        return "N/A"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}m{rest:02.0f}s"


def format_value(value) -> str:
    """Format any scalar for display."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return format_metric(value)
    if _missing(value):
        return "N/A"
    return str(value)


def format_frame(frame: pd.DataFrame, max_rows: int = 20) -> str:
    """Render a DataFrame as text, truncated to ``max_rows`` rows."""
    shown = frame.head(max_rows)
    text = shown.to_string(index=False, float_format=format_metric)
    if len(frame) > max_rows:
        text += f"\n... {len(frame) - max_rows} more rows"
    return text
