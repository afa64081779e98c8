"""Deck package: slide and cell models, YAML round-trip, and the built-in deck."""

from .formatting import (
    format_duration,
    format_frame,
    format_metric,
    format_percentage,
    format_value,
)
from .history_deck import build_history_deck, output_note
from .loader import dump_deck, load_deck, save_deck
from .models import (
    BUNDLED_DATASET_REF,
    CellKind,
    CodeCell,
    DeckSchema,
    Era,
    SlideSchema,
    SlideType,
)

__all__ = [
    # Models
    "BUNDLED_DATASET_REF",
    "CellKind",
    "CodeCell",
    "DeckSchema",
    "Era",
    "SlideSchema",
    "SlideType",
    # Loader
    "dump_deck",
    "load_deck",
    "save_deck",
    # Built-in deck
    "build_history_deck",
    "output_note",
    # Formatting
    "format_duration",
    "format_frame",
    "format_metric",
    "format_percentage",
    "format_value",
]
