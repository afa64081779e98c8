"""QA validation package for modeldeck.

Validates deck structure (slide numbering, names, titles, code placement,
cells that compile) and the results of running a deck (every cell ran,
none failed, promised names were bound).
"""

from .validator import (
    DeckValidator,
    Issue,
    QAResult,
    validate_deck,
)

__all__ = [
    "DeckValidator",
    "Issue",
    "QAResult",
    "validate_deck",
]
