"""Runner package: executes deck cells and records the results."""

from .runner import CellResult, DeckRun, DeckRunner, run_deck

__all__ = ["CellResult", "DeckRun", "DeckRunner", "run_deck"]
