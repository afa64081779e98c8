"""Deck runner - executes a deck's code cells against the housing data.

All cells share one namespace, in slide order, so later cells can use what
earlier cells defined. Failures are recorded on the result instead of
aborting the run.

Usage::

    from modeldeck.deck import build_history_deck
    from modeldeck.runner import DeckRunner

    run = DeckRunner(build_history_deck()).run()
    print(run.report())
"""

import contextlib
import io
import time
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from modeldeck.data import load_housing  # noqa: E402
from modeldeck.deck.formatting import format_duration  # noqa: E402
from modeldeck.deck.models import (  # noqa: E402
    BUNDLED_DATASET_REF,
    CodeCell,
    DeckSchema,
    SlideSchema,
)


STATUSES = ("ok", "error", "skipped")
_UNBOUND = object()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CellResult:
    """Outcome of one executed (or skipped) cell."""
    slide_index: int
    slide_name: str
    cell_index: int               # position among the slide's cells
    status: str                   # "ok", "error" or "skipped"
    duration: float = 0.0
    output: str = ""              # captured stdout
    error: str = ""               # "ExcType: message", or why an expected error did not occur
    defined: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    expect_error: bool = False

    @property
    def label(self) -> str:
        return f"{self.slide_name}[{self.cell_index}]"

    def __str__(self) -> str:
        line = f"[{self.status.upper()}] slide {self.slide_index} {self.label} ({format_duration(self.duration)})"
        if self.error:
            line += f": {self.error}"
        return line


@dataclass
class DeckRun:
    """Aggregated result of running a deck."""
    deck: DeckSchema
    results: list[CellResult] = field(default_factory=list)
    namespace: dict[str, Any] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def failures(self) -> list[CellResult]:
        return [r for r in self.results if r.status == "error"]

    @property
    def skipped(self) -> list[CellResult]:
        return [r for r in self.results if r.status == "skipped"]

    @property
    def passed(self) -> bool:
        return not self.failures and not self.skipped

    def result_for(self, slide_name: str, cell_index: int = 0) -> CellResult | None:
        for r in self.results:
            if r.slide_name == slide_name and r.cell_index == cell_index:
                return r
        return None

    def summary(self) -> str:
        """One-line summary string."""
        status = "PASS" if self.passed else "FAIL"
        ok = len(self.results) - len(self.failures) - len(self.skipped)
        return (
            f"Run {status}: {ok} cell(s) ok, {len(self.failures)} error(s), "
            f"{len(self.skipped)} skipped in {format_duration(self.duration)}"
        )

    def report(self, show_output: bool = False) -> str:
        """Multi-line report of every cell."""
        lines = [self.summary()]
        for r in self.results:
            lines.append(f"  {r}")
            if show_output and r.output:
                lines.extend(f"      {line}" for line in r.output.rstrip().splitlines())
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# DeckRunner
# ---------------------------------------------------------------------------

class DeckRunner:
    """Executes every ``python`` cell of a deck in slide order.

    Parameters
    ----------
    deck : DeckSchema
        The deck to run.
    seed : int, optional
        Overrides ``deck.seed``; exposed to cells as ``SEED``.
    stop_on_error : bool
        Mark every cell after the first failure as skipped.
    on_cell : callable, optional
        Called with each ``CellResult`` as soon as it is recorded.
    """

    def __init__(self, deck: DeckSchema, seed: int | None = None,
                 stop_on_error: bool = False,
                 on_cell: Callable[[CellResult], None] | None = None) -> None:
        self.deck = deck
        self.seed = deck.seed if seed is None else seed
        self.stop_on_error = stop_on_error
        self.on_cell = on_cell

    def load_data(self) -> pd.DataFrame:
        """Load the dataset the deck refers to."""
        if self.deck.dataset == BUNDLED_DATASET_REF:
            return load_housing()
        return load_housing(self.deck.dataset)

    def namespace(self, data: pd.DataFrame) -> dict[str, Any]:
        return {
            "__name__": "__deck__",
            "housing": data,
            "pd": pd,
            "np": np,
            "SEED": self.seed,
        }

    def run(self, data: pd.DataFrame | None = None) -> DeckRun:
        """Run the deck against ``data`` (defaults to the deck's dataset)."""
        started = time.perf_counter()
        if data is None:
            data = self.load_data()
        np.random.seed(self.seed)
        run = DeckRun(deck=self.deck, namespace=self.namespace(data))

        failed = False
        for slide in self.deck.slides:
            for cell_index, cell in enumerate(slide.cells):
                if not cell.is_executable:
                    continue
                if failed and self.stop_on_error:
                    result = CellResult(slide.index, slide.name, cell_index, "skipped",
                                        expect_error=cell.expect_error)
                else:
                    result = self._run_cell(slide, cell_index, cell, run.namespace)
                    failed = failed or result.status == "error"
                run.results.append(result)
                if self.on_cell is not None:
                    self.on_cell(result)

        run.duration = time.perf_counter() - started
        return run

    def _run_cell(self, slide: SlideSchema, cell_index: int, cell: CodeCell,
                  namespace: dict[str, Any]) -> CellResult:
        before = dict(namespace)
        stdout = io.StringIO()
        raised = None
        started = time.perf_counter()
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                code = compile(cell.source, f"<{slide.name}[{cell_index}]>", "exec")
                with contextlib.redirect_stdout(stdout):
                    exec(code, namespace)
            except Exception as exc:
                raised = exc
            finally:
                plt.close("all")
        duration = time.perf_counter() - started

        defined = [k for k, v in namespace.items()
                   if k != "__builtins__" and before.get(k, _UNBOUND) is not v]
        messages = list(dict.fromkeys(f"{w.category.__name__}: {w.message}" for w in caught))

        if cell.expect_error:
            status = "ok" if raised is not None else "error"
            error = "" if raised is not None else "Expected an error, but the cell ran cleanly"
        else:
            status = "error" if raised is not None else "ok"
            error = f"{type(raised).__name__}: {raised}" if raised is not None else ""

        output = stdout.getvalue()
        if cell.expect_error and raised is not None:
            output += f"{type(raised).__name__}: {raised}\n"

        return CellResult(
            slide_index=slide.index,
            slide_name=slide.name,
            cell_index=cell_index,
            status=status,
            duration=duration,
            output=output,
            error=error,
            defined=defined,
            warnings=messages,
            expect_error=cell.expect_error,
        )


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------

def run_deck(deck: DeckSchema, data: pd.DataFrame | None = None,
             seed: int | None = None, stop_on_error: bool = False) -> DeckRun:
    """One-shot convenience: run a deck and return the result."""
    return DeckRunner(deck, seed=seed, stop_on_error=stop_on_error).run(data)
