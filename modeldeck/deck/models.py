"""Deck models - the contract between the deck definition, runner, and QA.

Defines the typed structure of a teaching deck: which slides exist, what
each slide narrates, and which code cells it runs against the shared
dataset.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SlideType(Enum):
    """Categorises a slide's role in the deck."""
    TITLE = "title"
    SECTION = "section"        # Section break, never carries code
    NARRATIVE = "narrative"    # Bullets only
    CODE = "code"              # Bullets plus executable cells


class CellKind(Enum):
    """How a cell is treated by the runner."""
    PYTHON = "python"              # Executed in the shared namespace
    OUTPUT_NOTE = "output_note"    # Shown on the slide, never executed


class Era(Enum):
    """Which part of the story a slide belongs to."""
    HISTORY = "history"
    CLASSIC = "classic"
    TIDY = "tidy"


# ---------------------------------------------------------------------------
# CodeCell
# ---------------------------------------------------------------------------

@dataclass
class CodeCell:
    """A block of code shown on a slide.

    ``produces`` lists the names the cell must bind in the shared namespace;
    later cells may rely on them. ``expect_error`` marks a cell that
    demonstrates a failure: it passes only if it raises.
    """
    source: str
    kind: CellKind = CellKind.PYTHON
    produces: list[str] = field(default_factory=list)
    expect_error: bool = False
    caption: str | None = None

    @property
    def is_executable(self) -> bool:
        return self.kind == CellKind.PYTHON

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"source": self.source, "kind": self.kind.value}
        if self.produces:
            d["produces"] = list(self.produces)
        if self.expect_error:
            d["expect_error"] = True
        if self.caption:
            d["caption"] = self.caption
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CodeCell":
        return cls(
            source=d["source"],
            kind=CellKind(d.get("kind", "python")),
            produces=list(d.get("produces", [])),
            expect_error=d.get("expect_error", False),
            caption=d.get("caption"),
        )


# ---------------------------------------------------------------------------
# SlideSchema - one slide in the deck
# ---------------------------------------------------------------------------

@dataclass
class SlideSchema:
    """Schema for a single slide."""
    index: int                           # 0-based slide position
    name: str                            # Machine name, e.g. "train_control"
    title: str                           # Human-readable title
    slide_type: SlideType
    era: Era = Era.HISTORY
    narration: list[str] = field(default_factory=list)
    cells: list[CodeCell] = field(default_factory=list)
    notes: str = ""                      # Speaker notes

    def executable_cells(self) -> list[CodeCell]:
        return [c for c in self.cells if c.is_executable]

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "index": self.index,
            "name": self.name,
            "title": self.title,
            "slide_type": self.slide_type.value,
            "era": self.era.value,
        }
        if self.narration:
            d["narration"] = list(self.narration)
        if self.cells:
            d["cells"] = [c.to_dict() for c in self.cells]
        if self.notes:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "SlideSchema":
        return cls(
            index=d["index"],
            name=d["name"],
            title=d.get("title", ""),
            slide_type=SlideType(d["slide_type"]),
            era=Era(d.get("era", "history")),
            narration=list(d.get("narration", [])),
            cells=[CodeCell.from_dict(c) for c in d.get("cells", [])],
            notes=d.get("notes", ""),
        )


# ---------------------------------------------------------------------------
# DeckSchema - top-level container
# ---------------------------------------------------------------------------

BUNDLED_DATASET_REF = "bundled:housing"


@dataclass
class DeckSchema:
    """A complete deck: metadata, run settings and the slide sequence.

    ``dataset`` is either ``bundled:housing`` or a path to a CSV/XLSX file
    with the housing schema. ``seed`` is exposed to cells as ``SEED``.
    """
    name: str
    title: str
    slides: list[SlideSchema]
    author: str = ""
    dataset: str = BUNDLED_DATASET_REF
    seed: int = 42

    def get_slide(self, name: str) -> SlideSchema | None:
        """Look up a slide by its machine name."""
        for s in self.slides:
            if s.name == name:
                return s
        return None

    def code_slides(self) -> list[SlideSchema]:
        """Return only slides with at least one executable cell."""
        return [s for s in self.slides if s.executable_cells()]

    def all_cells(self) -> list[tuple[SlideSchema, CodeCell]]:
        """Every cell in slide order, paired with its slide."""
        return [(s, c) for s in self.slides for c in s.cells]

    def produced_names(self) -> set[str]:
        """Collect every name any cell promises to bind."""
        names: set[str] = set()
        for _, cell in self.all_cells():
            names.update(cell.produces)
        return names

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "author": self.author,
            "run": {
                "dataset": self.dataset,
                "seed": self.seed,
            },
            "slides": [s.to_dict() for s in self.slides],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DeckSchema":
        run = d.get("run", {})
        return cls(
            name=d["name"],
            title=d.get("title", ""),
            author=d.get("author", ""),
            dataset=run.get("dataset", BUNDLED_DATASET_REF),
            seed=run.get("seed", 42),
            slides=[SlideSchema.from_dict(s) for s in d.get("slides", [])],
        )
