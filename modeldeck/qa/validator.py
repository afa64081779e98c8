"""QA validator - inspects a deck and, optionally, the result of running it.

Structural checks need only the DeckSchema: slide numbering, names,
titles, which slides carry code, and whether every cell compiles. Run
checks take a DeckRun and verify that every executable cell ran, that
none failed, and that each cell bound the names it promises.

Usage::

    from modeldeck.qa import DeckValidator

    validator = DeckValidator(deck)
    result = validator.validate(run)
    assert result.passed, result.report()
"""

import ast
from dataclasses import dataclass, field

from modeldeck.deck.models import CodeCell, DeckSchema, SlideSchema, SlideType
from modeldeck.runner.runner import DeckRun


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    """A single QA issue found during validation."""
    severity: str       # "error" or "warning"
    slide_index: int    # -1 for deck-level issues
    slide_name: str
    cell: str           # e.g. "cell 0"; "" for slide-level issues
    category: str       # e.g. "slide_index", "syntax", "cell_error"
    message: str

    def __str__(self) -> str:
        loc = f"slide {self.slide_index}"
        if self.slide_name:
            loc += f" ({self.slide_name})"
        if self.cell:
            loc += f" / {self.cell}"
        return f"[{self.severity.upper()}] {loc}: {self.message}"


@dataclass
class QAResult:
    """Aggregated result of QA validation."""
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def categories(self) -> set[str]:
        return {i.category for i in self.issues}

    def summary(self) -> str:
        """One-line summary string."""
        status = "PASS" if self.passed else "FAIL"
        return (
            f"QA {status}: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)"
        )

    def report(self) -> str:
        """Multi-line report of all issues."""
        lines = [self.summary()]
        for issue in self.issues:
            lines.append(f"  {issue}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _bound_names(tree: ast.AST) -> set[str]:
    """Names a module binds at top level (assignments, imports, defs, loops)."""
    names: set[str] = set()

    def targets(node):
        if isinstance(node, ast.Name):
            names.add(node.id)
        elif isinstance(node, (ast.Tuple, ast.List)):
            for elt in node.elts:
                targets(elt)
        elif isinstance(node, ast.Starred):
            targets(node.value)

    for node in tree.body:
        if isinstance(node, ast.Assign):
            for t in node.targets:
                targets(t)
        elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
            targets(node.target)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                names.add((alias.asname or alias.name).split(".")[0])
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, (ast.For, ast.AsyncFor)):
            targets(node.target)
        elif isinstance(node, ast.With):
            for item in node.items:
                if item.optional_vars is not None:
                    targets(item.optional_vars)
    return names


# ---------------------------------------------------------------------------
# DeckValidator
# ---------------------------------------------------------------------------

class DeckValidator:
    """Validates a DeckSchema and, optionally, a DeckRun of it.

    Parameters
    ----------
    deck : DeckSchema
        The deck to check.
    """

    def __init__(self, deck: DeckSchema) -> None:
        self.deck = deck

    def validate(self, run: DeckRun | None = None) -> QAResult:
        """Run the structural checks, plus the run checks when ``run`` is given."""
        result = QAResult()
        self._check_deck(result)
        for slide in self.deck.slides:
            self._check_slide(slide, result)
        if run is not None:
            self._check_run(run, result)
        return result

    def _issue(self, result: QAResult, severity: str, category: str, message: str,
               slide: SlideSchema | None = None, cell: str = "") -> None:
        result.issues.append(Issue(
            severity=severity,
            slide_index=slide.index if slide is not None else -1,
            slide_name=slide.name if slide is not None else "",
            cell=cell,
            category=category,
            message=message,
        ))

    # ------------------------------------------------------------------
    # Deck-level checks
    # ------------------------------------------------------------------

    def _check_deck(self, result: QAResult) -> None:
        slides = self.deck.slides
        if not slides:
            self._issue(result, "error", "empty", "Deck has no slides")
            return

        indices = [s.index for s in slides]
        if indices != list(range(len(slides))):
            self._issue(result, "error", "slide_index",
                        f"Slide indices must run 0..{len(slides) - 1} in order, got {indices}")

        seen: set[str] = set()
        for slide in slides:
            if slide.name in seen:
                self._issue(result, "error", "slide_name",
                            f"Duplicate slide name '{slide.name}'", slide)
            seen.add(slide.name)

        if not self.deck.title:
            self._issue(result, "warning", "title", "Deck has no title")

    # ------------------------------------------------------------------
    # Slide-level checks
    # ------------------------------------------------------------------

    def _check_slide(self, slide: SlideSchema, result: QAResult) -> None:
        if not slide.title.strip():
            self._issue(result, "error", "title", "Slide has no title", slide)

        executable = slide.executable_cells()
        if slide.slide_type == SlideType.SECTION and slide.cells:
            self._issue(result, "error", "section_code",
                        "Section slides must not carry code cells", slide)
        elif slide.slide_type == SlideType.CODE and not executable:
            self._issue(result, "error", "code_slide",
                        "Code slide has no executable cells", slide)
        elif slide.slide_type != SlideType.CODE and executable:
            self._issue(result, "warning", "cell_placement",
                        f"{slide.slide_type.value} slide carries executable cells", slide)

        if slide.slide_type == SlideType.NARRATIVE and not slide.narration:
            self._issue(result, "warning", "narration", "Narrative slide has no bullets", slide)

        for cell_index, cell in enumerate(slide.cells):
            if cell.is_executable:
                self._check_cell(slide, cell_index, cell, result)

    def _check_cell(self, slide: SlideSchema, cell_index: int, cell: CodeCell,
                    result: QAResult) -> None:
        where = f"cell {cell_index}"
        if not cell.source.strip():
            self._issue(result, "error", "empty_cell", "Cell has no source", slide, where)
            return
        try:
            tree = ast.parse(cell.source, filename=f"<{slide.name}[{cell_index}]>")
        except SyntaxError as exc:
            self._issue(result, "error", "syntax",
                        f"Cell does not compile: {exc.msg} (line {exc.lineno})", slide, where)
            return

        bound = _bound_names(tree)
        for name in cell.produces:
            if not name.isidentifier():
                self._issue(result, "error", "produces",
                            f"'{name}' is not a valid Python name", slide, where)
            elif name not in bound:
                self._issue(result, "warning", "produces",
                            f"'{name}' is listed in produces but never assigned", slide, where)
        if cell.expect_error and cell.produces:
            self._issue(result, "warning", "produces",
                        "A cell expected to fail cannot produce names", slide, where)

    # ------------------------------------------------------------------
    # Run checks
    # ------------------------------------------------------------------

    def _check_run(self, run: DeckRun, result: QAResult) -> None:
        for slide in self.deck.slides:
            for cell_index, cell in enumerate(slide.cells):
                if not cell.is_executable:
                    continue
                where = f"cell {cell_index}"
                cell_result = run.result_for(slide.name, cell_index)
                if cell_result is None:
                    self._issue(result, "error", "not_run", "Cell was not run", slide, where)
                    continue
                if cell_result.status == "skipped":
                    self._issue(result, "error", "cell_skipped",
                                "Cell was skipped after an earlier failure", slide, where)
                    continue
                if cell_result.status == "error":
                    self._issue(result, "error", "cell_error", cell_result.error, slide, where)
                    continue
                for name in cell.produces:
                    if name not in cell_result.defined:
                        self._issue(result, "error", "produces_missing",
                                    f"Cell did not bind '{name}'", slide, where)
                if cell_result.warnings:
                    self._issue(result, "warning", "cell_warning",
                                f"{len(cell_result.warnings)} warning(s), first: "
                                f"{cell_result.warnings[0]}", slide, where)


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------

def validate_deck(deck: DeckSchema, run: DeckRun | None = None) -> QAResult:
    """One-shot convenience: validate a deck and, optionally, its run."""
    return DeckValidator(deck).validate(run)
