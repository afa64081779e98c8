"""CLI entry point for modeldeck.

Runs, validates and inspects teaching decks, and runs one-off classic
training jobs on the housing data.

Usage::

    # Run the built-in deck and QA the results
    modeldeck run

    # Run a deck from YAML against a different copy of the data
    modeldeck run --deck decks/custom.yaml --data data/housing.xlsx --seed 7

    # Structural QA only (no code is executed)
    modeldeck validate --deck decks/custom.yaml

    # Show slides and cells
    modeldeck inspect -v --cells

    # Write the built-in deck as YAML for editing
    modeldeck export -o decks/history.yaml

    # Tune a model from the command line
    modeldeck train --outcome sale_price --method gbm --cv repeatedcv \\
        --number 5 --repeats 2 --preprocess center scale --n-jobs 4
"""

import argparse
import sys
from pathlib import Path

from modeldeck.data import IngestionError, add_price_class, load_housing, predictors_outcome
from modeldeck.deck import build_history_deck, format_duration, load_deck, save_deck
from modeldeck.modeling import MODEL_REGISTRY, TrainControl, train
from modeldeck.modeling.control import RESAMPLING_METHODS
from modeldeck.qa import DeckValidator
from modeldeck.runner import DeckRunner


BUILTIN_DECKS = {
    "history": build_history_deck,
}


# ---------------------------------------------------------------------------
# Deck loading
# ---------------------------------------------------------------------------

def _load_deck(args):
    """Load a DeckSchema from CLI args (--deck or --builtin)."""
    if getattr(args, "deck", None):
        path = Path(args.deck)
        if not path.exists():
            _error(f"Deck file not found: {path}")
        try:
            return load_deck(path)
        except (ValueError, KeyError) as exc:
            _error(f"Invalid deck file {path}: {exc}")

    name = getattr(args, "builtin", None) or "history"
    if name not in BUILTIN_DECKS:
        _error(f"Unknown built-in deck: {name!r}. Use one of: {', '.join(BUILTIN_DECKS)}")
    return BUILTIN_DECKS[name]()


def _load_data(path):
    """Load the housing data from ``path`` (or the bundled copy)."""
    if path is not None:
        p = Path(path)
        if not p.exists():
            _error(f"Data file not found: {p}")
        _info(f"Loading data from {p}")
    try:
        return load_housing(path)
    except IngestionError as exc:
        _error(str(exc))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_run(args):
    """Run every code cell of a deck, then QA the results."""
    deck = _load_deck(args)
    data = _load_data(args.data) if args.data else None
    _info(f"Deck: {deck.name} ({len(deck.slides)} slides, "
          f"{sum(len(s.executable_cells()) for s in deck.slides)} code cells)")

    def progress(result):
        _info(str(result))
        if args.verbose and result.output:
            for line in result.output.rstrip().splitlines():
                print(f"      {line}", file=sys.stderr)

    runner = DeckRunner(deck, seed=args.seed, stop_on_error=args.stop_on_error,
                        on_cell=progress)
    try:
        run = runner.run(data)
    except IngestionError as exc:
        _error(str(exc))
    _info(run.summary())

    qa_result = DeckValidator(deck).validate(run)
    if qa_result.passed:
        _info(qa_result.summary())
    else:
        _warn(qa_result.summary())
        print(qa_result.report(), file=sys.stderr)
        _error("Deck run failed QA.")


def cmd_validate(args):
    """Structural QA of a deck without running it."""
    deck = _load_deck(args)
    _info(f"Validating {deck.name}")
    qa_result = DeckValidator(deck).validate()
    print(qa_result.report())
    sys.exit(0 if qa_result.passed else 1)


def cmd_inspect(args):
    """Show deck information."""
    deck = _load_deck(args)
    cells = [c for _, c in deck.all_cells()]

    print(f"Deck:        {deck.name}")
    print(f"Title:       {deck.title}")
    if deck.author:
        print(f"Author:      {deck.author}")
    print(f"Dataset:     {deck.dataset}")
    print(f"Seed:        {deck.seed}")
    print(f"Slides:      {len(deck.slides)}")
    print(f"Code cells:  {sum(c.is_executable for c in cells)}")

    if args.verbose or args.cells:
        print()
        for slide in deck.slides:
            print(f"  [{slide.index:2d}] {slide.name}"
                  f" - {slide.slide_type.value} ({slide.era.value})"
                  f" - {len(slide.cells)} cell(s)")
            if args.verbose:
                for bullet in slide.narration:
                    print(f"       * {bullet}")
            if args.cells:
                for cell in slide.cells:
                    marker = "!" if cell.expect_error else ">"
                    for line in cell.source.splitlines():
                        print(f"       {marker} {line}")
                    if cell.produces:
                        print(f"         produces: {', '.join(cell.produces)}")


def cmd_export(args):
    """Write a built-in deck as YAML."""
    deck = _load_deck(args)
    output = Path(args.output)
    save_deck(deck, output)
    _info(f"Written: {output} ({len(deck.slides)} slides)")


def cmd_train(args):
    """Tune and fit one model on the housing data."""
    data = _load_data(args.data)
    if args.outcome == "price_class" and "price_class" not in data.columns:
        data = add_price_class(data)
    # Each outcome is derived from the other, so neither may be a predictor.
    other = [c for c in ("sale_price", "price_class") if c != args.outcome]
    try:
        x, y = predictors_outcome(data, args.outcome, drop=other)
    except KeyError as exc:
        _error(str(exc.args[0]))

    try:
        control = TrainControl(
            method=args.cv,
            number=args.number,
            repeats=args.repeats,
            seed=args.seed,
            n_jobs=args.n_jobs,
        )
        _info(f"Training {args.method} on {len(x)} rows, {x.shape[1]} predictors "
              f"({control.describe()})")
        fit = train(x, y, method=args.method, preprocess=args.preprocess or None,
                    tr_control=control, tune_length=args.tune_length)
    except (ValueError, KeyError) as exc:
        _error(str(exc))

    for w in fit.warnings:
        _warn(w)
    print(fit)
    _info(f"Done in {format_duration(fit.times['everything'])}")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _info(msg):
    print(f"  {msg}", file=sys.stderr)


def _warn(msg):
    print(f"  WARNING: {msg}", file=sys.stderr)


def _error(msg):
    print(f"  ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="modeldeck",
        description="Run and check teaching decks on unified modeling interfaces.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- run ----
    run = subparsers.add_parser(
        "run",
        help="Execute every code cell of a deck and QA the results.",
    )
    _add_deck_args(run)
    run.add_argument(
        "--data",
        help="Housing data (.csv/.xlsx) to use instead of the deck's dataset.",
    )
    run.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override the deck's seed.",
    )
    run.add_argument(
        "--stop-on-error",
        action="store_true",
        default=False,
        help="Skip remaining cells after the first failure.",
    )
    run.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Show each cell's captured output.",
    )
    run.set_defaults(func=cmd_run)

    # ---- validate ----
    val = subparsers.add_parser(
        "validate",
        help="Check deck structure without running it.",
    )
    _add_deck_args(val)
    val.set_defaults(func=cmd_validate)

    # ---- inspect ----
    insp = subparsers.add_parser(
        "inspect",
        help="Show deck structure.",
    )
    _add_deck_args(insp)
    insp.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Show per-slide detail.",
    )
    insp.add_argument(
        "--cells",
        action="store_true",
        default=False,
        help="Show every cell's source.",
    )
    insp.set_defaults(func=cmd_inspect)

    # ---- export ----
    exp = subparsers.add_parser(
        "export",
        help="Write a built-in deck as YAML.",
    )
    exp.add_argument(
        "--builtin",
        choices=sorted(BUILTIN_DECKS),
        default="history",
        help="Built-in deck (default: history).",
    )
    exp.add_argument(
        "-o", "--output",
        required=True,
        help="Output YAML file path.",
    )
    exp.set_defaults(func=cmd_export)

    # ---- train ----
    tr = subparsers.add_parser(
        "train",
        help="Tune and fit one model on the housing data.",
    )
    tr.add_argument(
        "--outcome",
        required=True,
        help="Outcome column (sale_price, or price_class for classification).",
    )
    tr.add_argument(
        "--data",
        help="Housing data (.csv/.xlsx); defaults to the bundled copy.",
    )
    tr.add_argument(
        "--method",
        choices=sorted(MODEL_REGISTRY),
        default="rf",
        help="Model method (default: rf).",
    )
    tr.add_argument(
        "--cv",
        choices=RESAMPLING_METHODS,
        default="cv",
        help="Resampling method (default: cv).",
    )
    tr.add_argument(
        "--number",
        type=int,
        default=None,
        help="Folds or resampling iterations.",
    )
    tr.add_argument(
        "--repeats",
        type=int,
        default=1,
        help="Repeats for repeatedcv (default: 1).",
    )
    tr.add_argument(
        "--preprocess",
        nargs="+",
        default=None,
        metavar="METHOD",
        help="Preprocessing methods, e.g. center scale.",
    )
    tr.add_argument(
        "--tune-length",
        dest="tune_length",
        type=int,
        default=3,
        help="Size of the default tuning grid (default: 3).",
    )
    tr.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Resampling seed (default: 42).",
    )
    tr.add_argument(
        "--n-jobs",
        dest="n_jobs",
        type=int,
        default=1,
        help="Parallel workers for resampling (default: 1).",
    )
    tr.set_defaults(func=cmd_train)

    return parser


def _add_deck_args(parser):
    """Add --builtin / --deck args to a subparser."""
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--builtin",
        choices=sorted(BUILTIN_DECKS),
        default=None,
        help="Built-in deck (default: history).",
    )
    group.add_argument(
        "--deck",
        help="Path to a YAML deck file.",
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
