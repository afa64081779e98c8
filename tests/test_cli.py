"""Tests for the CLI entry point (modeldeck.cli).

Covers argument parsing, deck and data loading, the run, validate,
inspect, export and train commands, and error handling. Heavy steps are
patched out where the test is about wiring rather than results.
"""

import argparse
from unittest.mock import MagicMock, patch

import pytest

from modeldeck.cli import (
    _load_data,
    _load_deck,
    build_parser,
    cmd_inspect,
    cmd_run,
    cmd_train,
    main,
)
from modeldeck.deck import (
    CodeCell,
    DeckSchema,
    SlideSchema,
    SlideType,
    build_history_deck,
    load_deck,
    save_deck,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def parser():
    return build_parser()


@pytest.fixture
def tiny_deck():
    return DeckSchema(
        name="tiny",
        title="Tiny",
        slides=[
            SlideSchema(index=0, name="rows", title="Rows", slide_type=SlideType.CODE,
                        cells=[CodeCell(source="n = len(housing)\nprint(n)",
                                        produces=["n"])]),
        ],
    )


@pytest.fixture
def tiny_deck_path(tiny_deck, tmp_path):
    path = tmp_path / "tiny.yaml"
    save_deck(tiny_deck, path)
    return path


@pytest.fixture
def qa_pass():
    """A passing QAResult mock."""
    qa = MagicMock()
    qa.passed = True
    qa.summary.return_value = "QA PASS: 0 error(s), 0 warning(s)"
    return qa


@pytest.fixture
def qa_fail():
    """A failing QAResult mock."""
    qa = MagicMock()
    qa.passed = False
    qa.summary.return_value = "QA FAIL: 1 error(s), 0 warning(s)"
    qa.report.return_value = (
        "QA FAIL: 1 error(s), 0 warning(s)\n"
        "  [ERROR] slide 0 (rows) / cell 0: NameError: name 'x' is not defined"
    )
    return qa


def run_args(**overrides):
    args = dict(builtin="history", deck=None, data=None, seed=None,
                stop_on_error=False, verbose=False)
    args.update(overrides)
    return argparse.Namespace(**args)


# ===================================================================
# Parser tests
# ===================================================================

class TestParser:
    """Argument parsing tests."""

    def test_run_defaults(self, parser):
        args = parser.parse_args(["run"])
        assert args.command == "run"
        assert args.builtin is None
        assert args.deck is None
        assert args.seed is None
        assert args.stop_on_error is False
        assert args.verbose is False

    def test_run_flags(self, parser):
        args = parser.parse_args([
            "run", "--deck", "d.yaml", "--data", "h.csv", "--seed", "7",
            "--stop-on-error", "-v",
        ])
        assert args.deck == "d.yaml"
        assert args.data == "h.csv"
        assert args.seed == 7
        assert args.stop_on_error is True
        assert args.verbose is True

    def test_deck_and_builtin_mutually_exclusive(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["run", "--builtin", "history", "--deck", "d.yaml"])
        with pytest.raises(SystemExit):
            parser.parse_args(["validate", "--deck", "d.yaml", "--builtin", "history"])

    def test_unknown_builtin(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["validate", "--builtin", "future"])

    def test_inspect_flags(self, parser):
        args = parser.parse_args(["inspect", "-v", "--cells"])
        assert args.verbose is True
        assert args.cells is True

    def test_export_requires_output(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["export"])

    def test_train_defaults(self, parser):
        args = parser.parse_args(["train", "--outcome", "sale_price"])
        assert args.method == "rf"
        assert args.cv == "cv"
        assert args.number is None
        assert args.repeats == 1
        assert args.preprocess is None
        assert args.tune_length == 3
        assert args.seed == 42
        assert args.n_jobs == 1

    def test_train_options(self, parser):
        args = parser.parse_args([
            "train", "--outcome", "price_class", "--method", "glm",
            "--cv", "repeatedcv", "--number", "5", "--repeats", "2",
            "--preprocess", "center", "scale", "--n-jobs", "4",
        ])
        assert args.method == "glm"
        assert args.preprocess == ["center", "scale"]
        assert args.n_jobs == 4

    def test_train_requires_outcome(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["train"])

    def test_train_method_choices(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["train", "--outcome", "sale_price", "--method", "xgb"])

    def test_train_cv_choices(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["train", "--outcome", "sale_price", "--cv", "kfold"])

    def test_no_command_fails(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args([])


# ===================================================================
# Loading tests
# ===================================================================

class TestLoadDeck:
    """Tests for _load_deck()."""

    def test_builtin(self):
        deck = _load_deck(argparse.Namespace(builtin="history", deck=None))
        assert deck.name == "caret_to_tidymodels"

    def test_no_selection_means_history(self):
        deck = _load_deck(argparse.Namespace(builtin=None, deck=None))
        assert deck.name == "caret_to_tidymodels"

    def test_yaml(self, tiny_deck, tiny_deck_path):
        deck = _load_deck(argparse.Namespace(builtin="history", deck=str(tiny_deck_path)))
        assert deck == tiny_deck

    def test_missing_yaml_exits(self):
        with pytest.raises(SystemExit):
            _load_deck(argparse.Namespace(builtin="history", deck="/nonexistent/deck.yaml"))

    def test_invalid_yaml_exits(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("just a string\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            _load_deck(argparse.Namespace(builtin="history", deck=str(path)))

    def test_unknown_builtin_exits(self):
        with pytest.raises(SystemExit):
            _load_deck(argparse.Namespace(builtin="unknown", deck=None))


class TestLoadData:
    """Tests for _load_data()."""

    def test_bundled(self):
        assert len(_load_data(None)) == 400

    def test_missing_file_exits(self):
        with pytest.raises(SystemExit):
            _load_data("/nonexistent/housing.csv")

    def test_wrong_schema_exits(self, tmp_path):
        path = tmp_path / "other.csv"
        path.write_text("a,b\n1,2\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            _load_data(str(path))


# ===================================================================
# Command tests
# ===================================================================

class TestCmdRun:
    """Tests for cmd_run()."""

    def test_real_run_passes(self, tiny_deck_path, capsys):
        main(["run", "--deck", str(tiny_deck_path), "-v"])
        err = capsys.readouterr().err
        assert "[OK] slide 0 rows[0]" in err
        assert "      400" in err
        assert "QA PASS" in err

    def test_failing_cell_exits(self, tmp_path):
        deck = DeckSchema(name="broken", title="Broken", slides=[
            SlideSchema(index=0, name="bad", title="Bad", slide_type=SlideType.CODE,
                        cells=[CodeCell(source="y = x + 1")]),
        ])
        path = tmp_path / "broken.yaml"
        save_deck(deck, path)
        with pytest.raises(SystemExit) as exc:
            main(["run", "--deck", str(path)])
        assert exc.value.code == 1

    def test_wiring(self, tiny_deck, qa_pass):
        with patch("modeldeck.cli._load_deck", return_value=tiny_deck), \
             patch("modeldeck.cli.DeckRunner") as MockRunner, \
             patch("modeldeck.cli.DeckValidator") as MockValidator:
            MockValidator.return_value.validate.return_value = qa_pass
            cmd_run(run_args(seed=3, stop_on_error=True))

        _, kwargs = MockRunner.call_args
        assert kwargs["seed"] == 3
        assert kwargs["stop_on_error"] is True
        MockRunner.return_value.run.assert_called_once_with(None)
        MockValidator.return_value.validate.assert_called_once_with(
            MockRunner.return_value.run.return_value)

    def test_qa_fail_exits(self, tiny_deck, qa_fail, capsys):
        with patch("modeldeck.cli._load_deck", return_value=tiny_deck), \
             patch("modeldeck.cli.DeckRunner"), \
             patch("modeldeck.cli.DeckValidator") as MockValidator:
            MockValidator.return_value.validate.return_value = qa_fail
            with pytest.raises(SystemExit):
                cmd_run(run_args())
        err = capsys.readouterr().err
        assert "NameError" in err
        assert "ERROR: Deck run failed QA." in err

    def test_data_override(self, tiny_deck, qa_pass, housing):
        with patch("modeldeck.cli._load_deck", return_value=tiny_deck), \
             patch("modeldeck.cli._load_data", return_value=housing) as mock_load, \
             patch("modeldeck.cli.DeckRunner") as MockRunner, \
             patch("modeldeck.cli.DeckValidator") as MockValidator:
            MockValidator.return_value.validate.return_value = qa_pass
            cmd_run(run_args(data="other.csv"))
        mock_load.assert_called_once_with("other.csv")
        MockRunner.return_value.run.assert_called_once_with(housing)


class TestCmdValidate:
    """Tests for the validate command."""

    def test_builtin_passes(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["validate"])
        assert exc.value.code == 0
        assert "QA PASS" in capsys.readouterr().out

    def test_structural_failure(self, tmp_path, capsys):
        deck = DeckSchema(name="bad", title="Bad", slides=[
            SlideSchema(index=0, name="s", title="S", slide_type=SlideType.CODE,
                        cells=[CodeCell(source="x = (")]),
        ])
        path = tmp_path / "bad.yaml"
        save_deck(deck, path)
        with pytest.raises(SystemExit) as exc:
            main(["validate", "--deck", str(path)])
        assert exc.value.code == 1
        assert "does not compile" in capsys.readouterr().out


class TestCmdInspect:
    """Tests for cmd_inspect()."""

    def test_summary(self, capsys):
        main(["inspect"])
        out = capsys.readouterr().out
        assert "Deck:        caret_to_tidymodels" in out
        assert f"Slides:      {len(build_history_deck().slides)}" in out
        assert "Code cells:  19" in out
        assert "[ 0]" not in out

    def test_verbose(self, capsys):
        main(["inspect", "-v"])
        out = capsys.readouterr().out
        assert "[ 0] title - title (history) - 0 cell(s)" in out
        assert "       * Live code on a 400-row housing table" in out

    def test_cells(self, tiny_deck, capsys):
        with patch("modeldeck.cli._load_deck", return_value=tiny_deck):
            cmd_inspect(argparse.Namespace(verbose=False, cells=True))
        out = capsys.readouterr().out
        assert "       > n = len(housing)" in out
        assert "         produces: n" in out

    def test_expect_error_marker(self, capsys):
        main(["inspect", "--cells"])
        assert "       ! bad_ctrl = TrainControl(" in capsys.readouterr().out


class TestCmdExport:
    """Tests for the export command."""

    def test_writes_yaml(self, tmp_path):
        output = tmp_path / "out" / "history.yaml"
        main(["export", "-o", str(output)])
        assert load_deck(output) == build_history_deck()


class TestCmdTrain:
    """Tests for cmd_train()."""

    def test_regression(self, capsys):
        main(["train", "--outcome", "sale_price", "--method", "lm", "--number", "3"])
        captured = capsys.readouterr()
        assert "Linear Regression" in captured.out
        assert "RMSE was used to select the optimal model" in captured.out
        assert "Training lm on 400 rows" in captured.err
        assert "Done in" in captured.err

    def test_price_class_derived(self, housing):
        with patch("modeldeck.cli._load_data", return_value=housing), \
             patch("modeldeck.cli.train") as mock_train:
            mock_train.return_value.warnings = ["Model fit failed for Fold1"]
            mock_train.return_value.times = {"everything": 0.1}
            cmd_train(build_parser().parse_args(
                ["train", "--outcome", "price_class", "--method", "glm"]))
        x, y = mock_train.call_args[0]
        assert y.name == "price_class"
        assert "sale_price" not in x.columns
        assert "price_class" not in x.columns

    def test_sale_price_drops_price_class(self, homes):
        with patch("modeldeck.cli._load_data", return_value=homes), \
             patch("modeldeck.cli.train") as mock_train:
            mock_train.return_value.warnings = []
            mock_train.return_value.times = {"everything": 0.1}
            cmd_train(build_parser().parse_args(["train", "--outcome", "sale_price"]))
        x, _ = mock_train.call_args[0]
        assert "price_class" not in x.columns

    def test_warnings_printed(self, housing, capsys):
        with patch("modeldeck.cli._load_data", return_value=housing), \
             patch("modeldeck.cli.train") as mock_train:
            mock_train.return_value.warnings = ["Model fit failed for Fold1"]
            mock_train.return_value.times = {"everything": 0.1}
            cmd_train(build_parser().parse_args(["train", "--outcome", "sale_price"]))
        assert "WARNING: Model fit failed for Fold1" in capsys.readouterr().err

    def test_unknown_outcome_exits(self, housing):
        with patch("modeldeck.cli._load_data", return_value=housing):
            with pytest.raises(SystemExit):
                cmd_train(build_parser().parse_args(["train", "--outcome", "nope"]))

    def test_train_error_exits(self, housing, capsys):
        with patch("modeldeck.cli._load_data", return_value=housing), \
             patch("modeldeck.cli.train", side_effect=ValueError("Wrong model type")):
            with pytest.raises(SystemExit):
                cmd_train(build_parser().parse_args(
                    ["train", "--outcome", "price_class", "--method", "lm"]))
        assert "ERROR: Wrong model type" in capsys.readouterr().err
