"""Tests for the Click CLI layer.

Uses Click's CliRunner to invoke commands without spawning subprocesses.
Most tests run the real commands inside an initialized temporary project;
a few patch the business logic modules to check error handling.
"""

from __future__ import annotations

import csv
import shutil
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from statement_sorter import __version__
from statement_sorter.categorizer import rule_id_for
from statement_sorter.cli import cli
from statement_sorter.rule_store import TomlRuleStore

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def in_project(project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An initialized project that is also the working directory."""
    monkeypatch.chdir(project_dir)
    return project_dir


def _copy_input(project: Path, fixture: Path) -> str:
    """Copy a fixture into the project's input/ dir; return its relative path."""
    target = project / "input" / fixture.name
    shutil.copy2(fixture, target)
    return str(Path("input") / fixture.name)


def _rewrite_category(source: Path, target: Path, merchant: str, category: str) -> None:
    """Copy an exported CSV, changing the category of one merchant's rows."""
    _rewrite_column(source, target, merchant, "category", category)


def _rewrite_column(source: Path, target: Path, merchant: str, column: str, value: str) -> None:
    """Copy an exported CSV, setting *column* on one merchant's rows."""
    with open(source, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames
        rows = list(reader)
    for row in rows:
        if row["merchant"] == merchant:
            row[column] = value
    with open(target, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


# ---------------------------------------------------------------------------
# Help and version
# ---------------------------------------------------------------------------


class TestHelp:
    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("import", "learn", "rules", "banks", "init"):
            assert command in result.output

    def test_import_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["import", "--help"])
        assert result.exit_code == 0
        assert "--bank" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert f"statement-sorter, version {__version__}" in result.output


# ---------------------------------------------------------------------------
# init / banks
# ---------------------------------------------------------------------------


class TestInit:
    def test_init_creates_structure(self, runner: CliRunner, tmp_path: Path) -> None:
        target = tmp_path / "new-project"
        result = runner.invoke(cli, ["init", "--dir", str(target)], catch_exceptions=False)
        assert result.exit_code == 0
        assert "Initialized statement sorter project" in result.output
        assert str(target.resolve()) in result.output
        assert (target / "config.toml").is_file()
        assert (target / "rules").is_dir()

    def test_init_idempotent(self, runner: CliRunner, tmp_path: Path) -> None:
        runner.invoke(cli, ["init", "--dir", str(tmp_path)])
        config_path = tmp_path / "config.toml"
        config_path.write_text('[general]\nuser = "alice"\n', encoding="utf-8")

        result = runner.invoke(cli, ["init", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert config_path.read_text(encoding="utf-8") == '[general]\nuser = "alice"\n'


class TestBanks:
    def test_lists_every_format(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["banks"])
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0].split()[0] == "monzo"
        assert lines[-1].split()[0] == "generic"
        assert any("Chase UK" in line for line in lines)


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------


class TestImport:
    def test_import_fixture(self, runner: CliRunner, in_project: Path, monzo_csv: Path) -> None:
        rel = _copy_input(in_project, monzo_csv)
        result = runner.invoke(cli, ["import", rel], catch_exceptions=False)

        assert result.exit_code == 0, result.output
        assert "== Import Summary: monzo_sample ==" in result.output
        assert "monzo (4 rows)" in result.output
        assert (in_project / "output" / "monzo_sample.csv").is_file()

    def test_import_multiple_files_with_name(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path, barclays_csv: Path
    ) -> None:
        files = [_copy_input(in_project, monzo_csv), _copy_input(in_project, barclays_csv)]
        result = runner.invoke(cli, ["import", *files, "--name", "april"])

        assert result.exit_code == 0, result.output
        assert (in_project / "output" / "april.csv").is_file()
        assert "barclays_sample.csv: Row 6: Missing amount" in result.output

    def test_forced_bank(self, runner: CliRunner, in_project: Path) -> None:
        path = in_project / "input" / "tsb.csv"
        path.write_text("Date,Description,Debit,Credit\n01/03/2024,REFUND SHOP,,12.00\n")
        result = runner.invoke(cli, ["import", "input/tsb.csv", "--bank", "tsb"])
        assert result.exit_code == 0, result.output
        assert "tsb (1 rows)" in result.output

    def test_unknown_bank(self, runner: CliRunner, in_project: Path, generic_csv: Path) -> None:
        rel = _copy_input(in_project, generic_csv)
        result = runner.invoke(cli, ["import", rel, "--bank", "nope"])
        assert result.exit_code == 1
        assert "Unknown bank format 'nope'" in result.output

    def test_nothing_imported(self, runner: CliRunner, in_project: Path) -> None:
        (in_project / "input" / "bad.csv").write_text("A,B,C\nfoo,bar,baz\n")
        result = runner.invoke(cli, ["import", "input/bad.csv"])
        assert result.exit_code == 1
        assert "No transactions could be imported" in result.output
        assert "Date, Amount, and Description" in result.output
        assert not (in_project / "output" / "bad.csv").exists()

    def test_missing_config(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, generic_csv: Path
    ) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli, ["import", str(generic_csv)])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "sorter init" in result.output

    def test_missing_input_file(self, runner: CliRunner, in_project: Path) -> None:
        result = runner.invoke(cli, ["import", "input/nope.csv"])
        assert result.exit_code != 0

    @patch("statement_sorter.pipeline.run")
    def test_pipeline_error(
        self, mock_run: MagicMock, runner: CliRunner, in_project: Path, generic_csv: Path
    ) -> None:
        """Unexpected pipeline failures are reported, not raised."""
        mock_run.side_effect = RuntimeError("boom")
        rel = _copy_input(in_project, generic_csv)
        result = runner.invoke(cli, ["import", rel])
        assert result.exit_code == 1
        assert "Error running import: boom" in result.output


# ---------------------------------------------------------------------------
# learn / rules
# ---------------------------------------------------------------------------


class TestLearnAndRules:
    """The correct-then-learn round trip and rule management."""

    def _import_monzo(self, runner: CliRunner, project: Path, monzo_csv: Path) -> Path:
        rel = _copy_input(project, monzo_csv)
        result = runner.invoke(cli, ["import", rel], catch_exceptions=False)
        assert result.exit_code == 0, result.output
        return project / "output" / "monzo_sample.csv"

    def test_learn_creates_rule(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path
    ) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        corrected = in_project / "corrected.csv"
        _rewrite_category(exported, corrected, "Pret A Manger", "dining")

        result = runner.invoke(
            cli,
            ["learn", "--original", str(exported), "--corrected", str(corrected), "--verbose"],
            catch_exceptions=False,
        )

        assert result.exit_code == 0, result.output
        assert "== Learn Summary ==" in result.output
        assert "Recategorized:      1" in result.output
        assert '"Pret A Manger" -> dining' in result.output

        rules = TomlRuleStore(in_project / "rules").load("default")
        assert [(r.merchant_pattern, r.category) for r in rules] == [("pret a manger", "dining")]

    def test_learned_rule_used_on_next_import(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path
    ) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        corrected = in_project / "corrected.csv"
        _rewrite_category(exported, corrected, "Pret A Manger", "dining")
        runner.invoke(cli, ["learn", "--original", str(exported), "--corrected", str(corrected)])

        self._import_monzo(runner, in_project, monzo_csv)
        with open(exported, newline="", encoding="utf-8") as f:
            pret = next(r for r in csv.DictReader(f) if r["merchant"] == "Pret A Manger")
        assert pret["category"] == "dining"
        assert pret["confidence"] == "0.95"

    def test_learn_writes_ignore_flags_back(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path
    ) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        corrected = in_project / "corrected.csv"
        _rewrite_column(exported, corrected, "Pret A Manger", "is_ignored", "True")

        result = runner.invoke(
            cli, ["learn", "--original", str(exported), "--corrected", str(corrected)]
        )

        assert result.exit_code == 0, result.output
        assert "Ignore toggled:     1" in result.output
        assert f"Updated:            {exported}" in result.output
        with open(exported, newline="", encoding="utf-8") as f:
            flags = {r["merchant"]: r["is_ignored"] for r in csv.DictReader(f)}
        assert flags["Pret A Manger"] == "True"
        assert all(v == "False" for m, v in flags.items() if m != "Pret A Manger")

    def test_learn_writes_user_category_back(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path
    ) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        corrected = in_project / "corrected.csv"
        _rewrite_category(exported, corrected, "Pret A Manger", "dining")
        runner.invoke(cli, ["learn", "--original", str(exported), "--corrected", str(corrected)])

        with open(exported, newline="", encoding="utf-8") as f:
            pret = next(r for r in csv.DictReader(f) if r["merchant"] == "Pret A Manger")
        assert pret["category"] == "dining"
        assert pret["user_category"] == "dining"

    def test_learn_no_changes(self, runner: CliRunner, in_project: Path, monzo_csv: Path) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        result = runner.invoke(
            cli, ["learn", "--original", str(exported), "--corrected", str(exported)]
        )
        assert result.exit_code == 0
        assert "Recategorized:      0" in result.output
        assert "Rules on file:      0" in result.output

    def test_learn_missing_column(self, runner: CliRunner, in_project: Path) -> None:
        bad = in_project / "bad.csv"
        bad.write_text("transaction_id,date\nabc,2024-03-15T00:00:00\n")
        result = runner.invoke(cli, ["learn", "--original", str(bad), "--corrected", str(bad)])
        assert result.exit_code == 1
        assert "missing required column" in result.output

    def test_learn_missing_required_options(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["learn"])
        assert result.exit_code != 0

    def test_rules_list_empty(self, runner: CliRunner, in_project: Path) -> None:
        result = runner.invoke(cli, ["rules", "list"])
        assert result.exit_code == 0
        assert "No learned rules." in result.output

    def test_rules_list_and_delete(
        self, runner: CliRunner, in_project: Path, monzo_csv: Path
    ) -> None:
        exported = self._import_monzo(runner, in_project, monzo_csv)
        corrected = in_project / "corrected.csv"
        _rewrite_category(exported, corrected, "Pret A Manger", "dining")
        runner.invoke(cli, ["learn", "--original", str(exported), "--corrected", str(corrected)])

        rule_id = rule_id_for("pret a manger")
        listed = runner.invoke(cli, ["rules", "list"])
        assert listed.exit_code == 0
        assert rule_id in listed.output
        assert "pret a manger" in listed.output

        deleted = runner.invoke(cli, ["rules", "delete", rule_id])
        assert deleted.exit_code == 0
        assert f"Deleted rule {rule_id}" in deleted.output
        assert TomlRuleStore(in_project / "rules").load("default") == []

    def test_rules_delete_unknown(self, runner: CliRunner, in_project: Path) -> None:
        result = runner.invoke(cli, ["rules", "delete", "rule_000000000000"])
        assert result.exit_code == 1
        assert "No rule with id 'rule_000000000000'" in result.output
