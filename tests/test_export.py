"""Tests for CSV export, reading exports back, and the summary printer."""

from __future__ import annotations

import csv
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from statement_sorter.export import CSV_COLUMNS, export, load_transactions, print_summary
from statement_sorter.models import CSVParseResult, ImportResult

from conftest import make_txn


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


class TestExport:
    """Tests for writing transactions to CSV."""

    def test_writes_file(self, tmp_path: Path, sample_transactions):
        path = export(sample_transactions, tmp_path / "output", "march")
        assert path == tmp_path / "output" / "march.csv"
        assert path.exists()

    def test_header(self, tmp_path: Path, sample_transactions):
        path = export(sample_transactions, tmp_path, "march")
        with open(path, newline="", encoding="utf-8") as f:
            assert next(csv.reader(f)) == CSV_COLUMNS

    def test_sorted_by_date_then_amount(self, tmp_path: Path):
        txns = [
            make_txn("late", "B", "1.00", txn_date=datetime(2024, 3, 20)),
            make_txn("big", "A", "30.00", txn_date=datetime(2024, 3, 1)),
            make_txn("small", "A", "3.00", txn_date=datetime(2024, 3, 1)),
        ]
        path = export(txns, tmp_path, "sorted")
        with open(path, newline="", encoding="utf-8") as f:
            ids = [row["transaction_id"] for row in csv.DictReader(f)]
        assert ids == ["small", "big", "late"]

    def test_value_formatting(self, tmp_path: Path):
        txn = make_txn("a", "TESCO", "45.67", is_internal_transfer=True)
        txn.confidence = 0.9
        txn.original_category = "groceries"
        path = export([txn], tmp_path, "fmt")
        with open(path, newline="", encoding="utf-8") as f:
            row = next(csv.DictReader(f))
        assert row["date"] == "2024-03-15T00:00:00"
        assert row["amount"] == "45.67"
        assert row["confidence"] == "0.90"
        assert row["is_internal_transfer"] == "True"
        assert row["is_ignored"] == "False"
        assert row["user_category"] == ""

    def test_overwrites(self, tmp_path: Path, sample_transactions):
        export(sample_transactions, tmp_path, "march")
        path = export(sample_transactions[:1], tmp_path, "march")
        assert len(load_transactions(path)) == 1


# ---------------------------------------------------------------------------
# load_transactions
# ---------------------------------------------------------------------------


class TestLoadTransactions:
    def test_round_trip(self, tmp_path: Path, sample_transactions):
        path = export(sample_transactions, tmp_path, "march")
        loaded = load_transactions(path)
        by_id = {t.transaction_id: t for t in loaded}
        assert set(by_id) == {t.transaction_id for t in sample_transactions}
        for original in sample_transactions:
            assert by_id[original.transaction_id] == original

    def test_user_fields_read_back(self, tmp_path: Path):
        txn = make_txn("a", "STARBUCKS", "4.20", user_category="dining", is_ignored=True)
        txn.bank_category = "Eating out"
        path = export([txn], tmp_path, "user")
        loaded = load_transactions(path)[0]
        assert loaded.user_category == "dining"
        assert loaded.is_ignored is True
        assert loaded.bank_category == "Eating out"
        assert loaded.amount == Decimal("4.20")

    def test_missing_column(self, tmp_path: Path):
        path = tmp_path / "bad.csv"
        path.write_text("transaction_id,date\nabc,2024-03-15T00:00:00\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_transactions(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_transactions(tmp_path / "nope.csv")


# ---------------------------------------------------------------------------
# print_summary
# ---------------------------------------------------------------------------


class TestPrintSummary:
    def test_sections(self, capsys, sample_transactions):
        result = ImportResult(
            transactions=sample_transactions,
            parse_results=[CSVParseResult(format_label="monzo", rows=[])],
            warnings=["Removed 1 duplicate transaction(s)"],
            errors=['Row 6: Invalid amount "abc"'],
            spending={"groceries": Decimal("1045.67"), "dining": Decimal("6.85")},
        )
        print_summary(result, "march")
        out = capsys.readouterr().out

        assert "== Import Summary: march ==" in out
        assert "monzo (0 rows)" in out
        assert "7 transactions (1 credits, 1 internal transfers)" in out
        assert "Spending by category:" in out
        assert "£1,045.67" in out
        spending = out.index("Spending by category:")
        assert out.index("groceries:", spending) < out.index("dining:", spending)
        assert "Warnings: 1" in out
        assert 'Row 6: Invalid amount "abc"' in out

    def test_empty_result(self, capsys):
        print_summary(ImportResult(), "empty")
        out = capsys.readouterr().out
        assert "Formats:  (none)" in out
        assert "0 transactions" in out
        assert "Spending by category:" not in out
        assert "Errors" not in out
