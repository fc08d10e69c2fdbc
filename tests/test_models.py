"""Tests for statement_sorter.models -- dataclass construction and ID generation."""

import dataclasses
from datetime import datetime
from decimal import Decimal

import pytest

from statement_sorter.models import (
    DATE_DMY,
    DEBIT,
    SIGNED,
    AppConfig,
    BankFormatProfile,
    CSVParseResult,
    DetectedColumns,
    ImportResult,
    Transaction,
    generate_transaction_id,
)

# ---------------------------------------------------------------------------
# generate_transaction_id
# ---------------------------------------------------------------------------


def _id_kwargs(**overrides):
    kwargs = dict(
        source="monzo",
        txn_date=datetime(2024, 3, 15),
        merchant="TESCO STORES",
        amount=Decimal("45.67"),
        polarity=DEBIT,
        row_ordinal=0,
    )
    kwargs.update(overrides)
    return kwargs


class TestGenerateTransactionId:
    """Tests for deterministic transaction ID generation."""

    def test_basic_determinism(self):
        """Same inputs always produce the same ID."""
        assert generate_transaction_id(**_id_kwargs()) == generate_transaction_id(**_id_kwargs())

    def test_id_is_12_hex_chars(self):
        """ID should be exactly 12 lowercase hex characters."""
        tid = generate_transaction_id(**_id_kwargs())
        assert len(tid) == 12
        assert all(c in "0123456789abcdef" for c in tid)

    def test_row_ordinal_distinguishes_identical_rows(self):
        """Two identical purchases on the same day get different IDs."""
        assert generate_transaction_id(**_id_kwargs(row_ordinal=0)) != generate_transaction_id(
            **_id_kwargs(row_ordinal=1)
        )

    def test_merchant_case_and_whitespace_ignored(self):
        """Merchant is stripped and uppercased before hashing."""
        assert generate_transaction_id(**_id_kwargs(merchant="  tesco stores ")) == (
            generate_transaction_id(**_id_kwargs())
        )

    def test_polarity_changes_id(self):
        """A refund and a purchase of the same amount are different rows."""
        assert generate_transaction_id(**_id_kwargs(polarity="credit")) != generate_transaction_id(
            **_id_kwargs()
        )


# ---------------------------------------------------------------------------
# Dataclass defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    """Default values downstream code relies on."""

    def test_transaction_defaults(self):
        txn = Transaction(
            transaction_id="abc",
            date=datetime(2024, 3, 15),
            amount=Decimal("1.00"),
            polarity=DEBIT,
            description="X",
            merchant="X",
        )
        assert txn.category == "other"
        assert txn.confidence == 0.0
        assert txn.is_ignored is False
        assert txn.is_internal_transfer is False
        assert txn.original_category is None
        assert txn.user_category is None

    def test_parse_result_defaults(self):
        result = CSVParseResult()
        assert result.rows == []
        assert result.errors == []
        assert result.error_count == 0
        assert result.detected_columns == DetectedColumns()
        assert result.format_label == "unknown"

    def test_mutable_defaults_not_shared(self):
        a, b = ImportResult(), ImportResult()
        a.warnings.append("x")
        assert b.warnings == []

    def test_app_config_defaults(self):
        config = AppConfig()
        assert config.user == "default"
        assert config.round_amount_transfers is False
        assert config.income_threshold == Decimal("500")
        assert config.fuzzy_threshold == 0.7


class TestBankFormatProfile:
    """Profiles are immutable records."""

    def test_frozen(self):
        profile = BankFormatProfile(
            id="x", name="X", date_columns=("Date",), description_columns=("Description",)
        )
        with pytest.raises(dataclasses.FrozenInstanceError):
            profile.name = "Y"  # type: ignore[misc]

    def test_defaults(self):
        profile = BankFormatProfile(
            id="x", name="X", date_columns=("Date",), description_columns=("Description",)
        )
        assert profile.amount_format == SIGNED
        assert profile.date_format == DATE_DMY
        assert profile.skip_rows == 0
        assert profile.signed_credits is True
