"""Shared pytest fixtures for Statement Sorter tests.

Provides reusable fixtures for:
- Paths to the sample bank exports under tests/fixtures/.
- project_dir: A temporary directory initialized with the standard project
  structure (config.toml, input/, output/, rules/).
- sample_transactions: Transactions covering every budget exclusion case.
- fixed_clock: A deterministic clock for rule timestamps.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from statement_sorter.config import initialize
from statement_sorter.models import CREDIT, DEBIT, Transaction

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    """Return the text of a fixture CSV."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Fixture file path helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the tests/fixtures/ directory."""
    return FIXTURES_DIR


@pytest.fixture
def monzo_csv() -> Path:
    """Monzo export: signed amounts, ISO-style headers, bank categories."""
    return FIXTURES_DIR / "monzo_sample.csv"


@pytest.fixture
def barclays_csv() -> Path:
    """Barclays export: split Money out / Money in columns, one bad row."""
    return FIXTURES_DIR / "barclays_sample.csv"


@pytest.fixture
def nationwide_csv() -> Path:
    """Nationwide export: DD MMM YYYY dates and pound-prefixed split amounts."""
    return FIXTURES_DIR / "nationwide_sample.csv"


@pytest.fixture
def chase_uk_csv() -> Path:
    """Chase UK export: a title row precedes the header."""
    return FIXTURES_DIR / "chase_uk_sample.csv"


@pytest.fixture
def generic_csv() -> Path:
    """Unknown bank with a plain Date,Description,Amount header."""
    return FIXTURES_DIR / "generic_sample.csv"


# ---------------------------------------------------------------------------
# project_dir -- temp directory with the standard project structure
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a temporary project initialized with the default config.

    The directory contains config.toml plus empty input/, output/ and
    rules/ directories.
    """
    project = tmp_path / "sorter-project"
    initialize(project)
    return project


# ---------------------------------------------------------------------------
# Transactions and clock
# ---------------------------------------------------------------------------


def make_txn(
    transaction_id: str,
    merchant: str,
    amount: str = "10.00",
    *,
    description: str = "",
    polarity: str = DEBIT,
    txn_date: datetime = datetime(2024, 3, 15),
    category: str = "other",
    user_category: str | None = None,
    is_ignored: bool = False,
    is_internal_transfer: bool = False,
) -> Transaction:
    """Build a Transaction; the description defaults to the merchant."""
    return Transaction(
        transaction_id=transaction_id,
        date=txn_date,
        amount=Decimal(amount),
        polarity=polarity,
        description=description or merchant,
        merchant=merchant,
        category=category,
        user_category=user_category,
        is_ignored=is_ignored,
        is_internal_transfer=is_internal_transfer,
    )


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    """Seven transactions, three of which count toward the budget.

    Budget relevant: t1 (groceries), t2 (dining), t7 (custom "pets").
    Excluded: t3 income, t4 internal transfer, t5 ignored, t6 credit refund.
    """
    return [
        make_txn("t1", "TESCO STORES", "45.67", category="groceries",
                 txn_date=datetime(2024, 3, 1)),
        make_txn("t2", "PRET A MANGER", "6.85", category="dining",
                 txn_date=datetime(2024, 3, 15)),
        make_txn("t3", "ACME PAYROLL", "2500.00", category="income"),
        make_txn("t4", "TRANSFER TO SAVINGS", "250.00", category="transfers",
                 is_internal_transfer=True),
        make_txn("t5", "NETFLIX", "10.99", category="entertainment", is_ignored=True),
        make_txn("t6", "AMAZON REFUND", "15.00", category="shopping", polarity=CREDIT),
        make_txn("t7", "PETS AT HOME", "32.00", category="pets",
                 txn_date=datetime(2024, 3, 31, 18, 0)),
    ]


@pytest.fixture
def fixed_clock():
    """A clock returning 09:00, 10:00, 11:00 ... on 2024-03-15."""
    times = iter(datetime(2024, 3, 15, hour) for hour in range(9, 24))
    return lambda: next(times)
