"""Bank format registry.

An ordered catalogue of known bank CSV export layouts.  Each entry is an
immutable :class:`~statement_sorter.models.BankFormatProfile`; detection is a
pure function over the catalogue:

1. A profile is a *candidate* when a majority of its distinctive header
   fragments appear in the first three lines of the file, or when its date
   pattern matches the first data row.
2. A candidate is *accepted* only if its date, description and amount (or
   debit/credit) aliases all resolve against an actual header row.

The first accepted profile wins.  ``GENERIC_FORMAT`` is never detected; it
is the permissive last-resort profile used by the parse orchestrator.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence

from statement_sorter.detector import split_line
from statement_sorter.models import (
    DATE_DMON,
    DATE_DMY,
    DATE_ISO,
    SIGNED,
    SPLIT,
    UNSIGNED_WITH_TYPE,
    BankColumns,
    BankFormatProfile,
)

logger = logging.getLogger(__name__)

# Number of leading lines inspected for bank signatures and header rows.
_SCAN_LINES = 3

# Aliases shorter than this only match a header exactly.
_MIN_SUBSTRING_ALIAS = 4

# Header fragments that disqualify a column from holding money values.
_NON_MONEY_HEADERS = ("date", "balance")


BANK_FORMATS: tuple[BankFormatProfile, ...] = (
    BankFormatProfile(
        id="monzo",
        name="Monzo",
        date_columns=("Date", "Created"),
        description_columns=("Name", "Description"),
        amount_columns=("Amount",),
        category_columns=("Category",),
        date_format=DATE_ISO,
        amount_format=SIGNED,
        detect_headers=("Transaction ID", "Emoji"),
        date_pattern=r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}",
    ),
    BankFormatProfile(
        id="starling",
        name="Starling",
        date_columns=("Date",),
        description_columns=("Counter Party", "Reference"),
        amount_columns=("Amount (GBP)", "Amount"),
        category_columns=("Spending Category",),
        amount_format=SIGNED,
        detect_headers=("Counter Party", "Amount (GBP)"),
    ),
    BankFormatProfile(
        id="barclays",
        name="Barclays",
        date_columns=("Date", "Transaction Date"),
        description_columns=("Description", "Memo"),
        amount_columns=("Amount",),
        debit_columns=("Debit Amount", "Money out"),
        credit_columns=("Credit Amount", "Money in"),
        category_columns=("Category",),
        amount_format=SPLIT,
        detect_headers=("Subcategory", "Money out", "Money in"),
    ),
    BankFormatProfile(
        id="hsbc",
        name="HSBC",
        date_columns=("Date", "Transaction Date"),
        description_columns=("Description", "Transaction Description"),
        amount_columns=("Amount",),
        debit_columns=("Paid out",),
        credit_columns=("Paid in",),
        amount_format=SPLIT,
        detect_headers=("Paid out", "Paid in"),
    ),
    BankFormatProfile(
        id="lloyds",
        name="Lloyds",
        date_columns=("Transaction Date", "Date"),
        description_columns=("Transaction Description", "Description"),
        debit_columns=("Debit Amount",),
        credit_columns=("Credit Amount",),
        type_columns=("Transaction Type",),
        amount_format=SPLIT,
        detect_headers=("Transaction Type", "Sort Code"),
    ),
    BankFormatProfile(
        id="natwest",
        name="NatWest",
        date_columns=("Date",),
        description_columns=("Description",),
        amount_columns=("Value",),
        debit_columns=("Debit",),
        credit_columns=("Credit",),
        type_columns=("Type",),
        amount_format=SIGNED,
        detect_headers=("Account Number", "Value"),
    ),
    BankFormatProfile(
        id="santander",
        name="Santander",
        date_columns=("Date", "Transaction Date"),
        description_columns=("Description",),
        amount_columns=("Amount",),
        debit_columns=("Money Out", "Debit"),
        credit_columns=("Money In", "Credit"),
        amount_format=SPLIT,
        detect_headers=("Money In", "Money Out"),
    ),
    BankFormatProfile(
        id="nationwide",
        name="Nationwide",
        date_columns=("Date",),
        description_columns=("Transactions", "Description"),
        debit_columns=("Paid out",),
        credit_columns=("Paid in",),
        date_format=DATE_DMON,
        amount_format=SPLIT,
        detect_headers=("Paid out", "Paid in", "Transactions"),
    ),
    BankFormatProfile(
        id="halifax",
        name="Halifax",
        date_columns=("Transaction Date", "Date"),
        description_columns=("Transaction Description", "Description"),
        debit_columns=("Debit Amount",),
        credit_columns=("Credit Amount",),
        type_columns=("Transaction Type",),
        amount_format=SPLIT,
        detect_headers=("Transaction Type", "Account Number"),
    ),
    BankFormatProfile(
        id="tsb",
        name="TSB",
        date_columns=("Date", "Transaction Date"),
        description_columns=("Description",),
        amount_columns=("Amount",),
        debit_columns=("Debit",),
        credit_columns=("Credit",),
        amount_format=SPLIT,
        detect_headers=("Sort Code", "Account Number"),
    ),
    BankFormatProfile(
        id="revolut",
        name="Revolut",
        date_columns=("Completed Date", "Started Date"),
        description_columns=("Description",),
        amount_columns=("Amount",),
        type_columns=("Type",),
        amount_format=SIGNED,
        detect_headers=("Completed Date", "Product", "Started Date"),
    ),
    BankFormatProfile(
        id="chase_uk",
        name="Chase UK",
        date_columns=("Date", "Transaction Date", "Trans. Date", "Posting Date"),
        description_columns=(
            "Transaction Description",
            "Description",
            "Merchant",
            "Details",
        ),
        amount_columns=("Amount", "Transaction Amount"),
        category_columns=("Transaction Type", "Category"),
        date_format=DATE_DMON,
        amount_format=SIGNED,
        skip_rows=1,
        detect_headers=(
            "Transaction Description",
            "Transaction Type",
            "Transactions for period",
        ),
    ),
)

GENERIC_FORMAT = BankFormatProfile(
    id="generic",
    name="Other Bank",
    date_columns=(
        "Date",
        "Transaction Date",
        "Trans Date",
        "Trans. Date",
        "Posting Date",
        "Post Date",
        "Txn Date",
        "Value Date",
    ),
    description_columns=(
        "Description",
        "Transaction Description",
        "Details",
        "Narrative",
        "Particulars",
        "Payee",
        "Merchant",
        "Counter Party",
        "Counterparty",
        "Name",
        "Memo",
        "Reference",
        "Transaction",
    ),
    amount_columns=("Amount", "Transaction Amount", "Value", "Sum", "Total", "Amt"),
    debit_columns=("Debit", "Debit Amount", "Money Out", "Paid Out", "Withdrawal", "Out"),
    credit_columns=("Credit", "Credit Amount", "Money In", "Paid In", "Deposit", "In"),
    category_columns=("Category", "Class"),
    type_columns=("Transaction Type", "Type"),
    amount_format=SIGNED,
    signed_credits=False,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def supported_banks() -> list[BankFormatProfile]:
    """Return all registered profiles, generic last, for bank pickers."""
    return [*BANK_FORMATS, GENERIC_FORMAT]


def get_bank_format(bank_id: str) -> BankFormatProfile:
    """Look up a profile by id.

    Raises:
        KeyError: If no profile is registered under *bank_id*.
    """
    for profile in supported_banks():
        if profile.id == bank_id:
            return profile
    raise KeyError(bank_id)


def detect_format(csv_text: str) -> BankFormatProfile | None:
    """Identify the bank that exported *csv_text*.

    Returns:
        The first registered profile whose signature matches and whose
        required columns resolve against the file's header row, or ``None``
        if no bank-specific profile applies.
    """
    lines = [line for line in csv_text.splitlines() if line.strip()]
    if not lines:
        return None

    scanned = " ".join(line.lower() for line in lines[:_SCAN_LINES])

    for profile in BANK_FORMATS:
        if not _signature_matches(profile, scanned, lines):
            continue
        if locate_header(lines, profile) is None:
            logger.debug(
                "Signature of %s matched but its columns did not resolve", profile.id
            )
            continue
        logger.debug("Detected bank format %s", profile.id)
        return profile

    return None


def locate_header(
    lines: Sequence[str],
    profile: BankFormatProfile,
) -> tuple[int, BankColumns] | None:
    """Find the header row for *profile* among the leading *lines*.

    The row at ``profile.skip_rows`` is tried first; the other leading rows
    are tried after it, so a missing or extra title row does not defeat a
    correct profile.

    Returns:
        ``(header_line_index, resolved_columns)`` or ``None``.
    """
    limit = min(len(lines), profile.skip_rows + _SCAN_LINES)
    order = [profile.skip_rows] + [i for i in range(limit) if i != profile.skip_rows]
    for index in order:
        if index >= len(lines):
            continue
        columns = resolve_columns(profile, split_line(lines[index]))
        if columns is not None:
            return index, columns
    return None


def resolve_columns(
    profile: BankFormatProfile,
    headers: Sequence[str],
) -> BankColumns | None:
    """Resolve *profile*'s column aliases against a concrete header row.

    Each alias list is matched first exactly (case-insensitive), then by
    substring (alias contained in the header).  A header is used for at most
    one role.  Money columns never resolve to a date or balance header.

    Returns:
        A :class:`BankColumns`, or ``None`` if date, description, or every
        kind of amount column is missing.
    """
    cleaned = [h.strip().lower() for h in headers]
    used: set[int] = set()

    date_index = _resolve(profile.date_columns, cleaned, used)
    description_index = _resolve(profile.description_columns, cleaned, used)
    if date_index is None or description_index is None:
        return None

    amount_format, amount_index, debit_index, credit_index = _resolve_amount(
        profile, cleaned, used
    )
    if amount_format is None:
        return None

    category_index = _resolve(profile.category_columns, cleaned, used)
    type_index = _resolve(profile.type_columns, cleaned, used)
    if amount_format == UNSIGNED_WITH_TYPE and type_index is None:
        amount_format = SIGNED

    return BankColumns(
        profile=profile,
        date_index=date_index,
        description_index=description_index,
        amount_format=amount_format,
        amount_index=amount_index,
        debit_index=debit_index,
        credit_index=credit_index,
        category_index=category_index,
        type_index=type_index,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _signature_matches(
    profile: BankFormatProfile,
    scanned: str,
    lines: Sequence[str],
) -> bool:
    """Check a profile's distinctive headers and date pattern."""
    if profile.detect_headers:
        hits = sum(1 for h in profile.detect_headers if h.lower() in scanned)
        if hits >= math.ceil(len(profile.detect_headers) / 2):
            return True

    if profile.date_pattern:
        data_index = profile.skip_rows + 1
        if data_index < len(lines) and re.search(profile.date_pattern, lines[data_index]):
            return True

    return False


def _resolve_amount(
    profile: BankFormatProfile,
    cleaned: list[str],
    used: set[int],
) -> tuple[str | None, int | None, int | None, int | None]:
    """Resolve the amount columns, preferring the declared representation."""

    def resolve_split() -> tuple[int | None, int | None]:
        debit = _resolve(profile.debit_columns, cleaned, used, money=True)
        credit = _resolve(profile.credit_columns, cleaned, used, money=True)
        return debit, credit

    if profile.amount_format == SPLIT:
        debit, credit = resolve_split()
        if debit is not None or credit is not None:
            return SPLIT, None, debit, credit
        amount = _resolve(profile.amount_columns, cleaned, used, money=True)
        if amount is not None:
            return SIGNED, amount, None, None
        return None, None, None, None

    amount = _resolve(profile.amount_columns, cleaned, used, money=True)
    if amount is not None:
        return profile.amount_format, amount, None, None
    debit, credit = resolve_split()
    if debit is not None or credit is not None:
        return SPLIT, None, debit, credit
    return None, None, None, None


def _resolve(
    aliases: Sequence[str],
    cleaned: list[str],
    used: set[int],
    *,
    money: bool = False,
) -> int | None:
    """Return the first header index matching *aliases* and mark it used."""

    def allowed(index: int) -> bool:
        if index in used:
            return False
        if money and any(word in cleaned[index] for word in _NON_MONEY_HEADERS):
            return False
        return True

    for alias in aliases:
        target = alias.lower()
        for index, header in enumerate(cleaned):
            if header == target and allowed(index):
                used.add(index)
                return index

    for alias in aliases:
        target = alias.lower()
        if len(target) < _MIN_SUBSTRING_ALIAS:
            continue
        for index, header in enumerate(cleaned):
            if target in header and allowed(index):
                used.add(index)
                return index

    return None
