"""Core data models for Statement Sorter.

This module defines all dataclasses, string constants, and small utility
functions used throughout the import and categorization pipeline.  It has
zero internal imports -- everything depends on it, but it depends on nothing
within the package.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEBIT = "debit"
CREDIT = "credit"

# Amount representations a bank export can use.
SIGNED = "single-signed"
UNSIGNED_WITH_TYPE = "single-unsigned-with-type-column"
SPLIT = "split-debit-credit"

# Date format tags understood by the row parser.
DATE_ISO = "ISO"
DATE_DMY = "DD/MM/YYYY"
DATE_DMON = "DD MMM YYYY"

DEFAULT_CATEGORY = "other"
DEFAULT_CONFIDENCE = 0.3


def generate_transaction_id(
    source: str,
    txn_date: datetime,
    merchant: str,
    amount: Decimal,
    polarity: str,
    row_ordinal: int,
) -> str:
    """Generate a deterministic transaction ID from uniqueness components.

    The ID is a 12-character hex string derived from a SHA-256 hash of the
    pipe-delimited concatenation of: source label, ISO timestamp, uppercased
    and stripped merchant, amount, polarity, and 0-based row ordinal.

    Re-importing the same export yields the same IDs, and two identical
    purchases on the same day are told apart by their row ordinal.

    Args:
        source: Format label or bank id the row was parsed with.
        txn_date: Transaction timestamp.
        merchant: Merchant/payee name (will be stripped and uppercased).
        amount: Non-negative amount magnitude.
        polarity: ``"debit"`` or ``"credit"``.
        row_ordinal: 0-based row index within the parsed rows.

    Returns:
        A 12-character lowercase hex string.
    """
    raw = (
        f"{source}|{txn_date.isoformat()}|{merchant.strip().upper()}"
        f"|{amount}|{polarity}|{row_ordinal}"
    )
    return hashlib.sha256(raw.encode()).hexdigest()[:12]


# ---------------------------------------------------------------------------
# Parsing models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankFormatProfile:
    """An immutable description of one bank's CSV export layout.

    Attributes:
        id: Stable identifier, e.g. ``"monzo"``.
        name: Display name, e.g. ``"Monzo"``.
        date_columns: Header aliases for the transaction date column.
        description_columns: Header aliases for the description column.
        amount_columns: Header aliases for a single amount column.
        debit_columns: Header aliases for the money-out column of split
            formats.
        credit_columns: Header aliases for the money-in column of split
            formats.
        category_columns: Header aliases for a bank-supplied category.
        type_columns: Header aliases for a debit/credit type column.
        date_format: Preferred date format tag (``"ISO"``,
            ``"DD/MM/YYYY"`` or ``"DD MMM YYYY"``).
        amount_format: One of ``SIGNED``, ``UNSIGNED_WITH_TYPE`` or
            ``SPLIT``.
        skip_rows: Number of title rows preceding the header row.
        detect_headers: Distinctive header fragments; a majority of them
            appearing in the first lines identifies this bank.
        date_pattern: Optional regex matched against the first data row.
        signed_credits: Whether a positive amount in a single signed column
            means money in.  False for the generic profile, where positive
            amounts default to debits.
    """

    id: str
    name: str
    date_columns: tuple[str, ...]
    description_columns: tuple[str, ...]
    amount_columns: tuple[str, ...] = ()
    debit_columns: tuple[str, ...] = ()
    credit_columns: tuple[str, ...] = ()
    category_columns: tuple[str, ...] = ()
    type_columns: tuple[str, ...] = ()
    date_format: str = DATE_DMY
    amount_format: str = SIGNED
    skip_rows: int = 0
    detect_headers: tuple[str, ...] = ()
    date_pattern: str | None = None
    signed_credits: bool = True


@dataclass(frozen=True)
class BankColumns:
    """A bank profile resolved against one concrete header row.

    Produced by :func:`statement_sorter.formats.resolve_columns`.  Indices
    are zero-based positions in the header row; ``None`` means the column is
    absent.  ``amount_format`` is the representation actually found, which
    can differ from the profile's declared one for the permissive generic
    profile.
    """

    profile: BankFormatProfile
    date_index: int
    description_index: int
    amount_format: str
    amount_index: int | None = None
    debit_index: int | None = None
    credit_index: int | None = None
    category_index: int | None = None
    type_index: int | None = None


@dataclass
class DetectedColumns:
    """Column positions inferred from a header line by the column detector.

    Attributes:
        date_index: Position of the date column.
        amount_index: Position of the amount column.  When ``credit_index``
            is also set this is the debit (money-out) column.
        description_index: Position of the description column.
        category_index: Position of a bank-supplied category column.
        type_index: Position of a debit/credit type column.
        merchant_index: Position of a merchant/counterparty column.
        credit_index: Position of a money-in column paired with a debit
            amount column, or ``None`` for single-amount layouts.
    """

    date_index: int | None = None
    amount_index: int | None = None
    description_index: int | None = None
    category_index: int | None = None
    type_index: int | None = None
    merchant_index: int | None = None
    credit_index: int | None = None


@dataclass
class ParsedRow:
    """One successfully parsed CSV data row.

    Attributes:
        date: Naive transaction timestamp.
        amount: Non-negative amount magnitude.
        polarity: ``"debit"`` (money out) or ``"credit"`` (money in).
        description: Trimmed description text.
        merchant: Merchant name; defaults to the description.
        category: Bank-supplied category, if the export has one.
        raw_cells: The original cell values, for diagnostics.
    """

    date: datetime
    amount: Decimal
    polarity: str
    description: str
    merchant: str
    category: str | None = None
    raw_cells: tuple[str, ...] = ()


@dataclass
class CSVParseResult:
    """Outcome of parsing one CSV file.

    Attributes:
        rows: Parsed rows, in file order.
        errors: The first few row-level error messages.
        error_count: Total number of row-level errors, including those not
            retained in ``errors``.
        detected_columns: Column detector output for the header line, or
            an empty :class:`DetectedColumns` when a bank profile was used.
        format_label: Short label describing how the file was parsed,
            e.g. ``"monzo"``, ``"generic"``, ``"fallback"`` or
            ``"insufficient_columns"``.
        matched_bank_profile: The bank profile used, or ``None`` for
            detection-based parses.
    """

    rows: list[ParsedRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_count: int = 0
    detected_columns: DetectedColumns = field(default_factory=DetectedColumns)
    format_label: str = "unknown"
    matched_bank_profile: BankFormatProfile | None = None


# ---------------------------------------------------------------------------
# Categorization models
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A canonical transaction flowing from import to categorization.

    ``category``, ``confidence``, ``is_internal_transfer`` and ``is_ignored``
    are always populated.  When ``user_category`` is set, ``category`` equals
    it and ``confidence`` is no longer meaningful.

    Attributes:
        transaction_id: Deterministic 12-char hex id.
        date: Naive transaction timestamp.
        amount: Non-negative amount magnitude.
        polarity: ``"debit"`` or ``"credit"``.
        description: Description from the bank export.
        merchant: Merchant/payee name.
        category: Effective category id.
        original_category: First automated guess; never changed once set.
        user_category: Category chosen by the user, or ``None``.
        is_ignored: User opted this transaction out of budget totals.
        is_internal_transfer: Detected as a move between own accounts.
        confidence: Certainty of the automated category, 0.0 to 1.0.
        bank_category: Category supplied by the bank export, if any.
        source: Format label the row was parsed with.
    """

    transaction_id: str
    date: datetime
    amount: Decimal
    polarity: str
    description: str
    merchant: str
    category: str = DEFAULT_CATEGORY
    original_category: str | None = None
    user_category: str | None = None
    is_ignored: bool = False
    is_internal_transfer: bool = False
    confidence: float = 0.0
    bank_category: str | None = None
    source: str = ""


@dataclass
class CategoryRule:
    """A learned merchant-to-category mapping.

    Rules are keyed by normalized merchant name and matched with
    bidirectional substring containment.

    Attributes:
        id: Stable rule id derived from the pattern.
        merchant_pattern: Normalized merchant name (the join key).
        category: Target category id.
        confidence: Confidence applied to matched transactions.
        transaction_count: How many manual assignments reinforced this rule.
        created_at: When the rule was first learned.
        updated_at: When the rule was last reinforced.
        user_defined: True for rules created by a user action.
    """

    id: str
    merchant_pattern: str
    category: str
    confidence: float
    transaction_count: int
    created_at: datetime
    updated_at: datetime
    user_defined: bool = True


@dataclass(frozen=True)
class TransactionCategory:
    """A category in the static catalogue.

    Attributes:
        id: Category id, e.g. ``"groceries"``.
        name: Display name.
        description: One-line description for pickers.
        keywords: Lowercase keywords scored against transaction text.
        budget_relevant: False for categories that never count toward
            spending totals (income, savings, internal transfers).
    """

    id: str
    name: str
    description: str
    keywords: tuple[str, ...]
    budget_relevant: bool = True


@dataclass(frozen=True)
class CategoryMatch:
    """A category guess and its confidence."""

    category: str
    confidence: float


# ---------------------------------------------------------------------------
# Pipeline and configuration models
# ---------------------------------------------------------------------------


@dataclass
class ImportResult:
    """Final result of importing one or more CSV files.

    Attributes:
        transactions: Categorized transactions in file order.
        parse_results: One :class:`CSVParseResult` per input file.
        warnings: Non-fatal issues, e.g. duplicate rows dropped.
        errors: Row-level parse errors plus file-level failures.
        spending: Budget-relevant spending per category.
    """

    transactions: list[Transaction] = field(default_factory=list)
    parse_results: list[CSVParseResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    spending: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Top-level application configuration loaded from config.toml.

    Attributes:
        output_dir: Directory for exported CSV files.  Default: "output".
        rules_dir: Directory holding one rule file per user.
            Default: "rules".
        user: User id whose rules are loaded and saved.
            Default: "default".
        bank: Bank format id to force, or empty string to auto-detect.
        max_errors: Number of row error messages retained per file.
        round_amount_transfers: Flag round-amount, plain-text transactions
            as internal transfers.  Default: False.
        income_threshold: Credit amount above which salary-like merchants
            are classified as income.  Default: 500.
        fuzzy_threshold: Minimum Levenshtein similarity for a fuzzy
            keyword hit.  Default: 0.7.
    """

    output_dir: str = "output"
    rules_dir: str = "rules"
    user: str = "default"
    bank: str = ""
    max_errors: int = 5
    round_amount_transfers: bool = False
    income_threshold: Decimal = Decimal("500")
    fuzzy_threshold: float = 0.7
