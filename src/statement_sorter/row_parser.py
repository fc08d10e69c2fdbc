"""Row parser: one raw CSV row to one :class:`ParsedRow`.

Works with either column positions inferred by the detector
(:class:`~statement_sorter.models.DetectedColumns`) or a bank profile
resolved against the header (:class:`~statement_sorter.models.BankColumns`).

Sign conventions:
    The parsed amount is always the non-negative magnitude; direction is
    carried by ``polarity``.  Split debit/credit layouts take polarity from
    the populated column.  Bank profiles with signed amounts treat negative
    as debit and positive as credit.  Everything else (detected columns, the
    generic profile) defaults positive amounts to debit unless a type column
    or the description says otherwise.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from dateutil import parser as date_parser

from statement_sorter.models import (
    CREDIT,
    DATE_DMON,
    DATE_DMY,
    DATE_ISO,
    DEBIT,
    SPLIT,
    UNSIGNED_WITH_TYPE,
    BankColumns,
    DetectedColumns,
    ParsedRow,
)

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DMY_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})(?:[ T].*)?$")
_DMON_RE = re.compile(r"^(\d{1,2})[\s\-/]+([A-Za-z]{3,9})\.?[\s\-/,]+(\d{4}|\d{2})(?:\s.*)?$")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_CURRENCY_RE = re.compile(r"[£$€¥]|\b(?:GBP|EUR|USD)\b", re.IGNORECASE)

# Description terms that turn an unsigned positive amount into money in.
INCOME_TERMS = ("salary", "deposit", "income", "refund", "credit", "transfer in")

# Type-column values meaning money in.
_CREDIT_TYPE_TERMS = ("credit", "deposit", "income", "salary", "refund", "paid in", "money in")
_CREDIT_TYPE_CODES = {"c", "cr", "in"}


class RowParseError(ValueError):
    """A data row could not be turned into a :class:`ParsedRow`.

    The message is the row-numbered diagnostic shown to the user, e.g.
    ``'Row 4: Invalid amount "abc"'``.
    """


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def parse_date(
    value: str,
    date_format: str | None = None,
    *,
    lenient: bool = True,
) -> datetime:
    """Parse a bank date string into a naive datetime.

    Tried in order: ISO (``YYYY-MM-DD...``), ``DD/MM/YYYY``, ``DD MMM YYYY``,
    and, when *lenient*, a generic ``dateutil`` parse.  *date_format* moves
    the matching strategy to the front.

    Numeric dates are read day-first unless the second number cannot be a
    month and the first can (``03/15/2024``).  Two-digit years get 2000
    added.  Timezone-aware values are converted to UTC and made naive.

    Args:
        value: Raw date cell.
        date_format: Optional format tag from the bank profile.
        lenient: Allow the free-form fallback parse.

    Returns:
        A naive :class:`datetime`.

    Raises:
        ValueError: If no strategy can parse *value*.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty date")

    strategies = [
        (DATE_ISO, _parse_iso),
        (DATE_DMY, _parse_dmy),
        (DATE_DMON, _parse_dmon),
    ]
    if date_format:
        strategies.sort(key=lambda item: item[0] != date_format)

    for _, strategy in strategies:
        parsed = strategy(text)
        if parsed is not None:
            return parsed

    if lenient:
        try:
            return _naive(date_parser.parse(text, dayfirst=True))
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Could not parse date {text!r}: {exc}") from exc

    raise ValueError(f"Could not parse date {text!r}")


def parse_amount(value: str) -> tuple[Decimal, str | None]:
    """Parse an amount cell into a signed Decimal.

    Handles currency symbols and codes, thousands separators, embedded
    whitespace, ``(123.45)`` negatives, trailing minus signs, and ``CR`` /
    ``DR`` suffixes.  ``CR`` forces a positive amount and credit polarity;
    ``DR`` forces a negative amount and debit polarity.

    Args:
        value: Raw amount cell.

    Returns:
        ``(amount, forced_polarity)`` where *forced_polarity* is ``None``
        unless a ``CR``/``DR`` suffix was present.

    Raises:
        ValueError: If *value* is empty or not a finite number.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty amount")

    forced: str | None = None
    suffix = text[-2:].upper()
    if suffix == "CR":
        forced = CREDIT
        text = text[:-2]
    elif suffix == "DR":
        forced = DEBIT
        text = text[:-2]

    text = _CURRENCY_RE.sub("", text)
    text = text.replace(",", "")
    text = re.sub(r"\s+", "", text)

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    if text.endswith("-"):
        negative = True
        text = text[:-1]

    try:
        amount = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Could not parse amount {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount {value!r}")

    if negative:
        amount = -abs(amount)
    if forced == DEBIT:
        amount = -abs(amount)
    elif forced == CREDIT:
        amount = abs(amount)

    return amount, forced


def infer_polarity(
    amount: Decimal,
    description: str,
    type_value: str | None = None,
) -> str:
    """Infer debit/credit for a single-amount row without a signed convention.

    A non-empty type cell decides on its own.  Otherwise negative amounts
    are debits, and positive amounts are debits unless the description
    contains an income term.
    """
    if type_value and type_value.strip():
        lowered = type_value.strip().lower()
        if lowered in _CREDIT_TYPE_CODES or any(t in lowered for t in _CREDIT_TYPE_TERMS):
            return CREDIT
        return DEBIT

    if amount < 0:
        return DEBIT

    desc_lower = description.lower()
    if any(term in desc_lower for term in INCOME_TERMS):
        return CREDIT
    return DEBIT


# ---------------------------------------------------------------------------
# Row parser
# ---------------------------------------------------------------------------


def parse_row(
    raw_cells: Sequence[str],
    layout: DetectedColumns | BankColumns,
    row_number: int,
) -> ParsedRow:
    """Parse one CSV row.

    Args:
        raw_cells: Cell values of the row.
        layout: Detected column positions or a resolved bank profile.
        row_number: 1-based line number used in error messages.

    Returns:
        The :class:`ParsedRow`.

    Raises:
        RowParseError: For a missing required field, an unparseable date
            or amount, or a zero amount.
    """

    def cell(index: int | None) -> str:
        if index is None or index >= len(raw_cells):
            return ""
        return raw_cells[index].strip()

    if isinstance(layout, BankColumns):
        date_index = layout.date_index
        description_index = layout.description_index
        merchant_index = None
        category_index = layout.category_index
        type_index = layout.type_index
        date_format = layout.profile.date_format
        if layout.amount_format == SPLIT:
            debit_index, credit_index = layout.debit_index, layout.credit_index
        else:
            debit_index, credit_index = layout.amount_index, None
        split = layout.amount_format == SPLIT
    else:
        date_index = layout.date_index
        description_index = layout.description_index
        merchant_index = layout.merchant_index
        category_index = layout.category_index
        type_index = layout.type_index
        date_format = None
        debit_index, credit_index = layout.amount_index, layout.credit_index
        split = layout.credit_index is not None

    prefix = f"Row {row_number}"
    date_str = cell(date_index)
    description = cell(description_index)
    amount_str = cell(debit_index)
    credit_str = cell(credit_index) if split else ""

    if not date_str:
        raise RowParseError(f"{prefix}: Missing date")
    if not amount_str and not credit_str:
        raise RowParseError(f"{prefix}: Missing amount")
    if not description:
        raise RowParseError(f"{prefix}: Missing description")

    try:
        txn_date = parse_date(date_str, date_format)
    except ValueError:
        raise RowParseError(f'{prefix}: Invalid date format "{date_str}"') from None

    if split:
        magnitude, polarity = _split_amount(amount_str, credit_str, prefix)
    else:
        try:
            amount, forced = parse_amount(amount_str)
        except ValueError:
            raise RowParseError(f'{prefix}: Invalid amount "{amount_str}"') from None
        if amount == 0:
            raise RowParseError(f"{prefix}: Zero amount")
        magnitude = abs(amount)
        if forced is not None:
            polarity = forced
        elif isinstance(layout, BankColumns) and layout.amount_format == UNSIGNED_WITH_TYPE:
            polarity = infer_polarity(Decimal(0), "", cell(type_index) or None)
        elif isinstance(layout, BankColumns) and layout.profile.signed_credits:
            polarity = DEBIT if amount < 0 else CREDIT
        else:
            polarity = infer_polarity(amount, description, cell(type_index) or None)

    return ParsedRow(
        date=txn_date,
        amount=magnitude,
        polarity=polarity,
        description=description,
        merchant=cell(merchant_index) or description,
        category=cell(category_index) or None,
        raw_cells=tuple(raw_cells),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _split_amount(debit_str: str, credit_str: str, prefix: str) -> tuple[Decimal, str]:
    """Resolve a debit/credit cell pair into ``(magnitude, polarity)``."""
    debit = credit = Decimal(0)
    if debit_str:
        try:
            debit = abs(parse_amount(debit_str)[0])
        except ValueError:
            raise RowParseError(f'{prefix}: Invalid amount "{debit_str}"') from None
    if credit_str:
        try:
            credit = abs(parse_amount(credit_str)[0])
        except ValueError:
            raise RowParseError(f'{prefix}: Invalid amount "{credit_str}"') from None

    if debit > 0:
        return debit, DEBIT
    if credit > 0:
        return credit, CREDIT
    raise RowParseError(f"{prefix}: Zero amount")


def _naive(value: datetime) -> datetime:
    """Drop timezone information, converting aware values to UTC first."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _parse_iso(text: str) -> datetime | None:
    if not _ISO_RE.match(text):
        return None
    try:
        return _naive(date_parser.isoparse(text))
    except (ValueError, OverflowError):
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d")
    except ValueError:
        return None


def _parse_dmy(text: str) -> datetime | None:
    match = _DMY_RE.match(text)
    if match is None:
        return None
    first, second, year = (int(g) for g in match.groups())
    if year < 100:
        year += 2000
    if first <= 12 < second:
        day, month = second, first
    else:
        day, month = first, second
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def _parse_dmon(text: str) -> datetime | None:
    match = _DMON_RE.match(text)
    if match is None:
        return None
    day_str, month_str, year_str = match.groups()
    month = _MONTHS.get(month_str[:3].lower())
    if month is None:
        return None
    year = int(year_str)
    if year < 100:
        year += 2000
    try:
        return datetime(year, month, int(day_str))
    except ValueError:
        return None
