"""CSV column detection for exports that match no known bank.

Given a header line, :func:`detect_columns` decides which columns hold the
date, amount, description, category, type and merchant:

1. **Keyword pass.**  Fields are assigned in priority order (date, amount,
   description, category, type, merchant).  For each field every unassigned
   header is scored against the field's ordered keyword list: an exact match
   beats a whole-word match, which beats a substring match; then earlier
   keywords win; then the leftmost column wins.
2. **Smart fallback.**  If date, amount or description is still missing,
   remaining columns are scanned for secondary cues ("time", "posted",
   currency words, descriptive words), and finally assigned by position.

For files with no header at all, :func:`sniff_columns` infers the same
information from sampled data rows instead.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Sequence

from statement_sorter.models import DetectedColumns
from statement_sorter.row_parser import parse_amount, parse_date

# Match strengths.
_EXACT, _WORD, _SUBSTRING = 3, 2, 1

DATE_KEYWORDS = (
    "date",
    "transaction date",
    "posting date",
    "posted",
    "trans date",
    "txn date",
    "completed date",
    "value date",
    "created",
)
AMOUNT_KEYWORDS = (
    "amount",
    "value",
    "sum",
    "total",
    "debit",
    "credit",
    "withdrawal",
    "deposit",
    "paid out",
    "paid in",
    "money out",
    "money in",
    "amt",
)
DESCRIPTION_KEYWORDS = (
    "description",
    "details",
    "detail",
    "narrative",
    "particulars",
    "memo",
    "reference",
    "transaction",
)
CATEGORY_KEYWORDS = ("category", "class", "classification")
TYPE_KEYWORDS = ("transaction type", "type", "ttype", "transtype", "dr/cr", "cr/dr")
MERCHANT_KEYWORDS = (
    "merchant",
    "counterparty",
    "counter party",
    "party",
    "payee",
    "vendor",
    "supplier",
)

# Header words that never hold the given field.
_AMOUNT_EXCLUDES = ("date", "balance", "reference", "type")
_DESCRIPTION_EXCLUDES = ("date", "balance", "amount", "type", "category")
_ID_RE = re.compile(r"\bid\b")

# Money-out and money-in header cues used to pair split amount columns.
_DEBIT_CUES = ("debit", "withdrawal", "paid out", "money out")
_CREDIT_CUES = ("credit", "deposit", "paid in", "money in")

# Secondary cues for the smart fallback pass.
_DATE_CUES = ("date", "time", "posted", "when")
_AMOUNT_CUES = ("gbp", "eur", "usd", "£", "$", "€", "price", "cost", "paid", "money", "charge", "net", "gross")
_DESCRIPTION_CUES = (
    "desc",
    "info",
    "text",
    "note",
    "narr",
    "payee",
    "merchant",
    "party",
    "name",
    "purpose",
    "comment",
    "item",
)

HEADER_KEYWORDS = (
    "date",
    "description",
    "amount",
    "category",
    "type",
    "merchant",
    "detail",
    "transaction",
    "reference",
    "posting",
    "value",
    "narrative",
    "balance",
    "debit",
    "credit",
)

# Share of sampled cells that must parse for a column to be sniffed as a
# date or amount column.
_SNIFF_THRESHOLD = 0.8
_SNIFF_SAMPLE = 20


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_line(line: str) -> list[str]:
    """Split one CSV line into trimmed cells, honouring quotes."""
    cells = next(csv.reader([line]), [])
    return [c.strip().lstrip("\ufeff").strip() for c in cells]


def detect_columns(header: str | Sequence[str]) -> DetectedColumns:
    """Infer column positions from a header line.

    Args:
        header: The raw header line, or its already-split cells.

    Returns:
        A :class:`DetectedColumns`.  The result depends only on *header*.
    """
    cells = split_line(header) if isinstance(header, str) else list(header)
    headers = [c.strip().lower() for c in cells]
    assigned: set[int] = set()
    result = DetectedColumns()

    result.date_index = _best_match(headers, DATE_KEYWORDS, assigned)
    result.amount_index = _best_match(
        headers, AMOUNT_KEYWORDS, assigned, excludes=_AMOUNT_EXCLUDES, exclude_id=True
    )
    if result.amount_index is not None:
        _pair_split_columns(headers, result, assigned)
    result.description_index = _best_match(
        headers, DESCRIPTION_KEYWORDS, assigned, excludes=_DESCRIPTION_EXCLUDES
    )
    result.category_index = _best_match(headers, CATEGORY_KEYWORDS, assigned)
    result.type_index = _best_match(headers, TYPE_KEYWORDS, assigned)
    result.merchant_index = _best_match(headers, MERCHANT_KEYWORDS, assigned)

    if not has_minimum_columns(result):
        _smart_fallback(headers, result, assigned)

    return result


def has_minimum_columns(detected: DetectedColumns) -> bool:
    """Return True iff date, amount and description positions are all known."""
    return (
        detected.date_index is not None
        and detected.amount_index is not None
        and detected.description_index is not None
    )


def is_header_row(line: str | Sequence[str]) -> bool:
    """Return True if at least two cells look like header names."""
    cells = split_line(line) if isinstance(line, str) else list(line)
    hits = sum(
        1 for cell in cells if any(kw in cell.strip().lower() for kw in HEADER_KEYWORDS)
    )
    return hits >= 2


def describe_columns(detected: DetectedColumns) -> str:
    """Label a detected layout by which optional columns it carries."""
    has_category = detected.category_index is not None
    has_type = detected.type_index is not None
    if has_category and has_type and detected.merchant_index is not None:
        return "full"
    if has_category and has_type:
        return "with_category_and_type"
    if has_category:
        return "with_category"
    return "generic"


def sniff_columns(rows: Sequence[Sequence[str]]) -> DetectedColumns:
    """Infer date, amount and description positions from headerless data.

    The date column is the first whose sampled cells mostly parse as strict
    dates; the amount column is the first other column whose cells mostly
    parse as amounts, preferring columns with decimal places; the
    description is the first remaining column whose cells mostly contain
    letters.
    """
    sample = [row for row in rows[:_SNIFF_SAMPLE] if any(c.strip() for c in row)]
    result = DetectedColumns()
    if not sample:
        return result

    width = max(len(row) for row in sample)
    columns = [[row[i].strip() if i < len(row) else "" for row in sample] for i in range(width)]

    for index, values in enumerate(columns):
        if _share(values, _looks_like_date) >= _SNIFF_THRESHOLD:
            result.date_index = index
            break

    numeric = [
        index
        for index, values in enumerate(columns)
        if index != result.date_index and _share(values, _looks_like_amount) >= _SNIFF_THRESHOLD
    ]
    decimal_columns = [i for i in numeric if any("." in v for v in columns[i])]
    if decimal_columns:
        result.amount_index = decimal_columns[0]
    elif numeric:
        result.amount_index = numeric[0]

    taken = {result.date_index, result.amount_index}
    for index, values in enumerate(columns):
        if index in taken:
            continue
        if _share(values, lambda v: any(ch.isalpha() for ch in v)) >= 0.5:
            result.description_index = index
            break

    return result


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _match_strength(header: str, keyword: str) -> int:
    if header == keyword:
        return _EXACT
    if keyword not in header:
        return 0
    if re.search(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])", header):
        return _WORD
    return _SUBSTRING


def _excluded(header: str, excludes: Sequence[str], exclude_id: bool) -> bool:
    if any(word in header for word in excludes):
        return True
    return exclude_id and _ID_RE.search(header) is not None


def _best_match(
    headers: list[str],
    keywords: Sequence[str],
    assigned: set[int],
    *,
    excludes: Sequence[str] = (),
    exclude_id: bool = False,
) -> int | None:
    """Pick the strongest unassigned header for *keywords* and mark it."""
    best_index: int | None = None
    best_key: tuple[int, int] = (0, 0)

    for index, header in enumerate(headers):
        if index in assigned or not header:
            continue
        if _excluded(header, excludes, exclude_id):
            continue
        for rank, keyword in enumerate(keywords):
            strength = _match_strength(header, keyword)
            if not strength:
                continue
            key = (strength, -rank)
            # Strict comparison keeps the leftmost column on ties.
            if best_index is None or key > best_key:
                best_index, best_key = index, key

    if best_index is not None:
        assigned.add(best_index)
    return best_index


def _pair_split_columns(
    headers: list[str],
    result: DetectedColumns,
    assigned: set[int],
) -> None:
    """Pair a money-out amount column with a money-in column, if present."""
    amount_header = headers[result.amount_index]
    is_debit = any(cue in amount_header for cue in _DEBIT_CUES)
    is_credit = any(cue in amount_header for cue in _CREDIT_CUES)
    if is_debit == is_credit:
        return

    wanted = _CREDIT_CUES if is_debit else _DEBIT_CUES
    for index, header in enumerate(headers):
        if index in assigned or "balance" in header:
            continue
        if any(cue in header for cue in wanted):
            assigned.add(index)
            if is_debit:
                result.credit_index = index
            else:
                result.credit_index = result.amount_index
                result.amount_index = index
            return


def _smart_fallback(
    headers: list[str],
    result: DetectedColumns,
    assigned: set[int],
) -> None:
    """Fill missing date/amount/description from secondary cues, then position."""

    def first(predicate) -> int | None:
        for index, header in enumerate(headers):
            if index not in assigned and predicate(header):
                assigned.add(index)
                return index
        return None

    if result.date_index is None:
        result.date_index = first(lambda h: any(cue in h for cue in _DATE_CUES))

    def money_ok(header: str) -> bool:
        return not _excluded(header, ("balance", "reference"), True)

    if result.amount_index is None:
        result.amount_index = first(
            lambda h: money_ok(h) and any(cue in h for cue in _AMOUNT_CUES)
        )
    if result.description_index is None:
        result.description_index = first(
            lambda h: any(cue in h for cue in _DESCRIPTION_CUES)
        )

    if result.date_index is None:
        result.date_index = first(lambda h: True)
    if result.amount_index is None:
        result.amount_index = first(money_ok)
    if result.description_index is None:
        result.description_index = first(lambda h: "balance" not in h)


def _share(values: Sequence[str], predicate) -> float:
    filled = [v for v in values if v]
    if not filled:
        return 0.0
    return sum(1 for v in filled if predicate(v)) / len(filled)


def _looks_like_date(value: str) -> bool:
    try:
        parse_date(value, lenient=False)
    except ValueError:
        return False
    return True


def _looks_like_amount(value: str) -> bool:
    if not any(ch.isdigit() for ch in value) or _looks_like_date(value):
        return False
    try:
        parse_amount(value)
    except ValueError:
        return False
    return True
