"""CSV parse orchestrator.

Turns raw CSV text into :class:`~statement_sorter.models.ParsedRow` objects
using a three-tier strategy:

1. **Bank profile** -- the caller's chosen profile, or the one detected by
   :func:`~statement_sorter.formats.detect_format`.
2. **Column detection** -- header keywords via
   :func:`~statement_sorter.detector.detect_columns`, or content sniffing
   when the file has no header row.
3. **Generic profile** -- the permissive ``GENERIC_FORMAT`` aliases.

The first tier that yields at least one row wins.  If none does, the
detection tier's result is returned so its diagnostics reach the caller.
Row-level errors never abort a tier; only the first few messages are kept.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from statement_sorter.detector import (
    describe_columns,
    detect_columns,
    has_minimum_columns,
    is_header_row,
    sniff_columns,
    split_line,
)
from statement_sorter.formats import GENERIC_FORMAT, detect_format, locate_header
from statement_sorter.models import (
    BankColumns,
    BankFormatProfile,
    CSVParseResult,
    DetectedColumns,
)
from statement_sorter.row_parser import RowParseError, parse_row

logger = logging.getLogger(__name__)

MAX_ERRORS = 5

# Leading lines searched for a header row (title rows may precede it).
_HEADER_SCAN = 3

INSUFFICIENT_COLUMNS = "CSV must contain at least: Date, Amount, and Description columns"
TOO_SHORT = "CSV must contain at least a header row and one data row"


def parse_csv(
    csv_text: str,
    bank_profile: BankFormatProfile | None = None,
    *,
    max_errors: int = MAX_ERRORS,
) -> CSVParseResult:
    """Parse a bank CSV export.

    Args:
        csv_text: Decoded file contents.
        bank_profile: Profile chosen by the user; when ``None`` the bank is
            auto-detected.
        max_errors: Number of row error messages to retain.

    Returns:
        A :class:`CSVParseResult`.  Zero rows with
        ``format_label == "insufficient_columns"`` means no tier could find
        date, amount and description columns.
    """
    numbered = [
        (number, line)
        for number, line in enumerate(csv_text.lstrip("\ufeff").splitlines(), start=1)
        if line.strip()
    ]
    lines = [line for _, line in numbered]
    line_numbers = [number for number, _ in numbered]
    if len(lines) < 2:
        return CSVParseResult(errors=[TOO_SHORT], error_count=1, format_label="unknown")

    profile = bank_profile or detect_format(csv_text)
    if profile is not None:
        result = _parse_with_profile(lines, line_numbers, profile, profile.id, max_errors)
        if result.rows:
            logger.debug("Parsed %d rows with bank profile %s", len(result.rows), profile.id)
            return result
        logger.debug("Bank profile %s produced no rows, trying column detection", profile.id)

    detected = _parse_with_detection(lines, line_numbers, max_errors)
    if detected.rows:
        logger.debug("Parsed %d rows with detected columns", len(detected.rows))
        return detected

    fallback = _parse_with_profile(lines, line_numbers, GENERIC_FORMAT, "fallback", max_errors)
    if fallback.rows:
        logger.debug("Parsed %d rows with the generic profile", len(fallback.rows))
        return fallback

    logger.debug("No parse strategy produced rows")
    return detected


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


def _parse_with_profile(
    lines: list[str],
    line_numbers: list[int],
    profile: BankFormatProfile,
    label: str,
    max_errors: int,
) -> CSVParseResult:
    located = locate_header(lines, profile)
    if located is None:
        return CSVParseResult(
            errors=[INSUFFICIENT_COLUMNS],
            error_count=1,
            format_label="insufficient_columns",
            matched_bank_profile=profile,
        )

    header_index, columns = located
    result = CSVParseResult(format_label=label, matched_bank_profile=profile)
    _collect(
        result,
        lines[header_index + 1 :],
        line_numbers[header_index + 1 :],
        columns,
        max_errors,
    )
    return result


def _parse_with_detection(
    lines: list[str],
    line_numbers: list[int],
    max_errors: int,
) -> CSVParseResult:
    header_index = next(
        (i for i in range(min(_HEADER_SCAN, len(lines))) if is_header_row(lines[i])),
        None,
    )

    if header_index is not None:
        detected = detect_columns(lines[header_index])
        data = lines[header_index + 1 :]
        numbers = line_numbers[header_index + 1 :]
    else:
        detected = sniff_columns([split_line(line) for line in lines])
        data = lines
        numbers = line_numbers

    if not has_minimum_columns(detected):
        return CSVParseResult(
            errors=[INSUFFICIENT_COLUMNS],
            error_count=1,
            detected_columns=detected,
            format_label="insufficient_columns",
        )

    result = CSVParseResult(detected_columns=detected, format_label=describe_columns(detected))
    _collect(result, data, numbers, detected, max_errors)
    return result


def _collect(
    result: CSVParseResult,
    data: Sequence[str],
    line_numbers: Sequence[int],
    layout: DetectedColumns | BankColumns,
    max_errors: int,
) -> None:
    """Parse *data* lines into *result*, capping retained error messages.

    *line_numbers* holds the 1-based physical line of each entry in *data*,
    so blank lines skipped earlier do not shift the reported row numbers.
    """
    for row_number, line in zip(line_numbers, data):
        cells = split_line(line)
        if not any(cells):
            continue
        try:
            result.rows.append(parse_row(cells, layout, row_number))
        except RowParseError as exc:
            result.error_count += 1
            if len(result.errors) < max_errors:
                result.errors.append(str(exc))
