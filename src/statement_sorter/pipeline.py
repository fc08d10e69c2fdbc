"""Import pipeline for Statement Sorter.

Composes the processing stages: parse each CSV, convert parsed rows to
:class:`~statement_sorter.models.Transaction` objects, deduplicate, and
categorize.  Warnings and errors from every stage are accumulated into a
final :class:`~statement_sorter.models.ImportResult`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from statement_sorter.categorizer import CategorizationEngine
from statement_sorter.csv_import import parse_csv
from statement_sorter.formats import get_bank_format
from statement_sorter.models import (
    AppConfig,
    BankFormatProfile,
    CSVParseResult,
    ImportResult,
    Transaction,
    generate_transaction_id,
)
from statement_sorter.rule_store import RuleStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run(
    sources: Sequence[tuple[str, str]],
    rule_store: RuleStore,
    config: AppConfig | None = None,
    bank_profile: BankFormatProfile | None = None,
) -> ImportResult:
    """Run the import pipeline over one or more CSV texts.

    Stages executed in order:

    1. **Parse** -- :func:`~statement_sorter.csv_import.parse_csv` per file.
    2. **Convert** -- parsed rows become transactions with deterministic ids.
    3. **Deduplicate** -- drop repeated ``transaction_id`` values (the same
       export imported twice), keeping the first.
    4. **Categorize** -- a :class:`CategorizationEngine` over the user's
       rules.

    Args:
        sources: ``(name, csv_text)`` pairs.  *name* prefixes error
            messages when more than one file is imported.
        rule_store: Store holding the user's learned rules.
        config: Application configuration; defaults to :class:`AppConfig`.
        bank_profile: Bank format to force.  When ``None``, ``config.bank``
            is used if set, otherwise each file is auto-detected.

    Returns:
        An :class:`ImportResult` with the categorized transactions and all
        accumulated warnings and errors.

    Raises:
        KeyError: If ``config.bank`` names an unknown bank format.
    """
    config = config or AppConfig()
    if bank_profile is None and config.bank:
        bank_profile = get_bank_format(config.bank)

    result = ImportResult()
    transactions: list[Transaction] = []

    # -- Stage 1-2: Parse and convert ------------------------------------------
    for name, csv_text in sources:
        parsed = parse_csv(csv_text, bank_profile, max_errors=config.max_errors)
        result.parse_results.append(parsed)
        prefix = f"{name}: " if len(sources) > 1 else ""
        result.errors.extend(_report_errors(parsed, prefix))
        logger.debug(
            "%s: %d row(s) parsed as %s", name, len(parsed.rows), parsed.format_label
        )
        transactions.extend(_to_transactions(parsed))

    # -- Stage 3: Deduplicate --------------------------------------------------
    transactions, dedup_warnings = _deduplicate(transactions)
    result.warnings.extend(dedup_warnings)

    # -- Stage 4: Categorize ---------------------------------------------------
    engine = CategorizationEngine(transactions, rule_store, config.user, config=config)
    result.transactions = engine.categorize_all()
    result.spending = engine.get_spending_by_category()
    return result


def import_csv(
    csv_text: str,
    rule_store: RuleStore,
    config: AppConfig | None = None,
    bank_profile: BankFormatProfile | None = None,
) -> ImportResult:
    """Import a single CSV text.  See :func:`run`."""
    return run([("input", csv_text)], rule_store, config, bank_profile)


def read_csv_file(path: Path) -> str:
    """Read a bank export, dropping a UTF-8 byte order mark if present."""
    return Path(path).read_text(encoding="utf-8-sig")


# ---------------------------------------------------------------------------
# Stage implementations
# ---------------------------------------------------------------------------


def _report_errors(parsed: CSVParseResult, prefix: str) -> list[str]:
    errors = [prefix + message for message in parsed.errors]
    hidden = parsed.error_count - len(parsed.errors)
    if hidden > 0:
        errors.append(f"{prefix}... and {hidden} more row error(s)")
    return errors


def _to_transactions(parsed: CSVParseResult) -> list[Transaction]:
    """Stage 2: build transactions from parsed rows, in file order."""
    source = parsed.format_label
    return [
        Transaction(
            transaction_id=generate_transaction_id(
                source, row.date, row.merchant, row.amount, row.polarity, ordinal
            ),
            date=row.date,
            amount=row.amount,
            polarity=row.polarity,
            description=row.description,
            merchant=row.merchant,
            bank_category=row.category,
            source=source,
        )
        for ordinal, row in enumerate(parsed.rows)
    ]


def _deduplicate(transactions: list[Transaction]) -> tuple[list[Transaction], list[str]]:
    """Stage 3: remove duplicates by ``transaction_id``, keep first occurrence."""
    seen: set[str] = set()
    unique: list[Transaction] = []
    dup_count = 0

    for txn in transactions:
        if txn.transaction_id not in seen:
            seen.add(txn.transaction_id)
            unique.append(txn)
        else:
            dup_count += 1

    warnings: list[str] = []
    if dup_count > 0:
        warnings.append(f"Removed {dup_count} duplicate transaction(s)")
    return unique, warnings
