"""CSV export writer, reader, and import summary printer.

- :func:`export` writes categorized transactions with a fixed column
  schema, sorted by date.
- :func:`load_transactions` reads such a file back, so a user-corrected
  copy can be fed to the ``learn`` command.
- :func:`print_summary` prints a human-readable import summary to stdout.
"""

from __future__ import annotations

import csv
from collections import Counter
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from statement_sorter.models import ImportResult, Transaction

# Fixed output column order.
CSV_COLUMNS = [
    "transaction_id",
    "date",
    "merchant",
    "description",
    "amount",
    "polarity",
    "category",
    "confidence",
    "original_category",
    "user_category",
    "is_internal_transfer",
    "is_ignored",
    "bank_category",
    "source",
]


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def export(
    transactions: list[Transaction],
    output_dir: str | Path,
    name: str,
) -> Path:
    """Write *transactions* to ``output_dir/<name>.csv``.

    Rows are sorted by date, then amount.  Internal transfers and ignored
    transactions are kept (flagged) so the file can be corrected and
    learned from.  Overwrites an existing file.

    Args:
        transactions: Categorized transactions.
        output_dir: Directory to write the CSV file into.
        name: File name without extension.

    Returns:
        The :class:`~pathlib.Path` to the written CSV file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{name}.csv"

    ordered = sorted(transactions, key=lambda t: (t.date, t.amount))

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for txn in ordered:
            writer.writerow(
                {
                    "transaction_id": txn.transaction_id,
                    "date": txn.date.isoformat(),
                    "merchant": txn.merchant,
                    "description": txn.description,
                    "amount": str(txn.amount),
                    "polarity": txn.polarity,
                    "category": txn.category,
                    "confidence": f"{txn.confidence:.2f}",
                    "original_category": txn.original_category or "",
                    "user_category": txn.user_category or "",
                    "is_internal_transfer": str(txn.is_internal_transfer),
                    "is_ignored": str(txn.is_ignored),
                    "bank_category": txn.bank_category or "",
                    "source": txn.source,
                }
            )

    return output_path


def load_transactions(path: str | Path) -> list[Transaction]:
    """Read a file written by :func:`export` back into transactions.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required column is missing.
    """
    transactions: list[Transaction] = []
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            transactions.append(
                Transaction(
                    transaction_id=row["transaction_id"],
                    date=datetime.fromisoformat(row["date"]),
                    amount=Decimal(row["amount"]),
                    polarity=row["polarity"],
                    description=row["description"],
                    merchant=row["merchant"],
                    category=row["category"],
                    confidence=float(row.get("confidence") or 0.0),
                    original_category=row.get("original_category") or None,
                    user_category=row.get("user_category") or None,
                    is_internal_transfer=row.get("is_internal_transfer") == "True",
                    is_ignored=row.get("is_ignored") == "True",
                    bank_category=row.get("bank_category") or None,
                    source=row.get("source", ""),
                )
            )
    return transactions


# ---------------------------------------------------------------------------
# Summary printer
# ---------------------------------------------------------------------------


def print_summary(result: ImportResult, title: str) -> None:
    """Print a human-readable import summary to stdout.

    The summary includes the format each file was parsed with, totals,
    a category breakdown with low-confidence counts, budget spending by
    category, and any warnings and errors.

    Args:
        result: The :class:`~statement_sorter.models.ImportResult` from
            a completed import.
        title: Header label, usually the output file name.
    """
    txns = result.transactions
    transfers = sum(1 for t in txns if t.is_internal_transfer)
    credits = sum(1 for t in txns if t.polarity == "credit")
    low_confidence = sum(
        1
        for t in txns
        if not t.user_category and not t.is_internal_transfer and t.confidence < 0.5
    )
    category_counts: Counter[str] = Counter(t.category for t in txns)

    print()
    print(f"== Import Summary: {title} ==")

    formats = [
        f"{p.format_label} ({len(p.rows)} rows)" for p in result.parse_results
    ]
    print(f"Formats:  {', '.join(formats) if formats else '(none)'}")
    print(
        f"Total:    {len(txns)} transactions "
        f"({credits} credits, {transfers} internal transfers)"
    )
    print(f"Low confidence: {low_confidence}")

    if category_counts:
        print()
        print("Categories:")
        for cat, count in sorted(category_counts.items(), key=lambda p: (-p[1], p[0])):
            print(f"  {cat + ':':<25} {count}")

    if result.spending:
        print()
        print("Spending by category:")
        for cat, total in sorted(result.spending.items(), key=lambda p: -p[1]):
            print(f"  {cat + ':':<25} £{total:,.2f}")

    if result.warnings:
        print()
        print(f"Warnings: {len(result.warnings)}")
        for w in result.warnings:
            print(f"  - {w}")

    if result.errors:
        print()
        print(f"Errors: {len(result.errors)}")
        for e in result.errors:
            print(f"  - {e}")

    print()
