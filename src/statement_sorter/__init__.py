"""Statement Sorter: bank CSV import and transaction categorization."""

__version__ = "0.1.0"
