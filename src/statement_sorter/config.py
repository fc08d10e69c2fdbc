"""Configuration loading and project initialization.

Reads TOML config files using ``tomllib`` (``tomli`` on 3.10) and writes rule files
with ``tomli_w`` (see ``rule_store.py``).  Depends only on ``models.py``.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

from statement_sorter.models import AppConfig

# ---------------------------------------------------------------------------
# Default file content
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_TOML = """\
# Statement Sorter configuration

[general]
output_dir = "output"
rules_dir = "rules"
user = "default"

[import]
bank = ""          # Bank format id to force (see `sorter banks`); empty = auto-detect
max_errors = 5     # Row error messages reported per file

[categorization]
# Flag round-amount, plain-text transactions as internal transfers.
# Catches manual transfers but also misfiles some purchases.
round_amount_transfers = false
income_threshold = 500
fuzzy_threshold = 0.7
"""

_INIT_DIRS = ["input", "output", "rules"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root* and return an :class:`AppConfig`.

    Missing sections and keys fall back to the :class:`AppConfig` defaults.

    Args:
        root: Project root directory containing ``config.toml``.

    Returns:
        A fully-populated :class:`AppConfig` instance.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
        ValueError: If a numeric setting is out of range.
    """
    data = read_toml(root / "config.toml")

    general = data.get("general", {})
    importing = data.get("import", {})
    categorization = data.get("categorization", {})

    config = AppConfig(
        output_dir=general.get("output_dir", "output"),
        rules_dir=general.get("rules_dir", "rules"),
        user=general.get("user", "default"),
        bank=importing.get("bank", ""),
        max_errors=int(importing.get("max_errors", 5)),
        round_amount_transfers=bool(categorization.get("round_amount_transfers", False)),
        income_threshold=Decimal(str(categorization.get("income_threshold", 500))),
        fuzzy_threshold=float(categorization.get("fuzzy_threshold", 0.7)),
    )

    if config.max_errors < 0:
        raise ValueError(f"max_errors must be >= 0, got {config.max_errors}")
    if not 0.0 <= config.fuzzy_threshold <= 1.0:
        raise ValueError(
            f"fuzzy_threshold must be between 0 and 1, got {config.fuzzy_threshold}"
        )
    return config


def initialize(target_dir: Path) -> None:
    """Create the standard directory structure and default config file.

    Idempotent: existing directories are left alone and an existing
    ``config.toml`` is **not** overwritten.

    Args:
        target_dir: The directory in which to create the project structure.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    for d in _INIT_DIRS:
        (target_dir / d).mkdir(parents=True, exist_ok=True)

    _write_if_missing(target_dir / "config.toml", _DEFAULT_CONFIG_TOML)


def read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _write_if_missing(path: Path, content: str) -> None:
    """Write *content* to *path* only if the file does not already exist."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
