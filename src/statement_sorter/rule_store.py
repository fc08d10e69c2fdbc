"""Persistence for learned category rules.

The categorization engine only needs something with ``load(user_id)`` and
``save(user_id, rules)``; anything matching the :class:`RuleStore`
protocol works.  Two implementations ship here:

- :class:`InMemoryRuleStore` -- a dict, used by tests and one-off imports.
- :class:`TomlRuleStore` -- one ``<user_id>.toml`` file per user, written
  with ``tomli_w``.

A store is read once per categorization session and written back whole.
Callers must serialize rule mutations for the same user.
"""

from __future__ import annotations

import copy
import re
from pathlib import Path
from typing import Protocol

import tomli_w

from statement_sorter.config import read_toml
from statement_sorter.models import CategoryRule

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class RuleStore(Protocol):
    """Protocol that rule stores must implement."""

    def load(self, user_id: str) -> list[CategoryRule]:
        """Return every rule saved for *user_id* (empty if none)."""
        ...

    def save(self, user_id: str, rules: list[CategoryRule]) -> None:
        """Replace the saved rule set for *user_id*."""
        ...


class InMemoryRuleStore:
    """Rule store backed by a dict.  Returns copies, never shared objects."""

    def __init__(self, initial: dict[str, list[CategoryRule]] | None = None) -> None:
        self._rules: dict[str, list[CategoryRule]] = {
            user_id: copy.deepcopy(rules) for user_id, rules in (initial or {}).items()
        }
        self.save_count = 0

    def load(self, user_id: str) -> list[CategoryRule]:
        return copy.deepcopy(self._rules.get(user_id, []))

    def save(self, user_id: str, rules: list[CategoryRule]) -> None:
        self._rules[user_id] = copy.deepcopy(rules)
        self.save_count += 1


class TomlRuleStore:
    """Rule store keeping one TOML file per user under *directory*.

    File layout::

        [[rules]]
        id = "rule_3f2a9c1b7d04"
        merchant_pattern = "starbucks"
        category = "dining"
        confidence = 0.95
        transaction_count = 2
        created_at = 2024-03-15T09:30:00
        updated_at = 2024-03-18T12:00:00
        user_defined = true
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, user_id: str) -> Path:
        """Return the rule file path for *user_id*.

        Raises:
            ValueError: If *user_id* could escape the rules directory.
        """
        if not _USER_ID_RE.match(user_id) or user_id in (".", ".."):
            raise ValueError(f"Invalid user id: {user_id!r}")
        return self.directory / f"{user_id}.toml"

    def load(self, user_id: str) -> list[CategoryRule]:
        path = self.path_for(user_id)
        if not path.exists():
            return []
        data = read_toml(path)
        return [_rule_from_dict(entry) for entry in data.get("rules", [])]

    def save(self, user_id: str, rules: list[CategoryRule]) -> None:
        path = self.path_for(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        header = "# Learned category rules. Managed by statement-sorter.\n\n"
        body = tomli_w.dumps({"rules": [_rule_to_dict(r) for r in rules]}) if rules else ""

        # Write-then-rename so a crash never leaves a half-written file.
        tmp = path.with_suffix(".toml.tmp")
        tmp.write_text(header + body, encoding="utf-8")
        tmp.replace(path)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _rule_to_dict(rule: CategoryRule) -> dict:
    return {
        "id": rule.id,
        "merchant_pattern": rule.merchant_pattern,
        "category": rule.category,
        "confidence": rule.confidence,
        "transaction_count": rule.transaction_count,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
        "user_defined": rule.user_defined,
    }


def _rule_from_dict(entry: dict) -> CategoryRule:
    return CategoryRule(
        id=entry["id"],
        merchant_pattern=entry["merchant_pattern"],
        category=entry["category"],
        confidence=float(entry["confidence"]),
        transaction_count=int(entry["transaction_count"]),
        created_at=entry["created_at"],
        updated_at=entry["updated_at"],
        user_defined=entry.get("user_defined", True),
    )
