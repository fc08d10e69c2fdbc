"""Categorization engine: transfer detection, learned rules, and keyword scoring.

Each transaction goes through the first step that decides it:

1. **User category** -- a category the user picked always wins.
2. **Ignored** -- ignored transactions are left untouched.
3. **Internal transfer** -- transfer keywords, account-to-account patterns,
   or a bank name with a transfer verb mark the row as ``transfers``.
4. **Learned rule** -- the normalized merchant is looked up in the user's
   rules with bidirectional substring containment.
5. **Keyword scoring** -- every catalogue category is scored against the
   description and merchant text, then an ordered list of business
   overrides may replace the result.

Manual recategorizations feed back into step 4: each one creates or
reinforces a :class:`CategoryRule` for the merchant and saves the rule set
through the :class:`~statement_sorter.rule_store.RuleStore`.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, time
from decimal import Decimal

from rapidfuzz.distance import Levenshtein

from statement_sorter.categories import DEFAULT_CATEGORIES, TRANSFER_KEYWORDS, is_budget_relevant
from statement_sorter.models import (
    CREDIT,
    DEFAULT_CATEGORY,
    DEFAULT_CONFIDENCE,
    AppConfig,
    CategoryMatch,
    CategoryRule,
    Transaction,
    TransactionCategory,
)
from statement_sorter.rule_store import RuleStore

logger = logging.getLogger(__name__)

TRANSFER_CATEGORY = "transfers"
TRANSFER_CONFIDENCE = 0.95
USER_RULE_CONFIDENCE = 0.95
MAX_CONFIDENCE = 0.95

# Longer inputs are truncated before computing edit distance.
SIMILARITY_MAX_LENGTH = 256

# Amount window for "apply to all similar".
SIMILAR_AMOUNT_VARIANCE = Decimal("0.3")

_ACCOUNT_PATTERN = re.compile(
    r"account.*\d+.*account.*\d+|transfer.*account|account.*transfer", re.IGNORECASE
)
_BANK_MERCHANT = re.compile(
    r"^(monzo|starling|halifax|lloyds|barclays|hsbc|natwest|santander)", re.IGNORECASE
)
_TRANSFER_VERB = re.compile(r"transfer|move|between", re.IGNORECASE)
_PLAIN_TEXT = re.compile(r"^[A-Za-z0-9\s-]+$")

_STORE_NUMBER = re.compile(r"#\s*\d+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_LONG_NUMBER = re.compile(r"\b\d{3,}\b")
_CORPORATE_SUFFIX = re.compile(r"\b(ltd|limited|inc|corp|llc|co|plc)\b")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def normalize_merchant(merchant: str) -> str:
    """Normalize a merchant name into the join key used by learned rules.

    Lowercases, drops store/terminal numbers (``#4521``, ``1234``),
    strips punctuation and corporate suffixes, and collapses whitespace.

    >>> normalize_merchant("STARBUCKS #4521")
    'starbucks'
    >>> normalize_merchant("Acme Widgets Ltd.")
    'acme widgets'
    """
    text = merchant.lower()
    text = _STORE_NUMBER.sub(" ", text)
    text = _NON_ALNUM.sub("", text)
    text = _LONG_NUMBER.sub(" ", text)
    text = _CORPORATE_SUFFIX.sub("", text)
    return " ".join(text.split())


def string_similarity(a: str, b: str) -> float:
    """Levenshtein similarity in ``[0, 1]``; 1.0 means identical."""
    return Levenshtein.normalized_similarity(
        a[:SIMILARITY_MAX_LENGTH], b[:SIMILARITY_MAX_LENGTH]
    )


def _combined_text(txn: Transaction) -> str:
    return f"{txn.description.lower()} {txn.merchant.lower()}"


# ---------------------------------------------------------------------------
# Internal transfer detection
# ---------------------------------------------------------------------------


def is_internal_transfer(txn: Transaction, *, round_amount_heuristic: bool = False) -> bool:
    """Return True if *txn* looks like a move between the user's own accounts.

    Args:
        txn: The transaction to inspect.
        round_amount_heuristic: Also flag amounts that are a multiple of 5
            (and at least 10) whose description is plain letters, digits,
            spaces and hyphens.  Off by default: it misfiles round-number
            purchases from merchants with terse descriptions.
    """
    text = _combined_text(txn)

    if any(keyword in text for keyword in TRANSFER_KEYWORDS):
        return True
    if _ACCOUNT_PATTERN.search(text):
        return True
    if _BANK_MERCHANT.match(txn.merchant) and _TRANSFER_VERB.search(txn.description):
        return True

    if round_amount_heuristic:
        return (
            txn.amount >= 10
            and txn.amount % 5 == 0
            and _PLAIN_TEXT.match(txn.description) is not None
        )
    return False


# ---------------------------------------------------------------------------
# Learned rules
# ---------------------------------------------------------------------------


def match_rule(merchant: str, rules: Sequence[CategoryRule]) -> CategoryRule | None:
    """Find the first rule whose pattern contains, or is contained in, *merchant*.

    The merchant is normalized first.  A merchant that normalizes to the
    empty string matches nothing.
    """
    normalized = normalize_merchant(merchant)
    if not normalized:
        return None
    for rule in rules:
        pattern = rule.merchant_pattern.lower()
        if pattern and (pattern in normalized or normalized in pattern):
            return rule
    return None


def rule_id_for(pattern: str) -> str:
    """Stable rule id for a normalized merchant pattern."""
    return "rule_" + hashlib.sha256(pattern.encode()).hexdigest()[:12]


# ---------------------------------------------------------------------------
# Keyword scoring
# ---------------------------------------------------------------------------


def adjust_score_by_amount(score: float, amount: float, category_id: str) -> float:
    """Nudge *score* toward categories whose typical spend fits *amount*."""
    if category_id == "groceries":
        if 10 <= amount <= 200:
            score += 0.1
        if amount < 5 or amount > 500:
            score -= 0.2
    elif category_id == "dining":
        if 5 <= amount <= 100:
            score += 0.1
        if amount < 3 or amount > 200:
            score -= 0.1
    elif category_id == "utilities":
        if 20 <= amount <= 300:
            score += 0.1
    elif category_id == "transport":
        if amount <= 50:
            score += 0.05
    return score


def score_category(
    text: str,
    category: TransactionCategory,
    amount: Decimal,
    *,
    fuzzy_threshold: float = 0.7,
) -> float:
    """Score how well *text* fits *category*, capped at 0.95.

    A keyword found at a word boundary (start, end, or surrounded by
    spaces) adds 0.8, found elsewhere adds 0.6.  Independently, a keyword
    whose similarity to the whole text exceeds *fuzzy_threshold* adds
    ``similarity * 0.4``.  If anything matched, the total is divided by the
    category's keyword count before amount adjustments are applied.
    """
    score = 0.0
    matched = 0

    for keyword in category.keywords:
        if keyword in text:
            if f" {keyword} " in text or text.startswith(keyword) or text.endswith(keyword):
                score += 0.8
            else:
                score += 0.6
            matched += 1

        similarity = string_similarity(text, keyword)
        if similarity > fuzzy_threshold:
            score += similarity * 0.4
            matched += 1

    if matched:
        score /= len(category.keywords)

    score = adjust_score_by_amount(score, float(amount), category.id)
    return min(score, MAX_CONFIDENCE)


# ---------------------------------------------------------------------------
# Business overrides
# ---------------------------------------------------------------------------

Override = Callable[[Transaction, CategoryMatch, AppConfig], CategoryMatch | None]

GROCERY_CHAINS = ("tesco", "sainsbury", "asda", "morrisons", "waitrose", "lidl", "aldi")
AMAZON_MERCHANTS = ("amazon", "amzn")
FAST_FOOD_MERCHANTS = ("mcdonald", "kfc", "uber eats", "burger king", "deliveroo", "just eat")
SALARY_TERMS = ("salary", "wage", "pay")


def _grocery_chain(txn: Transaction, match: CategoryMatch, config: AppConfig) -> CategoryMatch | None:
    merchant = txn.merchant.lower()
    if any(chain in merchant for chain in GROCERY_CHAINS):
        return CategoryMatch("groceries", 0.9)
    return None


def _small_amazon_order(txn: Transaction, match: CategoryMatch, config: AppConfig) -> CategoryMatch | None:
    merchant = txn.merchant.lower()
    if any(name in merchant for name in AMAZON_MERCHANTS) and txn.amount < 50:
        return CategoryMatch("shopping", 0.85)
    return None


def _fast_food(txn: Transaction, match: CategoryMatch, config: AppConfig) -> CategoryMatch | None:
    merchant = txn.merchant.lower()
    if any(name in merchant for name in FAST_FOOD_MERCHANTS):
        return CategoryMatch("dining", 0.9)
    return None


def _salary(txn: Transaction, match: CategoryMatch, config: AppConfig) -> CategoryMatch | None:
    if txn.polarity != CREDIT or txn.amount <= config.income_threshold:
        return None
    merchant = txn.merchant.lower()
    if any(term in merchant for term in SALARY_TERMS):
        return CategoryMatch("income", 0.95)
    return None


def _small_amount(txn: Transaction, match: CategoryMatch, config: AppConfig) -> CategoryMatch | None:
    if txn.amount < 5 and match.confidence < 0.7:
        return CategoryMatch(DEFAULT_CATEGORY, 0.6)
    return None


# Evaluated in order after keyword scoring; the first non-None result wins.
BUSINESS_OVERRIDES: tuple[Override, ...] = (
    _grocery_chain,
    _small_amazon_order,
    _fast_food,
    _salary,
    _small_amount,
)


def apply_business_logic(
    txn: Transaction,
    match: CategoryMatch,
    config: AppConfig | None = None,
    overrides: Sequence[Override] = BUSINESS_OVERRIDES,
) -> CategoryMatch:
    """Return the first override's replacement for *match*, or *match* itself."""
    config = config or AppConfig()
    for override in overrides:
        replacement = override(txn, match, config)
        if replacement is not None:
            return replacement
    return match


def auto_categorize(
    txn: Transaction,
    categories: Sequence[TransactionCategory] = DEFAULT_CATEGORIES,
    config: AppConfig | None = None,
) -> CategoryMatch:
    """Keyword-score every category, then apply the business overrides."""
    config = config or AppConfig()
    text = _combined_text(txn)
    best = CategoryMatch(DEFAULT_CATEGORY, DEFAULT_CONFIDENCE)

    for category in categories:
        if category.id in (DEFAULT_CATEGORY, TRANSFER_CATEGORY):
            continue
        score = score_category(
            text, category, txn.amount, fuzzy_threshold=config.fuzzy_threshold
        )
        if score > best.confidence:
            best = CategoryMatch(category.id, score)

    return apply_business_logic(txn, best, config)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CategorizationEngine:
    """Categorizes one user's transactions and learns from their corrections.

    The engine loads the user's rules once at construction.  If the store
    fails to load, a warning is logged and the engine proceeds with no
    rules.  Every rule mutation saves the whole rule set back; save errors
    propagate to the caller.

    Args:
        transactions: The transactions this session works on.  They are
            updated in place.
        rule_store: Where the user's rules are loaded from and saved to.
        user_id: Whose rules to use.
        config: Categorization settings; defaults to :class:`AppConfig`.
        categories: Category catalogue.
        clock: Returns "now" for rule timestamps.
    """

    def __init__(
        self,
        transactions: Sequence[Transaction],
        rule_store: RuleStore,
        user_id: str = "default",
        *,
        config: AppConfig | None = None,
        categories: Sequence[TransactionCategory] = DEFAULT_CATEGORIES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.transactions: list[Transaction] = list(transactions)
        self.rule_store = rule_store
        self.user_id = user_id
        self.config = config or AppConfig()
        self._categories = tuple(categories)
        self._clock = clock
        self._rules = self._load_rules()

    # -- categorization ----------------------------------------------------

    def categorize(self, txn: Transaction) -> Transaction:
        """Set ``category``, ``confidence`` and ``is_internal_transfer`` on *txn*.

        ``original_category`` records the first automated guess and is not
        changed afterwards.  ``user_category`` and ``is_ignored`` are never
        modified here.
        """
        if txn.user_category:
            txn.category = txn.user_category
            return txn

        if txn.is_ignored:
            return txn

        if is_internal_transfer(
            txn, round_amount_heuristic=self.config.round_amount_transfers
        ):
            txn.is_internal_transfer = True
            self._apply(txn, CategoryMatch(TRANSFER_CATEGORY, TRANSFER_CONFIDENCE))
            return txn
        txn.is_internal_transfer = False

        rule = match_rule(txn.merchant, self._rules)
        if rule is not None:
            self._apply(txn, CategoryMatch(rule.category, rule.confidence))
            return txn

        self._apply(txn, auto_categorize(txn, self._categories, self.config))
        return txn

    def categorize_all(self) -> list[Transaction]:
        """Categorize every transaction in the session, in order."""
        for txn in self.transactions:
            self.categorize(txn)
        return self.transactions

    # -- user actions ------------------------------------------------------

    def update_transaction_category(self, transaction_id: str, category: str) -> Transaction:
        """Record a manual category choice and learn a rule from it.

        Raises:
            KeyError: If no transaction has *transaction_id*.
        """
        txn = self.get_transaction(transaction_id)
        txn.user_category = category
        txn.category = category
        self._learn(txn, category)
        return txn

    def apply_category_to_similar(
        self, transaction_ids: Sequence[str], category: str
    ) -> list[Transaction]:
        """Apply *category* to each listed transaction, learning one rule.

        Unknown ids are skipped with a warning.  The rule is created or
        reinforced from the first listed transaction.

        Returns:
            The transactions that were updated.
        """
        updated: list[Transaction] = []
        for transaction_id in transaction_ids:
            txn = self._find(transaction_id)
            if txn is None:
                logger.warning("Skipping unknown transaction %s", transaction_id)
                continue
            txn.user_category = category
            txn.category = category
            updated.append(txn)

        first = self._find(transaction_ids[0]) if transaction_ids else None
        if first is not None:
            self._learn(first, category)
        return updated

    def find_similar_transactions(self, transaction_id: str) -> list[Transaction]:
        """Other uncategorized-by-user transactions from the same merchant.

        Similar means the same normalized merchant and an amount within
        30% of the reference transaction's amount.

        Raises:
            KeyError: If no transaction has *transaction_id*.
        """
        reference = self.get_transaction(transaction_id)
        merchant = normalize_merchant(reference.merchant)
        similar = []
        for txn in self.transactions:
            if txn.transaction_id == transaction_id or txn.user_category:
                continue
            if normalize_merchant(txn.merchant) != merchant:
                continue
            if reference.amount == 0:
                close = txn.amount == 0
            else:
                close = abs(txn.amount - reference.amount) / reference.amount <= SIMILAR_AMOUNT_VARIANCE
            if close:
                similar.append(txn)
        return similar

    def toggle_ignore(self, transaction_id: str) -> Transaction:
        """Flip ``is_ignored`` on a transaction.

        Raises:
            KeyError: If no transaction has *transaction_id*.
        """
        txn = self.get_transaction(transaction_id)
        txn.is_ignored = not txn.is_ignored
        return txn

    # -- budget views ------------------------------------------------------

    def get_budget_relevant_transactions(self) -> list[Transaction]:
        """Debits that count toward spending.

        Excludes ignored transactions, internal transfers, credits, and
        anything in a category that is not budget relevant.
        """
        return [
            txn
            for txn in self.transactions
            if not txn.is_ignored
            and not txn.is_internal_transfer
            and txn.polarity != CREDIT
            and is_budget_relevant(txn.category, self._categories)
        ]

    def get_spending_by_category(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Decimal]:
        """Sum budget-relevant spending per category within ``[start, end]``.

        An *end* with no time part (midnight) covers that whole day, so
        ``end=datetime(2024, 3, 31)`` includes a payment at 10:00 on the 31st.
        """
        whole_day = end is not None and end.time() == time()
        totals: dict[str, Decimal] = {}
        for txn in self.get_budget_relevant_transactions():
            if start is not None and txn.date < start:
                continue
            if end is not None and (txn.date.date() > end.date() if whole_day else txn.date > end):
                continue
            category = txn.category or DEFAULT_CATEGORY
            totals[category] = totals.get(category, Decimal("0")) + txn.amount
        return totals

    # -- catalogue and rules -----------------------------------------------

    @property
    def categories(self) -> tuple[TransactionCategory, ...]:
        return self._categories

    @property
    def rules(self) -> list[CategoryRule]:
        return list(self._rules)

    def delete_rule(self, rule_id: str) -> None:
        """Delete a learned rule and save.

        Raises:
            KeyError: If no rule has *rule_id*.
        """
        remaining = [r for r in self._rules if r.id != rule_id]
        if len(remaining) == len(self._rules):
            raise KeyError(f"Rule not found: {rule_id}")
        self._rules = remaining
        self.rule_store.save(self.user_id, self._rules)
        logger.debug("Deleted rule %s", rule_id)

    def get_transaction(self, transaction_id: str) -> Transaction:
        txn = self._find(transaction_id)
        if txn is None:
            raise KeyError(f"Transaction not found: {transaction_id}")
        return txn

    # -- internals ---------------------------------------------------------

    def _find(self, transaction_id: str) -> Transaction | None:
        for txn in self.transactions:
            if txn.transaction_id == transaction_id:
                return txn
        return None

    def _load_rules(self) -> list[CategoryRule]:
        try:
            return list(self.rule_store.load(self.user_id))
        except Exception as exc:
            logger.warning(
                "Could not load rules for user %s (%s); continuing without learned rules",
                self.user_id,
                exc,
            )
            return []

    def _apply(self, txn: Transaction, match: CategoryMatch) -> None:
        txn.category = match.category
        txn.confidence = match.confidence
        if txn.original_category is None:
            txn.original_category = match.category

    def _learn(self, txn: Transaction, category: str) -> None:
        """Create or reinforce the rule for *txn*'s merchant, then save."""
        pattern = normalize_merchant(txn.merchant)
        if not pattern:
            logger.warning(
                "Merchant %r has no usable name; no rule learned", txn.merchant
            )
            return

        now = self._clock()
        existing = next((r for r in self._rules if r.merchant_pattern == pattern), None)
        if existing is not None:
            existing.category = category
            existing.confidence = USER_RULE_CONFIDENCE
            existing.transaction_count += 1
            existing.updated_at = now
            logger.debug(
                "Updated rule %s: %s -> %s (%d)",
                existing.id,
                pattern,
                category,
                existing.transaction_count,
            )
        else:
            rule = CategoryRule(
                id=rule_id_for(pattern),
                merchant_pattern=pattern,
                category=category,
                confidence=USER_RULE_CONFIDENCE,
                transaction_count=1,
                created_at=now,
                updated_at=now,
            )
            self._rules.append(rule)
            logger.debug("Created rule %s: %s -> %s", rule.id, pattern, category)

        self.rule_store.save(self.user_id, self._rules)
