"""Static transaction category catalogue.

Keywords are lowercase and matched against the combined description and
merchant text by the categorizer.  ``budget_relevant=False`` categories
(savings, income, internal transfers) never count toward spending totals.
"""

from __future__ import annotations

from statement_sorter.models import TransactionCategory

TRANSFER_KEYWORDS = (
    "transfer",
    "tfr",
    "internal",
    "between accounts",
    "account transfer",
    "online transfer",
    "mobile transfer",
    "instant transfer",
    "wire transfer",
    "savings transfer",
    "checking transfer",
    "balance transfer",
)

DEFAULT_CATEGORIES: tuple[TransactionCategory, ...] = (
    TransactionCategory(
        id="groceries",
        name="Groceries",
        description="Food and household essentials",
        keywords=(
            "supermarket", "grocery", "tesco", "sainsbury", "asda", "morrisons",
            "lidl", "aldi", "waitrose", "iceland", "coop", "co-op", "marks spencer",
            "m&s food", "whole foods", "organic", "fresh market", "food store",
            "mini market", "convenience store", "corner shop",
        ),
    ),
    TransactionCategory(
        id="shopping",
        name="Shopping",
        description="Retail purchases and non-essentials",
        keywords=(
            "amazon", "ebay", "john lewis", "next", "h&m", "zara", "primark",
            "argos", "currys", "dixons", "boots", "superdrug", "department store",
            "retail", "shopping centre", "outlet", "fashion", "clothing", "shoes",
            "electronics", "gadgets", "homeware", "furniture", "ikea", "b&q",
            "wickes", "homebase", "screwfix", "toolstation",
        ),
    ),
    TransactionCategory(
        id="dining",
        name="Dining Out",
        description="Restaurants, takeaways, and food delivery",
        keywords=(
            "restaurant", "cafe", "coffee", "pub", "bar", "takeaway", "delivery",
            "mcdonald", "kfc", "burger king", "subway", "pizza hut", "dominos",
            "nandos", "greggs", "costa", "starbucks", "pret", "eat", "wagamama",
            "pizza express", "tgi friday", "harvester", "weatherspoon", "uber eats",
            "deliveroo", "just eat", "foodhub", "food delivery", "takeout",
        ),
    ),
    TransactionCategory(
        id="transport",
        name="Transportation",
        description="Travel, fuel, and transportation costs",
        keywords=(
            "petrol", "fuel", "gas station", "shell", "bp", "esso", "texaco",
            "bus", "train", "tube", "underground", "taxi", "uber", "lyft",
            "parking", "congestion", "toll", "oyster", "transport for london",
            "tfl", "national rail", "first bus", "stagecoach", "arriva",
            "car park", "airline", "flight", "airport", "easyjet", "ryanair",
            "british airways", "virgin", "rail",
        ),
    ),
    TransactionCategory(
        id="utilities",
        name="Utilities & Bills",
        description="Essential utilities and recurring bills",
        keywords=(
            "electric", "electricity", "gas", "water", "council tax", "broadband",
            "internet", "phone", "mobile", "bt", "sky", "virgin media", "ee",
            "o2", "vodafone", "three", "plusnet", "talktalk", "utility",
            "british gas", "eon", "edf", "scottish power", "npower", "bulb",
            "octopus energy", "thames water", "anglian water", "severn trent",
        ),
    ),
    TransactionCategory(
        id="entertainment",
        name="Entertainment",
        description="Movies, streaming, games, and leisure",
        keywords=(
            "netflix", "spotify", "disney", "amazon prime", "apple music",
            "cinema", "odeon", "vue", "cineworld", "theatre", "concert",
            "game", "steam", "playstation", "xbox", "nintendo", "gym",
            "fitness", "subscription", "streaming", "music", "books",
            "kindle", "audible", "youtube premium",
        ),
    ),
    TransactionCategory(
        id="healthcare",
        name="Healthcare",
        description="Medical expenses and health services",
        keywords=(
            "pharmacy", "boots", "superdrug", "lloyds pharmacy", "chemist",
            "hospital", "clinic", "dental", "dentist", "doctor", "gp",
            "medical", "health", "prescription", "medicine", "nhs",
            "private healthcare", "bupa", "insurance", "optical", "specsavers",
            "vision express", "glasses", "contact lenses",
        ),
    ),
    TransactionCategory(
        id="education",
        name="Education",
        description="Learning, courses, and educational expenses",
        keywords=(
            "university", "college", "school", "course", "training", "education",
            "tuition", "student", "learning", "certification", "exam",
            "books", "academic", "udemy", "coursera", "skillshare", "masterclass",
        ),
    ),
    TransactionCategory(
        id="savings",
        name="Savings & Investments",
        description="Savings transfers and investments",
        keywords=(
            "savings", "investment", "isa", "pension", "stocks", "shares",
            "fund", "portfolio", "trading", "crypto", "bitcoin", "vanguard",
            "blackrock", "nutmeg", "monzo", "starling", "halifax savings",
        ),
        budget_relevant=False,
    ),
    TransactionCategory(
        id="income",
        name="Income",
        description="Salary, freelance, and other income",
        keywords=(
            "salary", "wage", "pay", "payroll", "freelance", "consulting",
            "dividend", "interest", "refund", "cashback", "bonus", "commission",
            "hmrc", "tax refund", "benefits", "pension payment",
        ),
        budget_relevant=False,
    ),
    TransactionCategory(
        id="transfers",
        name="Internal Transfers",
        description="Transfers between your own accounts",
        keywords=TRANSFER_KEYWORDS,
        budget_relevant=False,
    ),
    TransactionCategory(
        id="other",
        name="Other",
        description="Uncategorized transactions",
        keywords=(),
    ),
)


def get_category(
    category_id: str,
    categories: tuple[TransactionCategory, ...] = DEFAULT_CATEGORIES,
) -> TransactionCategory | None:
    """Return the catalogue entry for *category_id*, or ``None``."""
    for category in categories:
        if category.id == category_id:
            return category
    return None


def is_budget_relevant(
    category_id: str,
    categories: tuple[TransactionCategory, ...] = DEFAULT_CATEGORIES,
) -> bool:
    """Unknown (user-invented) categories count toward the budget."""
    category = get_category(category_id, categories)
    return category is None or category.budget_relevant
