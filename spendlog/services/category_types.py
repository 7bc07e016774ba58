"""
Needs / wants / savings classification of spending categories
"""

from typing import Dict, Iterable, List, Optional, Tuple

from spendlog.models.category import Category, CategoryType

# Insertion order matters for substring matching
DEFAULT_CATEGORY_TYPES: Dict[str, CategoryType] = {
    # Needs
    "food & dining": CategoryType.NEEDS,
    "food": CategoryType.NEEDS,
    "groceries": CategoryType.NEEDS,
    "rent": CategoryType.NEEDS,
    "transportation": CategoryType.NEEDS,
    "transport": CategoryType.NEEDS,
    "bills & utilities": CategoryType.NEEDS,
    "utilities": CategoryType.NEEDS,
    "healthcare": CategoryType.NEEDS,
    "medical": CategoryType.NEEDS,
    "insurance": CategoryType.NEEDS,
    "education": CategoryType.NEEDS,

    # Wants
    "shopping": CategoryType.WANTS,
    "entertainment": CategoryType.WANTS,
    "travel": CategoryType.WANTS,
    "dining out": CategoryType.WANTS,
    "subscriptions": CategoryType.WANTS,
    "hobbies": CategoryType.WANTS,
    "personal care": CategoryType.WANTS,

    # Savings
    "savings": CategoryType.SAVINGS,
    "investments": CategoryType.SAVINGS,
    "emergency fund": CategoryType.SAVINGS,
    "retirement": CategoryType.SAVINGS,
}

def infer_category_type(category_name: str) -> CategoryType:
    """
    Guess a category type from its name.

    Exact match first, then a substring match in either direction, walking
    the table in order. Anything unmatched is a want.
    """
    normalized = (category_name or "").lower().strip()
    if not normalized:
        return CategoryType.WANTS

    if normalized in DEFAULT_CATEGORY_TYPES:
        return DEFAULT_CATEGORY_TYPES[normalized]

    for keyword, category_type in DEFAULT_CATEGORY_TYPES.items():
        if keyword in normalized or normalized in keyword:
            return category_type

    return CategoryType.WANTS

def resolve_category_type(name: str, explicit_type: Optional[str]) -> CategoryType:
    """Explicit classification always wins over inference"""
    if explicit_type:
        return CategoryType(explicit_type)
    return infer_category_type(name)

# Seeded for every new user
DEFAULT_CATEGORIES: List[Tuple[str, str, str, Optional[int]]] = [
    ("Food & Dining", "#F97316", "utensils", 5000),
    ("Transportation", "#3B82F6", "car", 3000),
    ("Shopping", "#EC4899", "shopping-bag", 4000),
    ("Entertainment", "#8B5CF6", "gamepad-2", 2000),
    ("Bills & Utilities", "#EF4444", "receipt", 5000),
    ("Healthcare", "#10B981", "heart-pulse", 2000),
    ("Education", "#06B6D4", "graduation-cap", 3000),
    ("Other", "#6B7280", "more-horizontal", None),
]

def default_categories(user_id: int, existing_names: Iterable[str] = ()) -> List[Category]:
    """Default categories the user doesn't have yet (compared case-insensitively)"""
    existing = {name.lower() for name in existing_names}
    return [
        Category(user_id=user_id, name=name, color=color, icon=icon, monthly_budget=budget)
        for name, color, icon, budget in DEFAULT_CATEGORIES
        if name.lower() not in existing
    ]
