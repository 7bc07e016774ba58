from spendlog.models import CategoryType
from spendlog.services.category_types import (
    DEFAULT_CATEGORIES,
    default_categories,
    infer_category_type,
    resolve_category_type
)

def test_exact_names():
    assert infer_category_type("Groceries") == CategoryType.NEEDS
    assert infer_category_type("Entertainment") == CategoryType.WANTS
    assert infer_category_type("Investments") == CategoryType.SAVINGS

def test_substring_match():
    assert infer_category_type("Monthly Rent") == CategoryType.NEEDS
    assert infer_category_type("Online Shopping") == CategoryType.WANTS

def test_unknown_and_empty_names_are_wants():
    assert infer_category_type("Pets") == CategoryType.WANTS
    assert infer_category_type("") == CategoryType.WANTS
    assert infer_category_type(None) == CategoryType.WANTS

def test_explicit_type_wins():
    assert resolve_category_type("Groceries", "wants") == CategoryType.WANTS
    assert resolve_category_type("Groceries", None) == CategoryType.NEEDS

def test_default_categories_skip_existing():
    created = default_categories(7, ["food & dining", "Other"])

    names = [c.name for c in created]
    assert len(created) == len(DEFAULT_CATEGORIES) - 2
    assert "Food & Dining" not in names
    assert "Transportation" in names
    assert all(c.user_id == 7 for c in created)
