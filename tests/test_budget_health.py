from datetime import date
from decimal import Decimal

import pytest

from spendlog.models import BudgetMode, CategoryType
from spendlog.services.budget_health import (
    CategorySnapshot,
    ExpenseSnapshot,
    FinancialSettingsSnapshot,
    category_details,
    clamp_for_display,
    compute_health_metrics,
    effective_budgets,
    health_score,
    previous_month_adjustments,
    score_label,
    usage_percentage
)
from spendlog.services.category_types import resolve_category_type
from spendlog.services.suggestions import SuggestionType

@pytest.fixture
def categories():
    return [
        CategorySnapshot(id=1, name="Groceries", budget=Decimal("5000"), category_type=CategoryType.NEEDS),
        CategorySnapshot(id=2, name="Entertainment", budget=Decimal("2000"), category_type=CategoryType.WANTS),
        CategorySnapshot(id=3, name="Other", budget=Decimal("0"), category_type=CategoryType.WANTS),
    ]

def test_effective_budget_prefers_month_override():
    budgets = effective_budgets({1: Decimal("5000"), 2: None, 3: Decimal("100")}, {3: Decimal("250")})
    assert budgets == {1: Decimal("5000"), 2: Decimal("0"), 3: Decimal("250")}

def test_usage_percentage_is_not_clamped():
    assert usage_percentage(Decimal("6000"), Decimal("5000")) == 120.0
    assert usage_percentage(Decimal("10"), Decimal("0")) is None
    assert clamp_for_display(120.0) == 100.0
    assert clamp_for_display(None) == 0.0

def test_over_budget_category(categories):
    expenses = [
        ExpenseSnapshot(amount=Decimal("4000"), category_id=1),
        ExpenseSnapshot(amount=Decimal("2000"), category_id=1),
        ExpenseSnapshot(amount=Decimal("300"), category_id=None),
    ]
    details = category_details(categories, expenses)
    groceries = details[0]

    assert groceries.spent == Decimal("6000")
    assert groceries.percentage == 120.0
    assert groceries.is_over_budget
    assert groceries.category_type == CategoryType.NEEDS
    assert details[2].percentage is None
    assert not details[2].is_over_budget

def test_health_metrics_for_overspent_month(categories):
    expenses = [ExpenseSnapshot(amount=Decimal("6000"), category_id=1)]
    metrics = compute_health_metrics(
        categories, expenses, FinancialSettingsSnapshot(), today=date(2024, 3, 10)
    )

    assert metrics.over_budget_categories == 1
    assert metrics.needs_usage == 120.0
    assert metrics.wants_usage == 0.0
    assert metrics.score < 100
    assert metrics.suggestions[0].type == SuggestionType.WARNING
    assert metrics.suggestions[0].id == "over-1"

def test_more_spending_never_raises_score(categories):
    settings = FinancialSettingsSnapshot(budget_mode=BudgetMode.STRICT, min_savings_target=Decimal("1000"))
    previous = 101
    for amount in (0, 1000, 4000, 5000, 6000, 9000, 20000):
        details = category_details(categories, [
            ExpenseSnapshot(amount=Decimal(amount), category_id=1),
            ExpenseSnapshot(amount=Decimal(amount) / 2, category_id=2),
        ])
        score = health_score(details, settings)
        assert 0 <= score <= previous
        previous = score

def test_score_labels():
    assert score_label(95) == "Excellent"
    assert score_label(65) == "Good"
    assert score_label(45) == "Fair"
    assert score_label(10) == "Needs Attention"

def test_previous_month_adjustments(categories):
    details = category_details(categories, [ExpenseSnapshot(amount=Decimal("6000"), category_id=1)])
    adjustments = previous_month_adjustments(details)

    assert len(adjustments) == 1
    assert adjustments[0].category_id == 1
    assert adjustments[0].suggested_budget == Decimal("6600")

def test_untouched_budgets_score_excellent(categories):
    settings = FinancialSettingsSnapshot(min_savings_target=Decimal("1000"))

    metrics = compute_health_metrics(categories, [], settings, today=date(2024, 3, 10))

    assert metrics.score >= 80
    assert metrics.label == "Excellent"
    assert metrics.over_budget_categories == 0

def test_groceries_overspend_with_inferred_type():
    groceries = CategorySnapshot(
        id=1,
        name="Groceries",
        budget=Decimal("5000"),
        category_type=resolve_category_type("Groceries", None)
    )
    expenses = [ExpenseSnapshot(amount=Decimal("6000"), category_id=1)]

    metrics = compute_health_metrics([groceries], expenses, FinancialSettingsSnapshot(), today=date(2024, 3, 10))
    details = category_details([groceries], expenses)

    assert groceries.category_type == CategoryType.NEEDS
    assert details[0].percentage == 120.0
    assert details[0].is_over_budget
    assert metrics.needs_usage == 120.0
    assert metrics.over_budget_categories == 1
    assert metrics.score < 100
