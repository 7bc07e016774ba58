from datetime import date
from decimal import Decimal

import pytest

from spendlog.core.exceptions import NotFoundError, ValidationFailedError
from spendlog.models import BudgetMode, CategoryType
from spendlog.services.budget_health import (
    CategorySnapshot,
    ExpenseSnapshot,
    FinancialSettingsSnapshot,
    category_details
)
from spendlog.services.suggestions import SuggestionBoard, SuggestionType, generate_suggestions

def _details(spent_by_id):
    categories = [
        CategorySnapshot(id=1, name="Groceries", budget=Decimal("5000"), category_type=CategoryType.NEEDS),
        CategorySnapshot(id=2, name="Shopping", budget=Decimal("4000"), category_type=CategoryType.WANTS),
        CategorySnapshot(id=3, name="Entertainment", budget=Decimal("2000"), category_type=CategoryType.WANTS),
    ]
    expenses = [
        ExpenseSnapshot(amount=Decimal(amount), category_id=category_id)
        for category_id, amount in spent_by_id.items()
    ]
    return category_details(categories, expenses)

def test_all_clear_when_nothing_is_close():
    suggestions = generate_suggestions(_details({1: 1000, 2: 1000, 3: 500}), FinancialSettingsSnapshot())
    assert [s.id for s in suggestions] == ["on-track"]
    assert suggestions[0].type == SuggestionType.SUCCESS

def test_disabled_suggestions():
    settings = FinancialSettingsSnapshot(show_budget_suggestions=False)
    assert generate_suggestions(_details({1: 9000}), settings) == []

def test_warnings_rank_before_reallocation():
    suggestions = generate_suggestions(
        _details({1: 6000, 2: 500}), FinancialSettingsSnapshot(), today=date(2024, 3, 5)
    )
    types = [s.type for s in suggestions]

    assert types[0] == SuggestionType.WARNING
    assert SuggestionType.REALLOCATION in types
    assert types.index(SuggestionType.WARNING) < types.index(SuggestionType.REALLOCATION)
    assert "on-track" not in [s.id for s in suggestions]

def test_reallocation_moves_unused_budget():
    suggestions = generate_suggestions(_details({1: 6000, 2: 500}), FinancialSettingsSnapshot())
    reallocation = next(s for s in suggestions if s.type == SuggestionType.REALLOCATION)

    assert reallocation.id == "realloc-2-1"
    assert reallocation.action.category_id == 1
    assert reallocation.action.suggested_amount == Decimal("8500")

def test_strict_mode_wording():
    settings = FinancialSettingsSnapshot(budget_mode=BudgetMode.STRICT)
    suggestions = generate_suggestions(_details({1: 6000}), settings)
    assert suggestions[0].title.startswith("VIOLATION")

def test_low_savings_only_after_mid_month():
    settings = FinancialSettingsSnapshot(monthly_income=Decimal("50000"))
    early = generate_suggestions(_details({1: 1000}), settings, today=date(2024, 3, 10))
    late = generate_suggestions(_details({1: 1000}), settings, today=date(2024, 3, 20))

    assert "savings-low" not in [s.id for s in early]
    assert "savings-low" in [s.id for s in late]

@pytest.mark.asyncio
async def test_accept_calls_set_budget_once_and_hides_suggestion():
    calls = []

    async def set_budget(category_id, amount):
        calls.append((category_id, amount))

    suggestions = generate_suggestions(_details({1: 6000, 2: 500}), FinancialSettingsSnapshot())
    board = SuggestionBoard(suggestions, set_budget)

    accepted = await board.accept("realloc-2-1")

    assert calls == [(1, Decimal("8500"))]
    assert accepted.id not in [s.id for s in board.active]
    with pytest.raises(NotFoundError):
        await board.accept("realloc-2-1")
    assert len(calls) == 1

@pytest.mark.asyncio
async def test_only_reallocations_can_be_accepted():
    async def set_budget(category_id, amount):
        raise AssertionError("should not be called")

    board = SuggestionBoard(generate_suggestions(_details({1: 6000}), FinancialSettingsSnapshot()), set_budget)
    with pytest.raises(ValidationFailedError):
        await board.accept("over-1")

def test_visible_limit_and_dismiss():
    suggestions = generate_suggestions(
        _details({1: 6000, 2: 4500, 3: 2500}),
        FinancialSettingsSnapshot(monthly_income=Decimal("10000")),
        today=date(2024, 3, 20)
    )
    board = SuggestionBoard(suggestions, None, display_limit=2)

    visible, hidden = board.visible()
    assert len(visible) == 2
    assert hidden == len(suggestions) - 2

    board.dismiss(visible[0].id)
    visible_after, hidden_after = board.visible()
    assert visible[0].id not in [s.id for s in visible_after]
    assert hidden_after == max(0, len(suggestions) - 3)
