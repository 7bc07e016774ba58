from datetime import date
from decimal import Decimal

import pytest

from spendlog.core.exceptions import NotFoundError, ValidationFailedError
from spendlog.models import Category, Expense
from spendlog.services.budget_service import BudgetService
from spendlog.services.suggestions import SuggestionType

@pytest.fixture
async def service(db, user):
    return BudgetService(db, user.id)

@pytest.fixture
async def month_data(db, user):
    groceries = Category(user_id=user.id, name="Groceries", monthly_budget=5000)
    shopping = Category(user_id=user.id, name="Shopping", monthly_budget=4000)
    db.add_all([groceries, shopping])
    await db.flush()
    db.add_all([
        Expense(user_id=user.id, category_id=groceries.id, amount=Decimal("6000"), date=date(2024, 3, 4)),
        Expense(user_id=user.id, category_id=shopping.id, amount=Decimal("500"), date=date(2024, 3, 6)),
        Expense(user_id=user.id, category_id=shopping.id, amount=Decimal("9999"), date=date(2024, 3, 7), is_draft=True),
        Expense(user_id=user.id, category_id=groceries.id, amount=Decimal("100"), date=date(2024, 2, 27)),
    ])
    await db.commit()
    return {"groceries": groceries, "shopping": shopping}

@pytest.mark.asyncio
async def test_defaults_until_saved(service):
    settings_row = await service.get_settings()

    assert settings_row.id is None
    assert settings_row.budget_mode == "flexible"
    assert settings_row.needs_percentage == Decimal("50")

@pytest.mark.asyncio
async def test_update_settings(service):
    saved = await service.update_settings({
        "monthly_income": 80000,
        "needs_percentage": 60,
        "wants_percentage": 20,
        "budget_mode": "strict"
    })

    assert saved.id is not None
    assert saved.budget_mode == "strict"
    assert float(saved.monthly_income) == 80000
    assert float(saved.savings_percentage) == 20

@pytest.mark.asyncio
async def test_split_must_total_100(service):
    with pytest.raises(ValidationFailedError):
        await service.update_settings({"needs_percentage": 70})
    with pytest.raises(ValidationFailedError):
        await service.update_settings({"app_mode": "advanced"})

@pytest.mark.asyncio
async def test_health_ignores_drafts_and_other_months(service, month_data):
    details = await service.get_category_details("2024-03")
    by_name = {d.category_name: d for d in details}

    assert by_name["Groceries"].spent == Decimal("6000")
    assert by_name["Groceries"].percentage == 120.0
    assert by_name["Shopping"].spent == Decimal("500")

    metrics = await service.get_health("2024-03")
    assert metrics.over_budget_categories == 1
    assert metrics.suggestions[0].type == SuggestionType.WARNING

@pytest.mark.asyncio
async def test_month_override_and_reset(service, month_data):
    groceries = month_data["groceries"]

    budget = await service.set_category_budget(groceries.id, "2024-03", 7000)
    assert float(budget.budget_amount) == 7000
    updated = await service.set_category_budget(groceries.id, "2024-03", 7500)
    assert updated.id == budget.id
    assert float(updated.budget_amount) == 7500

    details = {d.category_name: d for d in await service.get_category_details("2024-03")}
    assert details["Groceries"].budget == Decimal("7500")
    assert not details["Groceries"].is_over_budget

    await service.reset_category_budget(groceries.id, "2024-03")
    details = {d.category_name: d for d in await service.get_category_details("2024-03")}
    assert details["Groceries"].budget == Decimal("5000")

@pytest.mark.asyncio
async def test_accept_reallocation(service, month_data):
    metrics = await service.get_health("2024-03")
    reallocation = next(s for s in metrics.suggestions if s.type == SuggestionType.REALLOCATION)

    await service.accept_suggestion("2024-03", reallocation.id)

    budgets = await service.get_month_budgets("2024-03")
    assert budgets == {month_data["groceries"].id: Decimal("8500")}

@pytest.mark.asyncio
async def test_set_type_and_unknown_category(service, month_data):
    category = await service.set_category_type(month_data["shopping"].id, "needs")
    assert category.resolved_type.value == "needs"

    with pytest.raises(NotFoundError):
        await service.set_category_type(9999, "wants")
    with pytest.raises(ValidationFailedError):
        await service.set_category_budget(month_data["shopping"].id, "2024-13", 100)

@pytest.mark.asyncio
async def test_adjustments_and_trend(service, month_data):
    adjustments = await service.get_auto_adjustments("2024-04")
    assert [a.category_name for a in adjustments] == ["Groceries"]
    assert adjustments[0].suggested_budget == Decimal("6600")

    trend = await service.get_spending_trend(months=2, end_month="2024-03")
    assert trend == [
        {"month": "2024-02", "month_name": "February", "total_spent": 100.0},
        {"month": "2024-03", "month_name": "March", "total_spent": 6500.0},
    ]
