from datetime import date
from decimal import Decimal

import pytest

from spendlog.core.exceptions import ValidationFailedError
from spendlog.models import Category, Expense
from spendlog.services.insights import NO_EXPENSES_INSIGHT, InsightsService, parse_insights

from conftest import FakeAIClient

def test_parse_insights_variants():
    assert parse_insights('["a", "b", "c", "d"]') == ["a", "b", "c"]
    assert parse_insights('Here: ["x", "y"]') == ["x", "y"]
    assert parse_insights("first\n\nsecond\nthird\nfourth") == ["first", "second", "third"]

@pytest.mark.asyncio
async def test_no_expenses_skips_the_model(db, user):
    ai = FakeAIClient()

    insights = await InsightsService(db, user.id, ai).generate_insights("2024-03")

    assert insights == [NO_EXPENSES_INSIGHT]
    assert ai.calls == []

@pytest.mark.asyncio
async def test_insights_prompt_includes_both_months(db, user):
    food = Category(user_id=user.id, name="Food & Dining")
    db.add(food)
    await db.flush()
    db.add_all([
        Expense(user_id=user.id, category_id=food.id, amount=Decimal("1200"), date=date(2024, 3, 3)),
        Expense(user_id=user.id, category_id=None, amount=Decimal("300"), date=date(2024, 3, 4)),
        Expense(user_id=user.id, category_id=food.id, amount=Decimal("900"), date=date(2024, 2, 10)),
    ])
    await db.commit()
    ai = FakeAIClient(replies=['["Food is your top category.", "Up from February.", "Try a cap."]'])

    insights = await InsightsService(db, user.id, ai).generate_insights("2024-03")

    assert insights[0] == "Food is your top category."
    prompt = ai.calls[0][0][0]["content"]
    assert '"Uncategorized": 300.0' in prompt
    assert "Previous month (2024-02)" in prompt
    assert ai.calls[0][1] == {"temperature": 0.7, "max_tokens": 500}

@pytest.mark.asyncio
async def test_bad_month(db, user):
    with pytest.raises(ValidationFailedError):
        await InsightsService(db, user.id, FakeAIClient()).generate_insights("March")
