"""
Month-over-month spending insights from the language model
"""

import json
import logging
import re
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.core.datetime_utils import month_bounds, previous_month, validate_month
from spendlog.models import Category, Expense
from spendlog.services.ai_client import AIClient

logger = logging.getLogger(__name__)

NO_EXPENSES_INSIGHT = "No expenses recorded this month. Start tracking to get AI-powered insights!"
MAX_INSIGHTS = 3

INSIGHTS_PROMPT = """You are a personal finance assistant.
Analyze this monthly spending summary and provide exactly 3 short insights.

Rules:
- Identify highest spending category.
- Compare with previous month (mention increase or decrease).
- Suggest one specific budget improvement.
- Keep each insight to 1-2 sentences.
- Be encouraging, not judgmental.

Current month ({month}):
{current}

Previous month ({prev_month}):
{previous}

Return ONLY a JSON array of 3 strings, no markdown, no extra text.
Example: ["Insight 1", "Insight 2", "Insight 3"]"""

ARRAY_PATTERN = re.compile(r"\[[\s\S]*?\]")

def parse_insights(content: str) -> List[str]:
    """JSON array, else an embedded array, else the first non-empty lines"""
    content = (content or "").strip()
    try:
        parsed = json.loads(content)
    except ValueError:
        parsed = None

    if isinstance(parsed, list):
        return [str(item) for item in parsed[:MAX_INSIGHTS]]
    if parsed is not None:
        return [content]

    match = ARRAY_PATTERN.search(content)
    if match:
        try:
            return [str(item) for item in json.loads(match.group(0))[:MAX_INSIGHTS]]
        except ValueError:
            return [content]

    return [line.strip() for line in content.splitlines() if line.strip()][:MAX_INSIGHTS]

class InsightsService:
    def __init__(self, db: AsyncSession, user_id: int, ai_client: AIClient):
        self.db = db
        self.user_id = user_id
        self.ai_client = ai_client

    async def _totals_by_category(self, month: str) -> Dict[str, float]:
        start, end = month_bounds(month)
        result = await self.db.execute(
            select(Expense.amount, Category.name)
            .outerjoin(Category, Expense.category_id == Category.id)
            .where(
                Expense.user_id == self.user_id,
                Expense.date >= start,
                Expense.date <= end
            )
        )
        totals: Dict[str, Decimal] = {}
        for amount, name in result.all():
            name = name or "Uncategorized"
            totals[name] = totals.get(name, Decimal("0")) + Decimal(str(amount))
        return {name: float(total) for name, total in totals.items()}

    async def generate_insights(self, month: str) -> List[str]:
        validate_month(month)
        prev_month = previous_month(month)

        current = await self._totals_by_category(month)
        if not current:
            return [NO_EXPENSES_INSIGHT]
        previous = await self._totals_by_category(prev_month)

        prompt = INSIGHTS_PROMPT.format(
            month=month,
            current=json.dumps(current),
            prev_month=prev_month,
            previous=json.dumps(previous)
        )
        logger.info("[insights] user=%s month=%s categories=%d", self.user_id, month, len(current))

        content = await self.ai_client.chat(
            [{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=500
        )
        return parse_insights(content)
