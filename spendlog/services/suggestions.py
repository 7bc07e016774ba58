"""
Budget suggestion generator

Turns per-category spending into a ranked list of warnings, tips and
reallocation offers. Thresholds depend on the user's budget mode.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from spendlog.core.exceptions import NotFoundError, ValidationFailedError
from spendlog.models.budget import BudgetMode
from spendlog.models.category import CategoryType
from spendlog.services.budget_health import (
    ZERO,
    CategorySpending,
    FinancialSettingsSnapshot,
    spending_by_type,
)

logger = logging.getLogger(__name__)

DISPLAY_LIMIT = 5
REALLOCATION_SOURCE_PERCENT = 30
SAVINGS_CHECK_DAY = 15

class SuggestionType(str, enum.Enum):
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"
    REALLOCATION = "reallocation"

RANK = {
    SuggestionType.WARNING: 0,
    SuggestionType.REALLOCATION: 1,
    SuggestionType.INFO: 2,
    SuggestionType.SUCCESS: 3,
}

@dataclass(frozen=True)
class SuggestionAction:
    label: str
    category_id: int
    suggested_amount: Decimal

@dataclass(frozen=True)
class Suggestion:
    id: str
    type: SuggestionType
    title: str
    message: str
    action: Optional[SuggestionAction] = None

def _money(amount: Decimal) -> str:
    return f"₹{amount:,.0f}"

def _category_suggestions(detail: CategorySpending, mode: BudgetMode) -> Optional[Suggestion]:
    pct = detail.percentage
    name = detail.category_name
    strict = mode == BudgetMode.STRICT

    if pct >= 100:
        return Suggestion(
            id=f"over-{detail.category_id}",
            type=SuggestionType.WARNING,
            title=f"VIOLATION: {name} exceeded budget" if strict else f"{name} is over budget",
            message=(
                f"Budget exceeded! Spent {_money(detail.spent)} of {_money(detail.budget)}. "
                "Override required for further spending."
                if strict else
                f"You've spent {_money(detail.spent)} of {_money(detail.budget)} budget."
            ),
        )
    if pct >= 90:
        return Suggestion(
            id=f"alert90-{detail.category_id}",
            type=SuggestionType.WARNING,
            title=f"{name} at critical 90%" if strict else f"{name} is at 90%",
            message=f"Only {_money(detail.budget - detail.spent)} remaining in this category.",
        )
    if pct >= 70 and mode != BudgetMode.FLEXIBLE:
        return Suggestion(
            id=f"alert70-{detail.category_id}",
            type=SuggestionType.WARNING if strict else SuggestionType.INFO,
            title=f"{name} approaching limit ({pct:.0f}%)" if strict else f"{name} is at 70%",
            message="Consider slowing down spending in this category.",
        )
    if pct >= 50 and strict:
        return Suggestion(
            id=f"alert50-{detail.category_id}",
            type=SuggestionType.INFO,
            title=f"{name} is at {pct:.0f}%",
            message="Half of your budget has been used. Plan remaining spending carefully.",
        )
    if mode == BudgetMode.FLEXIBLE and pct >= detail.alert_threshold:
        return Suggestion(
            id=f"threshold-{detail.category_id}",
            type=SuggestionType.INFO,
            title=f"{name} passed its {detail.alert_threshold}% alert",
            message=f"{_money(detail.budget - detail.spent)} left for the rest of the month.",
        )
    return None

def _income_suggestions(
    details: List[CategorySpending],
    settings: FinancialSettingsSnapshot,
    mode: BudgetMode,
    today: date,
) -> List[Suggestion]:
    income = Decimal(str(settings.monthly_income or 0))
    if income <= ZERO:
        return []

    by_type = spending_by_type(details)
    strict = mode == BudgetMode.STRICT
    needs_target = income * Decimal(str(settings.needs_percentage)) / 100
    wants_target = income * Decimal(str(settings.wants_percentage)) / 100
    savings_target = income * Decimal(str(settings.savings_percentage)) / 100

    suggestions = []
    if by_type[CategoryType.NEEDS] > needs_target:
        share = by_type[CategoryType.NEEDS] * 100 / income
        suggestions.append(Suggestion(
            id="needs-high",
            type=SuggestionType.WARNING,
            title="Needs spending exceeds allocation" if strict else "Needs spending is high",
            message=f"You've spent {share:.0f}% on needs. Target is {settings.needs_percentage:.0f}%.",
        ))
    if by_type[CategoryType.WANTS] > wants_target:
        suggestions.append(Suggestion(
            id="wants-high",
            type=SuggestionType.WARNING,
            title="Wants spending exceeds allocation" if strict else "Wants spending is high",
            message="Consider reducing discretionary spending to stay on track.",
        ))
    if by_type[CategoryType.SAVINGS] < savings_target / 2 and today.day > SAVINGS_CHECK_DAY:
        suggestions.append(Suggestion(
            id="savings-low",
            type=SuggestionType.INFO,
            title="Savings below target",
            message="You're behind on your savings goal. Consider setting aside more this month.",
        ))
    return suggestions

def _reallocation(details: List[CategorySpending]) -> Optional[Suggestion]:
    under_utilized = [
        d for d in details
        if d.percentage is not None and d.percentage < REALLOCATION_SOURCE_PERCENT
    ]
    over_budget = [d for d in details if d.is_over_budget]
    if not under_utilized or not over_budget:
        return None

    source, target = under_utilized[0], over_budget[0]
    available = (source.budget - source.spent).quantize(Decimal("1"))
    if available <= ZERO:
        return None

    return Suggestion(
        id=f"realloc-{source.category_id}-{target.category_id}",
        type=SuggestionType.REALLOCATION,
        title="Budget reallocation available",
        message=f"Move {_money(available)} from {source.category_name} to {target.category_name}?",
        action=SuggestionAction(
            label="Reallocate",
            category_id=target.category_id,
            suggested_amount=target.budget + available,
        ),
    )

def generate_suggestions(
    details: List[CategorySpending],
    settings: FinancialSettingsSnapshot,
    today: Optional[date] = None,
) -> List[Suggestion]:
    """
    Build the ranked suggestion list: warnings, then reallocations, then
    tips, then the all-clear. Order inside a rank follows category order.
    """
    if not settings.show_budget_suggestions or not settings.smart_rules_enabled:
        return []

    today = today or date.today()
    mode = BudgetMode(settings.budget_mode)
    suggestions: List[Suggestion] = []

    for detail in details:
        if detail.percentage is None:
            continue
        suggestion = _category_suggestions(detail, mode)
        if suggestion is not None:
            suggestions.append(suggestion)

    suggestions.extend(_income_suggestions(details, settings, mode, today))

    reallocation = _reallocation(details)
    if reallocation is not None:
        suggestions.append(reallocation)

    has_budgets = any(d.percentage is not None for d in details)
    if has_budgets and not any(s.type == SuggestionType.WARNING for s in suggestions):
        suggestions.append(Suggestion(
            id="on-track",
            type=SuggestionType.SUCCESS,
            title="All categories on track",
            message="Every budgeted category is within its limit this month.",
        ))

    # sorted() is stable, so category order survives inside each rank
    return sorted(suggestions, key=lambda s: RANK[s.type])

class SuggestionBoard:
    """
    Session-local view over a suggestion list.

    Dismissals live only as long as the board; a fresh board built from
    recomputed suggestions shows everything again.
    """

    def __init__(
        self,
        suggestions: List[Suggestion],
        set_budget: Callable[[int, Decimal], Awaitable[Any]],
        display_limit: int = DISPLAY_LIMIT,
    ):
        self.suggestions = list(suggestions)
        self.set_budget = set_budget
        self.display_limit = display_limit
        self.dismissed: Set[str] = set()

    @property
    def active(self) -> List[Suggestion]:
        return [s for s in self.suggestions if s.id not in self.dismissed]

    def visible(self) -> Tuple[List[Suggestion], int]:
        """First ``display_limit`` active suggestions and how many are hidden"""
        active = self.active
        return active[:self.display_limit], max(0, len(active) - self.display_limit)

    def dismiss(self, suggestion_id: str) -> None:
        self.dismissed.add(suggestion_id)

    def get(self, suggestion_id: str) -> Suggestion:
        for suggestion in self.active:
            if suggestion.id == suggestion_id:
                return suggestion
        raise NotFoundError(f"Suggestion {suggestion_id} not found")

    async def accept(self, suggestion_id: str) -> Suggestion:
        suggestion = self.get(suggestion_id)
        if suggestion.type != SuggestionType.REALLOCATION or suggestion.action is None:
            raise ValidationFailedError("Only reallocation suggestions can be accepted")

        await self.set_budget(suggestion.action.category_id, suggestion.action.suggested_amount)
        logger.info(
            "Accepted %s: category=%s amount=%s",
            suggestion.id, suggestion.action.category_id, suggestion.action.suggested_amount
        )
        self.dismiss(suggestion.id)
        return suggestion
