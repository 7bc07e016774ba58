"""
Budget Health Engine

Pure functions over a month's expenses, categories (with effective budget and
resolved type) and the user's financial settings. Nothing here touches the
database; ``BudgetService`` loads the snapshot and calls in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from spendlog.models.budget import BudgetMode
from spendlog.models.category import CategoryType

ZERO = Decimal("0")
HUNDRED = Decimal("100")

UNDER_UTILIZED_PERCENT = 20

# Points lost per over-budget category
OVER_BUDGET_DEDUCTION = {
    BudgetMode.FLEXIBLE: 5,
    BudgetMode.GUIDED: 10,
    BudgetMode.STRICT: 15,
}
MAX_TOTAL_OVERSPEND_DEDUCTION = 30
MAX_TYPE_OVERUSE_DEDUCTION = 15
SAVINGS_SHORTFALL_DEDUCTION = 10

@dataclass(frozen=True)
class ExpenseSnapshot:
    amount: Decimal
    category_id: Optional[int] = None
    date: Optional[date] = None

@dataclass(frozen=True)
class CategorySnapshot:
    id: int
    name: str
    budget: Decimal
    category_type: CategoryType
    alert_threshold: int = 80

@dataclass(frozen=True)
class FinancialSettingsSnapshot:
    monthly_income: Optional[Decimal] = None
    budget_mode: BudgetMode = BudgetMode.FLEXIBLE
    needs_percentage: Decimal = Decimal("50")
    wants_percentage: Decimal = Decimal("30")
    savings_percentage: Decimal = Decimal("20")
    min_savings_target: Decimal = ZERO
    show_budget_suggestions: bool = True
    smart_rules_enabled: bool = True

@dataclass(frozen=True)
class CategorySpending:
    category_id: int
    category_name: str
    category_type: CategoryType
    spent: Decimal
    budget: Decimal
    percentage: Optional[float]
    is_over_budget: bool
    alert_threshold: int = 80

@dataclass(frozen=True)
class BudgetAdjustment:
    category_id: int
    category_name: str
    current_budget: Decimal
    suggested_budget: Decimal
    reason: str

@dataclass
class BudgetHealthMetrics:
    score: int
    label: str
    needs_usage: Optional[float]
    wants_usage: Optional[float]
    savings_progress: Optional[float]
    over_budget_categories: int
    under_utilized_categories: int
    suggestions: list = field(default_factory=list)

def effective_budgets(
    default_budgets: Mapping[int, Optional[Decimal]],
    month_overrides: Mapping[int, Decimal],
) -> Dict[int, Decimal]:
    """Month override if present, else the category default, else zero"""
    budgets = {
        category_id: _coerce_amount(amount) if amount is not None else ZERO
        for category_id, amount in default_budgets.items()
    }
    for category_id, amount in month_overrides.items():
        budgets[category_id] = _coerce_amount(amount)
    return budgets

def usage_percentage(spent: Decimal, budget: Decimal) -> Optional[float]:
    """
    100 * spent / budget, or None when there is no budget to measure against.

    Not clamped; use ``clamp_for_display`` for progress bars.
    """
    budget = _coerce_amount(budget)
    if budget <= ZERO:
        return None
    return float(_coerce_amount(spent) * HUNDRED / budget)

def clamp_for_display(percentage: Optional[float]) -> float:
    if percentage is None:
        return 0.0
    return max(0.0, min(100.0, percentage))

def spending_by_category(expenses: Iterable[ExpenseSnapshot]) -> Dict[int, Decimal]:
    totals: Dict[int, Decimal] = {}
    for expense in expenses:
        if expense.category_id is None:
            continue
        totals[expense.category_id] = totals.get(expense.category_id, ZERO) + _coerce_amount(expense.amount)
    return totals

def category_details(
    categories: Iterable[CategorySnapshot],
    expenses: Iterable[ExpenseSnapshot],
) -> List[CategorySpending]:
    spent_by_category = spending_by_category(expenses)
    details = []
    for category in categories:
        spent = spent_by_category.get(category.id, ZERO)
        percentage = usage_percentage(spent, category.budget)
        details.append(CategorySpending(
            category_id=category.id,
            category_name=category.name,
            category_type=category.category_type,
            spent=spent,
            budget=category.budget,
            percentage=percentage,
            is_over_budget=percentage is not None and percentage > 100,
            alert_threshold=category.alert_threshold,
        ))
    return details

def spending_by_type(details: Iterable[CategorySpending]) -> Dict[CategoryType, Decimal]:
    result = {category_type: ZERO for category_type in CategoryType}
    for detail in details:
        result[detail.category_type] += detail.spent
    return result

def budget_by_type(details: Iterable[CategorySpending]) -> Dict[CategoryType, Decimal]:
    result = {category_type: ZERO for category_type in CategoryType}
    for detail in details:
        result[detail.category_type] += detail.budget
    return result

def savings_progress(savings_spent: Decimal, settings: FinancialSettingsSnapshot) -> Optional[float]:
    target = _coerce_amount(settings.min_savings_target)
    if target <= ZERO:
        return None
    return min(100.0, float(_coerce_amount(savings_spent) * HUNDRED / target))

def health_score(
    details: List[CategorySpending],
    settings: FinancialSettingsSnapshot,
) -> int:
    """
    0-100 score.

    Every term only grows with spending, so adding spend to any category can
    never raise the score. The savings term is measured on planned savings
    (savings-type budgets), not on savings spend, for the same reason.
    """
    score = 100.0

    over_budget_count = sum(1 for d in details if d.is_over_budget)
    score -= over_budget_count * OVER_BUDGET_DEDUCTION[BudgetMode(settings.budget_mode)]

    total_budget = sum((d.budget for d in details), ZERO)
    total_spent = sum((d.spent for d in details if d.budget > ZERO), ZERO)
    if total_budget > ZERO and total_spent > total_budget:
        overspend_ratio = float((total_spent - total_budget) / total_budget)
        score -= min(MAX_TOTAL_OVERSPEND_DEDUCTION, overspend_ratio * 50)

    spent_by_type = spending_by_type(details)
    budgets_by_type = budget_by_type(details)
    for category_type in (CategoryType.NEEDS, CategoryType.WANTS):
        usage = usage_percentage(spent_by_type[category_type], budgets_by_type[category_type])
        if usage is not None and usage > 100:
            score -= min(MAX_TYPE_OVERUSE_DEDUCTION, (usage - 100) / 2)

    target = _coerce_amount(settings.min_savings_target)
    if target > ZERO:
        planned = budgets_by_type[CategoryType.SAVINGS]
        shortfall = max(0.0, 1 - float(planned / target))
        score -= SAVINGS_SHORTFALL_DEDUCTION * shortfall

    return int(round(max(0.0, min(100.0, score))))

def score_label(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Needs Attention"

def compute_health_metrics(
    categories: Iterable[CategorySnapshot],
    expenses: Iterable[ExpenseSnapshot],
    settings: FinancialSettingsSnapshot,
    today: Optional[date] = None,
) -> BudgetHealthMetrics:
    from spendlog.services.suggestions import generate_suggestions

    details = category_details(list(categories), list(expenses))
    spent_by_type = spending_by_type(details)
    budgets_by_type = budget_by_type(details)

    score = health_score(details, settings)
    under_utilized = sum(
        1 for d in details
        if d.percentage is not None and d.percentage < UNDER_UTILIZED_PERCENT
    )

    return BudgetHealthMetrics(
        score=score,
        label=score_label(score),
        needs_usage=usage_percentage(spent_by_type[CategoryType.NEEDS], budgets_by_type[CategoryType.NEEDS]),
        wants_usage=usage_percentage(spent_by_type[CategoryType.WANTS], budgets_by_type[CategoryType.WANTS]),
        savings_progress=savings_progress(spent_by_type[CategoryType.SAVINGS], settings),
        over_budget_categories=sum(1 for d in details if d.is_over_budget),
        under_utilized_categories=under_utilized,
        suggestions=generate_suggestions(details, settings, today=today),
    )

def previous_month_adjustments(previous_details: Iterable[CategorySpending]) -> List[BudgetAdjustment]:
    """Raise budgets that were blown last month to 110% of what was spent"""
    adjustments = []
    for detail in previous_details:
        if not detail.is_over_budget:
            continue
        overspend = detail.spent - detail.budget
        adjustments.append(BudgetAdjustment(
            category_id=detail.category_id,
            category_name=detail.category_name,
            current_budget=detail.budget,
            suggested_budget=(detail.spent * Decimal("1.1")).quantize(Decimal("1")),
            reason=f"You overspent by ₹{overspend:,.0f} last month",
        ))
    return adjustments

def _coerce_amount(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
