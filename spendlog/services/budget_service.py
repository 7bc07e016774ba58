"""
Budget Service
Loads a month's snapshot from the database and runs the health engine over it
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.core.database import build_upsert
from spendlog.core.datetime_utils import month_bounds, month_key, previous_month, utcnow, validate_month
from spendlog.core.exceptions import NotFoundError, ValidationFailedError
from spendlog.models import (
    AppMode,
    BudgetMode,
    Category,
    CategoryBudget,
    CategoryType,
    Expense,
    UserFinancialSettings,
)
from spendlog.services.budget_health import (
    BudgetAdjustment,
    BudgetHealthMetrics,
    CategorySnapshot,
    CategorySpending,
    ExpenseSnapshot,
    FinancialSettingsSnapshot,
    category_details,
    compute_health_metrics,
    effective_budgets,
    previous_month_adjustments,
)
from spendlog.services.category_types import resolve_category_type
from spendlog.services.suggestions import Suggestion, SuggestionBoard

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "monthly_income": None,
    "budget_mode": BudgetMode.FLEXIBLE.value,
    "needs_percentage": Decimal("50"),
    "wants_percentage": Decimal("30"),
    "savings_percentage": Decimal("20"),
    "min_savings_target": Decimal("0"),
    "show_budget_suggestions": True,
    "smart_rules_enabled": True,
    "app_mode": AppMode.SIMPLE.value,
}

EDITABLE_SETTINGS = set(DEFAULT_SETTINGS) - {"app_mode"}

class BudgetService:
    """
    Month budgets, financial settings and budget health for one user
    """

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    # Settings

    async def get_settings(self) -> UserFinancialSettings:
        """Stored settings, or an unsaved row holding the defaults"""
        result = await self.db.execute(
            select(UserFinancialSettings).where(UserFinancialSettings.user_id == self.user_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = UserFinancialSettings(user_id=self.user_id, **DEFAULT_SETTINGS)
        return row

    async def update_settings(self, changes: Dict) -> UserFinancialSettings:
        unknown = set(changes) - EDITABLE_SETTINGS
        if unknown:
            raise ValidationFailedError(f"Unknown settings: {', '.join(sorted(unknown))}")

        current = await self.get_settings()
        merged = {key: getattr(current, key) for key in EDITABLE_SETTINGS}
        merged.update(changes)

        merged["budget_mode"] = BudgetMode(merged["budget_mode"]).value
        split = sum(
            Decimal(str(merged[key]))
            for key in ("needs_percentage", "wants_percentage", "savings_percentage")
        )
        if split != Decimal("100"):
            raise ValidationFailedError("Needs, wants and savings percentages must add up to 100")
        if merged["monthly_income"] is not None and Decimal(str(merged["monthly_income"])) < 0:
            raise ValidationFailedError("Monthly income cannot be negative")
        if Decimal(str(merged["min_savings_target"])) < 0:
            raise ValidationFailedError("Savings target cannot be negative")

        await self.db.execute(build_upsert(
            self.db,
            UserFinancialSettings,
            {"user_id": self.user_id, **merged},
            ["user_id"],
            {**merged, "updated_at": utcnow()}
        ))
        await self.db.commit()
        logger.info("Updated financial settings for user %s", self.user_id)

        self.db.expire_all()
        return await self.get_settings()

    @staticmethod
    def settings_snapshot(row: UserFinancialSettings) -> FinancialSettingsSnapshot:
        return FinancialSettingsSnapshot(
            monthly_income=Decimal(str(row.monthly_income)) if row.monthly_income is not None else None,
            budget_mode=BudgetMode(row.budget_mode),
            needs_percentage=Decimal(str(row.needs_percentage)),
            wants_percentage=Decimal(str(row.wants_percentage)),
            savings_percentage=Decimal(str(row.savings_percentage)),
            min_savings_target=Decimal(str(row.min_savings_target or 0)),
            show_budget_suggestions=bool(row.show_budget_suggestions),
            smart_rules_enabled=bool(row.smart_rules_enabled),
        )

    # Month snapshot

    async def _get_category(self, category_id: int) -> Category:
        result = await self.db.execute(
            select(Category).where(Category.id == category_id, Category.user_id == self.user_id)
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category not found")
        return category

    async def get_month_budgets(self, month: str) -> Dict[int, Decimal]:
        validate_month(month)
        result = await self.db.execute(
            select(CategoryBudget.category_id, CategoryBudget.budget_amount).where(
                CategoryBudget.user_id == self.user_id,
                CategoryBudget.month == month
            )
        )
        return {category_id: Decimal(str(amount)) for category_id, amount in result.all()}

    async def load_month(self, month: str) -> Tuple[List[CategorySnapshot], List[ExpenseSnapshot]]:
        start, end = month_bounds(month)

        categories = (await self.db.execute(
            select(Category).where(Category.user_id == self.user_id).order_by(Category.name)
        )).scalars().all()
        budgets = effective_budgets(
            {c.id: c.monthly_budget for c in categories},
            await self.get_month_budgets(month)
        )

        category_snapshots = [
            CategorySnapshot(
                id=c.id,
                name=c.name,
                budget=budgets[c.id],
                category_type=resolve_category_type(c.name, c.category_type),
                alert_threshold=c.budget_alert_threshold,
            )
            for c in categories
        ]

        expenses = (await self.db.execute(
            select(Expense.amount, Expense.category_id, Expense.date).where(
                Expense.user_id == self.user_id,
                Expense.is_draft == False,  # noqa: E712
                Expense.date >= start,
                Expense.date <= end
            )
        )).all()
        expense_snapshots = [
            ExpenseSnapshot(amount=Decimal(str(amount)), category_id=category_id, date=day)
            for amount, category_id, day in expenses
        ]
        return category_snapshots, expense_snapshots

    @staticmethod
    def _reference_day(month: str, today: Optional[date] = None) -> date:
        """Today inside the current month, otherwise the month's last day"""
        today = today or date.today()
        if month_key(today) == month:
            return today
        return month_bounds(month)[1]

    # Health

    async def get_category_details(self, month: str) -> List[CategorySpending]:
        categories, expenses = await self.load_month(month)
        return category_details(categories, expenses)

    async def get_health(self, month: str, today: Optional[date] = None) -> BudgetHealthMetrics:
        categories, expenses = await self.load_month(month)
        settings_row = await self.get_settings()
        return compute_health_metrics(
            categories,
            expenses,
            self.settings_snapshot(settings_row),
            today=self._reference_day(month, today)
        )

    async def get_auto_adjustments(self, month: str) -> List[BudgetAdjustment]:
        return previous_month_adjustments(
            await self.get_category_details(previous_month(month))
        )

    async def accept_suggestion(self, month: str, suggestion_id: str, today: Optional[date] = None) -> Suggestion:
        metrics = await self.get_health(month, today=today)

        async def set_budget(category_id: int, amount: Decimal):
            await self.set_category_budget(category_id, month, amount)

        board = SuggestionBoard(metrics.suggestions, set_budget)
        return await board.accept(suggestion_id)

    # Budgets and types

    async def set_category_budget(self, category_id: int, month: str, amount) -> CategoryBudget:
        validate_month(month)
        await self._get_category(category_id)
        amount = Decimal(str(amount))
        if amount < 0:
            raise ValidationFailedError("Budget cannot be negative")

        await self.db.execute(build_upsert(
            self.db,
            CategoryBudget,
            {"user_id": self.user_id, "category_id": category_id, "month": month, "budget_amount": amount},
            ["user_id", "category_id", "month"],
            {"budget_amount": amount, "updated_at": utcnow()}
        ))
        await self.db.commit()
        logger.info("Budget for category %s in %s set to %s", category_id, month, amount)

        result = await self.db.execute(
            select(CategoryBudget)
            .where(
                CategoryBudget.user_id == self.user_id,
                CategoryBudget.category_id == category_id,
                CategoryBudget.month == month
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def reset_category_budget(self, category_id: int, month: str) -> None:
        """Drop the month override so the category default applies again"""
        validate_month(month)
        await self._get_category(category_id)
        await self.db.execute(
            delete(CategoryBudget).where(
                CategoryBudget.user_id == self.user_id,
                CategoryBudget.category_id == category_id,
                CategoryBudget.month == month
            )
        )
        await self.db.commit()

    async def set_category_type(self, category_id: int, category_type: Optional[str]) -> Category:
        category = await self._get_category(category_id)
        category.category_type = CategoryType(category_type).value if category_type else None
        await self.db.commit()
        await self.db.refresh(category)
        return category

    # Trends

    async def get_spending_trend(self, months: int = 6, end_month: Optional[str] = None) -> List[Dict]:
        """
        Total non-draft spending per month, oldest first
        """
        month = end_month or month_key(date.today())
        keys = [month]
        for _ in range(months - 1):
            keys.append(previous_month(keys[-1]))
        keys.reverse()

        trends = []
        for key in keys:
            start, end = month_bounds(key)
            stmt = select(func.sum(Expense.amount)).where(
                and_(
                    Expense.user_id == self.user_id,
                    Expense.is_draft == False,  # noqa: E712
                    Expense.date >= start,
                    Expense.date <= end
                )
            )
            total_spent = (await self.db.execute(stmt)).scalar() or 0
            trends.append({
                'month': key,
                'month_name': start.strftime('%B'),
                'total_spent': round(float(total_spent), 2)
            })

        return trends
