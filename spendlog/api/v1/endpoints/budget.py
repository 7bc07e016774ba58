"""
Budget API Endpoints
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from spendlog.api.deps import get_budget_service
from spendlog.core.datetime_utils import month_key
from spendlog.schemas.budget import (
    AcceptSuggestionRequest,
    BudgetAdjustmentResponse,
    BudgetHealthResponse,
    CategoryBudgetResponse,
    CategoryBudgetSet,
    CategorySpendingResponse,
    FinancialSettingsResponse,
    FinancialSettingsUpdate,
    SpendingTrendPoint,
    SuggestionListResponse,
    SuggestionResponse
)
from spendlog.services.budget_health import clamp_for_display
from spendlog.services.budget_service import BudgetService
from spendlog.services.suggestions import Suggestion, SuggestionBoard

router = APIRouter()

MONTH_QUERY = Query(None, description="YYYY-MM, defaults to the current month")

def _month(month: Optional[str]) -> str:
    return month or month_key(date.today())

def suggestion_response(suggestion: Suggestion) -> SuggestionResponse:
    action = None
    if suggestion.action is not None:
        action = {
            "label": suggestion.action.label,
            "category_id": suggestion.action.category_id,
            "suggested_amount": float(suggestion.action.suggested_amount),
        }
    return SuggestionResponse(
        id=suggestion.id,
        type=suggestion.type.value,
        title=suggestion.title,
        message=suggestion.message,
        action=action
    )

@router.get("/health", response_model=BudgetHealthResponse)
async def get_budget_health(
    month: Optional[str] = MONTH_QUERY,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Budget health score, type usage and ranked suggestions for a month
    """
    month = _month(month)
    metrics = await service.get_health(month)

    return BudgetHealthResponse(
        month=month,
        score=metrics.score,
        label=metrics.label,
        needs_usage=metrics.needs_usage,
        wants_usage=metrics.wants_usage,
        savings_progress=metrics.savings_progress,
        over_budget_categories=metrics.over_budget_categories,
        under_utilized_categories=metrics.under_utilized_categories,
        suggestions=[suggestion_response(s) for s in metrics.suggestions]
    )

@router.get("/categories", response_model=List[CategorySpendingResponse])
async def get_category_details(
    month: Optional[str] = MONTH_QUERY,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Spent vs. effective budget per category
    """
    details = await service.get_category_details(_month(month))

    return [
        CategorySpendingResponse(
            category_id=d.category_id,
            category_name=d.category_name,
            category_type=d.category_type,
            spent=float(d.spent),
            budget=float(d.budget),
            percentage=d.percentage,
            display_percentage=clamp_for_display(d.percentage),
            is_over_budget=d.is_over_budget,
            alert_threshold=d.alert_threshold
        )
        for d in details
    ]

@router.get("/suggestions", response_model=SuggestionListResponse)
async def get_suggestions(
    month: Optional[str] = MONTH_QUERY,
    dismissed: List[str] = Query([], description="Suggestion ids dismissed in this session"),
    service: BudgetService = Depends(get_budget_service)
):
    """
    First five active suggestions; dismissals are held by the client
    """
    month = _month(month)
    metrics = await service.get_health(month)

    async def set_budget(category_id, amount):
        await service.set_category_budget(category_id, month, amount)

    board = SuggestionBoard(metrics.suggestions, set_budget)
    for suggestion_id in dismissed:
        board.dismiss(suggestion_id)

    visible, hidden_count = board.visible()
    return SuggestionListResponse(
        suggestions=[suggestion_response(s) for s in visible],
        hidden_count=hidden_count
    )

@router.post("/suggestions/{suggestion_id}/accept", response_model=SuggestionResponse)
async def accept_suggestion(
    suggestion_id: str,
    request: AcceptSuggestionRequest,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Apply a reallocation suggestion: one budget upsert for the target category
    """
    suggestion = await service.accept_suggestion(_month(request.month), suggestion_id)
    return suggestion_response(suggestion)

@router.get("/adjustments", response_model=List[BudgetAdjustmentResponse])
async def get_auto_adjustments(
    month: Optional[str] = MONTH_QUERY,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Suggested budgets for categories that went over last month
    """
    adjustments = await service.get_auto_adjustments(_month(month))

    return [
        BudgetAdjustmentResponse(
            category_id=a.category_id,
            category_name=a.category_name,
            current_budget=float(a.current_budget),
            suggested_budget=float(a.suggested_budget),
            reason=a.reason
        )
        for a in adjustments
    ]

@router.put("/categories/{category_id}", response_model=CategoryBudgetResponse)
async def set_category_budget(
    category_id: int,
    request: CategoryBudgetSet,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Set a category's budget for one month
    """
    return await service.set_category_budget(category_id, request.month, request.budget_amount)

@router.delete("/categories/{category_id}")
async def reset_category_budget(
    category_id: int,
    month: str = Query(..., description="YYYY-MM"),
    service: BudgetService = Depends(get_budget_service)
):
    """
    Remove the month override so the category default applies
    """
    await service.reset_category_budget(category_id, month)
    return {"message": "Budget reset to category default"}

@router.get("/settings", response_model=FinancialSettingsResponse)
async def get_financial_settings(
    service: BudgetService = Depends(get_budget_service)
):
    return await service.get_settings()

@router.put("/settings", response_model=FinancialSettingsResponse)
async def update_financial_settings(
    request: FinancialSettingsUpdate,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Update income, budget mode and the needs/wants/savings split
    """
    changes = request.model_dump(exclude_unset=True)
    if changes.get("budget_mode") is not None:
        changes["budget_mode"] = changes["budget_mode"].value
    return await service.update_settings(changes)

@router.get("/trend", response_model=List[SpendingTrendPoint])
async def get_spending_trend(
    months: int = Query(6, ge=1, le=24),
    service: BudgetService = Depends(get_budget_service)
):
    return await service.get_spending_trend(months)
