from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from spendlog.models.budget import AppMode, BudgetMode
from spendlog.models.category import CategoryType

class CategorySpendingResponse(BaseModel):
    category_id: int
    category_name: str
    category_type: CategoryType
    spent: float
    budget: float
    percentage: Optional[float] = None
    display_percentage: float
    is_over_budget: bool
    alert_threshold: int

class SuggestionActionResponse(BaseModel):
    label: str
    category_id: int
    suggested_amount: float

class SuggestionResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    action: Optional[SuggestionActionResponse] = None

class SuggestionListResponse(BaseModel):
    suggestions: List[SuggestionResponse]
    hidden_count: int

class BudgetHealthResponse(BaseModel):
    month: str
    score: int
    label: str
    needs_usage: Optional[float] = None
    wants_usage: Optional[float] = None
    savings_progress: Optional[float] = None
    over_budget_categories: int
    under_utilized_categories: int
    suggestions: List[SuggestionResponse]

class BudgetAdjustmentResponse(BaseModel):
    category_id: int
    category_name: str
    current_budget: float
    suggested_budget: float
    reason: str

class CategoryBudgetSet(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    budget_amount: float = Field(..., ge=0)

class CategoryBudgetResponse(BaseModel):
    id: int
    category_id: int
    month: str
    budget_amount: float
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AcceptSuggestionRequest(BaseModel):
    month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")

class FinancialSettingsUpdate(BaseModel):
    monthly_income: Optional[float] = Field(None, ge=0)
    budget_mode: Optional[BudgetMode] = None
    needs_percentage: Optional[float] = Field(None, ge=0, le=100)
    wants_percentage: Optional[float] = Field(None, ge=0, le=100)
    savings_percentage: Optional[float] = Field(None, ge=0, le=100)
    min_savings_target: Optional[float] = Field(None, ge=0)
    show_budget_suggestions: Optional[bool] = None
    smart_rules_enabled: Optional[bool] = None

class FinancialSettingsResponse(BaseModel):
    monthly_income: Optional[float] = None
    budget_mode: BudgetMode
    needs_percentage: float
    wants_percentage: float
    savings_percentage: float
    min_savings_target: float
    show_budget_suggestions: bool
    smart_rules_enabled: bool
    app_mode: AppMode

    class Config:
        from_attributes = True

class SpendingTrendPoint(BaseModel):
    month: str
    month_name: str
    total_spent: float
