from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from spendlog.models.category import CategoryType

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#2DD4BF", max_length=20)
    icon: str = Field("tag", max_length=50)
    monthly_budget: Optional[float] = Field(None, ge=0)
    budget_alert_threshold: int = Field(80, ge=0, le=100)
    category_type: Optional[CategoryType] = None

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=20)
    icon: Optional[str] = Field(None, max_length=50)
    monthly_budget: Optional[float] = Field(None, ge=0)
    budget_alert_threshold: Optional[int] = Field(None, ge=0, le=100)
    category_type: Optional[CategoryType] = None

class CategoryTypeUpdate(BaseModel):
    # None clears the explicit type so it is inferred from the name again
    category_type: Optional[CategoryType] = None

class CategoryResponse(CategoryBase):
    id: int
    user_id: int
    resolved_type: CategoryType
    created_at: datetime

    class Config:
        from_attributes = True
