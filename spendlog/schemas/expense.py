from pydantic import BaseModel, Field
import datetime as dt
from typing import Optional

from spendlog.models.expense import PaymentMethod

class ExpenseBase(BaseModel):
    amount: float = Field(..., gt=0)
    date: dt.date
    category_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = Field(None, max_length=500)
    is_draft: bool = False

class ExpenseCreate(ExpenseBase):
    pass

class ExpenseUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    date: Optional[dt.date] = None
    category_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = Field(None, max_length=500)
    is_draft: Optional[bool] = None

class ExpenseResponse(ExpenseBase):
    id: int
    user_id: int
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True

class MonthlySummary(BaseModel):
    month: str
    total_spent: float
    expense_count: int
    by_category: dict
