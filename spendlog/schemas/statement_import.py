from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional

class StatementImportResponse(BaseModel):
    id: int
    file_name: str
    bank_name: Optional[str] = None
    statement_period_start: Optional[date] = None
    statement_period_end: Optional[date] = None
    total_transactions: int
    imported_transactions: int
    status: str
    error_message: Optional[str] = None
    expires_at: datetime
    created_at: datetime
    poll_after_ms: Optional[int] = None

    class Config:
        from_attributes = True

class ParseRequest(BaseModel):
    password: Optional[str] = None

class ParseResponse(BaseModel):
    success: bool
    password_required: bool = False
    message: Optional[str] = None
    bank_name: Optional[str] = None
    transaction_count: int = 0
    period_start: Optional[date] = None
    period_end: Optional[date] = None

class SuggestedCategory(BaseModel):
    name: str
    icon: str
    color: str

class CategorizeResponse(BaseModel):
    total_transactions: int
    categorized_count: int
    avg_confidence: int
    suggested_categories: List[SuggestedCategory] = []

class ExtractedTransactionResponse(BaseModel):
    id: int
    import_id: int
    transaction_date: date
    description: str
    amount: float
    transaction_type: str
    balance: Optional[float] = None
    suggested_category_id: Optional[int] = None
    ai_confidence: Optional[float] = None
    is_selected: bool
    is_duplicate: bool
    duplicate_of: Optional[int] = None
    duplicate_override: bool

    class Config:
        from_attributes = True

class ExtractedTransactionUpdate(BaseModel):
    is_selected: Optional[bool] = None
    suggested_category_id: Optional[int] = None

class CommitItem(BaseModel):
    transaction_id: int
    category_id: Optional[int] = None

class CommitRequest(BaseModel):
    # Omitted means every eligible row
    selections: Optional[List[CommitItem]] = Field(None, max_length=1000)

class CommitResponse(BaseModel):
    imported_count: int
    total_transactions: int
