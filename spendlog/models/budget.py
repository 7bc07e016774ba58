import enum

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from spendlog.core.database import Base

class BudgetMode(str, enum.Enum):
    FLEXIBLE = "flexible"
    GUIDED = "guided"
    STRICT = "strict"

class AppMode(str, enum.Enum):
    SIMPLE = "simple"
    ADVANCED = "advanced"

class CategoryBudget(Base):
    """Per-month override of a category's default monthly budget"""
    __tablename__ = "category_budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "month", name="uq_category_budgets_month"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    
    month = Column(String(7), nullable=False)  # YYYY-MM
    budget_amount = Column(Numeric(12, 2), nullable=False, default=0)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class UserFinancialSettings(Base):
    __tablename__ = "user_financial_settings"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    
    monthly_income = Column(Numeric(12, 2), nullable=True)
    budget_mode = Column(String(10), nullable=False, default=BudgetMode.FLEXIBLE.value)
    needs_percentage = Column(Numeric(5, 2), nullable=False, default=50)
    wants_percentage = Column(Numeric(5, 2), nullable=False, default=30)
    savings_percentage = Column(Numeric(5, 2), nullable=False, default=20)
    min_savings_target = Column(Numeric(12, 2), nullable=False, default=0)
    show_budget_suggestions = Column(Boolean, nullable=False, default=True)
    smart_rules_enabled = Column(Boolean, nullable=False, default=True)
    app_mode = Column(String(10), nullable=False, default=AppMode.SIMPLE.value)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
