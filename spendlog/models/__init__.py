"""Database models initialization."""

# Import all models to ensure they're registered with SQLAlchemy
from .user import User
from .expense import Expense, PaymentMethod
from .category import Category, CategoryMapping, CategoryType
from .budget import AppMode, BudgetMode, CategoryBudget, UserFinancialSettings
from .subscription import Subscription
from .statement_import import ExtractedTransaction, ImportStatus, StatementImport

__all__ = [
    "User",
    "Expense",
    "PaymentMethod",
    "Category",
    "CategoryMapping",
    "CategoryType",
    "AppMode",
    "BudgetMode",
    "CategoryBudget",
    "UserFinancialSettings",
    "Subscription",
    "StatementImport",
    "ExtractedTransaction",
    "ImportStatus"
]
