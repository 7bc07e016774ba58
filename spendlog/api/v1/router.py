"""
API v1 Router
"""

from fastapi import APIRouter
from spendlog.api.v1.endpoints import budget, categories, expenses, files, imports, insights, profile

api_router = APIRouter()

api_router.include_router(
    expenses.router,
    prefix="/expenses",
    tags=["expenses"]
)

api_router.include_router(
    categories.router,
    prefix="/categories",
    tags=["categories"]
)

api_router.include_router(
    budget.router,
    prefix="/budget",
    tags=["budget"]
)

api_router.include_router(
    imports.router,
    prefix="/imports",
    tags=["statement-imports"]
)

api_router.include_router(
    insights.router,
    prefix="/insights",
    tags=["insights"]
)

api_router.include_router(
    profile.router,
    prefix="/profile",
    tags=["profile"]
)

api_router.include_router(
    files.router,
    prefix="/files",
    tags=["files"]
)
