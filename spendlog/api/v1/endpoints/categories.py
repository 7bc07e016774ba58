"""
Category API Endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, delete, func, update
from typing import List

from spendlog.api.deps import get_db, get_current_user_id, get_budget_service
from spendlog.schemas.category import (
    CategoryCreate,
    CategoryResponse,
    CategoryTypeUpdate,
    CategoryUpdate
)
from spendlog.models import Category, CategoryBudget, CategoryMapping, Expense, ExtractedTransaction
from spendlog.services.budget_service import BudgetService
from spendlog.services.category_types import default_categories

router = APIRouter()

async def _get_category(db: AsyncSession, user_id: int, category_id: int) -> Category:
    result = await db.execute(
        select(Category).where(and_(Category.id == category_id, Category.user_id == user_id))
    )
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category

async def _check_unique_name(db: AsyncSession, user_id: int, name: str, exclude_id: int = None):
    query = select(Category.id).where(
        and_(Category.user_id == user_id, func.lower(Category.name) == name.strip().lower())
    )
    if exclude_id is not None:
        query = query.where(Category.id != exclude_id)
    if (await db.execute(query)).first():
        raise HTTPException(status_code=409, detail="A category with this name already exists")

@router.get("/", response_model=List[CategoryResponse])
async def get_categories(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Category).where(Category.user_id == user_id).order_by(Category.name)
    )
    return result.scalars().all()

@router.post("/", response_model=CategoryResponse)
async def create_category(
    category: CategoryCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    await _check_unique_name(db, user_id, category.name)

    data = category.model_dump()
    data["name"] = data["name"].strip()
    if category.category_type is not None:
        data["category_type"] = category.category_type.value

    db_category = Category(user_id=user_id, **data)
    db.add(db_category)
    await db.commit()
    await db.refresh(db_category)

    return db_category

@router.post("/defaults", response_model=List[CategoryResponse])
async def create_default_categories(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Add any missing default categories
    """
    result = await db.execute(select(Category.name).where(Category.user_id == user_id))
    created = default_categories(user_id, result.scalars().all())

    db.add_all(created)
    await db.commit()
    for category in created:
        await db.refresh(category)

    return created

@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    category_update: CategoryUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    category = await _get_category(db, user_id, category_id)
    changes = category_update.model_dump(exclude_unset=True)

    if changes.get("name"):
        await _check_unique_name(db, user_id, changes["name"], exclude_id=category_id)
        changes["name"] = changes["name"].strip()
    if "category_type" in changes and changes["category_type"] is not None:
        changes["category_type"] = changes["category_type"].value

    for field, value in changes.items():
        if value is None and field not in ("monthly_budget", "category_type"):
            continue
        setattr(category, field, value)

    await db.commit()
    await db.refresh(category)

    return category

@router.put("/{category_id}/type", response_model=CategoryResponse)
async def set_category_type(
    category_id: int,
    type_update: CategoryTypeUpdate,
    service: BudgetService = Depends(get_budget_service)
):
    """
    Set needs/wants/savings explicitly, or clear it to infer from the name
    """
    category_type = type_update.category_type.value if type_update.category_type else None
    return await service.set_category_type(category_id, category_type)

@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a category; its expenses become uncategorized
    """
    category = await _get_category(db, user_id, category_id)

    await db.execute(
        update(Expense).where(Expense.category_id == category_id).values(category_id=None)
    )
    await db.execute(
        update(ExtractedTransaction)
        .where(ExtractedTransaction.suggested_category_id == category_id)
        .values(suggested_category_id=None)
    )
    await db.execute(delete(CategoryBudget).where(CategoryBudget.category_id == category_id))
    await db.execute(delete(CategoryMapping).where(CategoryMapping.category_id == category_id))
    await db.delete(category)
    await db.commit()

    return {"message": "Category deleted successfully"}
