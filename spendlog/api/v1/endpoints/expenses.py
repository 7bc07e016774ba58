"""
Expense API Endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, desc, func
from typing import List, Optional

from spendlog.api.deps import get_db, get_current_user_id
from spendlog.core.datetime_utils import month_bounds
from spendlog.schemas.expense import (
    ExpenseCreate,
    ExpenseResponse,
    ExpenseUpdate,
    MonthlySummary
)
from spendlog.models import Category, Expense

router = APIRouter()

MONTH_QUERY = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$", description="YYYY-MM")

async def _check_category(db: AsyncSession, user_id: int, category_id: Optional[int]):
    if category_id is None:
        return
    result = await db.execute(
        select(Category.id).where(and_(Category.id == category_id, Category.user_id == user_id))
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Category not found")

async def _get_expense(db: AsyncSession, user_id: int, expense_id: int) -> Expense:
    result = await db.execute(
        select(Expense).where(and_(Expense.id == expense_id, Expense.user_id == user_id))
    )
    expense = result.scalar_one_or_none()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense

@router.post("/", response_model=ExpenseResponse)
async def create_expense(
    expense: ExpenseCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a new expense
    """
    await _check_category(db, user_id, expense.category_id)

    data = expense.model_dump()
    data["payment_method"] = expense.payment_method.value
    db_expense = Expense(user_id=user_id, **data)

    db.add(db_expense)
    await db.commit()
    await db.refresh(db_expense)

    return db_expense

@router.get("/", response_model=List[ExpenseResponse])
async def get_expenses(
    month: Optional[str] = MONTH_QUERY,
    category_id: Optional[int] = None,
    include_drafts: bool = True,
    limit: int = Query(100, le=500),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    List expenses, newest first, optionally for one month and/or category
    """
    query = select(Expense).where(Expense.user_id == user_id)

    if month:
        start, end = month_bounds(month)
        query = query.where(and_(Expense.date >= start, Expense.date <= end))
    if category_id is not None:
        query = query.where(Expense.category_id == category_id)
    if not include_drafts:
        query = query.where(Expense.is_draft == False)  # noqa: E712

    query = query.order_by(desc(Expense.date), desc(Expense.id)).limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

@router.get("/summary/{month}", response_model=MonthlySummary)
async def get_monthly_summary(
    month: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Totals for a month, overall and per category name
    """
    start, end = month_bounds(month)

    stmt = (
        select(
            Category.name,
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("count")
        )
        .select_from(Expense)
        .outerjoin(Category, Expense.category_id == Category.id)
        .where(
            and_(
                Expense.user_id == user_id,
                Expense.is_draft == False,  # noqa: E712
                Expense.date >= start,
                Expense.date <= end
            )
        )
        .group_by(Category.name)
    )
    result = await db.execute(stmt)

    by_category = {}
    total = 0.0
    count = 0
    for row in result:
        amount = round(float(row.total or 0), 2)
        by_category[row.name or "Uncategorized"] = amount
        total += amount
        count += row.count

    return MonthlySummary(
        month=month,
        total_spent=round(total, 2),
        expense_count=count,
        by_category=by_category
    )

@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    return await _get_expense(db, user_id, expense_id)

@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    expense_update: ExpenseUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Update expense fields; omitted fields are left alone
    """
    expense = await _get_expense(db, user_id, expense_id)
    changes = expense_update.model_dump(exclude_unset=True)

    if "category_id" in changes:
        await _check_category(db, user_id, changes["category_id"])
    if changes.get("payment_method") is not None:
        changes["payment_method"] = changes["payment_method"].value

    for field, value in changes.items():
        if value is None and field not in ("category_id", "note"):
            continue
        setattr(expense, field, value)

    await db.commit()
    await db.refresh(expense)

    return expense

@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    expense = await _get_expense(db, user_id, expense_id)

    await db.delete(expense)
    await db.commit()

    return {"message": "Expense deleted successfully"}
