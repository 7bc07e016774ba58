"""
FastAPI Dependencies
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.core.database import async_session
from spendlog.core.exceptions import NotAuthenticatedError
from spendlog.core.security import decode_token
from spendlog.ml.inference.model_loader import model_loader
from spendlog.models import User
from spendlog.services.ai_client import AIClient
from spendlog.services.app_context import AppContext, AppContextService
from spendlog.services.budget_service import BudgetService
from spendlog.services.categorizer import TransactionCategorizer
from spendlog.services.category_types import default_categories
from spendlog.services.insights import InsightsService
from spendlog.services.statement_import import StatementImportService
from spendlog.services.statement_parser import AIStatementExtractor
from spendlog.services.storage import LocalBlobStorage, storage

logger = logging.getLogger(__name__)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()

def get_storage() -> LocalBlobStorage:
    return storage

def get_ai_client() -> AIClient:
    return AIClient()

async def get_current_user_id(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> int:
    """
    Verify the bearer token. Users are provisioned on their first request.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise NotAuthenticatedError()
    claims = decode_token(token.strip())
    user_id = claims["sub"]

    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        db.add(User(id=user_id, email=claims.get("email") or f"user-{user_id}@spendlog.local"))
        await db.flush()
        db.add_all(default_categories(user_id))
        await db.commit()
        logger.info("Provisioned user %s", user_id)
    return user_id

async def get_app_context(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> AppContext:
    """Built once per request"""
    return await AppContextService(db, user_id).load()

def get_budget_service(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> BudgetService:
    return BudgetService(db, user_id)

def get_import_service(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    blob_storage: LocalBlobStorage = Depends(get_storage),
    ai_client: AIClient = Depends(get_ai_client)
) -> StatementImportService:
    return StatementImportService(
        db,
        user_id,
        storage=blob_storage,
        extractor=AIStatementExtractor(ai_client),
        categorizer=TransactionCategorizer(
            ai_client=ai_client,
            classifier=model_loader.get_category_classifier()
        )
    )

def get_insights_service(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ai_client: AIClient = Depends(get_ai_client)
) -> InsightsService:
    return InsightsService(db, user_id, ai_client)
