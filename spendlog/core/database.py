from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from typing import Any, Dict, Iterable
from spendlog.config import settings

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True
)

# Create async session
async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()

def build_upsert(
    session: AsyncSession,
    model,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_values: Dict[str, Any],
):
    """
    Build a single INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    The unique constraint named by ``conflict_columns`` makes the write atomic
    under concurrent writers; no explicit locking is used.
    """
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=update_values
    )

def build_insert_ignore(
    session: AsyncSession,
    model,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
):
    """INSERT that leaves an existing row with the same unique key untouched"""
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
