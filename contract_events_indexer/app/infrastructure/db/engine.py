from __future__ import annotations

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def create_app_async_engine(database_url: str, *, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """
    Factory for AsyncEngine used by background tasks / indexers.

    Centralizing engine creation keeps connection handling consistent
    across tasks and makes it easier to tweak pool settings in one place.
    """
    return create_async_engine(
        database_url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
        **kwargs,
    )


def dialect_insert(dialect_name: str, table: Table) -> Any:
    """INSERT construct supporting ON CONFLICT for the engine's dialect."""
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise ValueError(f"Unsupported database dialect for upserts: {dialect_name!r}")
