from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from contract_events_indexer.app.domain.errors import PersistenceError
from contract_events_indexer.app.infrastructure.db.engine import dialect_insert
from contract_events_indexer.app.infrastructure.db.models.cursors import CURSOR_ROW_ID, CursorDB


logger = logging.getLogger(__name__)


def build_cursor_upsert(dialect_name: str, block_number: int) -> Any:
    stmt = dialect_insert(dialect_name, CursorDB.__table__).values(
        id=CURSOR_ROW_ID,
        count=block_number,
    )
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={"count": stmt.excluded.count},
    )


async def advance_cursor(conn: AsyncConnection, block_number: int) -> None:
    """Move the cursor inside the caller's transaction."""
    await conn.execute(build_cursor_upsert(conn.dialect.name, block_number))


async def read_cursor(conn: AsyncConnection) -> int | None:
    result = await conn.execute(select(CursorDB.count).where(CursorDB.id == CURSOR_ROW_ID))
    return result.scalar_one_or_none()


class SqlAlchemyCursorRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_cursor(self) -> int | None:
        try:
            async with self._engine.connect() as conn:
                return await read_cursor(conn)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read cursor: {exc}") from exc

    async def reset_cursor(self, block_number: int) -> None:
        """Operator override; may move the cursor backwards."""
        if block_number < 0:
            raise ValueError("block_number must be non-negative")
        try:
            async with self._engine.begin() as conn:
                await advance_cursor(conn, block_number)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reset cursor: {exc}") from exc
        logger.info("Cursor reset to block %s", block_number)
