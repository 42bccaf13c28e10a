from __future__ import annotations

from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.infrastructure.adapters.cursor_repository import SqlAlchemyCursorRepository
from contract_events_indexer.app.infrastructure.db.engine import create_app_async_engine


async def reset_cursor_task(
    *,
    settings: Settings,
    block_number: int,
) -> None:
    """Task: operator override of the last processed block."""
    engine = create_app_async_engine(settings.database_url, echo=settings.verbose)
    try:
        await SqlAlchemyCursorRepository(engine).reset_cursor(block_number)
    finally:
        await engine.dispose()
