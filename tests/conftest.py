import asyncio

import pytest
from sqlalchemy.pool import NullPool

from contract_events_indexer.app.infrastructure.db.db_base import BaseDB
from contract_events_indexer.app.infrastructure.db.engine import create_app_async_engine
from contract_events_indexer.app.infrastructure.db.models import (  # noqa: F401
    abi_events,
    blockchain_events,
    cursors,
)


async def _create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(BaseDB.metadata.create_all)


@pytest.fixture(scope="function")
def sqlite_engine(tmp_path):
    engine = create_app_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'events.db'}",
        poolclass=NullPool,
    )
    asyncio.run(_create_schema(engine))
    yield engine
    asyncio.run(engine.dispose())
