from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncEngine

from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.domain.models import SignatureTable
from contract_events_indexer.app.infrastructure.rpc.connection_manager import ConnectionManager


@dataclass
class IndexerContext:
    """
    Everything a running indexer shares, built once at startup and passed
    explicitly to the components that need it.
    """

    settings: Settings
    engine: AsyncEngine
    connection: ConnectionManager
    signatures: SignatureTable = field(default_factory=dict)

    async def aclose(self) -> None:
        await self.connection.close()
        await self.engine.dispose()
