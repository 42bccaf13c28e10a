from __future__ import annotations

from contract_events_indexer.app.application.services.event_signatures import register_event_signatures
from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.infrastructure.db.engine import create_app_async_engine
from contract_events_indexer.app.infrastructure.factories.event_signature_registry_factory import (
    event_signature_registry_factory,
)


async def register_event_signatures_task(
    *,
    settings: Settings,
    backend: str = "sqlalchemy",
) -> int:
    """Task: store every event definition found in ABI_DIR (idempotent)."""
    engine = create_app_async_engine(settings.database_url, echo=settings.verbose)
    try:
        registry = event_signature_registry_factory(backend=backend, engine=engine)
        return await register_event_signatures(registry=registry, abi_dir=settings.abi_dir)
    finally:
        await engine.dispose()
