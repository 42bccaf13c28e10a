from __future__ import annotations

import logging

from contract_events_indexer.app.application.services.event_signatures import prepare_signature_table
from contract_events_indexer.app.application.services.tail_monitor import TailMonitor
from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.infrastructure.adapters.cursor_repository import SqlAlchemyCursorRepository
from contract_events_indexer.app.infrastructure.factories.contract_events_indexer_factory import (
    contract_events_indexer_factory,
)
from contract_events_indexer.app.infrastructure.factories.event_signature_registry_factory import (
    event_signature_registry_factory,
)
from contract_events_indexer.app.infrastructure.factories.indexer_context_factory import (
    build_indexer_context,
)


logger = logging.getLogger(__name__)


async def follow_contract_events_task(
    *,
    settings: Settings,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: index the configured contract forever.

    - registers ABI events from ABI_DIR and builds the signature table,
    - connects to the RPC endpoint (bounded retries + liveness probe),
    - resumes from the persisted cursor (or START_BLOCK) and follows the head.
    """
    context = build_indexer_context(settings)
    try:
        registry = event_signature_registry_factory(backend=backend, engine=context.engine)
        context.signatures = await prepare_signature_table(
            registry=registry,
            abi_dir=settings.abi_dir,
        )

        await context.connection.connect()

        monitor = TailMonitor(
            connection=context.connection,
            indexer=contract_events_indexer_factory(
                backend=backend,
                engine=context.engine,
                settings=settings,
                signatures=context.signatures,
            ),
            cursor=SqlAlchemyCursorRepository(context.engine),
            start_block=settings.start_block,
            finality_blocks=settings.finality_blocks,
            max_block_range=settings.max_block_range,
            polling_interval_seconds=settings.polling_interval_seconds,
            retry_delay_seconds=settings.retry_delay_seconds,
        )
        await monitor.initialize()
        await monitor.run_forever()
    finally:
        await context.aclose()
