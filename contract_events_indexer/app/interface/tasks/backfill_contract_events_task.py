from __future__ import annotations

from contract_events_indexer.app.application.services.block_bounds import resolve_block_bounds
from contract_events_indexer.app.application.services.event_signatures import prepare_signature_table
from contract_events_indexer.app.application.services.index_contract_events_for_block_range import (
    index_contract_events_for_block_range,
)
from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.domain.models import BlockRange
from contract_events_indexer.app.infrastructure.factories.contract_events_indexer_factory import (
    contract_events_indexer_factory,
)
from contract_events_indexer.app.infrastructure.factories.event_signature_registry_factory import (
    event_signature_registry_factory,
)
from contract_events_indexer.app.infrastructure.factories.indexer_context_factory import (
    build_indexer_context,
)


async def backfill_contract_events_task(
    *,
    settings: Settings,
    from_block: int | str,
    to_block: int | str,
    backend: str = "sqlalchemy",
) -> int:
    """
    Task: (re)index a fixed block range once.

    from_block / to_block can be:
    - int (a specific block number),
    - "earliest" (START_BLOCK),
    - "latest" (chain head minus FINALITY_BLOCK).

    Existing events are overwritten. The cursor only moves forward when the
    range continues it; use reset-cursor to move it explicitly.
    """
    context = build_indexer_context(settings)
    try:
        registry = event_signature_registry_factory(backend=backend, engine=context.engine)
        context.signatures = await prepare_signature_table(
            registry=registry,
            abi_dir=settings.abi_dir,
        )
        chain = await context.connection.connect()

        resolved_from_block, resolved_to_block = await resolve_block_bounds(
            chain=chain,
            from_block=from_block,
            to_block=to_block,
            start_block=settings.start_block,
            finality_blocks=settings.finality_blocks,
        )

        indexer = contract_events_indexer_factory(
            backend=backend,
            engine=context.engine,
            settings=settings,
            signatures=context.signatures,
        )
        return await index_contract_events_for_block_range(
            indexer=indexer,
            chain=chain,
            block_range=BlockRange(
                from_block=resolved_from_block,
                to_block=resolved_to_block,
            ),
            max_block_range=settings.max_block_range,
        )
    finally:
        await context.aclose()
