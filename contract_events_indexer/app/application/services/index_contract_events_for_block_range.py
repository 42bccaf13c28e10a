from __future__ import annotations

import logging

from contract_events_indexer.app.domain.models import BlockRange, CursorPolicy
from contract_events_indexer.app.domain.ports.out import ChainClient, ContractEventsIndexer


logger = logging.getLogger(__name__)


async def index_contract_events_for_block_range(
    *,
    indexer: ContractEventsIndexer,
    chain: ChainClient,
    block_range: BlockRange,
    max_block_range: int,
    cursor_policy: CursorPolicy = CursorPolicy.EXTEND,
) -> int:
    """
    Application-level use case for indexing a (possibly large) block range.

    Validates the range and feeds it to the indexer port in chunks of at
    most `max_block_range` blocks; each chunk commits on its own.

    By default the cursor only moves while the range continues it
    (CursorPolicy.EXTEND): a backfill ahead of the cursor stores its events
    but leaves the cursor, so the blocks in between are still scanned.
    """
    block_range.validate()

    stored = 0
    for chunk in block_range.chunks(max_block_range):
        stored += await indexer.index_block_range(
            chain=chain,
            from_block=chunk.from_block,
            to_block=chunk.to_block,
            cursor_policy=cursor_policy,
        )

    logger.info(
        "Finished indexing blocks [%s, %s]: %s events stored",
        block_range.from_block,
        block_range.to_block,
        stored,
    )
    return stored
