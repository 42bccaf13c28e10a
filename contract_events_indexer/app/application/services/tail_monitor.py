from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from contract_events_indexer.app.domain.errors import (
    LogFetchError,
    PersistenceError,
    RpcCallError,
)
from contract_events_indexer.app.domain.models import BlockRange
from contract_events_indexer.app.domain.ports.out import (
    ContractEventsIndexer,
    CursorRepository,
    RpcConnection,
)


logger = logging.getLogger(__name__)


class TailMonitor:
    """
    Follows the chain head and keeps the contract's events indexed.

    The in-memory watermark is the last block whose range was committed
    (events + cursor). It only moves after a successful commit, so a failed
    range is rescanned on the next tick. Blocks newer than
    `head - finality_blocks` are never scanned.

    `run_forever` only returns by raising: RpcConnectionError when
    reconnecting runs out of attempts, or cancellation.
    """

    def __init__(
        self,
        *,
        connection: RpcConnection,
        indexer: ContractEventsIndexer,
        cursor: CursorRepository,
        start_block: int | None,
        finality_blocks: int,
        max_block_range: int,
        polling_interval_seconds: float,
        retry_delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_block_range <= 0:
            raise ValueError("max_block_range must be positive")
        self._connection = connection
        self._indexer = indexer
        self._cursor = cursor
        self._start_block = start_block
        self._finality_blocks = finality_blocks
        self._max_block_range = max_block_range
        self._polling_interval = polling_interval_seconds
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep
        self._watermark: int | None = None

    @property
    def watermark(self) -> int | None:
        return self._watermark

    async def initialize(self) -> int:
        """
        Resolve the starting watermark (last block considered processed).

        - persisted cursor, when present,
        - otherwise start_block - 1,
        - with the "from head" start and no cursor: the current safe head.
        """
        stored = await self._cursor.get_cursor()
        if stored is not None:
            logger.info("Resuming from persisted cursor at block %s", stored)
            self._watermark = stored
        elif self._start_block is None:
            head = await self._latest_block_for_startup()
            self._watermark = max(self._safe_head(head), 0)
            logger.info("No cursor found; starting from chain head at block %s", self._watermark)
        else:
            self._watermark = self._start_block - 1
            logger.info("No cursor found; starting from configured block %s", self._start_block)
        return self._watermark

    async def run_forever(self) -> None:
        if self._watermark is None:
            await self.initialize()

        logger.info("Starting continuous event monitoring...")
        while True:
            await self.tick()

    async def tick(self) -> None:
        """One polling iteration: fetch head, index anything new, sleep."""
        if self._watermark is None:
            raise RuntimeError("TailMonitor.initialize() must run before tick()")

        try:
            head = await self._connection.client.latest_block_number()
        except RpcCallError as exc:
            logger.warning(
                "Error getting latest block: %s. Retrying in %ss...",
                exc,
                self._retry_delay,
            )
            await self._sleep(self._retry_delay)
            # RpcConnectionError (attempts exhausted) propagates and ends the loop
            await self._connection.reconnect()
            return

        target = self._safe_head(head)
        if target > self._watermark:
            logger.info(
                "New block(s) detected! Head %s, indexing blocks [%s, %s]",
                head,
                self._watermark + 1,
                target,
            )
            await self._index_up_to(target)

        await self._sleep(self._polling_interval)

    async def _index_up_to(self, target: int) -> None:
        assert self._watermark is not None
        pending = BlockRange(from_block=self._watermark + 1, to_block=target)

        for chunk in pending.chunks(self._max_block_range):
            try:
                await self._indexer.index_block_range(
                    chain=self._connection.client,
                    from_block=chunk.from_block,
                    to_block=chunk.to_block,
                )
            except (LogFetchError, PersistenceError) as exc:
                logger.error(
                    "Failed to index blocks [%s, %s]: %s. Will retry from block %s",
                    chunk.from_block,
                    chunk.to_block,
                    exc,
                    self._watermark + 1,
                )
                return
            self._watermark = chunk.to_block

    async def _latest_block_for_startup(self) -> int:
        # Bounded by the reconnect attempts: RpcConnectionError ends startup
        while True:
            try:
                return await self._connection.client.latest_block_number()
            except RpcCallError as exc:
                logger.warning(
                    "Error getting latest block at startup: %s. Retrying in %ss...",
                    exc,
                    self._retry_delay,
                )
                await self._sleep(self._retry_delay)
                await self._connection.reconnect()

    def _safe_head(self, head: int) -> int:
        return head - self._finality_blocks
