from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from contract_events_indexer.app.domain.errors import (
    LogFetchError,
    PersistenceError,
    RpcCallError,
)
from contract_events_indexer.app.domain.models import (
    BlockRange,
    CursorPolicy,
    DecodedEvent,
    RawLog,
    SignatureTable,
)
from contract_events_indexer.app.domain.ports.out import ChainClient
from contract_events_indexer.app.infrastructure.adapters.cursor_repository import advance_cursor, read_cursor
from contract_events_indexer.app.infrastructure.db.engine import dialect_insert
from contract_events_indexer.app.infrastructure.db.models.blockchain_events import BlockchainEventDB
from contract_events_indexer.app.infrastructure.decoders.abi_event_decoder import AbiEventDecoder


logger = logging.getLogger(__name__)

_UPSERT_KEY = ("tx_hash", "log_index")
_UPDATABLE_COLUMNS = (
    "tx_index",
    "block_number",
    "block_hash",
    "removed",
    "contract_address",
    "event_signature",
    "event_name",
    "event_full_signature",
    "other_topics",
    "raw_data",
    "decoded_params",
)


class SqlAlchemyContractEventsIndexer:
    """
    PostgreSQL/SQLAlchemy implementation of ContractEventsIndexer.

    For one inclusive block range:
    - fetches the contract's logs, retrying only the fetch on RPC failure,
    - decodes every log against the signature table (unknown events keep
      empty params),
    - upserts all events by (tx_hash, log_index) and moves the cursor in
      ONE transaction: to `to_block` (ADVANCE), or for EXTEND only when the
      range continues the stored cursor, to max(cursor, to_block).

    Events and cursor are committed together or not at all, so the stored
    cursor never runs ahead of stored events. Empty ranges still move the
    cursor.
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine,
        decoder: AbiEventDecoder,
        signatures: SignatureTable,
        contract_address: str,
        max_retries: int,
        retry_delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self._engine = engine
        self._decoder = decoder
        self._signatures = signatures
        self._contract_address = contract_address
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep

    async def index_block_range(
        self,
        *,
        chain: ChainClient,
        from_block: int,
        to_block: int,
        cursor_policy: CursorPolicy = CursorPolicy.ADVANCE,
    ) -> int:
        BlockRange(from_block=from_block, to_block=to_block).validate()

        logger.info(
            "Scanning blocks [%s, %s] for contract %s",
            from_block,
            to_block,
            self._contract_address,
        )

        logs = await self._fetch_logs(chain, from_block, to_block)
        events = [self._decoder.decode_log(log, self._signatures) for log in logs]

        try:
            async with self._engine.begin() as conn:
                await self._upsert_events(conn, events)
                cursor_at = await self._cursor_target(conn, from_block, to_block, cursor_policy)
                if cursor_at is not None:
                    await self._advance_cursor(conn, cursor_at)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to store blocks [{from_block}, {to_block}], transaction rolled back: {exc}"
            ) from exc

        if events:
            logger.info(
                "Stored %s events for blocks [%s, %s]; cursor at %s",
                len(events),
                from_block,
                to_block,
                cursor_at,
            )
        else:
            logger.info(
                "No new events in blocks [%s, %s]; cursor at %s",
                from_block,
                to_block,
                cursor_at,
            )
        return len(events)

    async def _fetch_logs(self, chain: ChainClient, from_block: int, to_block: int) -> list[RawLog]:
        last_error: RpcCallError | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                logs = await chain.get_logs(
                    address=self._contract_address,
                    from_block=from_block,
                    to_block=to_block,
                )
            except RpcCallError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    logger.warning(
                        "Failed to filter logs (attempt %s/%s): %s. Retrying in %ss...",
                        attempt,
                        self._max_retries,
                        exc,
                        self._retry_delay,
                    )
                    await self._sleep(self._retry_delay)
                continue

            logger.debug("Fetched %s logs for blocks [%s, %s]", len(logs), from_block, to_block)
            return logs

        raise LogFetchError(
            f"Failed to filter logs for blocks [{from_block}, {to_block}] "
            f"after {self._max_retries} attempts: {last_error}"
        ) from last_error

    async def _upsert_events(self, conn: AsyncConnection, events: Sequence[DecodedEvent]) -> None:
        if not events:
            return

        stmt = dialect_insert(conn.dialect.name, BlockchainEventDB.__table__)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(_UPSERT_KEY),
            set_={column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS},
        )
        await conn.execute(stmt, [event.as_row() for event in events])

    async def _cursor_target(
        self,
        conn: AsyncConnection,
        from_block: int,
        to_block: int,
        cursor_policy: CursorPolicy,
    ) -> int | None:
        if cursor_policy is CursorPolicy.ADVANCE:
            return to_block

        stored = await read_cursor(conn)
        if stored is None or from_block > stored + 1:
            logger.warning(
                "Blocks [%s, %s] do not continue the cursor (%s); cursor left unchanged",
                from_block,
                to_block,
                stored,
            )
            return stored
        if to_block <= stored:
            return stored
        return to_block

    async def _advance_cursor(self, conn: AsyncConnection, block_number: int) -> None:
        await advance_cursor(conn, block_number)
