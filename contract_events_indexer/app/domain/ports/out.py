from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, Sequence

from contract_events_indexer.app.domain.models import (
    CursorPolicy,
    EventSignatureInfo,
    RawLog,
    SignatureTable,
)


class ChainClient(Protocol):
    """
    Minimal blockchain RPC surface the indexer needs.

    Every call is bounded by a timeout; transport failures are raised as
    RpcCallError.
    """

    async def latest_block_number(self) -> int:
        ...

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        """Return logs emitted by `address` in [from_block, to_block], ordered by (block, log index)."""
        ...

    async def close(self) -> None:
        ...


class RpcConnection(Protocol):
    """Owner of the live ChainClient; replaces it wholesale on reconnect."""

    @property
    def client(self) -> ChainClient:
        ...

    async def connect(self) -> ChainClient:
        ...

    async def reconnect(self) -> ChainClient:
        ...


class EvmEventDecoder(Protocol):
    def decode(
        self,
        *,
        event: EventSignatureInfo,
        topics: Sequence[bytes],
        data: bytes,
    ) -> dict[str, Any]:
        """
        Decode a matched log (topics + data) into a name -> value mapping.

        Values are JSON-ready: integers as decimal strings, addresses
        checksummed, byte strings as 0x hex, tuples as nested mappings.
        """
        ...


class EventSignatureRegistry(Protocol):
    """
    Port for the persisted set of ABI event definitions.

    Implementations are the only writers of the event definitions table.
    """

    async def load_and_register(self, abi_dir: Path) -> int:
        """Register every event found in `abi_dir`; return how many were new."""
        ...

    async def build_active_signature_table(self) -> SignatureTable:
        ...


class ContractEventsIndexer(Protocol):
    """
    Port for indexing one contract's logs for a block range.

    Implementations store all decoded events of the range together with the
    advanced cursor in a single transaction.

    With CursorPolicy.EXTEND the cursor only moves when `from_block` is at
    most one past the stored cursor, and never backwards; otherwise only
    the events are stored.
    """

    async def index_block_range(
        self,
        *,
        chain: ChainClient,
        from_block: int,
        to_block: int,
        cursor_policy: CursorPolicy = CursorPolicy.ADVANCE,
    ) -> int:
        """Return the number of events stored for the range."""
        ...


class CursorRepository(Protocol):
    async def get_cursor(self) -> int | None:
        ...

    async def reset_cursor(self, block_number: int) -> None:
        ...
