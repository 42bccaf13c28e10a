"""In-memory stand-ins for the RPC side, shared by the test modules."""
from __future__ import annotations

from eth_utils import to_checksum_address

from contract_events_indexer.app.domain.abi import AbiEvent
from contract_events_indexer.app.domain.errors import RpcCallError, RpcConnectionError
from contract_events_indexer.app.domain.models import EventSignatureInfo, RawLog
from contract_events_indexer.app.infrastructure.abi.signatures import hash_signature

CONTRACT = to_checksum_address("0x91cf2d8ed503ec52768999aa6d8dbea6e52dbe43")
ALICE = to_checksum_address("0x1111111111111111111111111111111111111111")
BOB = to_checksum_address("0x2222222222222222222222222222222222222222")

TRANSFER_ABI = {
    "type": "event",
    "name": "Transfer",
    "anonymous": False,
    "inputs": [
        {"name": "from", "type": "address", "indexed": True},
        {"name": "to", "type": "address", "indexed": True},
        {"name": "value", "type": "uint256", "indexed": False},
    ],
}
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def signature_info(event_abi: dict) -> EventSignatureInfo:
    event = AbiEvent.from_abi(event_abi)
    return EventSignatureInfo(
        name=event.name,
        signature=event.signature,
        signature_hash=hash_signature(event.signature),
        inputs=event.inputs,
        raw_definition=event_abi,
    )


def address_topic(address: str) -> bytes:
    return b"\x00" * 12 + bytes.fromhex(address[2:])


def make_log(
    *,
    block_number: int,
    log_index: int,
    topics: list[bytes],
    data: bytes = b"",
    tx_hash: str | None = None,
    removed: bool = False,
) -> RawLog:
    return RawLog(
        tx_hash=tx_hash or "0x" + f"{block_number:032x}{log_index:032x}",
        tx_index=0,
        block_number=block_number,
        block_hash="0x" + f"{block_number:064x}",
        log_index=log_index,
        removed=removed,
        address=CONTRACT,
        topics=tuple(topics),
        data=data,
    )


class FakeChainClient:
    """
    ChainClient double.

    `head_failures` / `logs_failures` make that many calls fail with
    RpcCallError before succeeding.
    """

    def __init__(self, *, head: int = 0, logs: list[RawLog] | None = None) -> None:
        self.head = head
        self.logs = list(logs or [])
        self.head_failures = 0
        self.logs_failures = 0
        self.get_logs_calls: list[tuple[int, int]] = []
        self.closed = False

    async def latest_block_number(self) -> int:
        if self.head_failures:
            self.head_failures -= 1
            raise RpcCallError("head unavailable")
        return self.head

    async def get_logs(self, *, address: str, from_block: int, to_block: int) -> list[RawLog]:
        self.get_logs_calls.append((from_block, to_block))
        if self.logs_failures:
            self.logs_failures -= 1
            raise RpcCallError("eth_getLogs failed")
        return [
            log
            for log in self.logs
            if log.address == address and from_block <= log.block_number <= to_block
        ]

    async def close(self) -> None:
        self.closed = True


class FakeConnection:
    """RpcConnection double that hands out pre-built clients on reconnect."""

    def __init__(self, client: FakeChainClient, *, reconnect_clients: list[FakeChainClient] | None = None):
        self._client = client
        self._reconnect_clients = list(reconnect_clients or [])
        self.reconnects = 0

    @property
    def client(self) -> FakeChainClient:
        return self._client

    async def connect(self) -> FakeChainClient:
        return self._client

    async def reconnect(self) -> FakeChainClient:
        self.reconnects += 1
        if not self._reconnect_clients:
            raise RpcConnectionError("no more endpoints")
        self._client = self._reconnect_clients.pop(0)
        return self._client


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
