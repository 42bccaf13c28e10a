from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping

from contract_events_indexer.app.domain.abi import AbiParam
from contract_events_indexer.app.domain.errors import InvalidBlockRangeError


@dataclass(frozen=True)
class BlockRange:
    """Inclusive block range [from_block, to_block]."""

    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise InvalidBlockRangeError("Block numbers must be non-negative")
        if self.from_block > self.to_block:
            raise InvalidBlockRangeError("from_block must be <= to_block")

    def chunks(self, max_size: int) -> Iterator["BlockRange"]:
        """Split into consecutive sub-ranges of at most `max_size` blocks."""
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        current = self.from_block
        while current <= self.to_block:
            upper = min(current + max_size - 1, self.to_block)
            yield BlockRange(from_block=current, to_block=upper)
            current = upper + 1


class CursorPolicy(str, Enum):
    """How a committed block range moves the stored cursor."""

    # Set the cursor to the range end (the tail monitor owns the cursor)
    ADVANCE = "advance"
    # Move it forward only when the range continues the stored cursor
    EXTEND = "extend"


@dataclass(frozen=True)
class RawLog:
    """
    A log as returned by the RPC node, normalized to plain Python types.

    Hashes are lowercase 0x-prefixed hex, `address` is checksummed, topics
    and data are raw bytes.
    """

    tx_hash: str
    tx_index: int
    block_number: int
    block_hash: str
    log_index: int
    removed: bool
    address: str
    topics: tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class EventDefinition:
    """Persisted ABI event, addressed by the keccak of its canonical signature."""

    signature_hash: str
    name: str
    raw_definition_json: str


@dataclass(frozen=True)
class EventSignatureInfo:
    """Resolved event used for decoding logs whose topic0 equals `signature_hash`."""

    name: str
    signature: str
    signature_hash: str
    inputs: tuple[AbiParam, ...]
    raw_definition: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def indexed_inputs(self) -> tuple[AbiParam, ...]:
        return tuple(i for i in self.inputs if i.indexed)

    @property
    def data_inputs(self) -> tuple[AbiParam, ...]:
        return tuple(i for i in self.inputs if not i.indexed)


SignatureTable = dict[str, EventSignatureInfo]


@dataclass(frozen=True)
class DecodedEvent:
    """One observed log, ready to be upserted by (tx_hash, log_index)."""

    tx_hash: str
    tx_index: int
    block_number: int
    block_hash: str
    log_index: int
    removed: bool
    contract_address: str
    event_signature: str | None
    event_name: str | None
    event_full_signature: str | None
    other_topics: list[str]
    raw_data: str
    decoded_params: dict[str, Any]

    def as_row(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "tx_index": self.tx_index,
            "block_number": self.block_number,
            "block_hash": self.block_hash,
            "log_index": self.log_index,
            "removed": self.removed,
            "contract_address": self.contract_address,
            "event_signature": self.event_signature,
            "event_name": self.event_name,
            "event_full_signature": self.event_full_signature,
            "other_topics": list(self.other_topics),
            "raw_data": self.raw_data,
            "decoded_params": self.decoded_params,
        }
