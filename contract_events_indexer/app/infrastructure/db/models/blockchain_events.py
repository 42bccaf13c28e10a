from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from contract_events_indexer.app.infrastructure.db.db_base import (
    JSON_DOCUMENT,
    PK_BIGINT,
    TEXT_ARRAY,
    BaseDB,
)


class BlockchainEventDB(BaseDB):
    """
    Decoded contract events.

    Each row represents a single log emitted by the indexed contract,
    uniquely identified by (tx_hash, log_index). Re-observing the same log
    overwrites every other column (reorg replays, operator re-scans).

    Hashes are stored as lowercase 0x hex and the contract address in
    checksum form, so the table can be queried directly with hex literals.
    """

    __tablename__ = "blockchain_events"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="idx_tx_log"),
        Index("ix_blockchain_events_block_number", "block_number"),
        Index("ix_blockchain_events_block_hash", "block_hash"),
        Index("ix_blockchain_events_contract_address", "contract_address"),
        Index("ix_blockchain_events_event_signature", "event_signature"),
        Index("ix_blockchain_events_event_name", "event_name"),
    )

    id: Mapped[int] = mapped_column(PK_BIGINT, primary_key=True, autoincrement=True)

    # -------------------------------------------------------------------------
    # Identity / position
    # -------------------------------------------------------------------------

    """Hash of the transaction that emitted the log."""
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)

    """Index of the transaction within the block."""
    tx_index: Mapped[int] = mapped_column(Integer, nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_hash: Mapped[str] = mapped_column(String(66), nullable=False)

    """Index of the log within the block's combined log list."""
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    """True if the node reported the log as removed by a reorg."""
    removed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)

    # -------------------------------------------------------------------------
    # Event identity (NULL name/signature when topic0 is not a known event)
    # -------------------------------------------------------------------------

    """topic0 as hex; NULL only for logs without topics."""
    event_signature: Mapped[str | None] = mapped_column(String(66), nullable=True)
    event_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_full_signature: Mapped[str | None] = mapped_column(Text, nullable=True)

    # -------------------------------------------------------------------------
    # Payload
    # -------------------------------------------------------------------------

    """topic1..topic3 as hex, in order."""
    other_topics: Mapped[list[str]] = mapped_column(TEXT_ARRAY, nullable=False)

    """Un-decoded data blob as 0x hex."""
    raw_data: Mapped[str] = mapped_column(Text, nullable=False)

    """Decoded parameters keyed by ABI parameter name; empty for unknown events."""
    decoded_params: Mapped[dict[str, Any]] = mapped_column(JSON_DOCUMENT, nullable=False)

    insert_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
