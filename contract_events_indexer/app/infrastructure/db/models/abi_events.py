from __future__ import annotations

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contract_events_indexer.app.infrastructure.db.db_base import PK_BIGINT, BaseDB


class AbiEventRecordDB(BaseDB):
    """
    Dictionary of known ABI events.

    One row maps a topic0 (keccak of "EventName(type1,type2,...)") to the
    original ABI event object, stored verbatim so that tuple component
    names are available when decoding.
    """

    __tablename__ = "abi_event_records"
    __table_args__ = (
        UniqueConstraint("event_signature_hash", name="uq_abi_event_records_signature_hash"),
    )

    id: Mapped[int] = mapped_column(PK_BIGINT, primary_key=True, autoincrement=True)

    # "0x" + keccak("EventName(type1,type2,...)") hex
    event_signature_hash: Mapped[str] = mapped_column(String(66), nullable=False)

    # Short name, e.g. "Transfer"
    event_name: Mapped[str] = mapped_column(Text, nullable=False)

    # ABI event entry as JSON text
    abi_event_json: Mapped[str] = mapped_column(Text, nullable=False)
