from __future__ import annotations

from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.domain.models import SignatureTable
from contract_events_indexer.app.domain.ports.out import ContractEventsIndexer
from contract_events_indexer.app.infrastructure.adapters.contract_events_indexer import (
    SqlAlchemyContractEventsIndexer,
)
from contract_events_indexer.app.infrastructure.decoders.abi_event_decoder import AbiEventDecoder


ContractEventsIndexerFactory = Callable[[AsyncEngine, Settings, SignatureTable], ContractEventsIndexer]


def _make_sqlalchemy_indexer(
    engine: AsyncEngine,
    settings: Settings,
    signatures: SignatureTable,
) -> ContractEventsIndexer:
    """
    Wire dependencies for SQLAlchemy backend:
    - generic ABI event decoder over the active signature table
    - SQLAlchemy adapter upserting events + cursor in one transaction
    """
    return SqlAlchemyContractEventsIndexer(
        engine=engine,
        decoder=AbiEventDecoder(),
        signatures=signatures,
        contract_address=settings.contract_address,
        max_retries=settings.max_retries,
        retry_delay_seconds=settings.retry_delay_seconds,
    )


_CONTRACT_EVENTS_INDEXER_REGISTRY: Dict[str, ContractEventsIndexerFactory] = {
    "sqlalchemy": _make_sqlalchemy_indexer,
}


def contract_events_indexer_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    settings: Settings,
    signatures: SignatureTable,
) -> ContractEventsIndexer:
    try:
        factory = _CONTRACT_EVENTS_INDEXER_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported contract events indexer backend: {backend!r}")
    return factory(engine, settings, signatures)
