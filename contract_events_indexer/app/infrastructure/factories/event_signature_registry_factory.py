from __future__ import annotations

from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from contract_events_indexer.app.domain.ports.out import EventSignatureRegistry
from contract_events_indexer.app.infrastructure.adapters.event_signature_registry import (
    SqlAlchemyEventSignatureRegistry,
)


EventSignatureRegistryFactory = Callable[[AsyncEngine], EventSignatureRegistry]

_EVENT_SIGNATURE_REGISTRY: Dict[str, EventSignatureRegistryFactory] = {
    "sqlalchemy": lambda engine: SqlAlchemyEventSignatureRegistry(engine),
}


def event_signature_registry_factory(
    *,
    backend: str,
    engine: AsyncEngine,
) -> EventSignatureRegistry:
    try:
        factory = _EVENT_SIGNATURE_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported event signature registry backend: {backend!r}")
    return factory(engine)
