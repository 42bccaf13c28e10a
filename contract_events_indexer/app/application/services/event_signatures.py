from __future__ import annotations

import logging
from pathlib import Path

from contract_events_indexer.app.domain.models import SignatureTable
from contract_events_indexer.app.domain.ports.out import EventSignatureRegistry


logger = logging.getLogger(__name__)


async def register_event_signatures(
    *,
    registry: EventSignatureRegistry,
    abi_dir: Path,
) -> int:
    """
    Register the events of every ABI file under `abi_dir`.

    A missing directory is not fatal: the indexer then runs in
    "unknown event" mode (topic0 only, empty params) for any signature
    that is not already stored.
    """
    if not abi_dir.is_dir():
        logger.warning(
            "ABI directory %s does not exist, continuing without new event signatures",
            abi_dir,
        )
        return 0
    return await registry.load_and_register(abi_dir)


async def prepare_signature_table(
    *,
    registry: EventSignatureRegistry,
    abi_dir: Path,
) -> SignatureTable:
    await register_event_signatures(registry=registry, abi_dir=abi_dir)
    table = await registry.build_active_signature_table()
    if not table:
        logger.warning("No event signatures loaded; every log will be stored as an unknown event")
    return table
