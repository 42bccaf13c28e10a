from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from contract_events_indexer.app.domain.abi import AbiEvent
from contract_events_indexer.app.domain.errors import PersistenceError
from contract_events_indexer.app.domain.models import (
    EventDefinition,
    EventSignatureInfo,
    SignatureTable,
)
from contract_events_indexer.app.infrastructure.abi.signatures import (
    hash_signature,
    load_event_abis,
)
from contract_events_indexer.app.infrastructure.db.engine import dialect_insert
from contract_events_indexer.app.infrastructure.db.models.abi_events import AbiEventRecordDB


logger = logging.getLogger(__name__)


class SqlAlchemyEventSignatureRegistry:
    """
    EventSignatureRegistry backed by the abi_event_records table.

    - load_and_register walks an ABI directory and inserts every event
      definition whose signature hash is not stored yet (existing rows are
      never touched),
    - build_active_signature_table turns the stored definitions back into
      decodable EventSignatureInfo objects keyed by topic0.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def load_and_register(self, abi_dir: Path) -> int:
        definitions: dict[str, EventDefinition] = {}
        seen_events = 0

        for path in _iter_json_files(abi_dir):
            try:
                event_abis = load_event_abis(path)
            except (OSError, UnicodeDecodeError, ValueError) as exc:
                logger.warning("Could not parse ABI JSON from %s: %s", path, exc)
                continue

            for event_abi in event_abis:
                seen_events += 1
                try:
                    event = AbiEvent.from_abi(event_abi)
                except ValueError as exc:
                    logger.warning("Skipping malformed event in %s: %s", path, exc)
                    continue

                signature_hash = hash_signature(event.signature)
                definitions.setdefault(
                    signature_hash,
                    EventDefinition(
                        signature_hash=signature_hash,
                        name=event.name,
                        raw_definition_json=json.dumps(event_abi, separators=(",", ":")),
                    ),
                )

        inserted = await self.add_missing(list(definitions.values()))
        logger.info(
            "Loaded %s event signatures from %s (%s distinct, %s new)",
            seen_events,
            abi_dir,
            len(definitions),
            inserted,
        )
        return inserted

    async def add_missing(self, definitions: Sequence[EventDefinition]) -> int:
        if not definitions:
            return 0

        table = AbiEventRecordDB.__table__
        try:
            async with self._engine.begin() as conn:
                existing = set(
                    (
                        await conn.execute(
                            select(AbiEventRecordDB.event_signature_hash).where(
                                AbiEventRecordDB.event_signature_hash.in_(
                                    [d.signature_hash for d in definitions]
                                )
                            )
                        )
                    ).scalars()
                )
                missing = [d for d in definitions if d.signature_hash not in existing]
                if not missing:
                    return 0

                stmt = dialect_insert(conn.dialect.name, table).values(
                    [
                        {
                            "event_signature_hash": d.signature_hash,
                            "event_name": d.name,
                            "abi_event_json": d.raw_definition_json,
                        }
                        for d in missing
                    ]
                )
                stmt = stmt.on_conflict_do_nothing(index_elements=["event_signature_hash"])
                await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store event definitions: {exc}") from exc

        for d in missing:
            logger.debug("Registered event %s (%s)", d.name, d.signature_hash)
        return len(missing)

    async def list_definitions(self) -> list[EventDefinition]:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(
                        AbiEventRecordDB.event_signature_hash,
                        AbiEventRecordDB.event_name,
                        AbiEventRecordDB.abi_event_json,
                    ).order_by(AbiEventRecordDB.id)
                )
                rows = result.all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load event definitions: {exc}") from exc

        return [
            EventDefinition(
                signature_hash=row.event_signature_hash,
                name=row.event_name,
                raw_definition_json=row.abi_event_json,
            )
            for row in rows
        ]

    async def build_active_signature_table(self) -> SignatureTable:
        table: SignatureTable = {}

        for definition in await self.list_definitions():
            try:
                raw = json.loads(definition.raw_definition_json)
                event = AbiEvent.from_abi(raw)
            except ValueError as exc:
                logger.warning(
                    "Stored definition %s (%s) is not a valid event ABI: %s",
                    definition.name,
                    definition.signature_hash,
                    exc,
                )
                continue

            signature = event.signature
            signature_hash = hash_signature(signature)
            if signature_hash != definition.signature_hash:
                logger.warning(
                    "Stored hash %s does not match signature %s (%s); using the recomputed hash",
                    definition.signature_hash,
                    signature,
                    signature_hash,
                )

            table[signature_hash] = EventSignatureInfo(
                name=event.name,
                signature=signature,
                signature_hash=signature_hash,
                inputs=event.inputs,
                raw_definition=raw,
            )
            logger.debug("Loaded event: %s with signature: %s", signature, signature_hash)

        logger.info("Signature table ready with %s events", len(table))
        return table


def _iter_json_files(abi_dir: Path) -> list[Path]:
    return sorted(
        p for p in abi_dir.rglob("*") if p.is_file() and p.suffix.lower() == ".json"
    )
