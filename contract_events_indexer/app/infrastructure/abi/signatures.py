from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from eth_utils import encode_hex, keccak

from contract_events_indexer.app.domain.abi import AbiEvent, AbiParam


def resolve_canonical_type(abi_input: Mapping[str, Any]) -> str:
    """
    Canonical type token for one ABI input.

    >>> resolve_canonical_type({"type": "tuple[]", "components": [
    ...     {"name": "id", "type": "uint256"}, {"name": "owner", "type": "address"}]})
    '(uint256,address)[]'
    """
    return AbiParam.from_abi(abi_input).canonical_type


def build_event_signature(event_abi: Mapping[str, Any]) -> str:
    """Canonical "Name(type,type,...)" string for an event ABI entry."""
    return AbiEvent.from_abi(event_abi).signature


def hash_signature(signature: str) -> str:
    """Lowercase 0x-prefixed keccak-256 of the signature, i.e. the event's topic0."""
    return encode_hex(keccak(text=signature))


def extract_abi_entries(document: Any, *, source: str = "<abi>") -> list[dict[str, Any]]:
    # Common formats:
    # - [ ... ] (ABI list)
    # - { "abi": [ ... ] } (artifact)
    if isinstance(document, list):
        abi = document
    elif isinstance(document, dict) and isinstance(document.get("abi"), list):
        abi = document["abi"]
    else:
        raise ValueError(
            f"Unsupported ABI JSON format in {source}. Expected list or dict with 'abi' list."
        )
    return [x for x in abi if isinstance(x, dict)]


def load_event_abis(path: Path) -> list[dict[str, Any]]:
    """Read one ABI JSON file and return its entries of type "event"."""
    document = json.loads(path.read_text(encoding="utf-8"))
    return [e for e in extract_abi_entries(document, source=str(path)) if e.get("type") == "event"]
