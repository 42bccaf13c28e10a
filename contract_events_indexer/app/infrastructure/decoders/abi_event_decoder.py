from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, to_checksum_address

from contract_events_indexer.app.domain.abi import AbiKind, AbiParam
from contract_events_indexer.app.domain.models import (
    DecodedEvent,
    EventSignatureInfo,
    RawLog,
)
from contract_events_indexer.app.domain.ports.out import EvmEventDecoder


logger = logging.getLogger(__name__)

# eth_abi raises UnicodeDecodeError directly for `string` values that are not UTF-8
_DATA_DECODE_ERRORS = (DecodingError, UnicodeDecodeError)


class AbiEventDecoder(EvmEventDecoder):
    """
    Generic ABI-based decoder for any event in the signature table.

    It:
    - splits the event inputs into indexed / non-indexed, in declaration order,
    - decodes indexed args from topics 1..n (topic0 is the signature),
    - decodes non-indexed args from `data` with eth_abi as one flat tuple,
    - normalizes every value into a JSON-ready shape, keeping tuple
      component names from the original ABI.

    Indexed tuples, arrays, strings and bytes only exist on-chain as their
    keccak hash; that hash is stored verbatim.
    """

    def decode(
        self,
        *,
        event: EventSignatureInfo,
        topics: Sequence[bytes],
        data: bytes,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        params.update(self._decode_indexed(event, topics))
        params.update(self._decode_non_indexed(event, data))
        return params

    def decode_log(self, log: RawLog, signatures: Mapping[str, EventSignatureInfo]) -> DecodedEvent:
        """Build the storable record for one log; unknown events keep empty params."""
        topic0 = encode_hex(log.topics[0]) if log.topics else None
        event = signatures.get(topic0) if topic0 is not None else None

        decoded_params: dict[str, Any] = {}
        if event is not None:
            try:
                decoded_params = self.decode(event=event, topics=log.topics, data=log.data)
            except Exception as exc:
                # The log is still stored, with its raw topics and data
                logger.warning(
                    "Could not decode %s in tx=%s log_index=%s, storing it without params: %r",
                    event.signature,
                    log.tx_hash,
                    log.log_index,
                    exc,
                )
                decoded_params = {}
        else:
            logger.debug(
                "Unknown event (signature %s not found in loaded ABIs): tx=%s log_index=%s",
                topic0,
                log.tx_hash,
                log.log_index,
            )

        return DecodedEvent(
            tx_hash=log.tx_hash,
            tx_index=log.tx_index,
            block_number=log.block_number,
            block_hash=log.block_hash,
            log_index=log.log_index,
            removed=log.removed,
            contract_address=log.address,
            event_signature=topic0,
            event_name=event.name if event else None,
            event_full_signature=event.signature if event else None,
            other_topics=[encode_hex(t) for t in log.topics[1:]],
            raw_data=encode_hex(log.data),
            decoded_params=decoded_params,
        )

    # ---------------------------------------------------------------------
    # Topics
    # ---------------------------------------------------------------------

    def _decode_indexed(self, event: EventSignatureInfo, topics: Sequence[bytes]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        topic_index = 0
        for position, param in enumerate(event.inputs):
            if not param.indexed:
                continue
            topic_index += 1
            # Truncated or anonymous logs: missing topics are skipped
            if topic_index >= len(topics):
                break
            out[_param_key(param, position)] = decode_topic(param, bytes(topics[topic_index]))
        return out

    # ---------------------------------------------------------------------
    # Data
    # ---------------------------------------------------------------------

    def _decode_non_indexed(self, event: EventSignatureInfo, data: bytes) -> dict[str, Any]:
        inputs = [(position, p) for position, p in enumerate(event.inputs) if not p.indexed]
        if not inputs:
            return {}
        if not data:
            logger.warning(
                "Event %s declares %s non-indexed inputs but the log has no data",
                event.signature,
                len(inputs),
            )
            return {}

        types = [p.canonical_type for _, p in inputs]
        values = self._decode_data(event, types, bytes(data))

        out: dict[str, Any] = {}
        for (position, param), value in zip(inputs, values):
            out[_param_key(param, position)] = normalize_value(param, value)
        return out

    def _decode_data(self, event: EventSignatureInfo, types: list[str], data: bytes) -> tuple[Any, ...]:
        try:
            return abi_decode(types, data)
        except _DATA_DECODE_ERRORS as exc:
            logger.warning(
                "Error decoding data for %s (%s bytes): %s",
                event.signature,
                len(data),
                exc,
            )

        # Keep the longest decodable prefix of parameters; the rest stay absent.
        decoded: tuple[Any, ...] = ()
        for count in range(1, len(types)):
            try:
                decoded = abi_decode(types[:count], data)
            except _DATA_DECODE_ERRORS:
                break
        return decoded


def decode_topic(param: AbiParam, topic: bytes) -> Any:
    """Decode one 32-byte topic according to the declared parameter kind."""
    kind = param.kind
    if kind is AbiKind.ADDRESS:
        return to_checksum_address(topic[-20:])
    if kind is AbiKind.UINT:
        return str(int.from_bytes(topic, "big"))
    if kind is AbiKind.INT:
        return str(int.from_bytes(topic, "big", signed=True))
    if kind is AbiKind.BOOL:
        return topic[-1] == 1
    # string / bytes / fixed bytes, or the keccak hash of an indexed tuple/array
    return encode_hex(topic)


def normalize_value(param: AbiParam, value: Any) -> Any:
    """
    Recursively convert an eth_abi value into its stored form.

    - tuples become {component name: value},
    - an array of tuples with exactly one element collapses to that element,
    - integers and fixed-point decimals become plain decimal strings,
    - NUL characters are dropped from strings (JSONB cannot store them),
    - byte strings (including bytes4 selectors) become 0x hex.
    """
    kind = param.kind

    if kind is AbiKind.TUPLE:
        return {
            _param_key(component, position): normalize_value(component, item)
            for position, (component, item) in enumerate(zip(param.components, value))
        }

    if kind is AbiKind.ARRAY:
        assert param.element is not None
        items = [normalize_value(param.element, item) for item in value]
        if param.element.kind is AbiKind.TUPLE and len(items) == 1:
            return items[0]
        return items

    if kind is AbiKind.ADDRESS:
        return to_checksum_address(value)
    if kind in (AbiKind.INT, AbiKind.UINT):
        if isinstance(value, Decimal):
            return format(value, "f")
        return str(value)
    if kind is AbiKind.STRING:
        return value.replace("\x00", "")
    if kind is AbiKind.BOOL:
        return bool(value)
    if kind in (AbiKind.BYTES, AbiKind.FIXED_BYTES):
        return encode_hex(bytes(value))
    return value


def _param_key(param: AbiParam, position: int) -> str:
    # Unnamed parameters are keyed by their position
    return param.name or str(position)
