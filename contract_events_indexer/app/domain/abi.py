from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


_ARRAY_SUFFIX = re.compile(r"\[(\d*)\]$")
_SIZED_TYPE = re.compile(r"^(u?int|bytes)(\d*)$")
_FIXED_POINT_TYPE = re.compile(r"^(u?fixed)(\d+x\d+)?$")


class AbiKind(str, Enum):
    """Closed set of ABI parameter shapes the decoder dispatches on."""

    ADDRESS = "address"
    INT = "int"
    UINT = "uint"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    FIXED_BYTES = "fixed_bytes"
    TUPLE = "tuple"
    ARRAY = "array"


@dataclass(frozen=True)
class AbiParam:
    """
    One parameter of an ABI event (or one component of a tuple).

    `type` is the declared type string exactly as found in the ABI JSON
    (e.g. "tuple[]", "uint256", "bytes4[2]"). For ARRAY parameters
    `element` describes one element; `components` is kept on both the tuple
    and on any array of tuples so that nested field names survive decoding.
    """

    name: str
    type: str
    kind: AbiKind
    indexed: bool = False
    components: tuple["AbiParam", ...] = ()
    element: "AbiParam | None" = None
    size: int | None = None
    internal_type: str | None = None

    @classmethod
    def from_abi(cls, raw: Mapping[str, Any]) -> "AbiParam":
        if not isinstance(raw, Mapping):
            raise ValueError(f"ABI input must be an object, got {type(raw).__name__}")
        type_str = raw.get("type")
        if not isinstance(type_str, str) or not type_str:
            raise ValueError(f"ABI input without a type: {raw!r}")
        components = tuple(cls.from_abi(c) for c in raw.get("components") or ())
        return cls._build(
            name=str(raw.get("name") or ""),
            type_str=type_str,
            indexed=bool(raw.get("indexed", False)),
            components=components,
            internal_type=raw.get("internalType"),
        )

    @classmethod
    def _build(
        cls,
        *,
        name: str,
        type_str: str,
        indexed: bool,
        components: tuple["AbiParam", ...],
        internal_type: str | None,
    ) -> "AbiParam":
        match = _ARRAY_SUFFIX.search(type_str)
        if match:
            element = cls._build(
                name=name,
                type_str=type_str[: match.start()],
                indexed=False,
                components=components,
                internal_type=None,
            )
            return cls(
                name=name,
                type=type_str,
                kind=AbiKind.ARRAY,
                indexed=indexed,
                components=components,
                element=element,
                size=int(match.group(1)) if match.group(1) else None,
                internal_type=internal_type,
            )

        kind, size = _base_kind(type_str)
        if kind is AbiKind.TUPLE and not components:
            raise ValueError(f"Tuple parameter {name!r} declares no components")
        return cls(
            name=name,
            type=type_str,
            kind=kind,
            indexed=indexed,
            components=components if kind is AbiKind.TUPLE else (),
            size=size,
            internal_type=internal_type,
        )

    @property
    def canonical_type(self) -> str:
        """
        Canonical type token used in event signatures.

        Tuples expand to "(t1,t2,...)" recursively, array markers are
        re-appended after the expanded element; every other type is the
        declared type unchanged.
        """
        if self.kind is AbiKind.TUPLE:
            return "(" + ",".join(c.canonical_type for c in self.components) + ")"
        if self.kind is AbiKind.ARRAY:
            assert self.element is not None
            suffix = self.type[len(self.element.type):]
            return self.element.canonical_type + suffix
        return self.type


@dataclass(frozen=True)
class AbiEvent:
    """An ABI entry of type "event", parsed into tagged parameters."""

    name: str
    inputs: tuple[AbiParam, ...]
    anonymous: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_abi(cls, raw: Mapping[str, Any]) -> "AbiEvent":
        if not isinstance(raw, Mapping):
            raise ValueError(f"ABI entry must be an object, got {type(raw).__name__}")
        if raw.get("type") != "event":
            raise ValueError(f"ABI entry is not an event: type={raw.get('type')!r}")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("Event ABI entry without a name")
        inputs = raw.get("inputs") or []
        if not isinstance(inputs, list):
            raise ValueError(f"Event {name!r} has malformed inputs")
        return cls(
            name=name,
            inputs=tuple(AbiParam.from_abi(i) for i in inputs),
            anonymous=bool(raw.get("anonymous", False)),
            raw=raw,
        )

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(i.canonical_type for i in self.inputs)})"


def _base_kind(type_str: str) -> tuple[AbiKind, int | None]:
    if type_str == "address":
        return AbiKind.ADDRESS, None
    if type_str == "bool":
        return AbiKind.BOOL, None
    if type_str == "string":
        return AbiKind.STRING, None
    if type_str == "bytes":
        return AbiKind.BYTES, None
    if type_str == "tuple":
        return AbiKind.TUPLE, None
    if type_str == "function":
        # address + selector
        return AbiKind.FIXED_BYTES, 24

    sized = _SIZED_TYPE.match(type_str)
    if sized:
        prefix, bits = sized.groups()
        size = int(bits) if bits else None
        if prefix == "bytes":
            return AbiKind.FIXED_BYTES, size
        if prefix == "uint":
            return AbiKind.UINT, size or 256
        return AbiKind.INT, size or 256

    fixed = _FIXED_POINT_TYPE.match(type_str)
    if fixed:
        return (AbiKind.UINT if fixed.group(1) == "ufixed" else AbiKind.INT), None

    raise ValueError(f"Unsupported ABI type: {type_str!r}")
