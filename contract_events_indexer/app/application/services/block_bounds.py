from __future__ import annotations

from typing import Literal

from contract_events_indexer.app.domain.ports.out import ChainClient


BlockSelector = int | str
_EARLIEST: Literal["earliest"] = "earliest"
_LATEST: Literal["latest"] = "latest"


async def resolve_block_bounds(
    *,
    chain: ChainClient,
    from_block: BlockSelector,
    to_block: BlockSelector,
    start_block: int | None,
    finality_blocks: int,
) -> tuple[int, int]:
    """
    Resolve from_block / to_block into concrete block numbers.

    - If both are ints (or numeric strings) -> they are returned as-is.
    - If from_block is "earliest" / "" -> the configured start block
      (1 when the indexer is configured to start from the head).
    - If to_block is "latest" / ""     -> chain head minus the finality lag.
    """
    fb = _as_int(from_block)
    tb = _as_int(to_block)
    if fb is not None and tb is not None:
        return fb, tb

    if fb is None:
        fb_str = str(from_block).strip().lower()
        if fb_str in ("", _EARLIEST):
            fb = start_block if start_block is not None else 1
        else:
            raise ValueError(f"Unsupported from_block value: {from_block!r}")

    if tb is None:
        tb_str = str(to_block).strip().lower()
        if tb_str in ("", _LATEST):
            head = await chain.latest_block_number()
            tb = head - finality_blocks
        else:
            raise ValueError(f"Unsupported to_block value: {to_block!r}")

    return fb, tb


def _as_int(value: BlockSelector) -> int | None:
    if isinstance(value, int):
        return value
    stripped = value.strip()
    if stripped.isdigit():
        return int(stripped)
    return None
