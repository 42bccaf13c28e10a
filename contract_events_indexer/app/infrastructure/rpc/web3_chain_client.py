from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Mapping, TypeVar
from urllib.parse import urlsplit

from eth_utils import encode_hex, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3, WebSocketProvider
from web3.providers.persistent import PersistentConnectionProvider

from contract_events_indexer.app.domain.errors import RpcCallError
from contract_events_indexer.app.domain.models import RawLog
from contract_events_indexer.app.domain.ports.out import ChainClient


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Web3ChainClient(ChainClient):
    """
    ChainClient implementation using AsyncWeb3.

    Every call is bounded by `call_timeout` seconds. Any provider failure
    (HTTP/WebSocket error, JSON-RPC error response, timeout) is raised as
    RpcCallError so callers can apply their retry policy.
    """

    def __init__(self, *, w3: AsyncWeb3, call_timeout: float) -> None:
        self._w3 = w3
        self._call_timeout = call_timeout

    async def latest_block_number(self) -> int:
        block = await self._call(self._w3.eth.get_block("latest"), "eth_getBlockByNumber")
        if block is None or block.get("number") is None:
            raise RpcCallError("eth_getBlockByNumber(latest) returned no header")
        return int(block["number"])

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        entries = await self._call(
            self._w3.eth.get_logs(
                {
                    "address": to_checksum_address(address),
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            ),
            "eth_getLogs",
        )
        logs = [to_raw_log(e) for e in entries]
        logs.sort(key=lambda log: (log.block_number, log.log_index))
        return logs

    async def close(self) -> None:
        provider = self._w3.provider
        if isinstance(provider, PersistentConnectionProvider):
            try:
                await provider.disconnect()
            except Exception as exc:  # connection may already be gone
                logger.debug("Error while closing RPC connection: %s", exc)

    async def _call(self, call: Awaitable[T], method: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._call_timeout)
        except asyncio.TimeoutError as exc:
            raise RpcCallError(f"{method} timed out after {self._call_timeout}s") from exc
        except Exception as exc:
            raise RpcCallError(f"{method} failed: {exc}") from exc


def to_raw_log(entry: Mapping[str, Any]) -> RawLog:
    """Normalize a web3 LogReceipt into a RawLog."""
    return RawLog(
        tx_hash=encode_hex(entry["transactionHash"]),
        tx_index=int(entry["transactionIndex"]),
        block_number=int(entry["blockNumber"]),
        block_hash=encode_hex(entry["blockHash"]),
        log_index=int(entry["logIndex"]),
        removed=bool(entry.get("removed", False)),
        address=to_checksum_address(entry["address"]),
        topics=tuple(bytes(t) for t in entry["topics"]),
        data=bytes(entry["data"]),
    )


async def open_web3_chain_client(rpc_url: str, *, call_timeout: float) -> Web3ChainClient:
    """
    Dial the endpoint: HTTP(S) providers are lazy, WebSocket providers
    open their persistent connection here.
    """
    scheme = urlsplit(rpc_url).scheme.lower()
    try:
        if scheme in ("ws", "wss"):
            w3 = await asyncio.wait_for(
                AsyncWeb3(WebSocketProvider(rpc_url)),  # type: ignore[arg-type]
                timeout=call_timeout,
            )
        else:
            w3 = AsyncWeb3(
                AsyncHTTPProvider(
                    rpc_url,
                    request_kwargs={"timeout": call_timeout},
                )
            )
    except asyncio.TimeoutError as exc:
        raise RpcCallError(f"dial timed out after {call_timeout}s") from exc
    except Exception as exc:
        raise RpcCallError(f"dial failed: {exc}") from exc

    return Web3ChainClient(w3=w3, call_timeout=call_timeout)
