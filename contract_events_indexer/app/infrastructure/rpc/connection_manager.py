from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urlsplit

from contract_events_indexer.app.domain.errors import (
    ConfigurationError,
    RpcCallError,
    RpcConnectionError,
)
from contract_events_indexer.app.domain.ports.out import ChainClient


logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "ws", "wss")

ChainClientFactory = Callable[[str], Awaitable[ChainClient]]
Sleep = Callable[[float], Awaitable[None]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    VERIFIED = "verified"
    ACTIVE = "active"


def validate_rpc_url(rpc_url: str) -> None:
    scheme = urlsplit(rpc_url).scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigurationError(
            f"Invalid RPC URL format: {redact_rpc_url(rpc_url)}. "
            "Must start with http://, https://, ws://, or wss://"
        )


def redact_rpc_url(rpc_url: str) -> str:
    """scheme://host[:port] only; paths and queries often carry API keys."""
    parts = urlsplit(rpc_url)
    if not parts.scheme or not parts.hostname:
        return "<invalid url>"
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{parts.hostname}{port}"


class ConnectionManager:
    """
    Owns the live ChainClient.

    disconnected -> connecting -> verified -> active; a runtime failure is
    handled by reconnect(), which drops the current client and runs the
    whole connect sequence again. A new client replaces the old one, it is
    never patched in place.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        client_factory: ChainClientFactory,
        max_attempts: int,
        retry_delay_seconds: float,
        probe_timeout_seconds: float,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self._rpc_url = rpc_url
        self._client_factory = client_factory
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._probe_timeout = probe_timeout_seconds
        self._sleep = sleep
        self._client: ChainClient | None = None
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> ChainClient:
        if self._client is None or self._state is not ConnectionState.ACTIVE:
            raise RpcConnectionError("RPC connection is not active")
        return self._client

    async def connect(self) -> ChainClient:
        validate_rpc_url(self._rpc_url)
        endpoint = redact_rpc_url(self._rpc_url)
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            self._state = ConnectionState.CONNECTING
            logger.info("Connection attempt %s/%s to %s", attempt, self._max_attempts, endpoint)

            try:
                client = await self._client_factory(self._rpc_url)
            except RpcCallError as exc:
                last_error = exc
                logger.warning("Dial failed on attempt %s: %s", attempt, exc)
                await self._wait_before_retry(attempt)
                continue

            try:
                head = await asyncio.wait_for(
                    client.latest_block_number(),
                    timeout=self._probe_timeout,
                )
            except (RpcCallError, asyncio.TimeoutError) as exc:
                last_error = exc
                logger.warning("Connection test failed on attempt %s: %r", attempt, exc)
                await client.close()
                await self._wait_before_retry(attempt)
                continue

            self._state = ConnectionState.VERIFIED
            logger.info(
                "Successfully connected to RPC endpoint on attempt %s (current block %s)",
                attempt,
                head,
            )
            self._client = client
            self._state = ConnectionState.ACTIVE
            return client

        self._state = ConnectionState.DISCONNECTED
        raise RpcConnectionError(
            f"Failed to connect to {endpoint} after {self._max_attempts} attempts: {last_error}"
        ) from last_error

    async def reconnect(self) -> ChainClient:
        logger.info("Reconnecting to RPC endpoint %s", redact_rpc_url(self._rpc_url))
        await self.close()
        return await self.connect()

    async def close(self) -> None:
        client, self._client = self._client, None
        self._state = ConnectionState.DISCONNECTED
        if client is not None:
            await client.close()

    async def _wait_before_retry(self, attempt: int) -> None:
        if attempt < self._max_attempts:
            logger.info("Retrying in %ss...", self._retry_delay)
            await self._sleep(self._retry_delay)
