from __future__ import annotations

from functools import partial

from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.context import IndexerContext
from contract_events_indexer.app.infrastructure.db.engine import create_app_async_engine
from contract_events_indexer.app.infrastructure.rpc.connection_manager import ConnectionManager
from contract_events_indexer.app.infrastructure.rpc.web3_chain_client import open_web3_chain_client


def build_connection_manager(settings: Settings) -> ConnectionManager:
    """
    Connection manager for the configured endpoint.

    Reconnects are bounded by RECONNECT_MAX_RETRIES, log fetches by MAX_RETRIES.
    """
    return ConnectionManager(
        rpc_url=settings.rpc_url,
        client_factory=partial(
            open_web3_chain_client,
            call_timeout=settings.connection_timeout_seconds,
        ),
        max_attempts=settings.reconnect_max_retries or settings.max_retries,
        retry_delay_seconds=settings.retry_delay_seconds,
        probe_timeout_seconds=settings.probe_timeout_seconds,
    )


def build_indexer_context(settings: Settings) -> IndexerContext:
    return IndexerContext(
        settings=settings,
        engine=create_app_async_engine(settings.database_url, echo=settings.verbose),
        connection=build_connection_manager(settings),
    )
