from __future__ import annotations


class IndexerError(Exception):
    """Base class for all indexer failures."""


class ConfigurationError(IndexerError):
    """Invalid static configuration (bad RPC scheme, bad contract address...)."""


class RpcCallError(IndexerError):
    """A single RPC call (dial, head fetch, log fetch) failed or timed out."""


class RpcConnectionError(IndexerError):
    """Connecting to the RPC endpoint failed on every allowed attempt."""


class LogFetchError(IndexerError):
    """Fetching logs for a block range failed on every allowed attempt."""


class PersistenceError(IndexerError):
    """The storage transaction for a block range was rolled back."""


class InvalidBlockRangeError(IndexerError, ValueError):
    """Negative or inverted block range."""
