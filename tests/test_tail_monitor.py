import asyncio

import pytest
from eth_abi import encode

from contract_events_indexer.app.application.services.tail_monitor import TailMonitor
from contract_events_indexer.app.domain.errors import (
    LogFetchError,
    PersistenceError,
    RpcConnectionError,
)
from contract_events_indexer.app.infrastructure.adapters.contract_events_indexer import (
    SqlAlchemyContractEventsIndexer,
)
from contract_events_indexer.app.infrastructure.adapters.cursor_repository import SqlAlchemyCursorRepository
from contract_events_indexer.app.infrastructure.decoders.abi_event_decoder import AbiEventDecoder
from fakes import CONTRACT, FakeChainClient, FakeConnection, RecordingSleep, make_log, signature_info


class FakeCursor:
    def __init__(self, value=None):
        self.value = value

    async def get_cursor(self):
        return self.value

    async def reset_cursor(self, block_number):
        self.value = block_number


class FakeIndexer:
    """Records ranges; `fail_at` maps a from_block to the exception to raise."""

    def __init__(self, fail_at=None):
        self.ranges = []
        self.chains = []
        self.fail_at = dict(fail_at or {})

    async def index_block_range(self, *, chain, from_block, to_block):
        error = self.fail_at.pop(from_block, None)
        if error is not None:
            raise error
        self.ranges.append((from_block, to_block))
        self.chains.append(chain)
        return 0


def _monitor(connection, *, indexer=None, cursor=None, start_block=1, finality=10, max_range=100, sleep=None):
    return TailMonitor(
        connection=connection,
        indexer=indexer or FakeIndexer(),
        cursor=cursor or FakeCursor(),
        start_block=start_block,
        finality_blocks=finality,
        max_block_range=max_range,
        polling_interval_seconds=2.0,
        retry_delay_seconds=5.0,
        sleep=sleep or RecordingSleep(),
    )


def test_initialize_prefers_persisted_cursor():
    monitor = _monitor(FakeConnection(FakeChainClient(head=1000)), cursor=FakeCursor(500), start_block=10)

    assert asyncio.run(monitor.initialize()) == 500


def test_initialize_uses_start_block_without_cursor():
    monitor = _monitor(FakeConnection(FakeChainClient(head=1000)), start_block=10)

    assert asyncio.run(monitor.initialize()) == 9


def test_initialize_from_head_uses_safe_head():
    monitor = _monitor(FakeConnection(FakeChainClient(head=1000)), start_block=None, finality=10)

    assert asyncio.run(monitor.initialize()) == 990


def test_tick_indexes_up_to_safe_head_in_chunks():
    indexer = FakeIndexer()
    sleep = RecordingSleep()
    monitor = _monitor(
        FakeConnection(FakeChainClient(head=260)),
        indexer=indexer,
        start_block=1,
        finality=10,
        max_range=100,
        sleep=sleep,
    )
    asyncio.run(monitor.initialize())

    asyncio.run(monitor.tick())

    assert indexer.ranges == [(1, 100), (101, 200), (201, 250)]
    assert monitor.watermark == 250
    assert sleep.calls == [2.0]


def test_tick_does_nothing_until_blocks_are_final():
    indexer = FakeIndexer()
    monitor = _monitor(FakeConnection(FakeChainClient(head=105)), indexer=indexer, cursor=FakeCursor(100))
    asyncio.run(monitor.initialize())

    asyncio.run(monitor.tick())

    assert indexer.ranges == []
    assert monitor.watermark == 100


@pytest.mark.parametrize("error", [LogFetchError("rpc down"), PersistenceError("rolled back")])
def test_failed_chunk_keeps_watermark_and_is_retried(error):
    indexer = FakeIndexer(fail_at={101: error})
    monitor = _monitor(
        FakeConnection(FakeChainClient(head=260)),
        indexer=indexer,
        start_block=1,
        max_range=100,
    )
    asyncio.run(monitor.initialize())

    asyncio.run(monitor.tick())
    assert indexer.ranges == [(1, 100)]
    assert monitor.watermark == 100

    asyncio.run(monitor.tick())
    assert indexer.ranges == [(1, 100), (101, 200), (201, 250)]
    assert monitor.watermark == 250


def test_head_failure_triggers_reconnect():
    broken = FakeChainClient(head=50)
    broken.head_failures = 1
    replacement = FakeChainClient(head=50)
    connection = FakeConnection(broken, reconnect_clients=[replacement])
    indexer = FakeIndexer()
    sleep = RecordingSleep()
    monitor = _monitor(connection, indexer=indexer, cursor=FakeCursor(30), sleep=sleep)
    asyncio.run(monitor.initialize())

    asyncio.run(monitor.tick())
    assert connection.reconnects == 1
    assert indexer.ranges == []
    assert sleep.calls == [5.0]

    asyncio.run(monitor.tick())
    assert indexer.ranges == [(31, 40)]
    assert indexer.chains == [replacement]


def test_run_forever_stops_when_reconnect_is_exhausted():
    broken = FakeChainClient(head=50)
    broken.head_failures = 1
    monitor = _monitor(FakeConnection(broken), cursor=FakeCursor(30))

    with pytest.raises(RpcConnectionError):
        asyncio.run(monitor.run_forever())


def test_tick_requires_initialize():
    monitor = _monitor(FakeConnection(FakeChainClient(head=50)))

    with pytest.raises(RuntimeError):
        asyncio.run(monitor.tick())


def test_initialize_from_head_retries_after_head_failure():
    broken = FakeChainClient(head=1000)
    broken.head_failures = 1
    connection = FakeConnection(broken, reconnect_clients=[FakeChainClient(head=1000)])
    sleep = RecordingSleep()
    monitor = _monitor(connection, start_block=None, finality=10, sleep=sleep)

    assert asyncio.run(monitor.initialize()) == 990
    assert connection.reconnects == 1
    assert sleep.calls == [5.0]


def test_initialize_from_head_gives_up_when_reconnect_is_exhausted():
    broken = FakeChainClient(head=1000)
    broken.head_failures = 1
    monitor = _monitor(FakeConnection(broken), start_block=None)

    with pytest.raises(RpcConnectionError):
        asyncio.run(monitor.initialize())


NOTE_ABI = {
    "type": "event",
    "name": "Note",
    "inputs": [
        {"name": "who", "type": "uint256", "indexed": False},
        {"name": "text", "type": "string", "indexed": False},
    ],
}


def test_undecodable_log_is_stored_and_the_monitor_moves_on(sqlite_engine):
    info = signature_info(NOTE_ABI)
    data = bytearray(encode(["uint256", "string"], [1, "a"]))
    data[96] = 0xFF
    log = make_log(
        block_number=35,
        log_index=0,
        topics=[bytes.fromhex(info.signature_hash[2:])],
        data=bytes(data),
    )
    indexer = SqlAlchemyContractEventsIndexer(
        engine=sqlite_engine,
        decoder=AbiEventDecoder(),
        signatures={info.signature_hash: info},
        contract_address=CONTRACT,
        max_retries=1,
        retry_delay_seconds=0,
        sleep=RecordingSleep(),
    )
    cursor = SqlAlchemyCursorRepository(sqlite_engine)
    asyncio.run(cursor.reset_cursor(30))
    monitor = _monitor(
        FakeConnection(FakeChainClient(head=50, logs=[log])),
        indexer=indexer,
        cursor=cursor,
    )
    asyncio.run(monitor.initialize())

    asyncio.run(monitor.tick())

    assert monitor.watermark == 40
    assert asyncio.run(cursor.get_cursor()) == 40
