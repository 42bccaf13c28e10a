import asyncio

import pytest
from eth_abi import encode
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from contract_events_indexer.app.application.services.index_contract_events_for_block_range import (
    index_contract_events_for_block_range,
)
from contract_events_indexer.app.domain.errors import (
    InvalidBlockRangeError,
    LogFetchError,
    PersistenceError,
)
from contract_events_indexer.app.domain.models import BlockRange, CursorPolicy
from contract_events_indexer.app.infrastructure.adapters.contract_events_indexer import (
    SqlAlchemyContractEventsIndexer,
)
from contract_events_indexer.app.infrastructure.adapters.cursor_repository import (
    SqlAlchemyCursorRepository,
)
from contract_events_indexer.app.infrastructure.db.models.blockchain_events import BlockchainEventDB
from contract_events_indexer.app.infrastructure.decoders.abi_event_decoder import AbiEventDecoder
from fakes import (
    ALICE,
    BOB,
    CONTRACT,
    TRANSFER_ABI,
    TRANSFER_TOPIC,
    FakeChainClient,
    RecordingSleep,
    address_topic,
    make_log,
    signature_info,
)


def _transfer(block_number, log_index, value, **kwargs):
    return make_log(
        block_number=block_number,
        log_index=log_index,
        topics=[bytes.fromhex(TRANSFER_TOPIC[2:]), address_topic(ALICE), address_topic(BOB)],
        data=encode(["uint256"], [value]),
        **kwargs,
    )


def _indexer(engine, *, max_retries=3, sleep=None, cls=SqlAlchemyContractEventsIndexer):
    info = signature_info(TRANSFER_ABI)
    return cls(
        engine=engine,
        decoder=AbiEventDecoder(),
        signatures={info.signature_hash: info},
        contract_address=CONTRACT,
        max_retries=max_retries,
        retry_delay_seconds=0.5,
        sleep=sleep or RecordingSleep(),
    )


async def _rows(engine):
    async with engine.connect() as conn:
        result = await conn.execute(
            select(BlockchainEventDB).order_by(BlockchainEventDB.block_number, BlockchainEventDB.log_index)
        )
        return result.all()


def _cursor(engine):
    return asyncio.run(SqlAlchemyCursorRepository(engine).get_cursor())


def test_stores_decoded_events_and_moves_cursor(sqlite_engine):
    chain = FakeChainClient(logs=[_transfer(10, 0, 5), _transfer(12, 1, 6)])

    stored = asyncio.run(_indexer(sqlite_engine).index_block_range(chain=chain, from_block=10, to_block=20))

    rows = asyncio.run(_rows(sqlite_engine))
    assert stored == 2
    assert [(r.block_number, r.log_index) for r in rows] == [(10, 0), (12, 1)]
    assert rows[0].event_name == "Transfer"
    assert rows[0].contract_address == CONTRACT
    assert rows[0].decoded_params == {"from": ALICE, "to": BOB, "value": "5"}
    assert len(rows[0].other_topics) == 2
    assert _cursor(sqlite_engine) == 20


def test_reindexing_overwrites_instead_of_duplicating(sqlite_engine):
    indexer = _indexer(sqlite_engine)
    first = _transfer(10, 0, 5, tx_hash="0x" + "aa" * 32)
    replay = _transfer(11, 0, 9, tx_hash="0x" + "aa" * 32, removed=True)

    asyncio.run(indexer.index_block_range(chain=FakeChainClient(logs=[first]), from_block=10, to_block=11))
    asyncio.run(indexer.index_block_range(chain=FakeChainClient(logs=[replay]), from_block=10, to_block=11))

    rows = asyncio.run(_rows(sqlite_engine))
    assert len(rows) == 1
    assert rows[0].block_number == 11
    assert rows[0].removed is True
    assert rows[0].decoded_params["value"] == "9"


def test_empty_range_still_moves_cursor(sqlite_engine):
    stored = asyncio.run(
        _indexer(sqlite_engine).index_block_range(chain=FakeChainClient(), from_block=1, to_block=50)
    )

    assert stored == 0
    assert asyncio.run(_rows(sqlite_engine)) == []
    assert _cursor(sqlite_engine) == 50


def test_consecutive_ranges_leave_cursor_at_last_block(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(0))
    chain = FakeChainClient(logs=[_transfer(5, 0, 1), _transfer(25, 0, 2)])

    stored = asyncio.run(
        index_contract_events_for_block_range(
            indexer=_indexer(sqlite_engine),
            chain=chain,
            block_range=BlockRange(from_block=1, to_block=30),
            max_block_range=10,
        )
    )

    assert stored == 2
    assert chain.get_logs_calls == [(1, 10), (11, 20), (21, 30)]
    assert _cursor(sqlite_engine) == 30


def test_fetch_is_retried_before_succeeding(sqlite_engine):
    chain = FakeChainClient(logs=[_transfer(3, 0, 1)])
    chain.logs_failures = 2
    sleep = RecordingSleep()

    stored = asyncio.run(
        _indexer(sqlite_engine, sleep=sleep).index_block_range(chain=chain, from_block=1, to_block=3)
    )

    assert stored == 1
    assert sleep.calls == [0.5, 0.5]


def test_fetch_exhaustion_leaves_storage_untouched(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(9))
    chain = FakeChainClient(logs=[_transfer(10, 0, 1)])
    chain.logs_failures = 3
    sleep = RecordingSleep()

    with pytest.raises(LogFetchError):
        asyncio.run(
            _indexer(sqlite_engine, max_retries=3, sleep=sleep).index_block_range(
                chain=chain, from_block=10, to_block=20
            )
        )

    assert len(chain.get_logs_calls) == 3
    assert sleep.calls == [0.5, 0.5]
    assert asyncio.run(_rows(sqlite_engine)) == []
    assert _cursor(sqlite_engine) == 9


class _FailingCursorIndexer(SqlAlchemyContractEventsIndexer):
    async def _advance_cursor(self, conn, block_number):
        raise OperationalError("UPDATE cursors", {}, Exception("disk I/O error"))


def test_cursor_failure_rolls_back_events(sqlite_engine):
    indexer = _indexer(sqlite_engine, cls=_FailingCursorIndexer)

    with pytest.raises(PersistenceError):
        asyncio.run(
            indexer.index_block_range(
                chain=FakeChainClient(logs=[_transfer(10, 0, 1)]),
                from_block=10,
                to_block=20,
            )
        )

    assert asyncio.run(_rows(sqlite_engine)) == []
    assert _cursor(sqlite_engine) is None


@pytest.mark.parametrize("from_block,to_block", [(5, 4), (-1, 3)])
def test_invalid_ranges_are_rejected_before_fetching(sqlite_engine, from_block, to_block):
    chain = FakeChainClient()

    with pytest.raises(InvalidBlockRangeError):
        asyncio.run(
            _indexer(sqlite_engine).index_block_range(chain=chain, from_block=from_block, to_block=to_block)
        )

    assert chain.get_logs_calls == []


def test_reset_cursor_can_move_backwards(sqlite_engine):
    repository = SqlAlchemyCursorRepository(sqlite_engine)
    asyncio.run(repository.reset_cursor(100))
    asyncio.run(repository.reset_cursor(40))

    assert _cursor(sqlite_engine) == 40
    with pytest.raises(ValueError):
        asyncio.run(repository.reset_cursor(-1))


def _backfill(engine, chain, from_block, to_block):
    return asyncio.run(
        index_contract_events_for_block_range(
            indexer=_indexer(engine),
            chain=chain,
            block_range=BlockRange(from_block=from_block, to_block=to_block),
            max_block_range=1000,
        )
    )


def test_backfill_ahead_of_cursor_stores_events_but_keeps_cursor(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(100))

    stored = _backfill(sqlite_engine, FakeChainClient(logs=[_transfer(550, 0, 1)]), 500, 600)

    assert stored == 1
    assert len(asyncio.run(_rows(sqlite_engine))) == 1
    assert _cursor(sqlite_engine) == 100


def test_backfill_continuing_the_cursor_extends_it(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(100))

    _backfill(sqlite_engine, FakeChainClient(), 50, 150)

    assert _cursor(sqlite_engine) == 150


def test_backfill_behind_the_cursor_never_moves_it_back(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(200))

    _backfill(sqlite_engine, FakeChainClient(logs=[_transfer(60, 0, 1)]), 50, 150)

    assert len(asyncio.run(_rows(sqlite_engine))) == 1
    assert _cursor(sqlite_engine) == 200


def test_backfill_without_cursor_leaves_it_unset(sqlite_engine):
    _backfill(sqlite_engine, FakeChainClient(), 1, 10)

    assert _cursor(sqlite_engine) is None


def test_advance_policy_sets_cursor_to_range_end(sqlite_engine):
    asyncio.run(SqlAlchemyCursorRepository(sqlite_engine).reset_cursor(100))

    asyncio.run(
        _indexer(sqlite_engine).index_block_range(
            chain=FakeChainClient(),
            from_block=500,
            to_block=600,
            cursor_policy=CursorPolicy.ADVANCE,
        )
    )

    assert _cursor(sqlite_engine) == 600
