import pytest
from solders.pubkey import Pubkey

from backend.core.trove_core.constants import COLLATERAL_DENOM_OFFSET, USER_DEBT_AMOUNT_SIZE
from backend.core.trove_core.errors import SnapshotFetchFailure
from backend.core.trove_core.fetcher import PositionSnapshotFetcher, denom_filter_bytes
from backend.core.trove_core.pdas import derive_liquidity_threshold, position_addresses


def _addr(n: int) -> Pubkey:
    return Pubkey(bytes([100 + n]) * 32)


def _ledger(records, owners):
    """owners: list of (n, debt, denom, collateral, ratio or None)."""
    debts, colls, accounts = [], [], {}
    for n, debt, denom, coll, ratio in owners:
        owner = Pubkey(bytes([n]) * 32)
        debts.append((_addr(n), records.debt(owner, debt)))
        colls.append((_addr(n + 50), records.collateral(owner, denom, coll)))
        if ratio is not None:
            accounts[derive_liquidity_threshold(owner)] = records.threshold(owner, ratio)
    return debts, colls, accounts


def _fetcher(client, **kw):
    kw.setdefault("batch_delay", 0)
    kw.setdefault("retry_sleep", 0)
    return PositionSnapshotFetcher(client, **kw)


@pytest.mark.asyncio
async def test_fetch_builds_live_positions(records, fake_client_cls):
    debts, colls, accounts = _ledger(
        records,
        [
            (1, 500, "SOL", 1_000, 150_000_000),
            (2, 0, "SOL", 1_000, 120_000_000),  # closed
            (3, 700, "SOL", 0, 130_000_000),  # no collateral
            (4, 800, "ETH", 1_000, 140_000_000),  # other denom
        ],
    )
    client = fake_client_cls(debts, colls, accounts)
    result = await _fetcher(client).fetch("SOL")
    assert result.complete
    assert [p.owner for p in result.positions] == [Pubkey(bytes([1]) * 32)]
    pos = result.positions[0]
    assert (pos.debt_amount, pos.collateral_amount, pos.health_ratio) == (500, 1_000, 150_000_000)
    assert pos.debt_record == _addr(1)
    assert pos.collateral_record == _addr(51)
    assert pos.threshold_record == derive_liquidity_threshold(pos.owner)


@pytest.mark.asyncio
async def test_scan_filters(records, fake_client_cls):
    client = fake_client_cls()
    await _fetcher(client).fetch("SOL")
    debt_filters, coll_filters = client.scan_filters
    assert USER_DEBT_AMOUNT_SIZE in debt_filters
    assert coll_filters[1].offset == COLLATERAL_DENOM_OFFSET
    assert denom_filter_bytes("SOL") == b"\x03\x00\x00\x00SOL"


@pytest.mark.asyncio
async def test_missing_threshold_is_reported(records, fake_client_cls):
    debts, colls, accounts = _ledger(
        records,
        [(1, 500, "SOL", 1_000, 150_000_000), (2, 600, "SOL", 1_000, None)],
    )
    result = await _fetcher(fake_client_cls(debts, colls, accounts)).fetch("SOL")
    assert len(result.positions) == 1
    assert not result.complete
    failure = result.failures[0]
    assert failure.owner == Pubkey(bytes([2]) * 32)
    assert "missing" in failure.reason


@pytest.mark.asyncio
async def test_undecodable_debt_record_is_reported(records, fake_client_cls):
    debts, colls, accounts = _ledger(records, [(1, 500, "SOL", 1_000, 150_000_000)])
    debts.append((_addr(9), b"\x00" * USER_DEBT_AMOUNT_SIZE))
    result = await _fetcher(fake_client_cls(debts, colls, accounts)).fetch("SOL")
    assert len(result.positions) == 1
    assert [f.address for f in result.failures] == [_addr(9)]
    assert result.failures[0].owner is None


@pytest.mark.asyncio
async def test_thresholds_read_in_batches(records, fake_client_cls):
    owners = [(n, 100, "SOL", 1_000, 150_000_000 + n) for n in range(1, 8)]
    debts, colls, accounts = _ledger(records, owners)
    client = fake_client_cls(debts, colls, accounts)
    result = await _fetcher(client, batch_size=3).fetch("SOL")
    assert [len(c) for c in client.multi_calls] == [3, 3, 1]
    assert len(result.positions) == 7


@pytest.mark.asyncio
async def test_failed_batch_marks_each_owner(records, fake_client_cls):
    owners = [(n, 100, "SOL", 1_000, 150_000_000) for n in range(1, 5)]
    debts, colls, accounts = _ledger(records, owners)
    client = fake_client_cls(debts, colls, accounts, fail_multi=1)
    result = await _fetcher(client, batch_size=2).fetch("SOL")
    assert len(result.positions) == 2
    assert len(result.failures) == 2
    assert {f.owner for f in result.failures} == {Pubkey(bytes([1]) * 32), Pubkey(bytes([2]) * 32)}


@pytest.mark.asyncio
async def test_scan_failure_raises(fake_client_cls):
    client = fake_client_cls(fail_scan=ConnectionError("connection refused"))
    with pytest.raises(SnapshotFetchFailure):
        await _fetcher(client).fetch("SOL")


@pytest.mark.asyncio
async def test_fetch_position(records, fake_client_cls, key):
    owner = key(7)
    debt_rec, coll_rec, thr_rec = position_addresses(owner, "SOL")
    accounts = {
        debt_rec: records.debt(owner, 10),
        coll_rec: records.collateral(owner, "SOL", 20),
        thr_rec: records.threshold(owner, 300_000_000),
    }
    fetcher = _fetcher(fake_client_cls(accounts=accounts))
    pos = await fetcher.fetch_position(owner, "SOL")
    assert (pos.debt_amount, pos.collateral_amount, pos.health_ratio) == (10, 20, 300_000_000)
    del accounts[thr_rec]
    assert await _fetcher(fake_client_cls(accounts=accounts)).fetch_position(owner, "SOL") is None
