"""Balance snapshot reads and staleness."""

from fractions import Fraction

import pytest

from tests.fakes import ONE, OWNER, TOKEN, VAULT, FakeReadOracle, make_snapshot, set_wallet_state
from vault_staking.base import ContractCall
from vault_staking.errors import ReadError
from vault_staking.snapshot import BalanceReader, SnapshotStore


@pytest.mark.asyncio
async def test_read_balances_in_two_phases(oracle: FakeReadOracle):
    """Share value is read only after we know the share balance."""
    reader = BalanceReader(oracle, TOKEN, VAULT)
    snapshot = await reader.refresh(OWNER)

    assert snapshot.owner == OWNER
    assert snapshot.primary_balance == 1000 * ONE
    assert snapshot.share_balance == 200 * ONE
    assert snapshot.share_value_in_primary == 220 * ONE
    assert snapshot.allowance == 0
    assert not snapshot.is_approved

    assert oracle.calls == [
        ContractCall(TOKEN, "balanceOf", (OWNER,)),
        ContractCall(VAULT, "balanceOf", (OWNER,)),
        ContractCall(TOKEN, "allowance", (OWNER, VAULT)),
        ContractCall(VAULT, "convertToAssets", (200 * ONE,)),
    ]


@pytest.mark.asyncio
async def test_refresh_reads_one_block(oracle: FakeReadOracle):
    """Balances, allowance and share value all come from the same block."""
    reader = BalanceReader(oracle, TOKEN, VAULT)

    first = await reader.refresh(OWNER)
    assert first.block_number == 101
    assert oracle.blocks == [101, 101, 101, 101]

    # Chain moved on, the next refresh pins the new block for every read
    oracle.calls.clear()
    oracle.blocks.clear()
    second = await reader.refresh(OWNER)
    assert second.block_number == 102
    assert len(oracle.calls) == 4
    assert oracle.blocks == [102, 102, 102, 102]


@pytest.mark.asyncio
async def test_zero_shares_skip_share_value_read():
    oracle = FakeReadOracle()
    set_wallet_state(oracle, primary_balance=5 * ONE, share_balance=0, share_value=0, allowance=5 * ONE)
    reader = BalanceReader(oracle, TOKEN, VAULT)
    snapshot = await reader.refresh(OWNER)

    assert snapshot.share_value_in_primary == 0
    assert snapshot.is_approved
    assert "convertToAssets" not in [c.method for c in oracle.calls]


@pytest.mark.asyncio
async def test_failed_refresh_keeps_stale_value(oracle: FakeReadOracle):
    """A node outage never makes the balance silently drop to zero."""
    reader = BalanceReader(oracle, TOKEN, VAULT)
    store = SnapshotStore(lambda: reader.refresh(OWNER), name="balances")

    first = await store.refresh()
    assert store.version == 1
    assert not store.is_stale

    oracle.failing = True
    with pytest.raises(ReadError):
        await store.refresh()

    assert store.snapshot is first
    assert store.is_stale
    assert store.version == 1

    oracle.failing = False
    second = await store.refresh()
    assert second is not first
    assert store.snapshot is second
    assert not store.is_stale
    assert store.version == 2


@pytest.mark.asyncio
async def test_first_refresh_failing_leaves_no_value(oracle: FakeReadOracle):
    oracle.failing = True
    reader = BalanceReader(oracle, TOKEN, VAULT)
    store = SnapshotStore(lambda: reader.refresh(OWNER), name="balances")
    with pytest.raises(ReadError):
        await store.refresh()
    assert store.snapshot is None
    assert store.is_stale


def test_invalidate_and_clear():
    async def fetch():
        return make_snapshot()

    store = SnapshotStore(fetch, name="balances")
    store.value = make_snapshot()
    store.invalidate()
    assert store.refresh_requested.is_set()

    store.clear()
    assert store.snapshot is None
    assert not store.is_stale


def test_share_price_and_redeem_estimate():
    snapshot = make_snapshot(share_balance=200 * ONE, share_value_in_primary=220 * ONE)
    assert snapshot.get_share_price() == Fraction(11, 10)
    assert snapshot.estimate_redeem(100 * ONE) == 110 * ONE
    assert snapshot.estimate_redeem(1) == 1

    empty = make_snapshot()
    assert empty.get_share_price() is None
    assert empty.estimate_redeem(ONE) == 0


def test_snapshot_rejects_bad_amounts():
    with pytest.raises(AssertionError):
        make_snapshot(primary_balance=-1)

    with pytest.raises(AssertionError):
        make_snapshot(allowance=1.5)
