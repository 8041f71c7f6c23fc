"""Shared fixtures for the staking tests."""

import pytest

from tests.fakes import ONE, FakeReadOracle, FakeSubmitter, FakeWatcher, set_wallet_state
from vault_staking.config import StakingConfig


@pytest.fixture()
def config() -> StakingConfig:
    return StakingConfig(json_rpc_url="http://localhost:8545")


@pytest.fixture()
def oracle() -> FakeReadOracle:
    """Wallet with 1000 tokens and 200 shares worth 220 tokens, no allowance."""
    oracle = FakeReadOracle()
    set_wallet_state(oracle, primary_balance=1000 * ONE, share_balance=200 * ONE, share_value=220 * ONE, allowance=0)
    return oracle


@pytest.fixture()
def submitter() -> FakeSubmitter:
    return FakeSubmitter()


@pytest.fixture()
def watcher() -> FakeWatcher:
    return FakeWatcher()
