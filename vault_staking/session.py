"""Staking session tied to one wallet connection.

Holds everything that lives as long as the wallet is connected:
snapshots, pollers and the chain access adapters.
Nothing here is a module global, so multiple sessions can coexist.

Example:

.. code-block:: python

    config = StakingConfig.from_env()
    wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])

    async with StakingSession.create_web3_session(config, wallet) as session:
        snapshot = session.balances.snapshot
        stake = session.create_stake_orchestrator()
        await stake.stake(AmountInput.from_percentage(100, snapshot.primary_balance).raw_amount)

"""

import logging
from functools import partial

from eth_typing import HexAddress
from web3 import Web3

from vault_staking.base import ConfirmationWatcher, ReadOracle, TransactionSubmitter
from vault_staking.config import ConnectorKind, StakingConfig
from vault_staking.errors import ReadError
from vault_staking.hotwallet import HotWallet
from vault_staking.poller import Poller
from vault_staking.snapshot import BalanceReader, BalanceSnapshot, SnapshotStore
from vault_staking.stake import StakeOrchestrator
from vault_staking.stats import ProtocolStats, ProtocolStatsReader
from vault_staking.unstake import UnstakeOrchestrator
from vault_staking.web3_adapters import (
    Web3ConfirmationWatcher,
    Web3ReadOracle,
    Web3TransactionSubmitter,
    create_async_web3,
    create_staking_contracts,
)


logger = logging.getLogger(__name__)


class StakingSession:
    """Everything a connected wallet needs."""

    def __init__(
        self,
        config: StakingConfig,
        owner: HexAddress,
        oracle: ReadOracle,
        submitter: TransactionSubmitter,
        watcher: ConfirmationWatcher,
    ):
        assert isinstance(config, StakingConfig), f"Got {type(config)}"
        self.config = config
        self.owner = Web3.to_checksum_address(owner)
        self.oracle = oracle
        self.submitter = submitter
        self.watcher = watcher

        balance_reader = BalanceReader(oracle, config.token_address, config.vault_address)
        stats_reader = ProtocolStatsReader(oracle, config.token_address, config.vault_address, config.apy)

        self.balances: SnapshotStore[BalanceSnapshot] = SnapshotStore(partial(balance_reader.refresh, self.owner), name="balances")
        self.stats: SnapshotStore[ProtocolStats] = SnapshotStore(stats_reader.refresh, name="stats")

        self.balance_poller = Poller(self.balances, config.balance_poll_interval)
        self.stats_poller = Poller(self.stats, config.stats_poll_interval)

    def __repr__(self):
        return f"<StakingSession {self.owner} chain:{self.config.chain_id}>"

    async def start(self):
        """Do the first reads and start polling.

        A failing first read is not fatal, the pollers keep trying.
        """
        logger.info("Starting staking session for %s", self.owner)
        for store in (self.balances, self.stats):
            try:
                await store.refresh()
            except ReadError as e:
                logger.warning("Initial read of %s failed: %s", store.name, e)
        self.balance_poller.start()
        self.stats_poller.start()

    async def close(self):
        """Stop polling and forget the snapshots."""
        await self.balance_poller.stop()
        await self.stats_poller.stop()
        self.balances.clear()
        self.stats.clear()
        logger.info("Closed staking session for %s", self.owner)

    async def __aenter__(self) -> "StakingSession":
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.close()

    def create_stake_orchestrator(self) -> StakeOrchestrator:
        return StakeOrchestrator(self.config, self.owner, self.submitter, self.watcher, self.balances)

    def create_unstake_orchestrator(self) -> UnstakeOrchestrator:
        return UnstakeOrchestrator(self.config, self.owner, self.submitter, self.watcher, self.balances)

    @staticmethod
    def create_web3_session(config: StakingConfig, wallet: HotWallet) -> "StakingSession":
        """Wire a session to a JSON-RPC node and a hot wallet."""
        assert config.connector == ConnectorKind.hot_wallet, f"Unsupported connector {config.connector}"
        assert isinstance(wallet, HotWallet), f"Got {type(wallet)}"
        web3 = create_async_web3(config.json_rpc_url)
        contracts = create_staking_contracts(web3, config)
        return StakingSession(
            config=config,
            owner=wallet.address,
            oracle=Web3ReadOracle(web3, contracts),
            submitter=Web3TransactionSubmitter(web3, wallet, contracts, chain_id=config.chain_id, gas_limit=config.gas_limit),
            watcher=Web3ConfirmationWatcher(web3, timeout=config.confirmation_timeout),
        )
