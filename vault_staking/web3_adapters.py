"""AsyncWeb3 implementations of the chain access interfaces.

- :py:class:`Web3ReadOracle` for view calls

- :py:class:`Web3TransactionSubmitter` signs with :py:class:`vault_staking.hotwallet.HotWallet` and broadcasts

- :py:class:`Web3ConfirmationWatcher` polls for the receipt

Transport and node errors are translated to :py:mod:`vault_staking.errors` exceptions here,
the staking core never sees web3.py exceptions.
"""

import asyncio
import datetime
import logging
from typing import Any, Iterable

import aiohttp
from eth_typing import BlockIdentifier, HexAddress
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import TimeExhausted, Web3Exception

from vault_staking.abi import ERC20_ABI, ERC4626_ABI
from vault_staking.base import ConfirmationOutcome, ContractCall
from vault_staking.config import StakingConfig
from vault_staking.errors import ConfirmationError, ReadError, SubmitError
from vault_staking.hotwallet import HotWallet


logger = logging.getLogger(__name__)

#: What a JSON-RPC call can throw at us
_rpc_exceptions = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError, OSError)


def create_async_web3(json_rpc_url: str) -> AsyncWeb3:
    """Create an AsyncWeb3 connection over HTTP."""
    assert json_rpc_url, "No JSON-RPC URL given"
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(json_rpc_url))


def create_staking_contracts(web3: AsyncWeb3, config: StakingConfig) -> dict[HexAddress, AsyncContract]:
    """Bind the token and the vault contracts.

    :return:
        Checksummed address -> contract
    """
    return {
        config.token_address: web3.eth.contract(address=config.token_address, abi=ERC20_ABI),
        config.vault_address: web3.eth.contract(address=config.vault_address, abi=ERC4626_ABI),
    }


class _ContractLookup:
    def __init__(self, contracts: dict[HexAddress, AsyncContract]):
        self.contracts = {Web3.to_checksum_address(address): contract for address, contract in contracts.items()}

    def get_bound_function(self, call: ContractCall):
        address = Web3.to_checksum_address(call.contract)
        contract = self.contracts.get(address)
        assert contract is not None, f"Unknown contract {call.contract}, we know {list(self.contracts.keys())}"
        return getattr(contract.functions, call.method)(*call.args)


class Web3ReadOracle(_ContractLookup):
    """Read contract state over JSON-RPC.

    Pass a block number to :py:meth:`read_many` to get a consistent view
    across several calls.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        contracts: dict[HexAddress, AsyncContract],
    ):
        super().__init__(contracts)
        self.web3 = web3

    async def fetch_block_number(self) -> int:
        """Latest block number, to pin the following reads to."""
        try:
            return await self.web3.eth.block_number
        except _rpc_exceptions as e:
            raise ReadError(f"Could not read block number: {e}") from e

    async def read(self, contract: HexAddress, method: str, args: tuple = (), block_identifier: BlockIdentifier = "latest") -> Any:
        call = ContractCall(contract, method, args)
        try:
            return await self.get_bound_function(call).call(block_identifier=block_identifier)
        except _rpc_exceptions as e:
            raise ReadError(f"Reading {call} at {block_identifier} failed: {e}") from e

    async def read_many(self, calls: Iterable[ContractCall], block_identifier: BlockIdentifier = "latest") -> list[Any]:
        """Run the reads concurrently against the same block.

        If one read fails, the rest are cancelled.
        """
        tasks = [asyncio.ensure_future(self.read(c.contract, c.method, c.args, block_identifier)) for c in calls]
        try:
            return list(await asyncio.gather(*tasks))
        except ReadError:
            for task in tasks:
                task.cancel()
            raise


class Web3TransactionSubmitter(_ContractLookup):
    """Sign with a hot wallet and broadcast with ``eth_sendRawTransaction``.

    Gas is estimated by the node unless ``gas_limit`` is given.
    A call that would revert fails in the estimation and is never broadcast.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        wallet: HotWallet,
        contracts: dict[HexAddress, AsyncContract],
        chain_id: int,
        gas_limit: int | None = None,
    ):
        super().__init__(contracts)
        self.web3 = web3
        self.wallet = wallet
        self.chain_id = chain_id
        self.gas_limit = gas_limit

    async def submit(self, call: ContractCall) -> str:
        """Sign and broadcast.

        :return:
            ``0x`` prefixed transaction hash

        :raise SubmitError:
            Gas estimation, signing or broadcast failed
        """
        bound_func = self.get_bound_function(call)

        logger.info("Submitting %s from %s", call, self.wallet.address)

        tx_params = {
            "from": self.wallet.address,
            "chainId": self.chain_id,
        }
        if self.gas_limit is not None:
            tx_params["gas"] = self.gas_limit

        try:
            if self.wallet.current_nonce is None:
                await self.wallet.sync_nonce(self.web3)

            tx = await bound_func.build_transaction(tx_params)
            tx.pop("nonce", None)
            signed = self.wallet.sign_transaction_with_new_nonce(dict(tx))
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except _rpc_exceptions as e:
            # Allocated nonce was not used
            self.wallet.reset_nonce()
            raise SubmitError(f"Could not submit {call}: {e}") from e

        handle_id = Web3.to_hex(tx_hash)
        logger.info("Broadcasted %s as %s, nonce %d", call, handle_id, signed.nonce)
        return handle_id


class Web3ConfirmationWatcher:
    """Wait for transaction receipts."""

    def __init__(
        self,
        web3: AsyncWeb3,
        timeout: datetime.timedelta = datetime.timedelta(minutes=5),
        poll_delay: datetime.timedelta = datetime.timedelta(seconds=1),
    ):
        assert isinstance(timeout, datetime.timedelta)
        assert isinstance(poll_delay, datetime.timedelta)
        self.web3 = web3
        self.timeout = timeout
        self.poll_delay = poll_delay

    async def await_confirmation(self, handle_id: str) -> ConfirmationOutcome:
        """Poll until we get a receipt.

        :raise ConfirmationError:
            Node could not be reached
        """
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                handle_id,
                timeout=self.timeout.total_seconds(),
                poll_latency=self.poll_delay.total_seconds(),
            )
        except TimeExhausted:
            logger.warning("Transaction %s not confirmed within %s", handle_id, self.timeout)
            return ConfirmationOutcome.timed_out
        except _rpc_exceptions as e:
            raise ConfirmationError(f"Could not confirm {handle_id}: {e}") from e

        if receipt["status"] == 1:
            logger.info("Confirmed %s in block %s", handle_id, receipt.get("blockNumber"))
            return ConfirmationOutcome.confirmed

        logger.warning("Transaction %s reverted in block %s", handle_id, receipt.get("blockNumber"))
        return ConfirmationOutcome.reverted
