"""In-memory chain access fakes for the staking tests."""

import datetime
import itertools

from eth_utils import to_checksum_address

from vault_staking.base import ConfirmationOutcome, ContractCall
from vault_staking.config import FEY_TOKEN_ADDRESS, XFEY_VAULT_ADDRESS
from vault_staking.errors import ReadError
from vault_staking.snapshot import BalanceSnapshot, SnapshotStore


#: Test wallet, all digits so it is already checksummed
OWNER = "0x1111111111111111111111111111111111111111"

TOKEN = to_checksum_address(FEY_TOKEN_ADDRESS)

VAULT = to_checksum_address(XFEY_VAULT_ADDRESS)

ONE = 10**18


class FakeReadOracle:
    """Serve view calls from a dict.

    The chain advances one block every time the block number is read.
    """

    def __init__(self, values: dict | None = None):
        self.values = dict(values or {})

        #: Make every read fail
        self.failing = False

        self.calls: list[ContractCall] = []

        #: Block identifier of each call in :py:attr:`calls`
        self.blocks: list = []

        self.block_number = 100

    def set(self, contract: str, method: str, args: tuple, value):
        self.values[(contract, method, args)] = value

    async def fetch_block_number(self) -> int:
        if self.failing:
            raise ReadError("Node down")
        self.block_number += 1
        return self.block_number

    async def read(self, contract, method, args=(), block_identifier="latest"):
        self.calls.append(ContractCall(contract, method, tuple(args)))
        self.blocks.append(block_identifier)
        if self.failing:
            raise ReadError("Node down")
        key = (contract, method, tuple(args))
        if key not in self.values:
            raise ReadError(f"No value for {key}")
        return self.values[key]

    async def read_many(self, calls, block_identifier="latest"):
        return [await self.read(c.contract, c.method, c.args, block_identifier) for c in calls]


class FakeSubmitter:
    """Record submitted calls.

    Queued exceptions are raised one per submit, then submits succeed.
    """

    def __init__(self, errors: list | None = None):
        self.errors = list(errors or [])
        self.calls: list[ContractCall] = []
        self.counter = itertools.count(1)

    async def submit(self, call: ContractCall) -> str:
        self.calls.append(call)
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        return f"0x{next(self.counter):064x}"

    def methods(self) -> list[str]:
        return [c.method for c in self.calls]


class FakeWatcher:
    """Resolve transactions with queued outcomes, confirm once the queue is empty."""

    def __init__(self, outcomes: list | None = None):
        self.outcomes = list(outcomes or [])
        self.handle_ids: list[str] = []

    async def await_confirmation(self, handle_id: str) -> ConfirmationOutcome:
        self.handle_ids.append(handle_id)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ConfirmationOutcome.confirmed


def make_snapshot(
    primary_balance: int = 1000 * ONE,
    share_balance: int = 0,
    share_value_in_primary: int = 0,
    allowance: int = 0,
) -> BalanceSnapshot:
    return BalanceSnapshot(
        owner=OWNER,
        primary_balance=primary_balance,
        share_balance=share_balance,
        share_value_in_primary=share_value_in_primary,
        allowance=allowance,
        fetched_at=datetime.datetime(2024, 1, 1),
    )


def make_store(snapshot: BalanceSnapshot | None) -> SnapshotStore[BalanceSnapshot]:
    """Store with a preloaded value, refreshing returns the same value."""

    async def fetch():
        return snapshot

    store = SnapshotStore(fetch, name="balances")
    store.value = snapshot
    return store


def set_wallet_state(
    oracle: FakeReadOracle,
    primary_balance: int,
    share_balance: int,
    share_value: int,
    allowance: int,
    total_assets: int = 1_000_000 * ONE,
    total_primary_supply: int = 10_000_000 * ONE,
    total_shares: int = 900_000 * ONE,
):
    """Program the oracle with what the wallet and the vault hold."""
    oracle.set(TOKEN, "balanceOf", (OWNER,), primary_balance)
    oracle.set(VAULT, "balanceOf", (OWNER,), share_balance)
    oracle.set(TOKEN, "allowance", (OWNER, VAULT), allowance)
    oracle.set(VAULT, "convertToAssets", (share_balance,), share_value)
    oracle.set(VAULT, "totalAssets", (), total_assets)
    oracle.set(TOKEN, "totalSupply", (), total_primary_supply)
    oracle.set(VAULT, "totalSupply", (), total_shares)


