"""User balance and allowance snapshots.

- :py:class:`BalanceSnapshot` is an immutable view of what the user holds

- :py:class:`BalanceReader` reads it in two phases: balances and allowance first,
  then the underlying value of the share balance

- :py:class:`SnapshotStore` keeps the latest successful read and flags it stale
  when a refresh fails, so the UI never sees a balance silently drop to zero
"""

import asyncio
import datetime
import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Awaitable, Callable, Generic, TypeVar

from eth_typing import BlockIdentifier, HexAddress

from vault_staking.base import ContractCall, ReadOracle
from vault_staking.errors import ReadError


logger = logging.getLogger(__name__)


T = TypeVar("T")


def native_datetime_utc_now() -> datetime.datetime:
    """UTC timestamp without timezone info."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """What a wallet holds, all in raw base units.

    Replaced wholesale on each refresh, never patched.
    """

    #: Wallet address
    owner: HexAddress

    #: Staked token balance
    primary_balance: int

    #: Vault share balance
    share_balance: int

    #: ``convertToAssets(share_balance)``
    share_value_in_primary: int

    #: Token allowance for the vault
    allowance: int

    #: When this was read
    fetched_at: datetime.datetime

    #: Block all values were read at
    block_number: int | None = None

    def __post_init__(self):
        for name in ("primary_balance", "share_balance", "share_value_in_primary", "allowance"):
            value = getattr(self, name)
            assert type(value) == int, f"{name}: expected int, got {type(value)}: {value}"
            assert value >= 0, f"{name}: negative value {value}"

    @property
    def is_approved(self) -> bool:
        return self.allowance > 0

    def get_share_price(self) -> Fraction | None:
        """Underlying tokens per share, as exact ratio.

        :return:
            ``None`` if we hold no shares
        """
        if self.share_balance == 0:
            return None
        return Fraction(self.share_value_in_primary, self.share_balance)

    def estimate_redeem(self, raw_shares: int) -> int:
        """How many underlying tokens we get for burning shares.

        Uses the share value ratio of this snapshot, rounding down.
        """
        assert type(raw_shares) == int, f"Got {type(raw_shares)}"
        if self.share_balance == 0:
            return 0
        return self.share_value_in_primary * raw_shares // self.share_balance


class BalanceReader:
    """Read :py:class:`BalanceSnapshot` for a wallet."""

    def __init__(
        self,
        oracle: ReadOracle,
        token_address: HexAddress,
        vault_address: HexAddress,
    ):
        self.oracle = oracle
        self.token_address = token_address
        self.vault_address = vault_address

    async def fetch_balances(self, owner: HexAddress, block_identifier: BlockIdentifier = "latest") -> tuple[int, int, int]:
        """Phase 1: token balance, share balance and allowance as one batch."""
        primary_balance, share_balance, allowance = await self.oracle.read_many(
            [
                ContractCall(self.token_address, "balanceOf", (owner,)),
                ContractCall(self.vault_address, "balanceOf", (owner,)),
                ContractCall(self.token_address, "allowance", (owner, self.vault_address)),
            ],
            block_identifier=block_identifier,
        )
        return primary_balance, share_balance, allowance

    async def fetch_share_value(self, share_balance: int, block_identifier: BlockIdentifier = "latest") -> int:
        """Phase 2: underlying value of a known share balance.

        Holding zero shares needs no read.
        """
        if share_balance == 0:
            return 0
        return await self.oracle.read(self.vault_address, "convertToAssets", (share_balance,), block_identifier=block_identifier)

    async def refresh(self, owner: HexAddress) -> BalanceSnapshot:
        """Read a fresh snapshot.

        Both phases read the same block, so the share value matches the share balance.

        :raise ReadError:
            If any of the reads fail
        """
        block_number = await self.oracle.fetch_block_number()
        primary_balance, share_balance, allowance = await self.fetch_balances(owner, block_number)
        share_value = await self.fetch_share_value(share_balance, block_number)
        return BalanceSnapshot(
            owner=owner,
            primary_balance=primary_balance,
            share_balance=share_balance,
            share_value_in_primary=share_value,
            allowance=allowance,
            fetched_at=native_datetime_utc_now(),
            block_number=block_number,
        )


class SnapshotStore(Generic[T]):
    """Hold the latest successfully read value.

    - A failed refresh keeps the previous value and sets :py:attr:`last_error`

    - :py:meth:`invalidate` asks the poller to refresh right away,
      e.g. after a transaction confirms

    - The value is swapped in one assignment, readers never see a half-updated value
    """

    def __init__(self, fetch: Callable[[], Awaitable[T]], name: str):
        self.fetch = fetch
        self.name = name
        self.value: T | None = None
        self.last_error: ReadError | None = None

        #: How many times the value has been replaced
        self.version = 0

        self.refresh_requested = asyncio.Event()

    def __repr__(self):
        return f"<SnapshotStore {self.name} version:{self.version} stale:{self.is_stale}>"

    @property
    def snapshot(self) -> T | None:
        return self.value

    @property
    def is_stale(self) -> bool:
        """Did the last refresh fail."""
        return self.last_error is not None

    async def refresh(self) -> T:
        """Read a new value and replace the old one.

        :raise ReadError:
            Refresh failed, the old value is kept and marked stale
        """
        try:
            value = await self.fetch()
        except ReadError as e:
            logger.warning("Refreshing %s failed, keeping stale value of version %d: %s", self.name, self.version, e)
            self.last_error = e
            raise

        self.value = value
        self.last_error = None
        self.version += 1
        logger.debug("Refreshed %s, version %d", self.name, self.version)
        return value

    def invalidate(self):
        """Ask for an immediate refresh."""
        logger.info("Invalidated %s", self.name)
        self.refresh_requested.set()

    def clear(self):
        """Discard everything when the wallet disconnects."""
        self.value = None
        self.last_error = None
