"""Protocol-wide vault statistics."""

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from fractions import Fraction

from eth_typing import HexAddress

from vault_staking.base import ContractCall, ReadOracle
from vault_staking.snapshot import native_datetime_utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProtocolStats:
    """Vault totals.

    Share price and staked percentage are derived from the raw values.
    Both tokens are assumed to have the same decimals.
    """

    #: ``vault.totalAssets()``
    total_assets: int

    #: ``token.totalSupply()``
    total_primary_supply: int

    #: ``vault.totalSupply()``
    total_shares: int

    #: Externally supplied
    apy: Decimal

    fetched_at: datetime.datetime

    #: Block the totals were read at
    block_number: int | None = None

    @property
    def share_price(self) -> Decimal:
        """Underlying tokens per share.

        One share is one token before anything is deposited.
        """
        if self.total_shares == 0:
            return Decimal(1)
        with localcontext() as ctx:
            ctx.prec = 40
            return Decimal(self.total_assets) / Decimal(self.total_shares)

    @property
    def staked_percentage(self) -> Decimal:
        """How much of the token supply sits in the vault, 0...100."""
        if self.total_primary_supply == 0:
            return Decimal(0)
        with localcontext() as ctx:
            ctx.prec = 40
            return Decimal(self.total_assets) / Decimal(self.total_primary_supply) * 100


def estimate_yearly_earnings(raw_amount: int, apy: Decimal) -> int:
    """Estimate yearly earnings for a staked amount.

    :param raw_amount:
        Staked amount in base units

    :param apy:
        APY as a percentage, e.g. ``Decimal("34.2")``

    :return:
        Raw amount earned in a year, rounded down
    """
    assert type(raw_amount) == int, f"Got {type(raw_amount)}"
    assert isinstance(apy, Decimal), f"Got {type(apy)}"
    return int(raw_amount * Fraction(apy) // 100)


class ProtocolStatsReader:
    """Read :py:class:`ProtocolStats`."""

    def __init__(
        self,
        oracle: ReadOracle,
        token_address: HexAddress,
        vault_address: HexAddress,
        apy: Decimal,
    ):
        self.oracle = oracle
        self.token_address = token_address
        self.vault_address = vault_address
        self.apy = apy

    async def refresh(self) -> ProtocolStats:
        """Read fresh stats.

        :raise vault_staking.errors.ReadError:
            If any of the reads fail
        """
        block_number = await self.oracle.fetch_block_number()
        total_assets, total_primary_supply, total_shares = await self.oracle.read_many(
            [
                ContractCall(self.vault_address, "totalAssets"),
                ContractCall(self.token_address, "totalSupply"),
                ContractCall(self.vault_address, "totalSupply"),
            ],
            block_identifier=block_number,
        )
        return ProtocolStats(
            total_assets=total_assets,
            total_primary_supply=total_primary_supply,
            total_shares=total_shares,
            apy=self.apy,
            fetched_at=native_datetime_utc_now(),
            block_number=block_number,
        )
