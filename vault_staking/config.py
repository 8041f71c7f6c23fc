"""Staking configuration.

All addresses, decimals and policies the staking core needs,
injected explicitly at startup instead of living in module globals.

Example:

.. code-block:: python

    # Reads JSON_RPC_BASE
    config = StakingConfig.from_env()
    print(f"Staking {config.token_symbol} into {config.vault_address} on {get_chain_name(config.chain_id)}")

"""

import datetime
import enum
import os
from dataclasses import dataclass, field
from decimal import Decimal

from eth_typing import HexAddress
from eth_utils import to_checksum_address

from vault_staking.chain import read_json_rpc_url


#: Base mainnet
BASE_CHAIN_ID = 8453

#: FEY ERC-20 token on Base
FEY_TOKEN_ADDRESS = "0xD09cf0982A32DD6856e12d6BF2F08A822eA5D91D"

#: xFEY ERC-4626 vault on Base
XFEY_VAULT_ADDRESS = "0x72f5565Ab147105614ca4Eb83ecF15f751Fd8C50"

#: Unbounded ERC-20 approval
MAX_UINT256 = 2**256 - 1

#: Protocol reported APY, we do not calculate it
DEFAULT_APY = Decimal("34.2")


class ApprovalPolicy(enum.Enum):
    """How much allowance we ask for before a deposit."""

    #: Approve exactly the deposited amount, no standing allowance left
    exact = "exact"

    #: Approve ``MAX_UINT256`` once, no repeated approvals later
    unlimited = "unlimited"


class ConnectorKind(enum.Enum):
    """Supported wallet connectors.

    Only one: a local private key signer, see :py:class:`vault_staking.hotwallet.HotWallet`.
    """

    hot_wallet = "hot_wallet"


@dataclass(slots=True)
class StakingConfig:
    """Staking protocol configuration."""

    #: JSON-RPC endpoint
    json_rpc_url: str | None = None

    #: EVM chain id
    chain_id: int = BASE_CHAIN_ID

    #: Token we stake
    token_address: HexAddress = FEY_TOKEN_ADDRESS

    #: Vault issuing shares
    vault_address: HexAddress = XFEY_VAULT_ADDRESS

    token_symbol: str = "FEY"

    share_symbol: str = "xFEY"

    token_decimals: int = 18

    share_decimals: int = 18

    #: See :py:class:`ApprovalPolicy`
    approval_policy: ApprovalPolicy = ApprovalPolicy.exact

    #: How often user balances are refreshed
    balance_poll_interval: datetime.timedelta = field(default_factory=lambda: datetime.timedelta(seconds=5))

    #: How often protocol wide stats are refreshed
    stats_poll_interval: datetime.timedelta = field(default_factory=lambda: datetime.timedelta(seconds=30))

    #: How long we wait for a transaction receipt
    confirmation_timeout: datetime.timedelta = field(default_factory=lambda: datetime.timedelta(minutes=5))

    #: Fixed gas limit for approve/deposit/redeem.
    #:
    #: ``None`` lets the node estimate gas, so calls that would revert fail before broadcast.
    gas_limit: int | None = None

    #: Externally supplied APY constant
    apy: Decimal = DEFAULT_APY

    #: Informational minimums, in base units
    min_stake_amount: int = 10**15
    min_unstake_amount: int = 10**15

    #: The one wallet connector we support
    connector: ConnectorKind = ConnectorKind.hot_wallet

    def __post_init__(self):
        self.token_address = to_checksum_address(self.token_address)
        self.vault_address = to_checksum_address(self.vault_address)
        assert type(self.chain_id) == int, f"Got {type(self.chain_id)}"
        assert isinstance(self.approval_policy, ApprovalPolicy), f"Got {self.approval_policy}"
        assert isinstance(self.connector, ConnectorKind), f"Got {self.connector}"
        assert isinstance(self.apy, Decimal), f"Give APY as Decimal, got {type(self.apy)}"
        assert self.balance_poll_interval.total_seconds() > 0
        assert self.stats_poll_interval.total_seconds() > 0

    @staticmethod
    def from_env(**overrides) -> "StakingConfig":
        """Create config from environment variables.

        - ``JSON_RPC_BASE`` (or the variable for another ``chain_id``)

        - ``APPROVAL_POLICY``: ``exact`` or ``unlimited``

        :param overrides:
            Any :py:class:`StakingConfig` field
        """
        chain_id = overrides.pop("chain_id", BASE_CHAIN_ID)
        json_rpc_url = overrides.pop("json_rpc_url", None) or read_json_rpc_url(chain_id)
        approval_policy = overrides.pop("approval_policy", None) or ApprovalPolicy(os.environ.get("APPROVAL_POLICY", "exact"))
        return StakingConfig(
            json_rpc_url=json_rpc_url,
            chain_id=chain_id,
            approval_policy=approval_policy,
            **overrides,
        )

    def get_approval_amount(self, raw_amount: int) -> int:
        """How much allowance to ask for when depositing ``raw_amount``."""
        match self.approval_policy:
            case ApprovalPolicy.exact:
                return raw_amount
            case ApprovalPolicy.unlimited:
                return MAX_UINT256
            case _:
                raise NotImplementedError(f"Unknown approval policy {self.approval_policy}")
