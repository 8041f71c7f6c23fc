"""Core-facing interfaces for chain access.

The staking core never talks to a JSON-RPC node directly.
It consumes three capabilities:

- :py:class:`ReadOracle` for view calls like ``balanceOf()`` and ``allowance()``

- :py:class:`TransactionSubmitter` to sign and broadcast a contract call

- :py:class:`ConfirmationWatcher` to wait until a broadcasted transaction lands

See :py:mod:`vault_staking.web3_adapters` for the implementations backed by ``AsyncWeb3``.

.. note ::

    Amounts cross this boundary as raw base-unit ``int`` values only.
    No ``float`` or ``Decimal`` is ever passed into a transaction call.
"""

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from eth_typing import BlockIdentifier, HexAddress


@dataclass(frozen=True, slots=True)
class ContractCall:
    """A contract function call with its arguments.

    Used both for reads and for transactions.
    """

    #: Contract address
    contract: HexAddress

    #: Solidity function name e.g. ``balanceOf``
    method: str

    #: Positional function arguments
    args: tuple = ()

    def __post_init__(self):
        assert self.contract.startswith("0x"), f"Got {self.contract}"
        assert type(self.args) == tuple, f"Got {type(self.args)}"
        for arg in self.args:
            assert not isinstance(arg, float), f"Floats cannot cross into a contract call: {self.method}({self.args})"

    def __repr__(self):
        args = ", ".join(str(a) for a in self.args)
        return f"<{self.method}({args}) at {self.contract}>"


class ConfirmationOutcome(enum.Enum):
    """How a broadcasted transaction ended."""

    #: Included in a block with success status
    confirmed = "confirmed"

    #: Included in a block, but reverted
    reverted = "reverted"

    #: We did not see a receipt within the timeout
    timed_out = "timed_out"


class ReadOracle(Protocol):
    """Read on-chain state."""

    async def fetch_block_number(self) -> int:
        """Latest block number.

        :raise vault_staking.errors.ReadError:
            If the node cannot be reached
        """

    async def read(self, contract: HexAddress, method: str, args: tuple = (), block_identifier: BlockIdentifier = "latest") -> Any:
        """Perform a single view call.

        :raise vault_staking.errors.ReadError:
            If the node cannot be reached or the call fails
        """

    async def read_many(self, calls: Iterable[ContractCall], block_identifier: BlockIdentifier = "latest") -> list[Any]:
        """Perform multiple view calls as a batch, all at the same block.

        :return:
            Results in the same order as the calls

        :raise vault_staking.errors.ReadError:
            If any of the calls fail
        """


class TransactionSubmitter(Protocol):
    """Sign and broadcast transactions."""

    async def submit(self, call: ContractCall) -> str:
        """Broadcast a contract call as a transaction.

        :return:
            Handle id, ``0x`` prefixed transaction hash

        :raise vault_staking.errors.SubmitError:
            Wallet rejection, gas failure, broadcast failure
        """


class ConfirmationWatcher(Protocol):
    """Resolve a broadcasted transaction to its final outcome."""

    async def await_confirmation(self, handle_id: str) -> ConfirmationOutcome:
        """Wait until the transaction is included or we give up."""
