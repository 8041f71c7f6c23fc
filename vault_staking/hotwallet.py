"""Hot wallet, the wallet connector for signing staking transactions.

- A local private key held in the process memory
  using :py:class:`eth_account.signers.local.LocalAccount`

- Manual nonce management, so approve and deposit can be signed back to back
"""

import logging
import secrets
from typing import NamedTuple, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import AsyncWeb3


logger = logging.getLogger(__name__)


class SignedTransactionWithNonce(NamedTuple):
    """A signed transaction with the nonce and source data retained.

    If broadcast fails, we can still see what we tried to send.
    """

    #: Bytes to broadcast
    raw_transaction: HexBytes

    #: Transaction hash
    hash: HexBytes

    #: What was the source nonce for this transaction
    nonce: int

    #: Signer address
    address: str

    #: Unencoded transaction data
    source: Optional[dict] = None

    def __repr__(self):
        return f"<SignedTransactionWithNonce hash:{self.hash.hex()} nonce:{self.nonce}>"


class HotWallet:
    """Sign transactions with a local private key.

    Example:

    .. code-block:: python

        wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])
        await wallet.sync_nonce(web3)
        signed = wallet.sign_transaction_with_new_nonce(tx)
        tx_hash = await web3.eth.send_raw_transaction(signed.raw_transaction)

    .. note ::

        Nonce tracking assumes a single asyncio event loop signs for this wallet.
    """

    def __init__(self, account: LocalAccount):
        self.account = account
        self.current_nonce: Optional[int] = None

    def __repr__(self):
        return f"<Hot wallet {self.account.address}>"

    @property
    def address(self) -> HexAddress:
        """Ethereum address of the wallet."""
        return self.account.address

    async def sync_nonce(self, web3: AsyncWeb3):
        """Initialise the current nonce from the on-chain data."""
        new_nonce = await web3.eth.get_transaction_count(self.account.address, "pending")
        if self.current_nonce is not None and new_nonce < self.current_nonce:
            logger.warning("Nonce sync read on-chain nonce %d that is older than our current nonce %d, keeping ours", new_nonce, self.current_nonce)
            return
        self.current_nonce = new_nonce
        logger.info("Synced nonce for %s to %d", self.account.address, self.current_nonce)

    def reset_nonce(self):
        """Forget the nonce, e.g. after a failed broadcast, so the next transaction syncs again."""
        self.current_nonce = None

    def allocate_nonce(self) -> int:
        """Get the next free nonce and increase the counter."""
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    def sign_transaction_with_new_nonce(self, tx: dict) -> SignedTransactionWithNonce:
        """Sign a transaction and allocate a nonce for it.

        :param tx:
            Ethereum transaction data as a dict.
            This is modified in-place to include nonce.
        """
        assert type(tx) == dict
        assert "nonce" not in tx
        tx["nonce"] = self.allocate_nonce()
        signed = self.account.sign_transaction(tx)
        return SignedTransactionWithNonce(
            raw_transaction=HexBytes(signed.raw_transaction),
            hash=HexBytes(signed.hash),
            nonce=tx["nonce"],
            address=self.address,
            source=tx,
        )

    @staticmethod
    def from_private_key(key: str) -> "HotWallet":
        """Create a hot wallet from a ``0x`` prefixed private key hex string."""
        assert type(key) == str, f"Expected private key as string, got {type(key)}"
        assert key.startswith("0x"), f"This system assumes private keys are prefixed with 0x, your key starts with {key[0:8]}... Please add 0x prefix to your private key hex string"
        account = Account.from_key(key)
        return HotWallet(account)

    @staticmethod
    def create_random() -> "HotWallet":
        """Create a wallet with a fresh random key, for testing."""
        return HotWallet.from_private_key("0x" + secrets.token_hex(32))
