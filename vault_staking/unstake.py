"""Unstaking flow: redeem vault shares back to the underlying token.

.. code-block:: text

    input -> executing -> success

The amount reported on success is calculated from the share value
of the snapshot taken when the redeem was submitted, so it matches what the user agreed to.
"""

import enum
import logging
from decimal import Decimal
from typing import Callable

from eth_typing import HexAddress

from vault_staking.amount import PercentageChange, calculate_percentage_change, validate_amount
from vault_staking.base import ConfirmationWatcher, ContractCall, TransactionSubmitter
from vault_staking.config import StakingConfig
from vault_staking.errors import InvalidTransition
from vault_staking.lifecycle import TransactionHandle, TransactionLifecycleTracker, TransactionState
from vault_staking.snapshot import BalanceSnapshot, SnapshotStore


logger = logging.getLogger(__name__)


class UnstakeStep(enum.Enum):
    input = "input"
    executing = "executing"
    success = "success"


StepListener = Callable[["UnstakeStep"], None]


def preview_redeem_amount(raw_shares: int, snapshot: BalanceSnapshot | None) -> int:
    """How many tokens we expect for burning shares.

    :return:
        Zero if we know nothing yet
    """
    if snapshot is None or raw_shares <= 0:
        return 0
    return snapshot.estimate_redeem(raw_shares)


def preview_gain(raw_shares: int, snapshot: BalanceSnapshot | None) -> PercentageChange | None:
    """Gain of the redeemed tokens over the share count.

    Both tokens must share the same decimals.

    :return:
        ``None`` if there is no gain to show
    """
    expected = preview_redeem_amount(raw_shares, snapshot)
    if raw_shares <= 0 or expected <= raw_shares:
        return None
    return PercentageChange.from_change(calculate_percentage_change(Decimal(raw_shares), Decimal(expected)))


class UnstakeOrchestrator:
    """Drive a vault redeem for one wallet."""

    def __init__(
        self,
        config: StakingConfig,
        owner: HexAddress,
        submitter: TransactionSubmitter,
        watcher: ConfirmationWatcher,
        balances: SnapshotStore[BalanceSnapshot],
    ):
        self.config = config
        self.owner = owner
        self.submitter = submitter
        self.watcher = watcher
        self.balances = balances

        self.step = UnstakeStep.input
        self.step_history: list[UnstakeStep] = [UnstakeStep.input]

        #: Shares we are redeeming
        self.shares: int | None = None

        #: Snapshot at submission time, used for the success report
        self.submitted_snapshot: BalanceSnapshot | None = None

        #: Tokens we got, known after success
        self.realized_amount: int | None = None

        self.redeem: TransactionLifecycleTracker | None = None

        self.listeners: list[StepListener] = []

    def __repr__(self):
        return f"<UnstakeOrchestrator {self.owner} {self.step.value} shares:{self.shares}>"

    def add_listener(self, listener: StepListener):
        self.listeners.append(listener)

    def _set_step(self, step: UnstakeStep):
        if step == self.step:
            return
        logger.info("Unstake %s: %s -> %s", self.owner, self.step.value, step.value)
        self.step = step
        self.step_history.append(step)
        for listener in self.listeners:
            listener(step)

    @property
    def error_message(self) -> str | None:
        return self.redeem.handle.error_message if self.redeem else None

    def has_failed(self) -> bool:
        return self.redeem is not None and self.redeem.state == TransactionState.failed

    def preview(self, raw_shares: int) -> int:
        """See :py:func:`preview_redeem_amount`."""
        return preview_redeem_amount(raw_shares, self.balances.snapshot)

    async def unstake(self, raw_shares: int) -> UnstakeStep:
        """Redeem shares.

        :return:
            ``success`` or ``executing`` with a failed transaction

        :raise vault_staking.errors.ValidationError:
            Zero shares, more than held, or balance unknown. We stay in ``input``.
        """
        if self.step != UnstakeStep.input:
            raise InvalidTransition(f"Cannot start unstaking in step {self.step.value}")

        snapshot = self.balances.snapshot
        validate_amount(raw_shares, snapshot.share_balance if snapshot else None)

        self.shares = raw_shares
        self.submitted_snapshot = snapshot
        self.realized_amount = None
        self._set_step(UnstakeStep.executing)

        self.redeem = TransactionLifecycleTracker(
            self.submitter,
            self.watcher,
            name="redeem",
            chain_id=self.config.chain_id,
        )
        self.redeem.add_listener(self._on_redeem_transition)
        await self.redeem.execute(ContractCall(self.config.vault_address, "redeem", (raw_shares, self.owner, self.owner)))
        return self.step

    def _on_redeem_transition(self, tracker: TransactionLifecycleTracker, handle: TransactionHandle):
        if handle.state == TransactionState.confirmed:
            self.realized_amount = self.submitted_snapshot.estimate_redeem(self.shares)
            logger.info("Redeemed %d shares for about %d tokens", self.shares, self.realized_amount)
            self.balances.invalidate()
            self._set_step(UnstakeStep.success)

    async def retry(self) -> UnstakeStep:
        """Resubmit the failed redeem with identical parameters."""
        if not self.has_failed():
            raise InvalidTransition(f"Nothing to retry in step {self.step.value}")
        await self.redeem.resubmit()
        return self.step

    def change_amount(self):
        """Abandon a failed redeem and go back to amount entry."""
        if not self.has_failed():
            raise InvalidTransition(f"Cannot change amount in step {self.step.value}")
        self._reset()

    def reset(self):
        """Start over after success."""
        if self.step != UnstakeStep.success:
            raise InvalidTransition(f"Cannot reset in step {self.step.value}")
        self._reset()

    def _reset(self):
        self.shares = None
        self.submitted_snapshot = None
        self.redeem = None
        self._set_step(UnstakeStep.input)
