"""Staking flow: optional approval, then vault deposit.

.. code-block:: text

    input -> approving -> executing -> success    # allowance too low
    input -> executing -> success                 # allowance already covers the amount

- The deposit after an approval fires automatically, exactly once per approval success

- The deposit uses the amount captured when staking started, not whatever is in the input field now

- A failed step stays where it failed, the user can :py:meth:`StakeOrchestrator.retry`
  or :py:meth:`StakeOrchestrator.change_amount`

Example:

.. code-block:: python

    stake = session.create_stake_orchestrator()
    amount_input = AmountInput.from_text("500", session.balances.snapshot.primary_balance)
    step = await stake.stake(amount_input.raw_amount)
    if step != StakeStep.success:
        print("Failed:", stake.error_message)
        await stake.retry()

"""

import asyncio
import enum
import logging
from typing import Callable

from eth_typing import HexAddress

from vault_staking.amount import validate_amount
from vault_staking.base import ConfirmationWatcher, ContractCall, TransactionSubmitter
from vault_staking.config import StakingConfig
from vault_staking.errors import InvalidTransition
from vault_staking.lifecycle import TransactionHandle, TransactionLifecycleTracker, TransactionState
from vault_staking.snapshot import BalanceSnapshot, SnapshotStore


logger = logging.getLogger(__name__)


class StakeStep(enum.Enum):
    input = "input"
    approving = "approving"
    executing = "executing"
    success = "success"


#: Called with the new step
StepListener = Callable[["StakeStep"], None]


class StakeOrchestrator:
    """Drive approve + deposit for one wallet."""

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

        self.step = StakeStep.input

        #: Every step we have been in, for diagnostics
        self.step_history: list[StakeStep] = [StakeStep.input]

        #: Amount captured when staking started
        self.amount: int | None = None

        self.approval: TransactionLifecycleTracker | None = None
        self.deposit: TransactionLifecycleTracker | None = None

        #: One-shot guard for the automatic deposit after approval
        self.deposit_chained = False

        self.deposit_task: asyncio.Task | None = None

        self.listeners: list[StepListener] = []

    def __repr__(self):
        return f"<StakeOrchestrator {self.owner} {self.step.value} amount:{self.amount}>"

    def add_listener(self, listener: StepListener):
        self.listeners.append(listener)

    def _set_step(self, step: StakeStep):
        if step == self.step:
            return
        logger.info("Stake %s: %s -> %s", self.owner, self.step.value, step.value)
        self.step = step
        self.step_history.append(step)
        for listener in self.listeners:
            listener(step)

    @property
    def active_tracker(self) -> TransactionLifecycleTracker | None:
        match self.step:
            case StakeStep.approving:
                return self.approval
            case StakeStep.executing | StakeStep.success:
                return self.deposit
            case _:
                return None

    @property
    def error_message(self) -> str | None:
        tracker = self.active_tracker
        return tracker.handle.error_message if tracker else None

    def has_failed(self) -> bool:
        tracker = self.active_tracker
        return tracker is not None and tracker.state == TransactionState.failed

    def needs_approval(self, raw_amount: int, snapshot: BalanceSnapshot) -> bool:
        return raw_amount > snapshot.allowance

    def _create_tracker(self, name: str) -> TransactionLifecycleTracker:
        return TransactionLifecycleTracker(
            self.submitter,
            self.watcher,
            name=name,
            chain_id=self.config.chain_id,
        )

    async def stake(self, raw_amount: int) -> StakeStep:
        """Start staking.

        :param raw_amount:
            Floored and clamped amount, see :py:class:`vault_staking.amount.AmountInput`

        :return:
            The step we ended in. ``success``, or the step that failed.

        :raise vault_staking.errors.ValidationError:
            Zero amount, over balance or balance unknown. We stay in ``input``.
        """
        if self.step != StakeStep.input:
            raise InvalidTransition(f"Cannot start staking in step {self.step.value}")

        snapshot = self.balances.snapshot
        validate_amount(raw_amount, snapshot.primary_balance if snapshot else None)

        self.amount = raw_amount

        if self.needs_approval(raw_amount, snapshot):
            self._set_step(StakeStep.approving)
            self.approval = self._create_tracker("approve")
            self.approval.add_listener(self._on_approval_transition)
            approve_amount = self.config.get_approval_amount(raw_amount)
            logger.info("Approving %d for vault %s, policy %s", approve_amount, self.config.vault_address, self.config.approval_policy.value)
            await self.approval.execute(ContractCall(self.config.token_address, "approve", (self.config.vault_address, approve_amount)))
            await self._wait_deposit()
        else:
            self._set_step(StakeStep.executing)
            await self._execute_deposit()

        return self.step

    def _on_approval_transition(self, tracker: TransactionLifecycleTracker, handle: TransactionHandle):
        if handle.state == TransactionState.confirmed:
            self.balances.invalidate()
            self.on_approval_confirmed()

    def on_approval_confirmed(self):
        """Chain the deposit after the approval confirmed.

        Fires the deposit at most once until the session returns to ``input``.
        """
        if self.deposit_chained:
            logger.info("Deposit already chained for %s, ignoring repeated approval confirmation", self.owner)
            return
        assert self.step == StakeStep.approving, f"Approval confirmed in step {self.step}"
        self.deposit_chained = True
        self._set_step(StakeStep.executing)
        self.deposit_task = asyncio.get_running_loop().create_task(self._execute_deposit())

    async def _wait_deposit(self):
        if self.deposit_task is not None:
            await self.deposit_task

    async def _execute_deposit(self):
        assert self.amount is not None
        self.deposit = self._create_tracker("deposit")
        self.deposit.add_listener(self._on_deposit_transition)
        await self.deposit.execute(ContractCall(self.config.vault_address, "deposit", (self.amount, self.owner)))

    def _on_deposit_transition(self, tracker: TransactionLifecycleTracker, handle: TransactionHandle):
        if handle.state == TransactionState.confirmed:
            self.balances.invalidate()
            self._set_step(StakeStep.success)

    async def retry(self) -> StakeStep:
        """Resubmit the failed step with identical parameters."""
        if not self.has_failed():
            raise InvalidTransition(f"Nothing to retry in step {self.step.value}")

        tracker = self.active_tracker
        await tracker.resubmit()
        await self._wait_deposit()
        return self.step

    def change_amount(self):
        """Abandon a failed step and go back to amount entry.

        Nothing in flight can be cancelled, only failed steps.
        """
        if not self.has_failed():
            raise InvalidTransition(f"Cannot change amount in step {self.step.value}")
        self._reset()

    def reset(self):
        """Start over after success."""
        if self.step != StakeStep.success:
            raise InvalidTransition(f"Cannot reset in step {self.step.value}")
        self._reset()

    def _reset(self):
        self.amount = None
        self.approval = None
        self.deposit = None
        self.deposit_task = None
        self.deposit_chained = False
        self._set_step(StakeStep.input)
