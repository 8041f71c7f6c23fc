"""Transaction lifecycle tracking.

A :py:class:`TransactionLifecycleTracker` owns exactly one submit-then-confirm cycle.

.. code-block:: text

    idle --submit()--> submitting
    submitting --on_submitted()--> awaiting_confirmation
    submitting --on_submit_error()--> failed
    awaiting_confirmation --on_confirmed()--> confirmed
    awaiting_confirmation --on_reverted_or_timeout()--> failed
    failed --retry()--> submitting

- ``confirmed`` is terminal, repeated confirmation signals are ignored

- It does not care what contract call it wraps

- Each tracker owns its own handle, so any number of trackers can run at the same time

Example:

.. code-block:: python

    tracker = TransactionLifecycleTracker(submitter, watcher, name="approve")
    tracker.add_listener(lambda tracker, handle: print("Now", handle.state))
    await tracker.execute(ContractCall(token_address, "approve", (vault_address, raw_amount)))
    if tracker.state == TransactionState.failed:
        await tracker.resubmit()

"""

import enum
import logging
from dataclasses import dataclass, replace
from typing import Callable

from vault_staking.base import ConfirmationOutcome, ConfirmationWatcher, ContractCall, TransactionSubmitter
from vault_staking.chain import get_explorer_tx_url
from vault_staking.errors import ConfirmationError, InvalidTransition, StakingError, SubmitError


logger = logging.getLogger(__name__)


class TransactionState(enum.Enum):
    """Where a transaction is in its life."""

    idle = "idle"

    #: Waiting for the wallet to sign and broadcast
    submitting = "submitting"

    #: Broadcasted, waiting for a receipt
    awaiting_confirmation = "awaiting_confirmation"

    confirmed = "confirmed"

    failed = "failed"


@dataclass(frozen=True, slots=True)
class TransactionHandle:
    """Externally visible transaction state.

    A new instance is created on every transition.
    """

    state: TransactionState = TransactionState.idle

    #: Transaction hash once broadcasted
    submitted_handle_id: str | None = None

    #: Human-readable error if failed
    error_message: str | None = None


#: Called after every state transition
TransitionListener = Callable[["TransactionLifecycleTracker", TransactionHandle], None]


class TransactionLifecycleTracker:
    """State machine for one transaction."""

    def __init__(
        self,
        submitter: TransactionSubmitter,
        watcher: ConfirmationWatcher,
        name: str = "tx",
        chain_id: int | None = None,
    ):
        self.submitter = submitter
        self.watcher = watcher
        self.name = name
        self.chain_id = chain_id
        self.handle = TransactionHandle()

        #: The call we submit, kept for retries
        self.call: ContractCall | None = None

        #: The exception behind the current failure
        self.error: StakingError | None = None

        #: How many times we have submitted
        self.attempts = 0

        self.listeners: list[TransitionListener] = []

    def __repr__(self):
        return f"<Tracker {self.name} {self.handle.state.value} {self.handle.submitted_handle_id or ''}>"

    @property
    def state(self) -> TransactionState:
        return self.handle.state

    @property
    def explorer_url(self) -> str | None:
        if self.chain_id is None or self.handle.submitted_handle_id is None:
            return None
        return get_explorer_tx_url(self.chain_id, self.handle.submitted_handle_id)

    def is_in_flight(self) -> bool:
        return self.state in (TransactionState.submitting, TransactionState.awaiting_confirmation)

    def add_listener(self, listener: TransitionListener):
        self.listeners.append(listener)

    def _transition(self, handle: TransactionHandle):
        old_state = self.handle.state
        self.handle = handle
        logger.info("Transaction %s: %s -> %s %s", self.name, old_state.value, handle.state.value, handle.submitted_handle_id or "")
        for listener in self.listeners:
            listener(self, handle)

    def _require(self, *states: TransactionState):
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"Transaction {self.name} is {self.state.value}, expected one of: {allowed}")

    def submit(self, call: ContractCall):
        """Start a fresh transaction."""
        assert isinstance(call, ContractCall), f"Got {type(call)}"
        self._require(TransactionState.idle)
        self.call = call
        self.attempts += 1
        self._transition(TransactionHandle(state=TransactionState.submitting))

    def on_submitted(self, handle_id: str):
        """Wallet broadcasted the transaction."""
        self._require(TransactionState.submitting)
        self._transition(replace(self.handle, state=TransactionState.awaiting_confirmation, submitted_handle_id=handle_id))

    def on_submit_error(self, error: SubmitError):
        """Wallet rejected or broadcast failed."""
        self._require(TransactionState.submitting)
        self.error = error
        self._transition(replace(self.handle, state=TransactionState.failed, error_message=str(error)))

    def on_confirmed(self):
        """Receipt with success status.

        Repeated signals are ignored.
        """
        if self.state == TransactionState.confirmed:
            logger.debug("Transaction %s already confirmed, ignoring", self.name)
            return
        self._require(TransactionState.awaiting_confirmation)
        self._transition(replace(self.handle, state=TransactionState.confirmed, error_message=None))

    def on_reverted_or_timeout(self, error: ConfirmationError):
        """Receipt with failed status, or no receipt in time."""
        self._require(TransactionState.awaiting_confirmation)
        self.error = error
        self._transition(replace(self.handle, state=TransactionState.failed, error_message=str(error)))

    def retry(self):
        """Re-enter submitting with the same call."""
        self._require(TransactionState.failed)
        assert self.call is not None
        self.error = None
        self.attempts += 1
        self._transition(TransactionHandle(state=TransactionState.submitting))

    async def execute(self, call: ContractCall) -> TransactionHandle:
        """Submit a call and wait until it confirms or fails.

        Failures do not raise, they leave the tracker in ``failed``.
        """
        self.submit(call)
        await self._drive()
        return self.handle

    async def resubmit(self) -> TransactionHandle:
        """Retry a failed transaction with identical parameters and wait for the outcome."""
        self.retry()
        await self._drive()
        return self.handle

    async def _drive(self):
        try:
            handle_id = await self.submitter.submit(self.call)
        except SubmitError as e:
            logger.warning("Transaction %s could not be submitted: %s", self.name, e)
            self.on_submit_error(e)
            return

        self.on_submitted(handle_id)

        try:
            outcome = await self.watcher.await_confirmation(handle_id)
        except ConfirmationError as e:
            self.on_reverted_or_timeout(e)
            return

        match outcome:
            case ConfirmationOutcome.confirmed:
                self.on_confirmed()
            case ConfirmationOutcome.reverted:
                self.on_reverted_or_timeout(ConfirmationError(f"Transaction {handle_id} reverted"))
            case ConfirmationOutcome.timed_out:
                self.on_reverted_or_timeout(ConfirmationError(f"Transaction {handle_id} was not confirmed in time"))
            case _:
                raise NotImplementedError(f"Unknown outcome {outcome}")
