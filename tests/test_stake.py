"""Stake flow: approval and deposit chaining."""

import pytest

from tests.fakes import ONE, OWNER, TOKEN, VAULT, FakeSubmitter, FakeWatcher, make_snapshot, make_store
from vault_staking.base import ConfirmationOutcome, ContractCall
from vault_staking.config import MAX_UINT256, ApprovalPolicy, StakingConfig
from vault_staking.errors import InvalidTransition, SubmitError, ValidationError
from vault_staking.lifecycle import TransactionState
from vault_staking.stake import StakeOrchestrator, StakeStep


def create_orchestrator(config, submitter, watcher, allowance=0, primary_balance=1000 * ONE) -> StakeOrchestrator:
    balances = make_store(make_snapshot(primary_balance=primary_balance, allowance=allowance))
    return StakeOrchestrator(config, OWNER, submitter, watcher, balances)


@pytest.mark.asyncio
async def test_stake_with_approval(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    """Approval confirms, deposit follows automatically."""
    stake = create_orchestrator(config, submitter, watcher, allowance=0)
    steps = []
    stake.add_listener(steps.append)

    result = await stake.stake(500 * ONE)

    assert result == StakeStep.success
    assert stake.step_history == [StakeStep.input, StakeStep.approving, StakeStep.executing, StakeStep.success]
    assert steps == [StakeStep.approving, StakeStep.executing, StakeStep.success]
    assert submitter.calls == [
        ContractCall(TOKEN, "approve", (VAULT, 500 * ONE)),
        ContractCall(VAULT, "deposit", (500 * ONE, OWNER)),
    ]
    assert stake.approval.state == TransactionState.confirmed
    assert stake.deposit.state == TransactionState.confirmed
    assert stake.balances.refresh_requested.is_set()
    assert stake.error_message is None


@pytest.mark.asyncio
async def test_stake_skips_approval(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    """Existing allowance covers the amount."""
    stake = create_orchestrator(config, submitter, watcher, allowance=500 * ONE)

    await stake.stake(500 * ONE)

    assert stake.step_history == [StakeStep.input, StakeStep.executing, StakeStep.success]
    assert submitter.methods() == ["deposit"]
    assert stake.approval is None


@pytest.mark.asyncio
async def test_stake_unlimited_approval(submitter: FakeSubmitter, watcher: FakeWatcher):
    config = StakingConfig(json_rpc_url="http://localhost:8545", approval_policy=ApprovalPolicy.unlimited)
    stake = create_orchestrator(config, submitter, watcher, allowance=ONE)

    await stake.stake(2 * ONE)

    assert submitter.calls[0] == ContractCall(TOKEN, "approve", (VAULT, MAX_UINT256))
    assert submitter.calls[1] == ContractCall(VAULT, "deposit", (2 * ONE, OWNER))


@pytest.mark.asyncio
async def test_deposit_chained_once(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    """Repeated approval success signals do not fire a second deposit."""
    stake = create_orchestrator(config, submitter, watcher)
    await stake.stake(500 * ONE)
    assert stake.deposit_chained

    stake.approval.on_confirmed()
    stake.on_approval_confirmed()

    assert submitter.methods() == ["approve", "deposit"]
    assert stake.step == StakeStep.success


@pytest.mark.asyncio
async def test_approval_rejected_then_retry(config, watcher: FakeWatcher):
    submitter = FakeSubmitter(errors=[SubmitError("User rejected the request")])
    stake = create_orchestrator(config, submitter, watcher)

    result = await stake.stake(500 * ONE)

    assert result == StakeStep.approving
    assert stake.has_failed()
    assert stake.error_message == "User rejected the request"
    assert stake.deposit is None
    assert submitter.methods() == ["approve"]

    result = await stake.retry()

    assert result == StakeStep.success
    assert submitter.methods() == ["approve", "approve", "deposit"]
    assert submitter.calls[0] == submitter.calls[1]


@pytest.mark.asyncio
async def test_deposit_reverted_then_retry(config, submitter: FakeSubmitter):
    """A failed deposit after approval is retried with the captured amount."""
    watcher = FakeWatcher(outcomes=[ConfirmationOutcome.confirmed, ConfirmationOutcome.reverted])
    stake = create_orchestrator(config, submitter, watcher)

    result = await stake.stake(500 * ONE)

    assert result == StakeStep.executing
    assert stake.has_failed()
    assert "reverted" in stake.error_message
    assert stake.approval.state == TransactionState.confirmed

    result = await stake.retry()
    assert result == StakeStep.success
    assert submitter.methods() == ["approve", "deposit", "deposit"]
    assert submitter.calls[1] == submitter.calls[2] == ContractCall(VAULT, "deposit", (500 * ONE, OWNER))


@pytest.mark.asyncio
async def test_change_amount_after_failure(config, watcher: FakeWatcher):
    submitter = FakeSubmitter(errors=[SubmitError("User rejected the request")])
    stake = create_orchestrator(config, submitter, watcher)
    await stake.stake(500 * ONE)

    stake.change_amount()

    assert stake.step == StakeStep.input
    assert stake.amount is None
    assert stake.approval is None
    assert not stake.deposit_chained

    await stake.stake(100 * ONE)
    assert stake.step == StakeStep.success
    assert submitter.calls[-1] == ContractCall(VAULT, "deposit", (100 * ONE, OWNER))


@pytest.mark.asyncio
async def test_reset_after_success(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    stake = create_orchestrator(config, submitter, watcher)
    await stake.stake(500 * ONE)

    with pytest.raises(InvalidTransition):
        await stake.stake(500 * ONE)

    with pytest.raises(InvalidTransition):
        stake.change_amount()

    with pytest.raises(InvalidTransition):
        await stake.retry()

    stake.reset()
    assert stake.step == StakeStep.input
    assert stake.step_history[-1] == StakeStep.input


@pytest.mark.asyncio
async def test_stake_validation(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    """Nothing is submitted for bad amounts."""
    stake = create_orchestrator(config, submitter, watcher)

    with pytest.raises(ValidationError):
        await stake.stake(0)

    with pytest.raises(ValidationError):
        await stake.stake(1001 * ONE)

    assert stake.step == StakeStep.input
    assert submitter.calls == []

    with pytest.raises(InvalidTransition):
        stake.reset()


@pytest.mark.asyncio
async def test_stake_without_balance(config, submitter: FakeSubmitter, watcher: FakeWatcher):
    stake = StakeOrchestrator(config, OWNER, submitter, watcher, make_store(None))
    with pytest.raises(ValidationError, match="not yet known"):
        await stake.stake(ONE)
    assert submitter.calls == []


class RepeatedApprovalWatcher(FakeWatcher):
    """Replays the approval success signal while the deposit waits for its receipt."""

    def __init__(self):
        super().__init__()
        self.stake: StakeOrchestrator | None = None

    async def await_confirmation(self, handle_id):
        deposit = self.stake.deposit
        if deposit is not None and deposit.state == TransactionState.awaiting_confirmation:
            self.stake.approval.on_confirmed()
            self.stake.on_approval_confirmed()
            self.stake.on_approval_confirmed()
        return await super().await_confirmation(handle_id)


@pytest.mark.asyncio
async def test_deposit_chained_once_while_in_flight(config, submitter: FakeSubmitter):
    """Duplicate approval success while the deposit is pending does not fire another deposit."""
    watcher = RepeatedApprovalWatcher()
    stake = create_orchestrator(config, submitter, watcher)
    watcher.stake = stake

    result = await stake.stake(500 * ONE)

    assert result == StakeStep.success
    assert submitter.methods() == ["approve", "deposit"]
    assert len(watcher.handle_ids) == 2
    assert stake.step_history == [StakeStep.input, StakeStep.approving, StakeStep.executing, StakeStep.success]
