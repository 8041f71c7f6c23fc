"""Check balances, stake or unstake from the command line.

To run:

.. code-block:: shell

    export JSON_RPC_BASE=...
    export PRIVATE_KEY=0x...

    # Show balances and vault stats
    python scripts/vault-staking/stake-unstake.py status

    # Stake 500 FEY
    python scripts/vault-staking/stake-unstake.py stake --amount 500

    # Unstake half of xFEY
    python scripts/vault-staking/stake-unstake.py unstake --percent 50

"""

import argparse
import asyncio
import logging
import os
from decimal import Decimal

from vault_staking.amount import AmountInput, format_percentage, format_token_amount
from vault_staking.chain import get_chain_name
from vault_staking.config import StakingConfig
from vault_staking.hotwallet import HotWallet
from vault_staking.session import StakingSession
from vault_staking.stats import estimate_yearly_earnings


logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Stake tokens into the vault and redeem them back.")
    parser.add_argument("action", choices=["status", "stake", "unstake"])
    parser.add_argument("--amount", type=str, required=False, help="Amount in human-readable units, e.g. 500")
    parser.add_argument("--percent", type=str, required=False, help="Percentage of the balance, e.g. 50")
    parser.add_argument("--private-key", type=str, required=False, help="Private key, must start 0x. Default PRIVATE_KEY environment variable")
    parser.add_argument("--log-level", type=str, required=False, default="info")
    return parser.parse_args()


def make_amount(args, balance: int, decimals: int) -> AmountInput:
    if args.percent:
        return AmountInput.from_percentage(Decimal(args.percent), balance, decimals)
    assert args.amount, "Give --amount or --percent"
    return AmountInput.from_text(args.amount, balance, decimals)


async def run(args):
    config = StakingConfig.from_env()
    private_key = args.private_key or os.environ.get("PRIVATE_KEY")
    assert private_key, "Give --private-key or set PRIVATE_KEY"
    wallet = HotWallet.from_private_key(private_key)

    async with StakingSession.create_web3_session(config, wallet) as session:
        snapshot = session.balances.snapshot
        stats = session.stats.snapshot
        assert snapshot is not None, f"Could not read balances: {session.balances.last_error}"

        print(f"Chain: {get_chain_name(config.chain_id)}")
        print(f"Wallet: {session.owner}")
        print(f"{config.token_symbol} balance: {format_token_amount(snapshot.primary_balance, config.token_decimals)}")
        print(f"{config.share_symbol} balance: {format_token_amount(snapshot.share_balance, config.share_decimals)}")
        print(f"{config.share_symbol} value: {format_token_amount(snapshot.share_value_in_primary, config.token_decimals)} {config.token_symbol}")
        print(f"Approved: {snapshot.is_approved}")
        if stats:
            print(f"Share price: {stats.share_price:.6f}")
            print(f"Staked: {format_percentage(stats.staked_percentage)} of supply")
            print(f"APY: {format_percentage(stats.apy)}")

        match args.action:
            case "stake":
                amount_input = make_amount(args, snapshot.primary_balance, config.token_decimals)
                yearly = estimate_yearly_earnings(amount_input.raw_amount, config.apy)
                print(f"Staking {amount_input.format()} {config.token_symbol}, estimated yearly earnings {format_token_amount(yearly)} {config.token_symbol}")
                stake = session.create_stake_orchestrator()
                step = await stake.stake(amount_input.raw_amount)
                print(f"Ended in {step.value}, tx {stake.deposit.explorer_url if stake.deposit else None}, error {stake.error_message}")
            case "unstake":
                amount_input = make_amount(args, snapshot.share_balance, config.share_decimals)
                unstake = session.create_unstake_orchestrator()
                print(f"Unstaking {amount_input.format()} {config.share_symbol}, expecting {format_token_amount(unstake.preview(amount_input.raw_amount))} {config.token_symbol}")
                step = await unstake.unstake(amount_input.raw_amount)
                print(f"Ended in {step.value}, received about {format_token_amount(unstake.realized_amount or 0)} {config.token_symbol}, error {unstake.error_message}")
            case _:
                pass


def main():
    args = parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
