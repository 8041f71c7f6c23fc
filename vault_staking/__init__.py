"""Stake an ERC-20 token into an ERC-4626 vault and redeem it back.

- :py:mod:`vault_staking.amount` for fixed-point amount handling

- :py:mod:`vault_staking.stake` and :py:mod:`vault_staking.unstake` for the transaction flows

- :py:mod:`vault_staking.session` to wire everything together for a connected wallet
"""
