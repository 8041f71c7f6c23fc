"""Staking error taxonomy.

- :py:class:`ValidationError` is resolved locally and nothing is submitted

- :py:class:`ReadError` means we show stale data with a staleness indicator

- :py:class:`SubmitError` is surfaced verbatim and never retried automatically

- :py:class:`ConfirmationError` can be retried by the user with identical parameters
"""


class StakingError(Exception):
    """Base class for all staking errors."""


class ValidationError(StakingError):
    """Bad, zero or over-balance amount."""


class ReadError(StakingError):
    """Read oracle could not be reached or the call failed."""


class SubmitError(StakingError):
    """Wallet rejected the transaction or it could not be broadcasted."""


class ConfirmationError(StakingError):
    """Transaction reverted on-chain or confirmation timed out."""


class InvalidTransition(StakingError):
    """State machine was asked to do something its current state does not allow."""
