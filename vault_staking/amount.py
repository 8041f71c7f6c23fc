"""Fixed-point token amount handling.

Convert between human-entered decimal strings and raw base-unit integers
without ever going through ``float``.

- Amounts are floored to whole tokens before submission, for both staking and unstaking,
  so we never overshoot the balance

- Amounts above the balance are silently clamped to the balance

- Formatting truncates, never rounds up, so the displayed value never implies
  more than what the user actually holds

Example:

.. code-block:: python

    balance = 1000 * 10**18
    amount_input = AmountInput.from_text("500.789", balance)
    assert amount_input.raw_amount == 500 * 10**18
    assert amount_input.text == "500"
    assert format_token_amount(amount_input.raw_amount) == "500.0000"

"""

import logging
import re
import string
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from fractions import Fraction

from vault_staking.errors import ValidationError


logger = logging.getLogger(__name__)

#: ERC-20 default decimals
DEFAULT_DECIMALS = 18

#: How many fraction digits we show in the UI
DEFAULT_DISPLAY_DECIMALS = 4

#: Decimal separator we accept in the input
SEPARATOR = "."

#: Thousands separator we produce in the output
GROUPING_SEPARATOR = ","

#: Enough precision for uint256 values
UINT256_PRECISION = 80

_NUMBER_INPUT = re.compile(r"^\d*\.?\d*$")


def sanitise_number_input(raw: str) -> str:
    """Strip everything except digits and a single decimal separator.

    If more than one separator appears, the first one is kept
    and the rest of the text is concatenated as digits.

    .. code-block:: python

        assert sanitise_number_input("1,234.5.6 FEY") == "1234.56"

    :param raw:
        Whatever the user typed
    """
    assert isinstance(raw, str), f"Got {type(raw)}"
    cleaned = "".join(c for c in raw if c in string.digits or c == SEPARATOR)
    head, sep, tail = cleaned.partition(SEPARATOR)
    if not sep:
        return head
    return head + SEPARATOR + tail.replace(SEPARATOR, "")


def is_valid_number_input(text: str) -> bool:
    """Is the text a non-negative decimal number.

    - ``"12"``, ``"12."``, ``".5"`` are valid

    - ``""``, ``"."``, ``"1.2.3"``, ``"-1"`` are not
    """
    if not text or not text.strip():
        return False
    if not _NUMBER_INPUT.match(text):
        return False
    return any(c in string.digits for c in text)


def parse_token_amount(text: str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Parse a decimal string to raw base units.

    - Never raises: bad or empty input returns zero

    - Thousands separators produced by :py:func:`format_token_amount` are accepted

    - Fraction digits beyond ``decimals`` are truncated

    :param text:
        Sanitised decimal string like ``"100.5"``

    :param decimals:
        Token decimals

    :return:
        Raw amount, e.g. ``100_500_000_000_000_000_000`` for ``"100.5"`` with 18 decimals
    """
    assert type(decimals) == int and decimals >= 0, f"Bad decimals {decimals}"

    if not text:
        return 0

    text = text.strip().replace(GROUPING_SEPARATOR, "")
    if not is_valid_number_input(text):
        logger.debug("Not a number input: %s", text)
        return 0

    whole, _, fraction = text.partition(SEPARATOR)
    fraction = fraction[:decimals].ljust(decimals, "0")
    return int(whole or "0") * 10**decimals + int(fraction or "0")


def floor_to_whole_tokens(raw_amount: int, decimals: int = DEFAULT_DECIMALS) -> int:
    """Truncate a raw amount toward zero at the whole-token boundary."""
    unit = 10**decimals
    return raw_amount - raw_amount % unit


def floor_and_clamp(
    raw_amount: int,
    balance: int | None,
    decimals: int = DEFAULT_DECIMALS,
) -> int:
    """Make an entered amount safe to submit.

    - An amount above the balance becomes exactly the balance, so "max" always
      moves everything, including the dust below one whole token

    - Otherwise the amount is floored to whole tokens

    :param raw_amount:
        Parsed amount in base units

    :param balance:
        What the user holds in base units.

        ``None`` if we do not know yet, no clamping is done.

    :return:
        Amount we are allowed to submit
    """
    assert type(raw_amount) == int, f"Got {type(raw_amount)}: {raw_amount}"
    assert raw_amount >= 0, f"Negative amount {raw_amount}"

    if balance is not None:
        assert type(balance) == int, f"Got {type(balance)}: {balance}"
        if raw_amount > balance:
            logger.debug("Clamping %d to balance %d", raw_amount, balance)
            return balance

    return floor_to_whole_tokens(raw_amount, decimals)


def percentage_to_amount(pct: int | Decimal | Fraction, balance: int) -> int:
    """Convert a slider percentage to a raw amount.

    - ``floor(balance * pct / 100)``, clamped to balance

    - 100% yields exactly the balance

    :param pct:
        Percentage 0...100.

        Do not pass ``float``, use ``Decimal("33.3")``.
    """
    assert not isinstance(pct, float), f"Give percentages as int or Decimal, got {pct}"
    assert pct >= 0, f"Negative percentage {pct}"
    assert type(balance) == int, f"Got {type(balance)}: {balance}"
    amount = (balance * Fraction(pct)) // 100
    return min(int(amount), balance)


def format_token_amount(
    raw_amount: int,
    decimals: int = DEFAULT_DECIMALS,
    display_decimals: int = DEFAULT_DISPLAY_DECIMALS,
) -> str:
    """Format a raw amount for display.

    - Thousands separators, fixed number of fraction digits

    - Truncates instead of rounding

    - Exact zero is ``"0.0000"``, dust below the last shown digit is ``"<0.0001"``

    .. code-block:: python

        assert format_token_amount(1_234_567 * 10**17) == "123,456.7000"
        assert format_token_amount(3) == "<0.0001"

    """
    assert type(raw_amount) == int, f"Got {type(raw_amount)}: {raw_amount}"
    assert raw_amount >= 0, f"Negative amount {raw_amount}"

    if raw_amount == 0:
        return _render_truncated(0, decimals, display_decimals)

    if decimals >= display_decimals:
        threshold = 10 ** (decimals - display_decimals)
        if raw_amount < threshold:
            return "<" + _render_truncated(threshold, decimals, display_decimals)

    return _render_truncated(raw_amount, decimals, display_decimals)


def _render_truncated(raw_amount: int, decimals: int, display_decimals: int) -> str:
    unit = 10**decimals
    whole, remainder = divmod(raw_amount, unit)
    if display_decimals == 0:
        return f"{whole:,}"
    fraction = remainder * 10**display_decimals // unit
    return f"{whole:,}.{fraction:0{display_decimals}d}"


def format_exact(raw_amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render a raw amount with all its precision and no trailing zeros.

    No thousands separators, so the result can be fed back to an input field.
    """
    whole, remainder = divmod(raw_amount, 10**decimals)
    if remainder == 0:
        return str(whole)
    return f"{whole}.{remainder:0{decimals}d}".rstrip("0")


def convert_to_decimals(raw_amount: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert raw token units to a human-readable decimal."""
    assert type(raw_amount) == int, f"Got {type(raw_amount)}, expected int: {raw_amount}"
    with localcontext() as ctx:
        ctx.prec = UINT256_PRECISION
        return Decimal(raw_amount) / Decimal(10**decimals)


def convert_to_raw(decimal_amount: Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a human-readable decimal to raw token units, truncating dust."""
    assert isinstance(decimal_amount, Decimal), f"Give amounts in decimal, got {type(decimal_amount)}"
    with localcontext() as ctx:
        ctx.prec = UINT256_PRECISION
        return int((decimal_amount * 10**decimals).to_integral_value(rounding=ROUND_DOWN))


def validate_amount(raw_amount: int, balance: int | None) -> None:
    """Check the amount can be submitted.

    :raise ValidationError:
        Zero amount, unknown balance or amount over balance
    """
    if balance is None:
        raise ValidationError("Balance not yet known")
    if raw_amount <= 0:
        raise ValidationError("Please enter a valid amount")
    if raw_amount > balance:
        raise ValidationError(f"Insufficient balance: has {balance}, tried {raw_amount}")


@dataclass(frozen=True, slots=True)
class AmountInput:
    """User amount entry.

    - Keep what the user typed, what we show back and what we will submit together

    - Construct with :py:meth:`from_text` or :py:meth:`from_percentage`
    """

    #: What the user typed
    raw_text: str

    #: Text we show back in the input field
    text: str

    #: Amount in base units we are going to submit
    raw_amount: int

    #: Token decimals
    decimals: int = DEFAULT_DECIMALS

    #: Was the amount capped to the balance
    clamped: bool = False

    @staticmethod
    def from_text(
        raw_text: str,
        balance: int | None,
        decimals: int = DEFAULT_DECIMALS,
    ) -> "AmountInput":
        """Process a keystroke.

        - Sanitise, parse, floor and clamp

        - If the amount changed in the process, the shown text is replaced
          with the amount we are actually going to submit
        """
        text = sanitise_number_input(raw_text)
        parsed = parse_token_amount(text, decimals)
        amount = floor_and_clamp(parsed, balance, decimals)
        if amount != parsed:
            text = format_exact(amount, decimals)
        return AmountInput(
            raw_text=raw_text,
            text=text,
            raw_amount=amount,
            decimals=decimals,
            clamped=balance is not None and parsed > balance,
        )

    @staticmethod
    def from_percentage(
        pct: int | Decimal,
        balance: int,
        decimals: int = DEFAULT_DECIMALS,
    ) -> "AmountInput":
        """Process a percentage slider or a max button.

        - 100% submits the exact balance

        - Anything below is floored to whole tokens, consistent with manual entry

        - The shown text is always floored to whole tokens
        """
        amount = percentage_to_amount(pct, balance)
        if amount < balance:
            amount = floor_to_whole_tokens(amount, decimals)
        text = str(amount // 10**decimals)
        return AmountInput(
            raw_text=f"{pct}%",
            text=text,
            raw_amount=amount,
            decimals=decimals,
        )

    def is_empty(self) -> bool:
        return self.raw_amount == 0

    def validate(self, balance: int | None):
        """See :py:func:`validate_amount`."""
        validate_amount(self.raw_amount, balance)

    def format(self, display_decimals: int = DEFAULT_DISPLAY_DECIMALS) -> str:
        return format_token_amount(self.raw_amount, self.decimals, display_decimals)


def format_percentage(value: Decimal | int | float, decimals: int = 2) -> str:
    """Format a percentage like ``34.2`` as ``"34.20%"``.

    Non-finite values are shown as zero.
    """
    value = Decimal(str(value))
    if not value.is_finite():
        value = Decimal(0)
    return f"{value:,.{decimals}f}%"


def format_large_number(value: Decimal | int | float, decimals: int = 1) -> str:
    """Format large numbers with K/M/B/T suffixes.

    .. code-block:: python

        assert format_large_number(1234) == "1.2K"
        assert format_large_number(999) == "999"
    """
    value = Decimal(str(value))
    if not value.is_finite():
        return "0"

    sign = "-" if value < 0 else ""
    scaled = abs(value)
    if scaled < 1000:
        return f"{sign}{scaled:.0f}"

    suffixes = ["", "K", "M", "B", "T"]
    index = 0
    while scaled >= 1000 and index < len(suffixes) - 1:
        scaled /= 1000
        index += 1

    return f"{sign}{scaled:.{decimals}f}{suffixes[index]}"


def calculate_percentage_change(old_value: int | Decimal, new_value: int | Decimal) -> Decimal:
    """Percentage change between two values, positive is gain."""
    if old_value == 0:
        return Decimal(0)
    return (Decimal(new_value) - Decimal(old_value)) / Decimal(old_value) * 100


@dataclass(frozen=True, slots=True)
class PercentageChange:
    """Gain/loss display values."""

    text: str
    is_positive: bool
    is_negative: bool
    prefix: str

    @staticmethod
    def from_change(change: Decimal) -> "PercentageChange":
        return PercentageChange(
            text=format_percentage(abs(change)),
            is_positive=change > 0,
            is_negative=change < 0,
            prefix="+" if change > 0 else "",
        )
