"""
Conversion between human decimal amounts and smallest-unit integers.
"""
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Optional, Union

from .exceptions import UserInputError

# Enough digits for uint256 values at 18+ decimals
_PRECISION = 100


def to_smallest_unit(amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a human decimal amount to smallest units.

    Args:
        amount: Amount such as "0.05" or Decimal("1.5")
        decimals: Decimals declared by the asset

    Returns:
        Integer amount in smallest units

    Raises:
        UserInputError: If the amount is not a finite, non-negative number
            or carries more precision than the asset allows
    """
    if isinstance(amount, float):
        # repr round-trips, so 0.1 stays 0.1 instead of its binary expansion
        amount = repr(amount)
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise UserInputError(f"Invalid amount: {amount!r}")

    if not value.is_finite() or value < 0:
        raise UserInputError(f"Amount must be a non-negative number, got {amount!r}")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise UserInputError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def format_units(amount: int, decimals: int, precision: Optional[int] = None) -> str:
    """
    Render a smallest-unit integer as a human decimal string.

    Args:
        amount: Smallest-unit amount
        decimals: Decimals declared by the asset
        precision: Truncate to this many fractional digits (optional)

    Returns:
        Decimal string without exponent or trailing zeros
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        value = Decimal(int(amount)).scaleb(-decimals)
        if precision is not None:
            value = value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_DOWN)
        text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
