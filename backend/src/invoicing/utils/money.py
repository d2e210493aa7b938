"""Fixed-point money helpers.

Amounts travel as ``Decimal`` inside the engine and are persisted as
strings with exactly two fractional digits.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from invoicing.exceptions import BadRequestError
from invoicing.schemas.error import ErrorCode

# Inputs may carry up to 8 fractional digits; outputs always carry 2
MAX_INPUT_PLACES = 8
CENT = Decimal("0.01")
ZERO = Decimal("0")

Numeric = Union[Decimal, int, str, float]


def to_decimal(value: Numeric | None, field: str = "amount") -> Decimal:
    """
    Convert an input value into a Decimal, enforcing the input precision limit.

    Floats are converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.

    Args:
        value: Raw numeric value (None is treated as zero)
        field: Field name used in the error message

    Returns:
        Decimal value

    Raises:
        BadRequestError: If the value is not numeric or has more than 8 fractional digits
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise BadRequestError(f"{field} must be a decimal number", code=ErrorCode.INVALID_AMOUNT) from e

    if not result.is_finite():
        raise BadRequestError(f"{field} must be a finite number", code=ErrorCode.INVALID_AMOUNT)

    exponent = result.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -MAX_INPUT_PLACES:
        raise BadRequestError(
            f"{field} accepts at most {MAX_INPUT_PLACES} decimal places",
            code=ErrorCode.INVALID_AMOUNT,
        )
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents using half-up rounding."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Render a Decimal as a two-place fixed-point string (e.g. ``"275.00"``)."""
    return f"{quantize_money(value):.2f}"
