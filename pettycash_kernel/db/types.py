"""
Module: pettycash_kernel.db.types
Responsibility: The money coercion and rounding helpers every model and
    service uses.

Invariants enforced:
    - No floats anywhere in the kernel.  ``to_money`` rejects float input
      and anything that is not a finite number.
    - ``round_money`` is the only sanctioned rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pettycash_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_money(value: object) -> Decimal:
    """
    Coerce a caller-supplied amount to Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused outright:
    binary floating point cannot represent cash amounts exactly.

    Raises:
        InvalidAmountError: If value is a float, not numeric, or not finite.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "use Decimal, int or str, never float")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value)
        except InvalidOperation as exc:
            raise InvalidAmountError(value, "not a number") from exc
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")
    if not amount.is_finite():
        raise InvalidAmountError(value, "must be finite")
    return amount


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (half-up by default)."""
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)
