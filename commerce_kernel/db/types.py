"""
Decimal helpers shared by the domain, services and selectors.

Amounts are whole currency units.  ``round_money`` (ROUND_HALF_UP) is the
only rounding applied to monetary values, and nothing in the kernel uses
float arithmetic.  Column precision lives in ``db/base.py``.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 0
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to whole currency units (by default).

    Every calculation that produces a stored or displayed amount goes
    through here so preview and persisted amounts agree.

        round_money(Decimal("2941.176")) -> Decimal("2941")
        round_money(Decimal("0.5"))      -> Decimal("1")
    """
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding)


def to_decimal(value: object, field: str = "value") -> Decimal:
    """
    Coerce ints, strings and Decimals to Decimal.

    Floats go through ``str`` so 0.19 becomes Decimal("0.19") rather than
    its binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field} must be numeric, got {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"{field} must be numeric, got {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"{field} must be numeric, got {value!r}")
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result
