"""Integer arithmetic utilities for minor-unit (kobo) money.

All prices, amounts and offer values are int minor units. No float.
Decimal only appears for service hours, which are converted to minor
units exactly before they reach any sum.
"""

from decimal import Decimal, InvalidOperation

CURRENCY_CODE = "NGN"
CURRENCY_SYMBOL = "₦"
MINOR_PER_MAJOR = 100


def minor_to_display(minor: int) -> str:
    """Convert minor units to display string: 450000 -> '₦4,500.00', -1200 -> '-₦12.00'."""
    if minor < 0:
        abs_minor = -minor
        return f"-{CURRENCY_SYMBOL}{abs_minor // 100:,}.{abs_minor % 100:02d}"
    return f"{CURRENCY_SYMBOL}{minor // 100:,}.{minor % 100:02d}"


def to_decimal(value: object) -> Decimal | None:
    """Coerce int/str/float/Decimal to Decimal; None for bools and unparseable input.

    Floats go through str() so 1.1 becomes Decimal('1.1'), not its binary expansion.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        raw = value
    elif isinstance(value, float):
        raw = str(value)
    else:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def to_minor_units(value: object) -> int | None:
    """Return value as an exact int of minor units, or None if not a finite whole number."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    dec = to_decimal(value)
    if dec is None or not dec.is_finite():
        return None
    if dec != dec.to_integral_value():
        return None
    return int(dec)
