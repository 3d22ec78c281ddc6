"""Decimal helpers shared by the split validator and the settlement engine."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Comparison tolerance: one minor unit (a cent for two-decimal currencies).
TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")
ZERO = Decimal("0")


def parse_decimal(value: object) -> Decimal | None:
    """
    Parse a user-supplied amount into a Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Args:
        value: A str, int, float or Decimal

    Returns:
        The parsed Decimal, or None if it isn't a finite number that can be
        held to the cent in the current decimal context
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None

    if not parsed.is_finite():
        return None
    try:
        quantize_cents(parsed)
    except InvalidOperation:
        # Too many integer digits for the context precision
        return None
    return parsed


def quantize_cents(amount: Decimal) -> Decimal:
    """Round to two fraction digits using ROUND_HALF_UP."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def is_negligible(amount: Decimal) -> bool:
    """True when the amount is within one minor unit of zero."""
    return abs(amount) < TOLERANCE
