"""
Money Utilities for the Vending Operations Engine

All amounts inside the engine are integer cents. These helpers are the only
place numbers are coerced, rounded or converted to dollars, so the fail-open
policy (bad numbers become 0) is visible and testable in one module.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ONE = Decimal("1")
CENT = Decimal("0.01")
BPS_DIVISOR = Decimal("10000")


def safe_number(value, fallback=0) -> Decimal:
    """Coerce any raw row value to a finite Decimal.

    None, booleans, unparseable strings, NaN and infinities all return
    ``fallback``. Nothing here ever raises: a dashboard number is preferred
    over an exception, at the price of hiding bad upstream data.
    """
    if value is None or isinstance(value, bool):
        return Decimal(str(fallback))
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(str(fallback))
    if not number.is_finite():
        return Decimal(str(fallback))
    return number


def round_half_up(value) -> int:
    """Round to a whole number, halves away from zero (0.5 -> 1)."""
    return int(safe_number(value).quantize(ONE, rounding=ROUND_HALF_UP))


def non_negative(value) -> Decimal:
    """Coerce, then clamp below at 0 (quantities and unit prices)."""
    return max(Decimal("0"), safe_number(value))


def percent_to_bps(percent) -> int:
    """2.9 (percent) -> 290 basis points."""
    return round_half_up(safe_number(percent) * 100)


def dollars_to_cents(dollars) -> int:
    """0.10 (dollars) -> 10 cents."""
    return round_half_up(safe_number(dollars) * 100)


def apply_bps(amount_cents, bps) -> Decimal:
    """Exact ``amount × bps / 10000``; callers decide when to round."""
    return safe_number(amount_cents) * safe_number(bps) / BPS_DIVISOR


def to_dollars(cents) -> float:
    """Convert cents to a display-only dollar float with 2 decimal places."""
    dollars = safe_number(cents) / 100
    return float(dollars.quantize(CENT, rounding=ROUND_HALF_UP))


def ratio_pct(part_cents, whole_cents) -> float:
    """``part / whole × 100``, guarded to 0 when whole is not positive."""
    whole = safe_number(whole_cents)
    if whole <= 0:
        return 0.0
    return float(safe_number(part_cents) / whole * 100)


def format_money(cents) -> str:
    """Format cents as a currency string: 123456 -> '$1,234.56'."""
    dollars = to_dollars(cents)
    if dollars < 0:
        return f"-${-dollars:,.2f}"
    return f"${dollars:,.2f}"


def format_pct(value) -> str:
    """Format a percentage with one decimal: 12.345 -> '12.3%'."""
    return f"{float(safe_number(value)):.1f}%"


def format_bps(bps) -> str:
    """Format basis points as a percentage: 290 -> '2.90%'."""
    return f"{float(safe_number(bps) / 100):.2f}%"
