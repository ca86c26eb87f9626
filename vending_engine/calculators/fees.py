"""
Fee Calculator for the Vending Operations Engine

Pure money arithmetic for a single sale line. All amounts are integer cents
and rounding is ROUND_HALF_UP.

Rounding contract: the percentage fee is rounded per unit, the fixed fee is
added per unit, and only then multiplied by the (rounded) quantity. The final
fee is floored at 0. Net is never floored.
"""

from ..models import FeeRule, LineBreakdown
from ..money import apply_bps, non_negative, round_half_up


def fee_for_line(unit_price_cents, quantity, rule: FeeRule | None = None) -> int:
    """Processor fee in cents for ``quantity`` units at ``unit_price_cents``."""
    if rule is None:
        return 0
    pct_per_unit = round_half_up(apply_bps(non_negative(unit_price_cents), rule.percent_bps or 0))
    per_unit = pct_per_unit + (rule.fixed_cents or 0)
    return max(0, round_half_up(non_negative(quantity)) * per_unit)


def line_gross_cents(quantity, unit_price_cents) -> int:
    return max(0, round_half_up(non_negative(quantity)) * round_half_up(non_negative(unit_price_cents)))


def line_cogs_cents(quantity, unit_cost_cents) -> int:
    return max(0, round_half_up(non_negative(quantity)) * round_half_up(non_negative(unit_cost_cents)))


def net_for_line(quantity, unit_price_cents, unit_cost_cents, rule: FeeRule | None = None) -> LineBreakdown:
    """
    Full breakdown for one sale line.

    gross = qty × price, cogs = qty × cost (both floored at 0),
    fee from ``fee_for_line``, net = gross - cogs - fee (may be negative).
    """
    gross_cents = line_gross_cents(quantity, unit_price_cents)
    cogs_cents = line_cogs_cents(quantity, unit_cost_cents)
    fee_cents = fee_for_line(unit_price_cents, quantity, rule)

    return LineBreakdown(
        gross_cents=gross_cents,
        cogs_cents=cogs_cents,
        fee_cents=fee_cents,
        net_cents=gross_cents - cogs_cents - fee_cents,
    )
