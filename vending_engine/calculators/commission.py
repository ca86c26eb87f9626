"""
Commission Calculator

Computes what a location owner is owed for a period under its commission
policy.
"""

from ..models import CommissionPolicy
from ..money import apply_bps, round_half_up


class CommissionCalculator:
    """Calculates location commissions."""

    PERCENT_MODELS = ("percent_gross", "hybrid")
    FLAT_MODELS = ("flat_month", "hybrid")

    def calculate(self, policy: CommissionPolicy, gross_cents_for_period) -> int:
        """
        Commission in cents for one period.

        - percent_gross: gross × bps
        - flat_month: flat monthly amount
        - hybrid: both
        - the minimum monthly floor applies to every model except 'none'

        The caller restricts gross to the window (a trailing 30 days stands in
        for one month).
        """
        if policy.model == "none":
            # No model owes nothing, even with a stray minimum set
            return 0

        return max(
            self.percent_component(policy, gross_cents_for_period) + self.flat_component(policy),
            policy.min_monthly_cents,
        )

    def percent_component(self, policy: CommissionPolicy, gross_cents_for_period) -> int:
        if policy.model not in self.PERCENT_MODELS:
            return 0
        return round_half_up(apply_bps(gross_cents_for_period, policy.percent_bps))

    def flat_component(self, policy: CommissionPolicy) -> int:
        if policy.model not in self.FLAT_MODELS:
            return 0
        return policy.flat_monthly_cents

    @staticmethod
    def label(model: str) -> str:
        return {
            "percent_gross": "% of Gross",
            "flat_month": "Flat Monthly",
            "hybrid": "Hybrid",
        }.get(model, "None")
