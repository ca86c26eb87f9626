"""
Input Validation for the Vending Operations Engine

Checks the structure of API input before any calculation runs and raises
ValueError with a clear message. Numbers themselves are never validated
here: bad amounts are coerced to 0 by the calculators.
"""

from .models import ALLOCATION_LEVELS, COMMISSION_MODELS, CommissionPolicy, InsuranceAllocation, InsurancePolicy
from .window import ReportingWindow


class InputValidator:
    """Validates parsed request input according to business rules."""

    def validate_commission_policy(self, policy: CommissionPolicy, owner: str = "policy") -> None:
        if policy.model not in COMMISSION_MODELS:
            raise ValueError(
                f"Invalid commission model for {owner}: {policy.model}. "
                f"Must be one of {', '.join(COMMISSION_MODELS)}"
            )
        if not (0 <= policy.percent_bps <= 10000):
            raise ValueError(f"percent_bps must be between 0 and 10000 for {owner}, got: {policy.percent_bps}")
        if policy.flat_monthly_cents < 0:
            raise ValueError(f"flat_monthly_cents cannot be negative for {owner}, got: {policy.flat_monthly_cents}")
        if policy.min_monthly_cents < 0:
            raise ValueError(f"min_monthly_cents cannot be negative for {owner}, got: {policy.min_monthly_cents}")

    def validate_window(self, window: ReportingWindow) -> None:
        if window.end < window.start:
            raise ValueError(f"window end ({window.end_iso}) is before start ({window.start_iso})")

    def validate_policies(self, policies: list[InsurancePolicy]) -> None:
        for policy in policies:
            if policy.coverage_start is None or policy.coverage_end is None:
                raise ValueError(f"Policy {policy.id} requires valid coverage_start and coverage_end dates")
            if policy.coverage_end < policy.coverage_start:
                raise ValueError(f"Policy {policy.id} coverage_end is before coverage_start")

    def validate_allocations(self, allocations: list[InsuranceAllocation]) -> None:
        for allocation in allocations:
            label = f"allocation for policy {allocation.policy_id}"
            if allocation.level not in ALLOCATION_LEVELS:
                raise ValueError(
                    f"Invalid level on {label}: {allocation.level}. "
                    f"Must be one of {', '.join(ALLOCATION_LEVELS)}"
                )
            if allocation.level == "machine" and not allocation.machine_id:
                raise ValueError(f"machine_id is required on machine-level {label}")
            if allocation.level == "location" and not allocation.location_id:
                raise ValueError(f"location_id is required on location-level {label}")

            has_flat = allocation.flat_monthly_cents is not None
            has_pct = allocation.allocated_pct_bps is not None
            if has_flat == has_pct:
                raise ValueError(f"Exactly one of flat_monthly_cents or allocated_pct_bps is required on {label}")
            if has_pct and not (0 <= allocation.allocated_pct_bps <= 10000):
                raise ValueError(
                    f"allocated_pct_bps must be between 0 and 10000 on {label}, got: {allocation.allocated_pct_bps}"
                )
