"""
Insurance Allocator

Attributes insurance premium to machines for a reporting window.

Per policy, the most specific allocation wins:
1. machine-level allocation for the machine
2. location-level allocation for the machine's location, split evenly
   across the machines in that location
3. global allocation, split evenly across every machine

Each share is then prorated by the policy's month fraction: overlapping days
between coverage and window, over a fixed 30-day premium month.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from ..models import InsuranceAllocation, InsurancePolicy, Machine
from ..money import round_half_up
from ..window import ReportingWindow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = Decimal("86400")


def month_fraction(policy: InsurancePolicy, window: ReportingWindow, days_per_month: int = 30) -> Decimal:
    """
    Portion of a monthly premium that falls inside ``window``.

    overlap_days = max(1, round(days between clipped bounds) + 1);
    0 when coverage and window do not intersect.
    """
    if policy.coverage_start is None or policy.coverage_end is None:
        return Decimal("0")

    lo = max(policy.coverage_start, window.start)
    hi = min(policy.coverage_end, window.end)
    if hi < lo:
        return Decimal("0")

    elapsed_days = Decimal(str((hi - lo).total_seconds())) / SECONDS_PER_DAY
    overlap_days = max(1, round_half_up(elapsed_days) + 1)
    return Decimal(overlap_days) / Decimal(days_per_month)


class PolicyAllocations:
    """One policy's allocations indexed by level."""

    def __init__(self, allocations: list[InsuranceAllocation]):
        self.by_machine: dict[str, InsuranceAllocation] = {}
        self.by_location: dict[str, InsuranceAllocation] = {}
        self.global_allocation: InsuranceAllocation | None = None

        for allocation in allocations:
            if allocation.level == "machine" and allocation.machine_id:
                self.by_machine.setdefault(allocation.machine_id, allocation)
            elif allocation.level == "location" and allocation.location_id:
                self.by_location.setdefault(allocation.location_id, allocation)
            elif allocation.level == "global" and self.global_allocation is None:
                self.global_allocation = allocation


class InsuranceAllocator:
    """
    Computes each machine's prorated insurance share in cents.

    ``exclude_claimed_from_divisor`` controls whether machines holding their
    own machine-level allocation still count in the location/global split.
    The default (False) counts them, which can recover more than the premium
    when overrides exist.
    """

    DAYS_PER_MONTH = 30

    def __init__(self, exclude_claimed_from_divisor: bool = False):
        self.exclude_claimed_from_divisor = exclude_claimed_from_divisor

    def allocate(
        self,
        machines: list[Machine],
        policies: list[InsurancePolicy],
        allocations: list[InsuranceAllocation],
        window: ReportingWindow,
    ) -> dict[str, Decimal]:
        shares: dict[str, Decimal] = {machine.id: Decimal("0") for machine in machines}
        if not machines:
            return shares

        machines_by_location: dict[str, list[str]] = defaultdict(list)
        for machine in machines:
            machines_by_location[machine.location_key].append(machine.id)

        allocations_by_policy: dict[str, list[InsuranceAllocation]] = defaultdict(list)
        for allocation in allocations:
            allocations_by_policy[allocation.policy_id].append(allocation)

        for policy in policies:
            fraction = month_fraction(policy, window, self.DAYS_PER_MONTH)
            premium = policy.monthly_premium_cents
            if premium <= 0 or fraction <= 0:
                logger.debug(f"Skipping policy {policy.id}: premium={premium} fraction={fraction}")
                continue

            indexed = PolicyAllocations(allocations_by_policy.get(policy.id, []))
            claimed = set(indexed.by_machine) & set(shares) if self.exclude_claimed_from_divisor else set()

            for machine in machines:
                share = self._machine_share(machine, indexed, premium, machines_by_location, len(machines), claimed)
                shares[machine.id] += share * fraction

        return shares

    def _machine_share(
        self,
        machine: Machine,
        indexed: PolicyAllocations,
        premium: Decimal,
        machines_by_location: dict[str, list[str]],
        total_machines: int,
        claimed: set[str],
    ) -> Decimal:
        """Monthly share for one machine under one policy, before proration."""
        machine_allocation = indexed.by_machine.get(machine.id)
        if machine_allocation is not None:
            return machine_allocation.base_cents(premium)

        location_allocation = indexed.by_location.get(machine.location_key)
        if location_allocation is not None:
            in_location = [mid for mid in machines_by_location.get(machine.location_key, []) if mid not in claimed]
            return location_allocation.base_cents(premium) / max(1, len(in_location))

        if indexed.global_allocation is not None:
            return indexed.global_allocation.base_cents(premium) / max(1, total_machines - len(claimed))

        return Decimal("0")
