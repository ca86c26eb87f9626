"""
Unit Tests for Insurance Allocator

Tests verify proration by overlap days and the machine > location > global
allocation priority.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from vending_engine.calculators.insurance import InsuranceAllocator, month_fraction
from vending_engine.models import InsuranceAllocation, InsurancePolicy, Machine
from vending_engine.window import ReportingWindow


def make_policy(premium=30000, start="2024-01-01", end="2024-12-31", policy_id="pol1"):
    return InsurancePolicy.from_dict({
        "id": policy_id,
        "coverage_start": start,
        "coverage_end": end,
        "monthly_premium_cents": premium,
    })


def alloc(level, policy_id="pol1", **kwargs):
    return InsuranceAllocation.from_dict({"policy_id": policy_id, "level": level, **kwargs})


@pytest.fixture
def june():
    """2024-06-01 .. 2024-06-30: 30 days, month fraction 1."""
    return ReportingWindow(start=datetime(2024, 6, 1), end=datetime(2024, 6, 30))


@pytest.fixture
def three_machines():
    return [Machine(id="m1"), Machine(id="m2"), Machine(id="m3")]


@pytest.fixture
def allocator():
    return InsuranceAllocator()


class TestMonthFraction:

    def test_full_thirty_day_window(self, june):
        assert month_fraction(make_policy(), june) == Decimal("1")

    def test_half_window(self):
        window = ReportingWindow(start=datetime(2024, 6, 1), end=datetime(2024, 6, 15))
        assert month_fraction(make_policy(), window) == Decimal("0.5")

    def test_coverage_starts_mid_window(self, june):
        """Coverage 06-21 .. year end overlaps 10 days of June."""
        fraction = month_fraction(make_policy(start="2024-06-21"), june)
        assert fraction == Decimal(10) / Decimal(30)

    def test_no_overlap(self, june):
        assert month_fraction(make_policy(start="2023-01-01", end="2023-12-31"), june) == Decimal("0")

    def test_single_day_overlap_counts_one_day(self, june):
        policy = make_policy(start="2024-01-01", end="2024-06-01")
        assert month_fraction(policy, june) == Decimal(1) / Decimal(30)

    def test_missing_dates_contribute_nothing(self, june):
        policy = InsurancePolicy(id="x", coverage_start=None, coverage_end=None, monthly_premium_cents=Decimal("100"))
        assert month_fraction(policy, june) == Decimal("0")


class TestGlobalAllocation:

    def test_even_split_recovers_premium(self, allocator, june, three_machines):
        """$300 premium, 100% global, 3 machines → $100 each"""
        shares = allocator.allocate(three_machines, [make_policy()], [alloc("global", allocated_pct_bps=10000)], june)

        assert shares == {"m1": Decimal("10000"), "m2": Decimal("10000"), "m3": Decimal("10000")}
        assert sum(shares.values()) == Decimal("30000")

    def test_flat_global_amount(self, allocator, june, three_machines):
        shares = allocator.allocate(three_machines, [make_policy()], [alloc("global", flat_monthly_cents=9000)], june)
        assert shares["m1"] == Decimal("3000")

    def test_prorated_by_month_fraction(self, allocator):
        window = ReportingWindow(start=datetime(2024, 6, 1), end=datetime(2024, 6, 15))
        shares = allocator.allocate([Machine(id="m1")], [make_policy()], [alloc("global", allocated_pct_bps=10000)], window)
        assert shares["m1"] == Decimal("15000")

    def test_unassigned_machines_count_in_global_split(self, allocator, june):
        machines = [Machine(id="m1", location_id="L1"), Machine(id="m2"), Machine(id="m3", location_id="")]
        shares = allocator.allocate(machines, [make_policy()], [alloc("global", allocated_pct_bps=10000)], june)
        assert set(shares.values()) == {Decimal("10000")}


class TestAllocationPriority:

    def test_machine_override_beats_global(self, allocator, june, three_machines):
        allocations = [
            alloc("global", allocated_pct_bps=10000),
            alloc("machine", machine_id="m1", flat_monthly_cents=5000),
        ]
        shares = allocator.allocate(three_machines, [make_policy()], allocations, june)

        assert shares["m1"] == Decimal("5000")
        # the global pool is still divided by all three machines
        assert shares["m2"] == Decimal("10000")
        assert shares["m3"] == Decimal("10000")

    def test_excluding_claimed_machines_from_divisor(self, june, three_machines):
        allocations = [
            alloc("global", allocated_pct_bps=10000),
            alloc("machine", machine_id="m1", flat_monthly_cents=5000),
        ]
        allocator = InsuranceAllocator(exclude_claimed_from_divisor=True)
        shares = allocator.allocate(three_machines, [make_policy()], allocations, june)

        assert shares["m1"] == Decimal("5000")
        assert shares["m2"] == Decimal("15000")
        assert shares["m3"] == Decimal("15000")

    def test_location_split_across_location_machines(self, allocator, june):
        machines = [Machine(id="m1", location_id="L1"), Machine(id="m2", location_id="L1"), Machine(id="m3", location_id="L2")]
        allocations = [
            alloc("location", location_id="L1", flat_monthly_cents=6000),
            alloc("global", flat_monthly_cents=900),
        ]
        shares = allocator.allocate(machines, [make_policy()], allocations, june)

        assert shares["m1"] == Decimal("3000")
        assert shares["m2"] == Decimal("3000")
        # m3 has no location allocation, so the global split (÷3) applies
        assert shares["m3"] == Decimal("300")

    def test_location_percentage_of_premium(self, allocator, june):
        machines = [Machine(id="m1", location_id="L1"), Machine(id="m2", location_id="L1")]
        allocations = [alloc("location", location_id="L1", allocated_pct_bps=5000)]
        shares = allocator.allocate(machines, [make_policy()], allocations, june)
        assert shares == {"m1": Decimal("7500"), "m2": Decimal("7500")}

    def test_machine_allocation_without_amount_claims_zero(self, allocator, june, three_machines):
        allocations = [alloc("global", allocated_pct_bps=10000), alloc("machine", machine_id="m1")]
        shares = allocator.allocate(three_machines, [make_policy()], allocations, june)
        assert shares["m1"] == Decimal("0")

    def test_first_allocation_at_a_level_wins(self, allocator, june):
        allocations = [
            alloc("machine", machine_id="m1", flat_monthly_cents=100),
            alloc("machine", machine_id="m1", flat_monthly_cents=999),
        ]
        shares = allocator.allocate([Machine(id="m1")], [make_policy()], allocations, june)
        assert shares["m1"] == Decimal("100")

    def test_all_machines_claimed_does_not_divide_by_zero(self, june):
        machines = [Machine(id="m1", location_id="L1")]
        allocations = [
            alloc("machine", machine_id="m1", flat_monthly_cents=100),
            alloc("location", location_id="L1", flat_monthly_cents=500),
            alloc("global", flat_monthly_cents=500),
        ]
        allocator = InsuranceAllocator(exclude_claimed_from_divisor=True)
        assert allocator.allocate(machines, [make_policy()], allocations, june) == {"m1": Decimal("100")}


class TestSkippedPolicies:

    def test_zero_overlap_contributes_nothing(self, allocator, june, three_machines):
        policy = make_policy(start="2023-01-01", end="2023-12-31")
        shares = allocator.allocate(three_machines, [policy], [alloc("global", allocated_pct_bps=10000)], june)
        assert all(share == 0 for share in shares.values())

    def test_zero_premium_is_skipped(self, allocator, june, three_machines):
        allocations = [alloc("global", flat_monthly_cents=9000)]
        shares = allocator.allocate(three_machines, [make_policy(premium=0)], allocations, june)
        assert all(share == 0 for share in shares.values())

    def test_policy_without_allocations(self, allocator, june, three_machines):
        shares = allocator.allocate(three_machines, [make_policy()], [], june)
        assert shares == {"m1": 0, "m2": 0, "m3": 0}

    def test_no_machines(self, allocator, june):
        assert allocator.allocate([], [make_policy()], [alloc("global", allocated_pct_bps=10000)], june) == {}

    def test_policies_accumulate(self, allocator, june):
        policies = [make_policy(policy_id="a"), make_policy(premium=6000, policy_id="b")]
        allocations = [
            alloc("global", policy_id="a", allocated_pct_bps=10000),
            alloc("global", policy_id="b", allocated_pct_bps=5000),
        ]
        shares = allocator.allocate([Machine(id="m1")], policies, allocations, june)
        assert shares["m1"] == Decimal("33000")
