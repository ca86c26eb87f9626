"""
Unit Tests for Report Builders

Location commissions, processor reconciliation, product profitability and
machine ROI over small hand-checked data sets.
"""

from decimal import Decimal

import pytest

from vending_engine.calculators.fee_rules import FeeRuleCache
from vending_engine.models import (
    FeeRule,
    Location,
    Machine,
    MachineFinance,
    MachineProcessorMapping,
    PaymentProcessor,
    Product,
    ProcessorSettlement,
    SaleLine,
)
from vending_engine.reports import (
    UNMAPPED_PROCESSOR,
    location_commission_report,
    machine_roi,
    processor_reconciliation,
    product_profitability,
)


def sales(*rows):
    return [SaleLine.from_dict(row) for row in rows]


@pytest.fixture
def fee_cache():
    return FeeRuleCache({
        "m1": FeeRule(processor_id="p1", percent_bps=290, fixed_cents=10),
        "m2": FeeRule(processor_id="p2", percent_bps=0, fixed_cents=5),
    })


class TestLocationCommissionReport:

    @pytest.fixture
    def machines(self):
        return [Machine(id="m1", location_id="L1"), Machine(id="m2", location_id="L2"), Machine(id="m3")]

    @pytest.fixture
    def locations(self):
        return [
            Location.from_dict({"id": "L1", "name": "Gym", "commission_model": "percent_gross", "commission_pct_bps": 1000}),
            Location.from_dict({
                "id": "L2", "name": "Office", "commission_model": "hybrid",
                "commission_pct_bps": 1000, "commission_flat_cents": 1000,
            }),
            Location.from_dict({"id": "L3", "name": "Lobby", "commission_model": "flat_month", "commission_flat_cents": 5000}),
            Location.from_dict({"id": "L4", "name": "Quiet", "commission_model": "percent_gross", "commission_pct_bps": 500}),
            Location.from_dict({"id": "L5", "name": "Free", "commission_model": "none", "commission_min_cents": 700}),
        ]

    def test_report_rows_and_totals(self, machines, locations):
        """
        L1: 2 × $10 = $20 gross, 10% = $2.00
        L2: 3 × $5 = $15 gross, 10% + $10 flat = $11.50
        L3: no sales, flat $50
        m3 is unassigned, so its $9.99 is ignored
        """
        rows = sales(
            {"machine_id": "m1", "qty": 2, "unit_price_cents": 1000},
            {"machine_id": "m2", "qty": 3, "unit_price_cents": 500},
            {"machine_id": "m3", "qty": 1, "unit_price_cents": 999},
        )
        report = location_commission_report(rows, machines, locations)

        assert [(r.location_id, r.commission_cents) for r in report.rows] == [
            ("L3", 5000),
            ("L2", 1150),
            ("L1", 200),
        ]
        assert report.total_gross_cents == 3500
        assert report.total_commission_cents == 6350

    def test_no_sales_location_without_floor_is_omitted(self, machines, locations):
        report = location_commission_report([], machines, locations)
        assert [r.location_id for r in report.rows] == ["L3"]

    def test_none_model_with_minimum_is_omitted(self, machines, locations):
        report = location_commission_report([], machines, locations)
        assert "L5" not in [r.location_id for r in report.rows]


class TestProcessorReconciliation:

    @pytest.fixture
    def mappings(self):
        return [
            MachineProcessorMapping.from_dict({"machine_id": "m1", "processor_id": "p1"}),
            MachineProcessorMapping.from_dict({"machine_id": "m2", "processor_id": "p2"}),
        ]

    @pytest.fixture
    def processors(self):
        return [PaymentProcessor.from_dict({"id": "p1", "name": "Square"}), PaymentProcessor.from_dict({"id": "p2", "name": "Nayax"})]

    @pytest.fixture
    def settlements(self):
        return [
            ProcessorSettlement.from_dict({"processor_id": "p1", "gross_cents": 500, "fees_cents": 40}),
            ProcessorSettlement.from_dict({"processor_id": "p2", "gross_cents": 300, "fees_cents": 24, "net_cents": 276}),
        ]

    def test_variances_sorted_by_absolute_fee_variance(self, fee_cache, mappings, processors, settlements):
        """
        p1: 2 × $2.50, fee 34c vs statement 40c → -6c
        p2: 3 × $1.00, fee 15c vs statement 24c → -9c
        m3 has no mapping → unmapped group, no fee
        """
        rows = processor_reconciliation(
            sales(
                {"machine_id": "m1", "qty": 2, "unit_price_cents": 250},
                {"machine_id": "m2", "qty": 3, "unit_price_cents": 100},
                {"machine_id": "m3", "qty": 1, "unit_price_cents": 200},
            ),
            mappings,
            processors,
            settlements,
            fee_cache.fee_for,
        )

        assert [r.processor_id for r in rows] == ["p2", "p1", UNMAPPED_PROCESSOR]

        p2, p1, unmapped = rows
        assert p2.var_fees_cents == -9
        assert p1.var_fees_cents == -6
        assert p1.calc_net_cents == 466
        assert p1.stmt_net_cents == 460
        assert p1.var_net_cents == 6
        assert p1.processor_name == "Square"
        assert unmapped.processor_name == "(Unmapped machines)"
        assert unmapped.calc_gross_cents == 200
        assert unmapped.count_settlements == 0

    def test_settlement_without_sales_still_listed(self, fee_cache, processors):
        settlements = [ProcessorSettlement.from_dict({"processor_id": "p1", "gross_cents": 1000, "fees_cents": 30})]
        rows = processor_reconciliation([], [], processors, settlements, fee_cache.fee_for)

        assert len(rows) == 1
        assert rows[0].calc_fees_cents == 0
        assert rows[0].var_fees_cents == -30


class TestProductProfitability:

    def test_rows_per_product(self):
        """
        A: 2 × $2.50 on m1 (fee 34c) + 2 × $1.50 on m3 (no rule)
           units 4, gross 800, cogs 300, net 466
        B: 1 × $1.00 costing $1.03 → net -3c
        """
        cache = FeeRuleCache({"m1": FeeRule(processor_id="p1", percent_bps=290, fixed_cents=10)})
        rows = product_profitability(
            sales(
                {"machine_id": "m1", "product_id": "A", "qty": 2, "unit_price_cents": 250, "unit_cost_cents": 100},
                {"machine_id": "m3", "product_id": "A", "qty": 2, "unit_price_cents": 150, "unit_cost_cents": 50},
                {"machine_id": "m3", "product_id": "B", "qty": 1, "unit_price_cents": 100, "unit_cost_cents": 103},
                {"machine_id": "m3", "qty": 5, "unit_price_cents": 100},
            ),
            [Product.from_dict({"id": "A", "name": "Cola", "sku": "C-1"})],
            cache.fee_for,
        )

        assert [r.product_id for r in rows] == ["A", "B"]
        cola, unknown = rows
        assert cola.name == "Cola"
        assert cola.sku == "C-1"
        assert cola.units == 4
        assert cola.avg_price_cents == Decimal("200")
        assert cola.avg_cost_cents == Decimal("75")
        assert cola.breakdown.net_cents == 466
        assert unknown.name == "B"
        assert unknown.breakdown.net_cents == -3


class TestMachineRoi:

    @pytest.fixture
    def machines(self):
        return [
            Machine(id="m1", name="Lobby Snack"),
            Machine(id="m2", name="Gym Drinks"),
            Machine(id="m3", name="No Finance"),
            Machine(id="m4", name="Slow"),
        ]

    @pytest.fixture
    def finances(self):
        return [
            MachineFinance.from_dict({
                "machine_id": "m1",
                "purchase_price_cents": 90000,
                "other_onetime_costs_cents": 10000,
                "monthly_payment_cents": 5000,
                "insurance_monthly_cents": 2000,
                "telemetry_monthly_cents": 1000,
                "software_monthly_cents": 1000,
            }),
            MachineFinance.from_dict({"machine_id": "m2", "purchase_price_cents": 50000, "monthly_payment_cents": 5000}),
            MachineFinance.from_dict({"machine_id": "m4", "purchase_price": 1000}),
        ]

    @pytest.fixture
    def month_of_sales(self):
        return sales(
            {"machine_id": "m1", "qty": 10, "unit_price_cents": 3000, "unit_cost_cents": 1000},
            {"machine_id": "m4", "qty": 1, "unit_price_cents": 2000},
        )

    def test_roi_rows(self, machines, finances, month_of_sales):
        """
        m1: revenue 30000 - fixed costs 9000 - cogs 10000 = 11000 net
            ROI 11000 / 100000 = 11%, payback 100000 / 11000 months
        m2: no sales, -5000 net on 50000 → -10%
        m4: $20 net on $1,000 → 2%
        """
        rows = machine_roi(machines, finances, month_of_sales)

        assert [r.machine_id for r in rows] == ["m1", "m4", "m2"]
        m1, m4, m2 = rows

        assert m1.net_profit_cents == 11000
        assert m1.monthly_costs_cents == 19000
        assert m1.total_investment_cents == 100000
        assert m1.roi_percentage == pytest.approx(11.0)
        assert m1.payback_months == pytest.approx(9.0909, rel=1e-4)
        assert m1.status == "positive"

        assert m2.roi_percentage == pytest.approx(-10.0)
        assert m2.payback_months == 0.0
        assert m2.status == "negative"

        assert m4.roi_percentage == pytest.approx(2.0)
        assert m4.status == "breaking_even"

    def test_machines_without_finance_are_skipped(self, machines, finances, month_of_sales):
        rows = machine_roi(machines, finances, month_of_sales)
        assert "m3" not in [r.machine_id for r in rows]

    def test_allocated_insurance_replaces_static_figure(self, machines, finances, month_of_sales):
        rows = machine_roi(machines, finances, month_of_sales, insurance_shares={"m1": Decimal("2500")})
        m1 = next(r for r in rows if r.machine_id == "m1")
        assert m1.net_profit_cents == 10500
