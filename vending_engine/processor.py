"""
Report Processor - Main Orchestrator

Parses raw request dictionaries, validates them, runs the calculators and
hands the results to the OutputBuilder. Each public method is one API
operation; ``handle`` routes a request path to the matching operation.
"""

from typing import Any, Dict

from .calculators import CommissionCalculator, FeeRuleCache, InsuranceAllocator, aggregate_with_fees, build_rule_cache
from .calculators.fees import net_for_line
from .models import (
    CommissionPolicy,
    InsuranceAllocation,
    InsurancePolicy,
    Location,
    Machine,
    MachineFinance,
    MachineProcessorMapping,
    PaymentProcessor,
    Product,
    ProcessorSettlement,
    SaleLine,
)
from .money import round_half_up
from .output import OutputBuilder, csv_filename, to_csv
from .reports import location_commission_report, machine_roi, processor_reconciliation, product_profitability
from .validators import InputValidator
from .window import PRESETS, ReportingWindow


class ReportProcessor:
    """
    Main orchestrator for engine requests.

    Every operation follows the same steps:
    1. Parse rows into models
    2. Validate structure
    3. Resolve the reporting window and fee rules
    4. Calculate
    5. Build output
    """

    ROUTES = {
        "/net_summary": "summarize_sales",
        "/commissions": "calculate_commission",
        "/insurance_allocation": "allocate_insurance",
        "/reports/location_commission": "location_commissions",
        "/reports/processor_reconciliation": "reconcile_processors",
        "/reports/product_profitability": "product_profitability",
        "/reports/machine_roi": "machine_roi",
    }

    def __init__(self):
        self.validator = InputValidator()
        self.commission_calculator = CommissionCalculator()
        self.output_builder = OutputBuilder()

    def handle(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Run the operation registered for ``path``; KeyError if unknown."""
        return getattr(self, self.ROUTES[path])(data)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def summarize_sales(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Net summary (gross / cogs / fees / net) for a batch of sales."""
        window = self._window(data)
        sales = self._sales(data, window)
        cache = self._fee_cache(data, [s.machine_id for s in sales])

        result = {
            "summary": self.output_builder.build_breakdown(aggregate_with_fees(sales, cache.fee_for)),
            "fee_rules": self.output_builder.build_fee_rules(cache.rules),
            "sale_count": len(sales),
        }
        if data.get("include_lines"):
            result["lines"] = [
                {
                    "machine_id": s.machine_id,
                    **net_for_line(s.quantity, s.unit_price_cents, s.unit_cost_cents, cache.rule_for(s.machine_id)).to_dict(),
                }
                for s in sales
            ]
        return result

    def calculate_commission(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Commission for one policy and a gross amount already windowed by the caller."""
        policy = CommissionPolicy.from_dict(data.get("policy") or {})
        self.validator.validate_commission_policy(policy)
        gross_cents = round_half_up(data.get("gross_cents"))
        return self.output_builder.build_commission(policy, gross_cents, self.commission_calculator)

    def allocate_insurance(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Each machine's prorated insurance share for the window."""
        window = self._window(data, required=True)
        machines = self._parse_list(data, "machines", Machine)
        policies = self._parse_list(data, "policies", InsurancePolicy)
        allocations = self._parse_list(data, "allocations", InsuranceAllocation)
        self.validator.validate_policies(policies)
        self.validator.validate_allocations(allocations)

        allocator = InsuranceAllocator(exclude_claimed_from_divisor=bool(data.get("exclude_claimed_from_divisor")))
        shares = allocator.allocate(machines, policies, allocations, window)
        return self.output_builder.build_insurance(shares, window)

    def location_commissions(self, data: Dict[str, Any]) -> Dict[str, Any]:
        window = self._window(data)
        locations = self._parse_list(data, "locations", Location)
        for location in locations:
            self.validator.validate_commission_policy(location.commission, owner=f"location {location.id}")

        report = location_commission_report(
            self._sales(data, window),
            self._parse_list(data, "machines", Machine),
            locations,
            self.commission_calculator,
        )
        return self.output_builder.build_commission_report(report, window)

    def location_commissions_csv(self, data: Dict[str, Any]) -> Dict[str, str]:
        """Location commission report as CSV with a totals line."""
        report = self.location_commissions(data)
        period = report["period"] or ""
        rows = [
            {
                "Location": row["location_name"],
                "Model": row["model_label"],
                "% (bps)": row["pct_bps"],
                "Flat/mo": f"{row['flat_month']:.2f}",
                "Min/mo": f"{row['min_month']:.2f}",
                "Gross Revenue": f"{row['gross']:.2f}",
                "Commission Due": f"{row['commission_due']:.2f}",
                "Period": period,
            }
            for row in report["rows"]
        ]
        rows.append({
            "Location": "TOTALS",
            "Gross Revenue": f"{report['totals']['gross']:.2f}",
            "Commission Due": f"{report['totals']['commission']:.2f}",
            "Period": period,
        })
        headers = ["Location", "Model", "% (bps)", "Flat/mo", "Min/mo", "Gross Revenue", "Commission Due", "Period"]
        return {"filename": csv_filename("location_commission_report"), "csv": to_csv(rows, headers)}

    def reconcile_processors(self, data: Dict[str, Any]) -> Dict[str, Any]:
        window = self._window(data)
        sales = self._sales(data, window)
        cache = self._fee_cache(data, [s.machine_id for s in sales])
        rows = processor_reconciliation(
            sales,
            self._parse_list(data, "mappings", MachineProcessorMapping),
            self._parse_list(data, "processors", PaymentProcessor),
            self._parse_list(data, "settlements", ProcessorSettlement),
            cache.fee_for,
        )
        return self.output_builder.build_reconciliation(rows)

    def product_profitability(self, data: Dict[str, Any]) -> Dict[str, Any]:
        window = self._window(data)
        sales = self._sales(data, window)
        cache = self._fee_cache(data, [s.machine_id for s in sales])
        rows = product_profitability(sales, self._parse_list(data, "products", Product), cache.fee_for)
        return self.output_builder.build_product_profitability(rows)

    def machine_roi(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        ROI per machine. Revenue and COGS cover the window (trailing 30 days
        by default); fixed costs and insurance are always one month.
        """
        window = self._window(data) or ReportingWindow.from_days(30, data.get("now"))
        machines = self._parse_list(data, "machines", Machine)

        shares = None
        if data.get("policies") is not None:
            policies = self._parse_list(data, "policies", InsurancePolicy)
            allocations = self._parse_list(data, "allocations", InsuranceAllocation)
            self.validator.validate_policies(policies)
            self.validator.validate_allocations(allocations)
            allocator = InsuranceAllocator(exclude_claimed_from_divisor=bool(data.get("exclude_claimed_from_divisor")))
            shares = allocator.allocate(machines, policies, allocations, window.month_ending())

        rows = machine_roi(
            machines,
            self._parse_list(data, "finances", MachineFinance),
            self._sales(data, window),
            shares,
        )
        return self.output_builder.build_machine_roi(rows)

    # -------------------------------------------------------------------------
    # Parsing helpers
    # -------------------------------------------------------------------------

    def _parse_list(self, data: Dict[str, Any], key: str, model):
        items = data.get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise ValueError(f"{key} must be a list, got: {type(items).__name__}")
        return [model.from_dict(item) for item in items]

    def _window(self, data: Dict[str, Any], required: bool = False) -> ReportingWindow | None:
        """Window from an explicit range, a preset name or a trailing day count."""
        window = None
        if isinstance(data.get("window"), dict):
            window = ReportingWindow.from_dict(data["window"])
        elif data.get("period") is not None:
            preset = PRESETS.get(data["period"])
            if preset is None:
                raise ValueError(f"Unknown period: {data['period']}. Must be one of {', '.join(PRESETS)}")
            window = preset(data.get("now"))
        elif data.get("days") is not None:
            window = ReportingWindow.from_days(int(data["days"]), data.get("now"))

        if window is None:
            if required:
                raise ValueError("window is required")
            return None
        self.validator.validate_window(window)
        return window

    def _sales(self, data: Dict[str, Any], window: ReportingWindow | None) -> list[SaleLine]:
        """Parse sales; when a window is given, drop dated rows that fall outside it."""
        sales = self._parse_list(data, "sales", SaleLine)
        if window is None:
            return sales
        return [s for s in sales if s.occurred_at is None or window.contains(s.occurred_at)]

    def _fee_cache(self, data: Dict[str, Any], machine_ids: list[str]) -> FeeRuleCache:
        rules = build_rule_cache(
            self._parse_list(data, "mappings", MachineProcessorMapping),
            self._parse_list(data, "processors", PaymentProcessor),
            machine_ids,
        )
        return FeeRuleCache(rules)
