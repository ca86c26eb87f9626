"""
Output Builder

Turns calculation results into API response dictionaries and CSV exports.
Cent values are returned as-is next to their display dollars.
"""

import csv
import io
from datetime import datetime
from decimal import Decimal

from .calculators.commission import CommissionCalculator
from .models import (
    CommissionPolicy,
    CommissionReport,
    FeeRule,
    LineBreakdown,
    MachineRoiRow,
    ProductProfitRow,
    ReconciliationRow,
)
from .money import format_bps, format_money, round_half_up, to_dollars
from .window import ReportingWindow


def to_cents(value: Decimal) -> int:
    """Whole cents for output; fractional shares are kept only internally."""
    return round_half_up(value)


def to_csv(rows: list[dict], header_order: list[str] | None = None) -> str:
    """Render dict rows as CSV text; headers default to first-seen key order."""
    if not rows:
        return ""
    headers = list(header_order or [])
    if not headers:
        for row in rows:
            for key in row:
                if key not in headers:
                    headers.append(key)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, restval="", extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def csv_filename(base_name: str, now: datetime | None = None, extension: str = "csv") -> str:
    """'location_commission_report' -> 'location_commission_report_2024-06-30.csv'"""
    stamp = (now or datetime.now()).strftime("%Y-%m-%d")
    return f"{base_name}_{stamp}.{extension}"


class OutputBuilder:
    """Builds API responses from engine results."""

    def build_breakdown(self, breakdown: LineBreakdown) -> dict:
        return breakdown.to_dict()

    def build_fee_rules(self, rules: dict[str, FeeRule | None]) -> dict:
        return {
            machine_id: (
                {
                    "processor_id": rule.processor_id,
                    "percent_bps": rule.percent_bps,
                    "fixed_cents": rule.fixed_cents,
                    "effective_date": rule.effective_date,
                }
                if rule is not None
                else None
            )
            for machine_id, rule in rules.items()
        }

    def build_commission(self, policy: CommissionPolicy, gross_cents: int, calculator: CommissionCalculator) -> dict:
        """Single commission calculation with value and description per step."""
        percent = calculator.percent_component(policy, gross_cents)
        flat = calculator.flat_component(policy)
        commission = calculator.calculate(policy, gross_cents)

        if policy.model == "none":
            due_desc = "No commission model - nothing owed (minimum not applied)"
        elif commission == policy.min_monthly_cents and percent + flat < policy.min_monthly_cents:
            due_desc = f"Minimum monthly commission of {format_money(policy.min_monthly_cents)} applies"
        else:
            due_desc = f"percent ({format_money(percent)}) + flat ({format_money(flat)}) = {format_money(commission)}"

        return {
            "model": policy.model,
            "model_label": calculator.label(policy.model),
            "gross": {
                "value": to_dollars(gross_cents),
                "cents": gross_cents,
                "description": "Gross sales for the period",
            },
            "percent_component": {
                "value": to_dollars(percent),
                "cents": percent,
                "description": (
                    f"{format_bps(policy.percent_bps)} × {format_money(gross_cents)} = {format_money(percent)}"
                    if policy.model in calculator.PERCENT_MODELS
                    else "Percent component not applicable"
                ),
            },
            "flat_component": {
                "value": to_dollars(flat),
                "cents": flat,
                "description": (
                    f"Flat monthly fee of {format_money(flat)}"
                    if policy.model in calculator.FLAT_MODELS
                    else "Flat component not applicable"
                ),
            },
            "commission_due": {
                "value": to_dollars(commission),
                "cents": commission,
                "description": due_desc,
            },
        }

    def build_commission_report(self, report: CommissionReport, window: ReportingWindow | None = None) -> dict:
        rows = [
            {
                "location_id": row.location_id,
                "location_name": row.location_name,
                "model": row.policy.model,
                "model_label": CommissionCalculator.label(row.policy.model),
                "pct_bps": row.policy.percent_bps,
                "flat_month": to_dollars(row.policy.flat_monthly_cents),
                "min_month": to_dollars(row.policy.min_monthly_cents),
                "gross": to_dollars(row.gross_cents),
                "gross_cents": row.gross_cents,
                "commission_due": to_dollars(row.commission_cents),
                "commission_cents": row.commission_cents,
            }
            for row in report.rows
        ]
        return {
            "period": window.label if window else None,
            "rows": rows,
            "totals": {
                "gross": to_dollars(report.total_gross_cents),
                "commission": to_dollars(report.total_commission_cents),
            },
        }

    def build_insurance(self, shares: dict[str, Decimal], window: ReportingWindow) -> dict:
        total = sum(shares.values(), Decimal("0"))
        return {
            "window": {"start": window.start_iso, "end": window.end_iso},
            "machines": {
                machine_id: {"cents": to_cents(share), "value": to_dollars(share)}
                for machine_id, share in shares.items()
            },
            "total": {"cents": to_cents(total), "value": to_dollars(total)},
        }

    def build_reconciliation(self, rows: list[ReconciliationRow]) -> dict:
        out = [
            {
                "processor_id": r.processor_id,
                "processor_name": r.processor_name,
                "calc_gross": to_dollars(r.calc_gross_cents),
                "calc_fees": to_dollars(r.calc_fees_cents),
                "calc_net": to_dollars(r.calc_net_cents),
                "stmt_gross": to_dollars(r.stmt_gross_cents),
                "stmt_fees": to_dollars(r.stmt_fees_cents),
                "stmt_net": to_dollars(r.stmt_net_cents),
                "var_fees": to_dollars(r.var_fees_cents),
                "var_net": to_dollars(r.var_net_cents),
                "count_sales": r.count_sales,
                "count_settlements": r.count_settlements,
            }
            for r in rows
        ]
        totals = {
            key: to_dollars(sum(getattr(r, f"{key}_cents") for r in rows))
            for key in ("calc_gross", "calc_fees", "calc_net", "stmt_gross", "stmt_fees", "stmt_net", "var_fees", "var_net")
        }
        return {"rows": out, "totals": totals}

    def build_product_profitability(self, rows: list[ProductProfitRow]) -> dict:
        return {
            "rows": [
                {
                    "product_id": r.product_id,
                    "name": r.name,
                    "sku": r.sku,
                    "category": r.category,
                    "units": r.units,
                    "avg_price": to_dollars(r.avg_price_cents),
                    "avg_cost": to_dollars(r.avg_cost_cents),
                    **self.build_breakdown(r.breakdown),
                }
                for r in rows
            ]
        }

    def build_machine_roi(self, rows: list[MachineRoiRow]) -> dict:
        return {
            "rows": [
                {
                    "machine_id": r.machine_id,
                    "machine_name": r.machine_name,
                    "total_investment": to_dollars(r.total_investment_cents),
                    "monthly_revenue": to_dollars(r.monthly_revenue_cents),
                    "monthly_costs": to_dollars(r.monthly_costs_cents),
                    "net_profit": to_dollars(r.net_profit_cents),
                    "roi_percentage": round(r.roi_percentage, 2),
                    "payback_months": round(r.payback_months, 2),
                    "status": r.status,
                }
                for r in rows
            ]
        }
