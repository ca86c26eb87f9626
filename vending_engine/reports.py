"""
Report Builders

Roll raw rows up into the tables the dashboard shows: location commissions,
processor reconciliation, product profitability and machine ROI. Every
builder takes already-fetched, already-windowed rows.
"""

from collections import defaultdict
from decimal import Decimal

from .calculators.commission import CommissionCalculator
from .calculators.fee_rules import FeeLookup, aggregate_with_fees, latest_mappings
from .calculators.fees import line_cogs_cents, line_gross_cents
from .models import (
    CommissionReport,
    CommissionRow,
    Location,
    Machine,
    MachineFinance,
    MachineProcessorMapping,
    MachineRoiRow,
    PaymentProcessor,
    Product,
    ProductProfitRow,
    ProcessorSettlement,
    ReconciliationRow,
    SaleLine,
)
from .money import non_negative, round_half_up

UNMAPPED_PROCESSOR = "__unmapped__"
UNMAPPED_PROCESSOR_NAME = "(Unmapped machines)"

ROI_POSITIVE_THRESHOLD = 5.0
ROI_NEGATIVE_THRESHOLD = -5.0


# =============================================================================
# LOCATION COMMISSIONS
# =============================================================================


def location_commission_report(
    sales: list[SaleLine],
    machines: list[Machine],
    locations: list[Location],
    calculator: CommissionCalculator | None = None,
) -> CommissionReport:
    """
    Commission due per location for the window the sales were fetched for.

    Locations without sales still appear when their flat fee or minimum
    produces a positive commission. Sales from unassigned machines are
    ignored. Rows are sorted by commission due, largest first.
    """
    calculator = calculator or CommissionCalculator()
    machine_map = {m.id: m for m in machines}
    location_map = {loc.id: loc for loc in locations}

    gross_by_location: dict[str, int] = defaultdict(int)
    for sale in sales:
        machine = machine_map.get(sale.machine_id)
        if machine is None or not machine.location_id:
            continue
        gross_by_location[machine.location_id] += line_gross_cents(sale.quantity, sale.unit_price_cents)

    report = CommissionReport()

    for location_id, gross_cents in gross_by_location.items():
        location = location_map.get(location_id)
        if location is None:
            continue
        commission = calculator.calculate(location.commission, gross_cents)
        report.rows.append(CommissionRow(location.id, location.name, location.commission, gross_cents, commission))
        report.total_gross_cents += gross_cents
        report.total_commission_cents += commission

    for location in locations:
        if location.id in gross_by_location:
            continue
        policy = location.commission
        if policy.min_monthly_cents <= 0 and policy.model not in CommissionCalculator.FLAT_MODELS:
            continue
        commission = calculator.calculate(policy, 0)
        if commission > 0:
            report.rows.append(CommissionRow(location.id, location.name, policy, 0, commission))
            report.total_commission_cents += commission

    report.rows.sort(key=lambda row: row.commission_cents, reverse=True)
    return report


# =============================================================================
# PROCESSOR RECONCILIATION
# =============================================================================


def processor_reconciliation(
    sales: list[SaleLine],
    mappings: list[MachineProcessorMapping],
    processors: list[PaymentProcessor],
    settlements: list[ProcessorSettlement],
    fee_for: FeeLookup,
) -> list[ReconciliationRow]:
    """
    Compare calculated processor fees with the processors' own statements.

    Calculated net here is gross - fees (COGS is not part of a processor
    payout). Sales on machines without a mapping are grouped under
    ``__unmapped__``. Rows are sorted by absolute fee variance.
    """
    processor_by_machine = {
        machine_id: mapping.processor_id
        for machine_id, mapping in latest_mappings(mappings).items()
        if mapping.processor_id
    }
    names = {p.id: p.name for p in processors}
    rows: dict[str, ReconciliationRow] = {}

    def row_for(processor_id: str) -> ReconciliationRow:
        if processor_id not in rows:
            name = UNMAPPED_PROCESSOR_NAME if processor_id == UNMAPPED_PROCESSOR else names.get(processor_id, processor_id)
            rows[processor_id] = ReconciliationRow(processor_id=processor_id, processor_name=name)
        return rows[processor_id]

    for sale in sales:
        row = row_for(processor_by_machine.get(sale.machine_id, UNMAPPED_PROCESSOR))
        gross = line_gross_cents(sale.quantity, sale.unit_price_cents)
        fees = round_half_up(fee_for(sale.machine_id, sale.unit_price_cents, sale.quantity))
        row.calc_gross_cents += gross
        row.calc_fees_cents += fees
        row.calc_net_cents += gross - fees
        row.count_sales += 1

    for settlement in settlements:
        row = row_for(settlement.processor_id)
        row.stmt_gross_cents += settlement.gross_cents
        row.stmt_fees_cents += settlement.fees_cents
        row.stmt_net_cents += settlement.net_cents
        row.count_settlements += 1

    return sorted(rows.values(), key=lambda r: abs(r.var_fees_cents), reverse=True)


# =============================================================================
# PRODUCT PROFITABILITY
# =============================================================================


def product_profitability(
    sales: list[SaleLine],
    products: list[Product],
    fee_for: FeeLookup,
) -> list[ProductProfitRow]:
    """Net profitability per product across all machines, best net first."""
    product_map = {p.id: p for p in products}
    by_product: dict[str, list[SaleLine]] = defaultdict(list)
    for sale in sales:
        if sale.product_id:
            by_product[sale.product_id].append(sale)

    results = []
    for product_id, lines in by_product.items():
        units = 0
        price_total = 0
        cost_total = 0
        for line in lines:
            units += round_half_up(non_negative(line.quantity))
            price_total += line_gross_cents(line.quantity, line.unit_price_cents)
            cost_total += line_cogs_cents(line.quantity, line.unit_cost_cents)

        product = product_map.get(product_id)
        results.append(ProductProfitRow(
            product_id=product_id,
            name=product.name if product else product_id,
            units=units,
            avg_price_cents=Decimal(price_total) / units if units else Decimal("0"),
            avg_cost_cents=Decimal(cost_total) / units if units else Decimal("0"),
            breakdown=aggregate_with_fees(lines, fee_for),
            sku=product.sku if product else None,
            category=product.category if product else None,
        ))

    results.sort(key=lambda r: r.breakdown.net_cents, reverse=True)
    return results


# =============================================================================
# MACHINE ROI
# =============================================================================


def machine_roi(
    machines: list[Machine],
    finances: list[MachineFinance],
    sales: list[SaleLine],
    insurance_shares: dict[str, Decimal] | None = None,
) -> list[MachineRoiRow]:
    """
    Monthly return on investment per machine.

    ``sales`` should already be limited to one month (the processor uses
    the trailing 30 days unless told otherwise). Only machines with a
    finance record are reported. When allocated insurance shares are
    supplied they must be one month's shares; they replace the static
    monthly insurance figure on the finance record.
    """
    finance_map = {f.machine_id: f for f in finances}
    revenue: dict[str, int] = defaultdict(int)
    cogs: dict[str, int] = defaultdict(int)
    for sale in sales:
        revenue[sale.machine_id] += line_gross_cents(sale.quantity, sale.unit_price_cents)
        cogs[sale.machine_id] += line_cogs_cents(sale.quantity, sale.unit_cost_cents)

    results = []
    for machine in machines:
        finance = finance_map.get(machine.id)
        if finance is None:
            continue

        if insurance_shares is not None:
            insurance = insurance_shares.get(machine.id, Decimal("0"))
        else:
            insurance = Decimal(finance.insurance_monthly_cents)
        monthly_costs = (
            finance.monthly_payment_cents
            + insurance
            + finance.telemetry_monthly_cents
            + finance.software_monthly_cents
        )

        investment = finance.total_investment_cents
        net_profit = revenue[machine.id] - monthly_costs - cogs[machine.id]
        roi = float(net_profit / investment * 100) if investment > 0 else 0.0
        payback = float(investment / net_profit) if net_profit > 0 else 0.0

        if roi > ROI_POSITIVE_THRESHOLD:
            status = "positive"
        elif roi < ROI_NEGATIVE_THRESHOLD:
            status = "negative"
        else:
            status = "breaking_even"

        results.append(MachineRoiRow(
            machine_id=machine.id,
            machine_name=machine.name or "Unnamed Machine",
            total_investment_cents=investment,
            monthly_revenue_cents=revenue[machine.id],
            monthly_costs_cents=monthly_costs + cogs[machine.id],
            net_profit_cents=net_profit,
            roi_percentage=roi,
            payback_months=payback,
            status=status,
        ))

    results.sort(key=lambda r: r.roi_percentage, reverse=True)
    return results
