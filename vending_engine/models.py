"""
Domain Models for the Vending Operations Engine

These dataclasses are the row shapes read from the operator's relational store
and the results handed back to reporting code. Money is integer cents; rates
are basis points. Raw numbers pass through ``safe_number`` on the way in.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .money import dollars_to_cents, ratio_pct, round_half_up, safe_number, to_dollars
from .window import parse_datetime

COMMISSION_MODELS = ("none", "percent_gross", "flat_month", "hybrid")
ALLOCATION_LEVELS = ("machine", "location", "global")


def _optional_number(value) -> Decimal | None:
    """None (or a non-finite value) stays None so fallbacks can apply."""
    if value is None:
        return None
    number = safe_number(value, fallback="NaN")
    return number if number.is_finite() else None


def _cents(data: dict, key: str, default: int = 0) -> int:
    """Read ``<key>_cents`` if present, else ``<key>`` as dollars."""
    if data.get(f"{key}_cents") is not None:
        return round_half_up(data[f"{key}_cents"])
    if data.get(key) is not None:
        return dollars_to_cents(data[key])
    return default


def _id(value) -> str | None:
    return str(value) if value is not None and value != "" else None


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass
class SaleLine:
    """One observed sale (or aggregation input) for a machine."""

    machine_id: str
    quantity: Decimal
    unit_price_cents: Decimal
    unit_cost_cents: Decimal
    product_id: str | None = None
    occurred_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleLine":
        quantity = data.get("qty", data.get("quantity", data.get("quantity_sold")))
        if data.get("unit_price_cents") is not None or data.get("unit_price") is None:
            price = safe_number(data.get("unit_price_cents"))
        else:
            price = Decimal(dollars_to_cents(data["unit_price"]))
        if data.get("unit_cost_cents") is not None or data.get("unit_cost") is None:
            cost = safe_number(data.get("unit_cost_cents"))
        else:
            cost = Decimal(dollars_to_cents(data["unit_cost"]))
        return cls(
            machine_id=_id(data.get("machine_id")) or "",
            quantity=safe_number(quantity),
            unit_price_cents=price,
            unit_cost_cents=cost,
            product_id=_id(data.get("product_id")),
            occurred_at=data.get("occurred_at") or data.get("sale_date"),
        )


@dataclass
class FeeRule:
    """Effective processing fee for one machine at calculation time."""

    processor_id: str
    percent_bps: int
    fixed_cents: int
    effective_date: str | None = None


@dataclass
class PaymentProcessor:
    """Processor-level default fees (percent as 2.9, fixed in dollars)."""

    id: str
    name: str = ""
    default_percent_fee: Decimal | None = None
    default_fixed_fee: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentProcessor":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            default_percent_fee=_optional_number(data.get("default_percent_fee")),
            default_fixed_fee=_optional_number(data.get("default_fixed_fee")),
        )


@dataclass
class MachineProcessorMapping:
    """Assigns a machine to a processor, with optional fee overrides."""

    machine_id: str
    processor_id: str | None
    percent_fee: Decimal | None = None
    fixed_fee: Decimal | None = None
    effective_date: str | None = None

    @property
    def has_override(self) -> bool:
        return self.percent_fee is not None or self.fixed_fee is not None

    @classmethod
    def from_dict(cls, data: dict) -> "MachineProcessorMapping":
        return cls(
            machine_id=str(data["machine_id"]),
            processor_id=_id(data.get("processor_id")),
            percent_fee=_optional_number(data.get("percent_fee")),
            fixed_fee=_optional_number(data.get("fixed_fee")),
            effective_date=data.get("effective_date"),
        )


@dataclass
class CommissionPolicy:
    """How a location owner is paid."""

    model: str = "none"
    percent_bps: int = 0
    flat_monthly_cents: int = 0
    min_monthly_cents: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "CommissionPolicy":
        # Accepts both the standalone shape and the columns on a location row
        return cls(
            model=data.get("model") or data.get("commission_model") or "none",
            percent_bps=round_half_up(data.get("percent_bps", data.get("commission_pct_bps"))),
            flat_monthly_cents=round_half_up(
                data.get("flat_monthly_cents", data.get("commission_flat_cents"))
            ),
            min_monthly_cents=round_half_up(
                data.get("min_monthly_cents", data.get("commission_min_cents"))
            ),
        )


@dataclass
class Location:
    id: str
    name: str
    commission: CommissionPolicy = field(default_factory=CommissionPolicy)

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        policy = data.get("commission")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            commission=CommissionPolicy.from_dict(policy if isinstance(policy, dict) else data),
        )


@dataclass
class Machine:
    """Minimal machine shape; unassigned machines have no location."""

    id: str
    location_id: str | None = None
    name: str = ""

    @property
    def location_key(self) -> str:
        """Bucket key used when splitting costs by location ('' = unassigned)."""
        return self.location_id or ""

    @classmethod
    def from_dict(cls, data: dict) -> "Machine":
        return cls(
            id=str(data["id"]),
            location_id=_id(data.get("location_id")),
            name=data.get("name") or f"Machine {data['id']}",
        )


@dataclass
class MachineFinance:
    """Purchase and recurring costs for one machine."""

    machine_id: str
    purchase_price_cents: int = 0
    other_onetime_costs_cents: int = 0
    monthly_payment_cents: int = 0
    insurance_monthly_cents: int = 0
    telemetry_monthly_cents: int = 0
    software_monthly_cents: int = 0

    @property
    def total_investment_cents(self) -> int:
        return self.purchase_price_cents + self.other_onetime_costs_cents

    @classmethod
    def from_dict(cls, data: dict) -> "MachineFinance":
        return cls(
            machine_id=str(data["machine_id"]),
            purchase_price_cents=_cents(data, "purchase_price"),
            other_onetime_costs_cents=_cents(data, "other_onetime_costs"),
            monthly_payment_cents=_cents(data, "monthly_payment"),
            insurance_monthly_cents=_cents(data, "insurance_monthly"),
            telemetry_monthly_cents=_cents(data, "telemetry_monthly"),
            software_monthly_cents=_cents(data, "monthly_software_cost",
                                          _cents(data, "software_monthly")),
        )


@dataclass
class Product:
    id: str
    name: str
    sku: str | None = None
    category: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            sku=data.get("sku"),
            category=data.get("category"),
        )


@dataclass
class InsurancePolicy:
    """A coverage contract; read-only for the engine."""

    id: str
    coverage_start: datetime | None
    coverage_end: datetime | None
    monthly_premium_cents: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "InsurancePolicy":
        return cls(
            id=str(data["id"]),
            coverage_start=parse_datetime(data.get("coverage_start")),
            coverage_end=parse_datetime(data.get("coverage_end")),
            monthly_premium_cents=safe_number(data.get("monthly_premium_cents")),
        )


@dataclass
class InsuranceAllocation:
    """How part of a policy's premium is attributed to machines."""

    policy_id: str
    level: str
    machine_id: str | None = None
    location_id: str | None = None
    flat_monthly_cents: Decimal | None = None
    allocated_pct_bps: Decimal | None = None

    def base_cents(self, monthly_premium_cents: Decimal) -> Decimal:
        """Monthly amount before any split: flat wins over percentage."""
        if self.flat_monthly_cents is not None:
            return self.flat_monthly_cents
        if self.allocated_pct_bps is not None:
            return monthly_premium_cents * self.allocated_pct_bps / Decimal("10000")
        return Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "InsuranceAllocation":
        return cls(
            policy_id=str(data["policy_id"]),
            level=data.get("level", ""),
            machine_id=_id(data.get("machine_id")),
            location_id=_id(data.get("location_id")),
            flat_monthly_cents=_optional_number(data.get("flat_monthly_cents")),
            allocated_pct_bps=_optional_number(data.get("allocated_pct_bps")),
        )


@dataclass
class ProcessorSettlement:
    """A processor's own statement for a payout period."""

    processor_id: str
    period_start: str | None
    period_end: str | None
    gross_cents: int = 0
    fees_cents: int = 0
    net_cents: int = 0
    reference: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessorSettlement":
        gross = round_half_up(data.get("gross_cents"))
        fees = round_half_up(data.get("fees_cents"))
        net = data.get("net_cents")
        return cls(
            processor_id=str(data["processor_id"]),
            period_start=data.get("period_start"),
            period_end=data.get("period_end"),
            gross_cents=gross,
            fees_cents=fees,
            net_cents=round_half_up(net) if net is not None else gross - fees,
            reference=data.get("reference"),
        )


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class LineBreakdown:
    """Gross / COGS / fee / net for one line or an aggregated batch.

    Cent fields are authoritative. The dollar properties are for display only
    and must not be fed back into arithmetic.
    """

    gross_cents: int = 0
    cogs_cents: int = 0
    fee_cents: int = 0
    net_cents: int = 0

    @property
    def gross(self) -> float:
        return to_dollars(self.gross_cents)

    @property
    def cogs(self) -> float:
        return to_dollars(self.cogs_cents)

    @property
    def fees(self) -> float:
        return to_dollars(self.fee_cents)

    @property
    def net(self) -> float:
        return to_dollars(self.net_cents)

    @property
    def margin_pct(self) -> float:
        """True margin on price, not markup."""
        return ratio_pct(self.gross_cents - self.cogs_cents, self.gross_cents)

    @property
    def net_margin_pct(self) -> float:
        return ratio_pct(self.net_cents, self.gross_cents)

    def to_dict(self) -> dict:
        return {
            "gross_cents": self.gross_cents,
            "cogs_cents": self.cogs_cents,
            "fee_cents": self.fee_cents,
            "net_cents": self.net_cents,
            "gross": self.gross,
            "cogs": self.cogs,
            "fees": self.fees,
            "net": self.net,
            "margin_pct": self.margin_pct,
            "net_margin_pct": self.net_margin_pct,
        }


@dataclass
class CommissionRow:
    """One line of the location commission report."""

    location_id: str
    location_name: str
    policy: CommissionPolicy
    gross_cents: int
    commission_cents: int


@dataclass
class CommissionReport:
    rows: list[CommissionRow] = field(default_factory=list)
    total_gross_cents: int = 0
    total_commission_cents: int = 0


@dataclass
class ReconciliationRow:
    """Calculated vs. statement totals for one processor."""

    processor_id: str
    processor_name: str
    calc_gross_cents: int = 0
    calc_fees_cents: int = 0
    calc_net_cents: int = 0
    stmt_gross_cents: int = 0
    stmt_fees_cents: int = 0
    stmt_net_cents: int = 0
    count_sales: int = 0
    count_settlements: int = 0

    @property
    def var_fees_cents(self) -> int:
        return self.calc_fees_cents - self.stmt_fees_cents

    @property
    def var_net_cents(self) -> int:
        return self.calc_net_cents - self.stmt_net_cents


@dataclass
class ProductProfitRow:
    product_id: str
    name: str
    units: int
    avg_price_cents: Decimal
    avg_cost_cents: Decimal
    breakdown: LineBreakdown
    sku: str | None = None
    category: str | None = None


@dataclass
class MachineRoiRow:
    machine_id: str
    machine_name: str
    total_investment_cents: int
    monthly_revenue_cents: int
    monthly_costs_cents: Decimal
    net_profit_cents: Decimal
    roi_percentage: float
    payback_months: float
    status: str
