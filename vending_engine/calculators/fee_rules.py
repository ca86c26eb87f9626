"""
Fee Rule Resolver

Materializes the effective FeeRule for every machine from the
machine -> processor mappings and the processors' default fees, and folds
batches of sale rows into a single net summary.

Resolution per field: machine override first, then processor default, then 0.
A machine with no mapping has no rule, and no rule means a zero fee.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable

from ..models import FeeRule, LineBreakdown, MachineProcessorMapping, PaymentProcessor, SaleLine
from ..money import dollars_to_cents, percent_to_bps, round_half_up
from ..window import parse_datetime
from .fees import fee_for_line, line_cogs_cents, line_gross_cents

logger = logging.getLogger(__name__)

FeeLookup = Callable[[str, object, object], int]


def _coerce(items, model):
    return [item if isinstance(item, model) else model.from_dict(item) for item in items or []]


def _effective_key(mapping: MachineProcessorMapping) -> tuple[int, datetime]:
    effective = parse_datetime(mapping.effective_date)
    if effective is None:
        return (0, datetime.min)
    return (1, effective)


def latest_mappings(mappings: Iterable) -> dict[str, MachineProcessorMapping]:
    """Pick one mapping per machine: latest effective_date, ties keep the last row."""
    latest: dict[str, MachineProcessorMapping] = {}
    for mapping in _coerce(mappings, MachineProcessorMapping):
        current = latest.get(mapping.machine_id)
        if current is None or _effective_key(mapping) >= _effective_key(current):
            latest[mapping.machine_id] = mapping
    return latest


def resolve_rule(mapping: MachineProcessorMapping, processor: PaymentProcessor | None) -> FeeRule | None:
    """Combine one mapping with its processor's defaults."""
    if processor is None and not mapping.has_override:
        return None

    default_percent = processor.default_percent_fee if processor else None
    default_fixed = processor.default_fixed_fee if processor else None

    percent_fee = mapping.percent_fee if mapping.percent_fee is not None else default_percent
    fixed_fee = mapping.fixed_fee if mapping.fixed_fee is not None else default_fixed

    return FeeRule(
        processor_id=mapping.processor_id or "",
        percent_bps=percent_to_bps(percent_fee or 0),
        fixed_cents=dollars_to_cents(fixed_fee or 0),
        effective_date=mapping.effective_date,
    )


def build_rule_cache(
    mappings: Iterable,
    processors: Iterable,
    machine_ids: Iterable[str] = (),
) -> dict[str, FeeRule | None]:
    """
    Build ``machine_id -> FeeRule | None``.

    When a machine has several mappings the latest ``effective_date`` wins;
    undated mappings lose to dated ones and ties keep the last row seen.
    Machines listed in ``machine_ids`` without any mapping resolve to None.
    """
    processors_by_id = {p.id: p for p in _coerce(processors, PaymentProcessor)}

    cache: dict[str, FeeRule | None] = {str(machine_id): None for machine_id in machine_ids}
    for machine_id, mapping in latest_mappings(mappings).items():
        cache[machine_id] = resolve_rule(mapping, processors_by_id.get(mapping.processor_id))
    return cache


class FeeRuleCache:
    """
    Request-scoped cache of resolved fee rules.

    ``fee_for`` is safe to call before anything has loaded (every fee is 0).
    A failed ``load`` keeps whatever was built before and records the error.
    """

    def __init__(self, rules: dict[str, FeeRule | None] | None = None):
        self._rules: dict[str, FeeRule | None] = dict(rules or {})
        self.loading = False
        self.error: str | None = None

    @property
    def rules(self) -> dict[str, FeeRule | None]:
        return dict(self._rules)

    def rule_for(self, machine_id) -> FeeRule | None:
        return self._rules.get(str(machine_id))

    def fee_for(self, machine_id, unit_price_cents, quantity) -> int:
        return fee_for_line(unit_price_cents, quantity, self.rule_for(machine_id))

    def load(self, fetch: Callable[[], tuple[Iterable, Iterable]], machine_ids: Iterable[str] = ()) -> bool:
        """
        Fetch ``(mappings, processors)`` and rebuild the cache.

        Returns True on success. On failure the previous rules stay in place;
        unresolved machines keep resolving to a zero fee.
        """
        self.loading = True
        self.error = None
        try:
            mappings, processors = fetch()
            rules = build_rule_cache(mappings, processors, machine_ids)
        except Exception as e:
            logger.error(f"Fee rule load failed, keeping {len(self._rules)} cached rules: {str(e)}", exc_info=True)
            self.error = str(e)
            return False
        finally:
            self.loading = False

        self._rules = rules
        logger.info(f"Loaded fee rules for {len(rules)} machines")
        return True


def aggregate_with_fees(rows: Iterable, fee_for: FeeLookup) -> LineBreakdown:
    """
    Fold many sale rows into one gross / cogs / fee / net summary.

    Uses the same per-row formulas as ``net_for_line``; every accumulator is
    an integer sum, so the result does not depend on row order.
    """
    gross_cents = 0
    cogs_cents = 0
    fee_cents = 0

    for row in _coerce(rows, SaleLine):
        gross_cents += line_gross_cents(row.quantity, row.unit_price_cents)
        cogs_cents += line_cogs_cents(row.quantity, row.unit_cost_cents)
        fee_cents += round_half_up(fee_for(row.machine_id, row.unit_price_cents, row.quantity))

    return LineBreakdown(
        gross_cents=gross_cents,
        cogs_cents=cogs_cents,
        fee_cents=fee_cents,
        net_cents=gross_cents - cogs_cents - fee_cents,
    )
