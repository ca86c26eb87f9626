"""
Calculators Package

Provides the fee, fee-rule, commission and insurance calculations.
"""

from .commission import CommissionCalculator
from .fee_rules import FeeRuleCache, aggregate_with_fees, build_rule_cache
from .fees import fee_for_line, net_for_line
from .insurance import InsuranceAllocator, month_fraction

__all__ = [
    "fee_for_line",
    "net_for_line",
    "build_rule_cache",
    "FeeRuleCache",
    "aggregate_with_fees",
    "CommissionCalculator",
    "InsuranceAllocator",
    "month_fraction",
]
