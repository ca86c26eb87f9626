"""
VENDING OPERATIONS ENGINE
Fee, commission and insurance allocation calculations
"""

from .calculators import (
    CommissionCalculator,
    FeeRuleCache,
    InsuranceAllocator,
    aggregate_with_fees,
    build_rule_cache,
    fee_for_line,
    net_for_line,
)
from .processor import ReportProcessor
from .window import ReportingWindow

__all__ = [
    'ReportProcessor',
    'ReportingWindow',
    'fee_for_line',
    'net_for_line',
    'build_rule_cache',
    'FeeRuleCache',
    'aggregate_with_fees',
    'CommissionCalculator',
    'InsuranceAllocator',
]
