"""
Pure pricing engines.

Expression parsing and evaluation, country rule evaluation and the
pricing calculator. No I/O, no database access, no wall clock: every input
arrives as a parameter.
"""

from pricing_engines.expression import (
    Expression,
    ExpressionEvaluator,
    ExpressionIssue,
    evaluate_expression,
    parse_expression,
    validate_expression,
)
from pricing_engines.pricing import PricingCalculator, compute_discounts, volume_scaled_base
from pricing_engines.rule_engine import CountryRuleOutcome, RuleEngine, RuleParameters, order_rules

__all__ = [
    "CountryRuleOutcome",
    "Expression",
    "ExpressionEvaluator",
    "ExpressionIssue",
    "PricingCalculator",
    "RuleEngine",
    "RuleParameters",
    "compute_discounts",
    "evaluate_expression",
    "order_rules",
    "parse_expression",
    "validate_expression",
    "volume_scaled_base",
]
