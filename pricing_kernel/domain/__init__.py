"""
Pure domain layer.

Immutable value objects and entities with NO dependencies on the ORM, the
database, the wall clock or any other I/O.
"""

from pricing_kernel.domain.catalog import (
    AdditionalService,
    Country,
    FilingFrequency,
    Service,
    ServiceType,
)
from pricing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pricing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pricing_kernel.domain.pricing import (
    CountryCalculationResult,
    DiscountKind,
    DiscountLine,
    PricingRequest,
    PricingResult,
    RuleAdjustment,
    RuleTraceEntry,
    TraceOutcome,
)
from pricing_kernel.domain.rules import Rule, RuleCondition, RuleSnapshot, RuleType
from pricing_kernel.domain.values import CountryCode, Currency, DateRange, Money, VatRate

__all__ = [
    "AdditionalService",
    "Clock",
    "Country",
    "CountryCalculationResult",
    "CountryCode",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DateRange",
    "DeterministicClock",
    "DiscountKind",
    "DiscountLine",
    "FilingFrequency",
    "Money",
    "PricingRequest",
    "PricingResult",
    "Rule",
    "RuleAdjustment",
    "RuleCondition",
    "RuleSnapshot",
    "RuleTraceEntry",
    "RuleType",
    "Service",
    "ServiceType",
    "SystemClock",
    "TraceOutcome",
    "VatRate",
]
