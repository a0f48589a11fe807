"""
pricing_services -- Orchestration over the pure pricing engines.

Repositories, the result cache and the PricingEngine entry point.
"""

from pricing_services.pricing_engine import PricingEngine, PricingRepositories
from pricing_services.repositories import (
    AdditionalServiceRepository,
    CountryRepository,
    CurrencyConverter,
    FixedRateCurrencyConverter,
    InMemoryAdditionalServiceRepository,
    InMemoryCountryRepository,
    InMemoryRuleRepository,
    InMemoryServiceRepository,
    RuleRepository,
    ServiceRepository,
    SqlAdditionalServiceRepository,
    SqlCountryRepository,
    SqlRuleRepository,
    SqlServiceRepository,
    rule_set_version,
)
from pricing_services.result_cache import (
    CacheEntry,
    CacheStore,
    InMemoryCacheStore,
    ResultCache,
    build_cache_key,
)

__all__ = [
    "AdditionalServiceRepository",
    "CacheEntry",
    "CacheStore",
    "CountryRepository",
    "CurrencyConverter",
    "FixedRateCurrencyConverter",
    "InMemoryAdditionalServiceRepository",
    "InMemoryCacheStore",
    "InMemoryCountryRepository",
    "InMemoryRuleRepository",
    "InMemoryServiceRepository",
    "PricingEngine",
    "PricingRepositories",
    "ResultCache",
    "RuleRepository",
    "ServiceRepository",
    "SqlAdditionalServiceRepository",
    "SqlCountryRepository",
    "SqlRuleRepository",
    "SqlServiceRepository",
    "build_cache_key",
    "rule_set_version",
]
