"""ORM records for the reference persistence adapters."""

from pricing_kernel.models.catalog import AdditionalServiceRecord, CountryRecord, ServiceRecord
from pricing_kernel.models.rule import RuleConditionRecord, RuleRecord

__all__ = [
    "AdditionalServiceRecord",
    "CountryRecord",
    "RuleConditionRecord",
    "RuleRecord",
    "ServiceRecord",
]
