"""
Catalog -- Countries, filing services and add-on services.

These are the reference entities a pricing request names by id. They are
resolved through repositories by the pricing engine and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.values import CountryCode, Money, VatRate


class _ParsableEnum(str, Enum):
    @classmethod
    def parse(cls, value):
        """Accept a member, its value or its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.casefold() in (member.value.casefold(), member.name.casefold()):
                return member
        raise ValueError(f"Unknown {cls.__name__}: {value!r}")


class FilingFrequency(_ParsableEnum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"


class ServiceType(_ParsableEnum):
    STANDARD_FILING = "StandardFiling"
    COMPLEX_FILING = "ComplexFiling"
    PRIORITY_SERVICE = "PriorityService"


@dataclass(frozen=True, slots=True)
class Country:
    """A VAT jurisdiction that filings can be priced for."""

    code: str
    name: str
    standard_vat_rate: VatRate
    currency_code: str
    supported_filing_frequencies: frozenset[FilingFrequency] = field(
        default_factory=lambda: frozenset(FilingFrequency)
    )
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CountryCode(self.code).value)
        object.__setattr__(self, "currency_code", CurrencyRegistry.validate(self.currency_code))
        if not isinstance(self.standard_vat_rate, VatRate):
            object.__setattr__(self, "standard_vat_rate", VatRate(self.standard_vat_rate))
        object.__setattr__(
            self,
            "supported_filing_frequencies",
            frozenset(FilingFrequency.parse(f) for f in self.supported_filing_frequencies),
        )

    def supports(self, frequency: FilingFrequency) -> bool:
        return frequency in self.supported_filing_frequencies


@dataclass(frozen=True, slots=True)
class Service:
    """A filing service with its base price before volume scaling."""

    service_id: str
    name: str
    base_price: Money
    complexity_level: int = 1
    service_type: ServiceType = ServiceType.STANDARD_FILING

    def __post_init__(self) -> None:
        if not self.service_id:
            raise ValueError("Service service_id is required")
        if not isinstance(self.base_price, Money):
            raise TypeError(f"base_price must be Money, got {type(self.base_price)}")
        if self.base_price.is_negative:
            raise ValueError(f"Service {self.service_id} has a negative base price")
        if self.complexity_level < 0:
            raise ValueError(f"Service {self.service_id} has a negative complexity level")
        object.__setattr__(self, "service_type", ServiceType.parse(self.service_type))


@dataclass(frozen=True, slots=True)
class AdditionalService:
    """An add-on charged once per request, independent of the country count."""

    service_id: str
    name: str
    cost: Money

    def __post_init__(self) -> None:
        if not self.service_id:
            raise ValueError("AdditionalService service_id is required")
        if not isinstance(self.cost, Money):
            raise TypeError(f"cost must be Money, got {type(self.cost)}")
        if self.cost.is_negative:
            raise ValueError(f"Additional service {self.service_id} has a negative cost")
