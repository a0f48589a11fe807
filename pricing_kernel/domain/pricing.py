"""
Pricing request and result models.

Responsibility:
    PricingRequest is what a caller asks for; PricingResult is the
    itemized, immutable estimate the engine returns. Both are frozen
    value objects.

Invariants enforced (PricingResult construction):
    - Every Money in one result shares the result currency.
    - total_cost equals the exact sum of country subtotals, additional
      service costs and discount lines.

Failure modes:
    - ValidationError for a structurally invalid request
    - InvalidCurrencyError for an unknown request currency
    - CurrencyMismatchError / ValueError for an inconsistent result
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from pricing_kernel.domain.catalog import FilingFrequency
from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.rules import RuleType
from pricing_kernel.domain.values import CountryCode, Currency, Money
from pricing_kernel.exceptions import CurrencyMismatchError, ValidationError


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PricingRequest:
    """
    A request for a filing cost estimate.

    ``as_of_date`` and ``currency_code`` may be left unset; ``normalized()``
    resolves them to the canonical form used for evaluation and caching.
    """

    country_codes: frozenset[str]
    service_id: str
    transaction_volume: int
    filing_frequency: FilingFrequency
    additional_service_ids: frozenset[str] = frozenset()
    as_of_date: date | None = None
    currency_code: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.country_codes, str):
            raise ValidationError("country_codes must be a collection", field="country_codes")
        codes = tuple(self.country_codes)
        if not codes:
            raise ValidationError("At least one country is required", field="country_codes")
        normalized: set[str] = set()
        for raw in codes:
            try:
                normalized.add(CountryCode(raw).value)
            except (TypeError, ValueError) as e:
                raise ValidationError(str(e), field="country_codes") from e
        object.__setattr__(self, "country_codes", frozenset(normalized))

        if not self.service_id or not str(self.service_id).strip():
            raise ValidationError("service_id is required", field="service_id")
        object.__setattr__(self, "service_id", str(self.service_id).strip())

        if isinstance(self.transaction_volume, bool) or not isinstance(self.transaction_volume, int):
            raise ValidationError(
                f"transaction_volume must be an integer, got {type(self.transaction_volume).__name__}",
                field="transaction_volume",
            )
        if self.transaction_volume < 0:
            raise ValidationError(
                f"transaction_volume must be >= 0, got {self.transaction_volume}",
                field="transaction_volume",
            )

        try:
            frequency = FilingFrequency.parse(self.filing_frequency)
        except ValueError as e:
            raise ValidationError(str(e), field="filing_frequency") from e
        object.__setattr__(self, "filing_frequency", frequency)

        object.__setattr__(
            self,
            "additional_service_ids",
            frozenset(str(s).strip() for s in self.additional_service_ids),
        )

        if self.currency_code is not None:
            object.__setattr__(self, "currency_code", CurrencyRegistry.validate(self.currency_code))

    @property
    def sorted_country_codes(self) -> tuple[str, ...]:
        return tuple(sorted(self.country_codes))

    def normalized(self, *, as_of: date, default_currency: str) -> PricingRequest:
        """Resolve the effective date and currency; other fields are already canonical."""
        return replace(
            self,
            as_of_date=self.as_of_date or as_of,
            currency_code=self.currency_code or default_currency,
        )

    def to_dict(self) -> dict[str, Any]:
        """Canonical dict form; sets become sorted lists."""
        return {
            "country_codes": list(self.sorted_country_codes),
            "service_id": self.service_id,
            "transaction_volume": self.transaction_volume,
            "filing_frequency": self.filing_frequency.value,
            "additional_service_ids": sorted(self.additional_service_ids),
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "currency_code": self.currency_code,
        }


# ---------------------------------------------------------------------------
# Result lines
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RuleAdjustment:
    """The delta one rule contributed to a country subtotal."""

    rule_id: str
    rule_type: RuleType
    delta: Money
    description: str = ""


@dataclass(frozen=True, slots=True)
class CountryCalculationResult:
    """
    Per-country line of an estimate.

    ``subtotal`` is the displayed (rounded) value of base_cost plus all
    rule deltas.
    """

    country_code: str
    base_cost: Money
    rule_adjustments: tuple[RuleAdjustment, ...]
    subtotal: Money

    def __post_init__(self) -> None:
        object.__setattr__(self, "rule_adjustments", tuple(self.rule_adjustments))
        currency = self.base_cost.currency
        for money in (self.subtotal, *(a.delta for a in self.rule_adjustments)):
            if money.currency != currency:
                raise CurrencyMismatchError(currency.code, money.currency.code)

    @property
    def currency(self) -> Currency:
        return self.base_cost.currency

    @property
    def adjustment_total(self) -> Money:
        total = Money.zero(self.currency)
        for adjustment in self.rule_adjustments:
            total = total + adjustment.delta
        return total


class DiscountKind(str, Enum):
    VOLUME = "volume"
    MULTI_COUNTRY = "multi_country"


@dataclass(frozen=True, slots=True)
class DiscountLine:
    """A discount line; ``amount`` is always zero or negative."""

    name: str
    amount: Money
    percentage: Decimal = Decimal("0")
    kind: DiscountKind = DiscountKind.VOLUME

    def __post_init__(self) -> None:
        if self.amount.amount > 0:
            raise ValueError(f"Discount {self.name} must not be positive, got {self.amount}")


class TraceOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class RuleTraceEntry:
    """One rule's fate during an explained calculation."""

    country_code: str
    rule_id: str
    rule_type: RuleType
    outcome: TraceOutcome
    reason: str = ""
    expression: str = ""
    value: Decimal | None = None
    subtotal_after: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "country_code": self.country_code,
            "rule_id": self.rule_id,
            "rule_type": self.rule_type.value,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "expression": self.expression,
            "value": str(self.value) if self.value is not None else None,
            "subtotal_after": str(self.subtotal_after) if self.subtotal_after is not None else None,
        }


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


def _sum(values: Iterable[Money], currency: Currency) -> Money:
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


@dataclass(frozen=True)
class PricingResult:
    """
    An itemized, immutable cost estimate.

    Contract:
        total_cost == sum(country subtotals) + sum(additional service costs)
        + sum(discount lines), exactly. Every Money shares ``currency``.

    Guarantees:
        - country_results iterates in ascending country code order
        - Mappings are read-only views
        - computed_at does not take part in equality
    """

    total_cost: Money
    country_results: Mapping[str, CountryCalculationResult]
    additional_service_costs: Mapping[str, Money]
    discounts: tuple[DiscountLine, ...]
    currency: Currency
    rule_set_version: str
    computed_at: datetime | None = field(default=None, compare=False)
    trace: tuple[RuleTraceEntry, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        object.__setattr__(
            self,
            "country_results",
            MappingProxyType({code: self.country_results[code] for code in sorted(self.country_results)}),
        )
        object.__setattr__(
            self,
            "additional_service_costs",
            MappingProxyType(
                {sid: self.additional_service_costs[sid] for sid in sorted(self.additional_service_costs)}
            ),
        )
        object.__setattr__(self, "discounts", tuple(self.discounts))
        object.__setattr__(self, "trace", tuple(self.trace))

        for money in self._all_money():
            if money.currency != self.currency:
                raise CurrencyMismatchError(self.currency.code, money.currency.code)

        expected = self.subtotal_total + self.additional_total + self.discount_total
        if expected.amount != self.total_cost.amount:
            raise ValueError(
                f"total_cost {self.total_cost} does not equal the sum of its lines {expected}"
            )

    def _all_money(self) -> Iterable[Money]:
        yield self.total_cost
        for result in self.country_results.values():
            yield result.base_cost
            yield result.subtotal
            for adjustment in result.rule_adjustments:
                yield adjustment.delta
        yield from self.additional_service_costs.values()
        for discount in self.discounts:
            yield discount.amount

    @property
    def subtotal_total(self) -> Money:
        return _sum((r.subtotal for r in self.country_results.values()), self.currency)

    @property
    def additional_total(self) -> Money:
        return _sum(self.additional_service_costs.values(), self.currency)

    @property
    def discount_total(self) -> Money:
        return _sum((d.amount for d in self.discounts), self.currency)

    @property
    def pre_discount_total(self) -> Money:
        return self.subtotal_total + self.additional_total

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation; amounts are decimal strings."""
        return {
            "total_cost": str(self.total_cost.amount),
            "currency": self.currency.code,
            "rule_set_version": self.rule_set_version,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "country_results": {
                code: {
                    "base_cost": str(r.base_cost.amount),
                    "subtotal": str(r.subtotal.amount),
                    "rule_adjustments": [
                        {
                            "rule_id": a.rule_id,
                            "rule_type": a.rule_type.value,
                            "delta": str(a.delta.amount),
                            "description": a.description,
                        }
                        for a in r.rule_adjustments
                    ],
                }
                for code, r in self.country_results.items()
            },
            "additional_service_costs": {
                sid: str(cost.amount) for sid, cost in self.additional_service_costs.items()
            },
            "discounts": [
                {
                    "name": d.name,
                    "kind": d.kind.value,
                    "percentage": str(d.percentage),
                    "amount": str(d.amount.amount),
                }
                for d in self.discounts
            ],
            "trace": [entry.to_dict() for entry in self.trace],
        }
