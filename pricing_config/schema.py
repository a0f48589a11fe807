"""
PricingConfig schema.

The injected, human-authored pricing tables: volume tiers that scale the
base price, and the volume and multi-country discount tables. The loader
parses YAML into these frozen types; the engines only ever see the frozen
form.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeVar

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.exceptions import ConfigurationError, InvalidCurrencyError

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class VolumeTier:
    """Multiplier applied to the base price from ``min_volume`` upwards."""

    min_volume: int
    multiplier: Decimal
    label: str = ""


@dataclass(frozen=True)
class VolumeDiscount:
    """Percentage off the pre-discount total from ``min_volume`` upwards."""

    min_volume: int
    percentage: Decimal
    name: str = "Volume discount"


@dataclass(frozen=True)
class MultiCountryDiscount:
    """Percentage off the pre-discount total from ``min_countries`` upwards."""

    min_countries: int
    percentage: Decimal
    name: str = "Multi-country discount"


_T = TypeVar("_T")


def _highest_qualifying(table: Sequence[_T], value: int, bound: str) -> _T | None:
    """Entry with the highest lower bound that is <= value (tables are sorted)."""
    match = None
    for entry in table:
        if getattr(entry, bound) <= value:
            match = entry
        else:
            break
    return match


def _check_bounds(entries: Sequence[Any], bound: str, table: str) -> None:
    bounds = [getattr(e, bound) for e in entries]
    for b in bounds:
        if isinstance(b, bool) or not isinstance(b, int) or b < 0:
            raise ConfigurationError(f"{table}: {bound} must be a non-negative integer, got {b!r}")
    if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
        raise ConfigurationError(f"{table}: {bound} values must be strictly increasing, got {bounds}")


def _check_percentages(entries: Sequence[Any], table: str) -> None:
    for e in entries:
        if not isinstance(e.percentage, Decimal):
            raise ConfigurationError(f"{table}: percentage must be Decimal, got {type(e.percentage).__name__}")
        if not (Decimal("0") <= e.percentage <= _HUNDRED):
            raise ConfigurationError(f"{table}: percentage must be within [0, 100], got {e.percentage}")


@dataclass(frozen=True)
class PricingConfig:
    """
    Frozen pricing tables.

    Validated on construction:
        - at least one volume tier, and one starting at volume 0
        - strictly increasing tier/discount lower bounds
        - non-decreasing, positive tier multipliers
        - discount percentages within [0, 100]
        - a valid ISO 4217 default currency
    """

    tiers: tuple[VolumeTier, ...]
    volume_discounts: tuple[VolumeDiscount, ...] = ()
    multi_country_discounts: tuple[MultiCountryDiscount, ...] = ()
    default_currency: str = "EUR"
    name: str = "default"
    version: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiers", tuple(self.tiers))
        object.__setattr__(self, "volume_discounts", tuple(self.volume_discounts))
        object.__setattr__(self, "multi_country_discounts", tuple(self.multi_country_discounts))

        if not self.tiers:
            raise ConfigurationError("At least one volume tier is required")
        _check_bounds(self.tiers, "min_volume", "tiers")
        if self.tiers[0].min_volume != 0:
            raise ConfigurationError("The first volume tier must start at volume 0")
        multipliers = [t.multiplier for t in self.tiers]
        for m in multipliers:
            if not isinstance(m, Decimal) or m <= 0:
                raise ConfigurationError(f"tiers: multiplier must be a positive Decimal, got {m!r}")
        if any(later < earlier for earlier, later in zip(multipliers, multipliers[1:])):
            raise ConfigurationError(f"tiers: multipliers must be non-decreasing, got {multipliers}")

        _check_bounds(self.volume_discounts, "min_volume", "volume_discounts")
        _check_percentages(self.volume_discounts, "volume_discounts")
        _check_bounds(self.multi_country_discounts, "min_countries", "multi_country_discounts")
        _check_percentages(self.multi_country_discounts, "multi_country_discounts")

        try:
            currency = CurrencyRegistry.validate(self.default_currency)
        except InvalidCurrencyError as e:
            raise ConfigurationError(f"default_currency: {e}") from e
        object.__setattr__(self, "default_currency", currency)

    def tier_for(self, volume: int) -> VolumeTier:
        """The tier with the highest ``min_volume <= volume``."""
        tier = _highest_qualifying(self.tiers, volume, "min_volume")
        if tier is None:
            raise ConfigurationError(f"No volume tier covers volume {volume}")
        return tier

    def volume_discount_for(self, volume: int) -> VolumeDiscount | None:
        return _highest_qualifying(self.volume_discounts, volume, "min_volume")

    def multi_country_discount_for(self, country_count: int) -> MultiCountryDiscount | None:
        return _highest_qualifying(self.multi_country_discounts, country_count, "min_countries")

    def to_dict(self) -> dict[str, Any]:
        """Canonical form used for the configuration checksum."""
        return {
            "name": self.name,
            "version": self.version,
            "default_currency": self.default_currency,
            "tiers": [
                {"min_volume": t.min_volume, "multiplier": t.multiplier, "label": t.label}
                for t in self.tiers
            ],
            "volume_discounts": [
                {"min_volume": d.min_volume, "percentage": d.percentage, "name": d.name}
                for d in self.volume_discounts
            ],
            "multi_country_discounts": [
                {"min_countries": d.min_countries, "percentage": d.percentage, "name": d.name}
                for d in self.multi_country_discounts
            ],
        }
