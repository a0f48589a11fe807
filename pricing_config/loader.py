"""
Configuration Loader (``pricing_config.loader``).

Responsibility
--------------
Loads a pricing YAML file and parses it into a frozen
``pricing_config.schema.PricingConfig``. The runtime entry point is
``pricing_config.get_pricing_config()``.

Recognized keys
---------------
Both camelCase and snake_case spellings are accepted::

    defaultCurrency: EUR
    tiers:
      - {minVolume: 0, multiplier: "1.00", label: "0-100"}
    volumeDiscount: {minVolume: 1001, percentage: "5"}          # single form
    volumeDiscounts: [{minVolume: 101, percentage: "5"}, ...]   # table form
    multiCountryDiscount: {minCountries: 2, percentage: "5"}    # single form
    multiCountryDiscounts: [{minCountries: 3, percentage: "10"}, ...]

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid fields  -> ``ConfigurationError`` naming the source.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pricing_config.schema import MultiCountryDiscount, PricingConfig, VolumeDiscount, VolumeTier
from pricing_kernel.exceptions import ConfigurationError
from pricing_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _get(data: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from YAML (quoted string preferred; ints and floats tolerated)."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"{field_name}: expected a number, got {value!r}") from e


def _parse_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{field_name}: expected an integer, got {value!r}")
    return value


def _required(entry: dict[str, Any], camel: str, snake: str, table: str) -> Any:
    value = _get(entry, camel, snake)
    if value is None:
        raise ConfigurationError(f"{table}: missing required key {camel!r}")
    return value


def parse_tier(entry: dict[str, Any]) -> VolumeTier:
    return VolumeTier(
        min_volume=_parse_int(_required(entry, "minVolume", "min_volume", "tiers"), "tiers.minVolume"),
        multiplier=parse_decimal(_required(entry, "multiplier", "multiplier", "tiers"), "tiers.multiplier"),
        label=str(entry.get("label", "")),
    )


def parse_volume_discount(entry: dict[str, Any]) -> VolumeDiscount:
    return VolumeDiscount(
        min_volume=_parse_int(
            _required(entry, "minVolume", "min_volume", "volumeDiscount"), "volumeDiscount.minVolume"
        ),
        percentage=parse_decimal(
            _required(entry, "percentage", "percentage", "volumeDiscount"), "volumeDiscount.percentage"
        ),
        name=str(entry.get("name", "Volume discount")),
    )


def parse_multi_country_discount(entry: dict[str, Any]) -> MultiCountryDiscount:
    return MultiCountryDiscount(
        min_countries=_parse_int(
            _required(entry, "minCountries", "min_countries", "multiCountryDiscount"),
            "multiCountryDiscount.minCountries",
        ),
        percentage=parse_decimal(
            _required(entry, "percentage", "percentage", "multiCountryDiscount"),
            "multiCountryDiscount.percentage",
        ),
        name=str(entry.get("name", "Multi-country discount")),
    )


def _entries(data: dict[str, Any], single: tuple[str, str], table: tuple[str, str]) -> list[dict[str, Any]]:
    """Collect a discount table given either as one object or as a list."""
    entries: list[dict[str, Any]] = []
    one = _get(data, *single)
    if one is not None:
        if not isinstance(one, dict):
            raise ConfigurationError(f"{single[0]} must be a mapping")
        entries.append(one)
    many = _get(data, *table)
    if many is not None:
        if not isinstance(many, list):
            raise ConfigurationError(f"{table[0]} must be a list")
        entries.extend(many)
    return entries


def parse_pricing_config(data: dict[str, Any], source: str | None = None) -> PricingConfig:
    """
    Parse a ``PricingConfig`` from a dict.

    Table entries may appear in any order; they are sorted by lower bound
    before validation.

    Raises:
        ConfigurationError: if required keys are missing or values invalid.
    """
    try:
        raw_tiers = data.get("tiers")
        if not isinstance(raw_tiers, list) or not raw_tiers:
            raise ConfigurationError("tiers must be a non-empty list")
        tiers = sorted((parse_tier(t) for t in raw_tiers), key=lambda t: t.min_volume)

        volume_discounts = sorted(
            (
                parse_volume_discount(e)
                for e in _entries(data, ("volumeDiscount", "volume_discount"), ("volumeDiscounts", "volume_discounts"))
            ),
            key=lambda d: d.min_volume,
        )
        multi_country_discounts = sorted(
            (
                parse_multi_country_discount(e)
                for e in _entries(
                    data,
                    ("multiCountryDiscount", "multi_country_discount"),
                    ("multiCountryDiscounts", "multi_country_discounts"),
                )
            ),
            key=lambda d: d.min_countries,
        )

        return PricingConfig(
            tiers=tuple(tiers),
            volume_discounts=tuple(volume_discounts),
            multi_country_discounts=tuple(multi_country_discounts),
            default_currency=str(_get(data, "defaultCurrency", "default_currency", "EUR")),
            name=str(data.get("name", "default")),
            version=_parse_int(data.get("version", 1), "version"),
        )
    except ConfigurationError as e:
        if source is None or e.source is not None:
            raise
        raise ConfigurationError(str(e), source=source) from e


def load_pricing_config(path: Path) -> PricingConfig:
    """Load and parse a pricing configuration YAML file."""
    return parse_pricing_config(load_yaml_file(path), source=str(path))


def compute_checksum(config: PricingConfig) -> str:
    """
    Deterministic SHA-256 of the configuration's canonical form.

    Semantically equal configurations (e.g. ``1.25`` vs ``"1.250"``) yield
    the same checksum.
    """
    return hash_payload(config.to_dict())
