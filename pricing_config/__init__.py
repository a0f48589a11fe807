"""
pricing_config -- public entrypoint for pricing configuration.

Responsibility:
    ``get_pricing_config()`` returns the frozen ``PricingConfig`` (volume
    tiers and discount tables) that callers inject into the pricing engine.
    Without a path it loads the packaged ``sets/default.yaml``.

Architecture position:
    Configuration -- sits above ``pricing_kernel`` and below
    ``pricing_services``. The kernel and the engines never import from this
    package; they receive a ``PricingConfig`` instance.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- the file does not describe a valid config.

Every successful load emits a ``PRICING_CONFIG_TRACE`` log entry with the
config name, version and checksum, tying each estimate's cache key back to
the exact tables that produced it.
"""

from __future__ import annotations

from pathlib import Path

from pricing_config.loader import compute_checksum, load_pricing_config, parse_pricing_config
from pricing_config.schema import MultiCountryDiscount, PricingConfig, VolumeDiscount, VolumeTier
from pricing_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_pricing_config(path: Path | str | None = None) -> PricingConfig:
    """
    Load the pricing configuration.

    Args:
        path: YAML file to load. Defaults to the packaged default set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not a valid pricing configuration.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_pricing_config(config_path)

    _logger.info(
        "PRICING_CONFIG_TRACE",
        extra={
            "trace_type": "PRICING_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": compute_checksum(config),
            "source": str(config_path),
            "tier_count": len(config.tiers),
            "volume_discount_count": len(config.volume_discounts),
            "multi_country_discount_count": len(config.multi_country_discounts),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "MultiCountryDiscount",
    "PricingConfig",
    "VolumeDiscount",
    "VolumeTier",
    "compute_checksum",
    "get_pricing_config",
    "load_pricing_config",
    "parse_pricing_config",
]
