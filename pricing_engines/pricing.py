"""
Pricing Engine - Compute an itemized filing cost estimate.

Applies the volume tier to the service base price, evaluates each country's
rules, adds the additional services once per request, and composes the
volume and multi-country discounts.

Pure functions with no I/O - references are resolved, converted to the
request currency and handed in by the caller.

Usage:
    from pricing_engines.pricing import PricingCalculator

    result = PricingCalculator().calculate(
        request=request,               # normalized PricingRequest
        base_price=Money.of("800", "EUR"),
        service=service,
        countries={"DE": germany, "GB": united_kingdom},
        additional_costs={},
        snapshot=snapshot,
        config=config,
    )
    print(result.total_cost)  # Money: 2175.50 EUR

Rounding:
    Nothing is rounded inside a rule chain. Country subtotals, additional
    service costs and discount lines are rounded half-up to the currency's
    precision once, when they become displayed lines; the total is the
    exact sum of those lines.
"""

from __future__ import annotations

import contextvars
import os
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal

from pricing_config.schema import PricingConfig
from pricing_engines.rule_engine import CountryRuleOutcome, RuleEngine, RuleParameters
from pricing_engines.tracer import traced_engine
from pricing_kernel.domain.catalog import Country, Service
from pricing_kernel.domain.pricing import (
    CountryCalculationResult,
    DiscountKind,
    DiscountLine,
    PricingRequest,
    PricingResult,
)
from pricing_kernel.domain.rules import RuleSnapshot
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import CurrencyMismatchError
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")

_HUNDRED = Decimal("100")


def volume_scaled_base(base_price: Money, transaction_volume: int, config: PricingConfig) -> Money:
    """Base price times the multiplier of the tier covering the volume."""
    tier = config.tier_for(transaction_volume)
    return base_price * tier.multiplier


def compute_discounts(
    pre_discount_total: Money,
    transaction_volume: int,
    country_count: int,
    config: PricingConfig,
) -> tuple[DiscountLine, ...]:
    """
    Volume and multi-country discounts, each a percentage of the
    pre-discount total, rounded and stored as negative amounts.

    A pre-discount total of zero or less, which credit rules can produce,
    earns no discount.
    """
    if pre_discount_total.amount <= 0:
        return ()

    lines: list[DiscountLine] = []

    volume = config.volume_discount_for(transaction_volume)
    if volume is not None and volume.percentage > 0:
        lines.append(
            DiscountLine(
                name=volume.name,
                amount=-(pre_discount_total * volume.percentage / _HUNDRED).round(),
                percentage=volume.percentage,
                kind=DiscountKind.VOLUME,
            )
        )

    multi = config.multi_country_discount_for(country_count)
    if multi is not None and multi.percentage > 0:
        lines.append(
            DiscountLine(
                name=multi.name,
                amount=-(pre_discount_total * multi.percentage / _HUNDRED).round(),
                percentage=multi.percentage,
                kind=DiscountKind.MULTI_COUNTRY,
            )
        )

    return tuple(lines)


class PricingCalculator:
    """
    Compute pricing results.

    Pure functions - no I/O, no database access, no wall clock.
    ``computed_at`` is supplied by the caller.

    Handles:
        - Tiered volume scaling of the base price
        - Per-country rule evaluation, fanned out across threads
        - Additional services charged once per request
        - Volume and multi-country discounts against the pre-discount total
    """

    def __init__(self, rule_engine: RuleEngine | None = None, max_workers: int | None = None):
        self._rule_engine = rule_engine or RuleEngine()
        self._max_workers = max_workers

    @property
    def rule_engine(self) -> RuleEngine:
        return self._rule_engine

    @traced_engine("pricing", "1.0", fingerprint_fields=("request",))
    def calculate(
        self,
        *,
        request: PricingRequest,
        base_price: Money,
        service: Service,
        countries: Mapping[str, Country],
        additional_costs: Mapping[str, Money],
        snapshot: RuleSnapshot,
        config: PricingConfig,
        computed_at: datetime | None = None,
        explain: bool = False,
    ) -> PricingResult:
        """
        Calculate an estimate for a normalized request.

        Args:
            request: Request with as_of_date and currency_code resolved
            base_price: Service base price in the request currency
            service: The resolved service (type and complexity are bound)
            countries: Resolved countries keyed by code
            additional_costs: Additional service costs in the request currency
            snapshot: The calculation's single rule snapshot
            config: Volume tiers and discount tables
            computed_at: Timestamp stamped on the result
            explain: Include the per-rule trace

        Returns:
            PricingResult whose total equals the sum of its displayed lines

        Raises:
            RuleExpressionError: If a rule fails for any country
            CurrencyMismatchError: If an input is not in the request currency
        """
        if request.as_of_date is None or request.currency_code is None:
            raise ValueError("PricingCalculator requires a normalized request")

        t0 = time.monotonic()
        currency = Currency(request.currency_code)
        codes = request.sorted_country_codes

        logger.info("pricing_calculation_started", extra={
            "country_codes": list(codes),
            "service_id": service.service_id,
            "transaction_volume": request.transaction_volume,
            "filing_frequency": request.filing_frequency.value,
            "currency": currency.code,
            "rule_set_version": snapshot.version,
            "explain": explain,
        })

        if base_price.currency != currency:
            raise CurrencyMismatchError(currency.code, base_price.currency.code)
        tier = config.tier_for(request.transaction_volume)
        base_cost = volume_scaled_base(base_price, request.transaction_volume, config)
        logger.debug("volume_tier_applied", extra={
            "tier_label": tier.label,
            "tier_min_volume": tier.min_volume,
            "multiplier": str(tier.multiplier),
            "base_cost": str(base_cost.amount),
        })

        displayed_additional = {sid: cost.round() for sid, cost in additional_costs.items()}
        additional_total = Money.zero(currency)
        for cost in displayed_additional.values():
            additional_total = additional_total + cost

        parameters = RuleParameters(
            as_of_date=request.as_of_date,
            transaction_volume=request.transaction_volume,
            filing_frequency=request.filing_frequency,
            service_type=service.service_type,
            complexity_level=service.complexity_level,
            country_count=len(codes),
            additional_services_total=additional_total.amount,
        )

        outcomes = self._evaluate_countries(codes, countries, snapshot, parameters, base_cost, explain)

        country_results = {
            outcome.country_code: CountryCalculationResult(
                country_code=outcome.country_code,
                base_cost=outcome.base_cost,
                rule_adjustments=outcome.adjustments,
                subtotal=outcome.subtotal.round(),
            )
            for outcome in outcomes
        }

        pre_discount = additional_total
        for result in country_results.values():
            pre_discount = pre_discount + result.subtotal

        discounts = compute_discounts(pre_discount, request.transaction_volume, len(codes), config)
        total = pre_discount
        for line in discounts:
            total = total + line.amount
            logger.debug("discount_applied", extra={
                "discount_name": line.name,
                "discount_kind": line.kind.value,
                "percentage": str(line.percentage),
                "amount": str(line.amount.amount),
            })

        trace = tuple(entry for outcome in outcomes for entry in outcome.trace) if explain else ()

        result = PricingResult(
            total_cost=total,
            country_results=country_results,
            additional_service_costs=displayed_additional,
            discounts=discounts,
            currency=currency,
            rule_set_version=snapshot.version,
            computed_at=computed_at,
            trace=trace,
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("pricing_calculation_completed", extra={
            "total_cost": str(result.total_cost.amount),
            "pre_discount_total": str(pre_discount.amount),
            "discount_count": len(discounts),
            "country_count": len(codes),
            "duration_ms": duration_ms,
        })
        return result

    def _evaluate_countries(
        self,
        codes: tuple[str, ...],
        countries: Mapping[str, Country],
        snapshot: RuleSnapshot,
        parameters: RuleParameters,
        base_cost: Money,
        explain: bool,
    ) -> list[CountryRuleOutcome]:
        """Evaluate every country; results and the first error follow code order."""

        def run(code: str) -> CountryRuleOutcome:
            return self._rule_engine.evaluate(
                country_code=code,
                snapshot=snapshot,
                parameters=parameters,
                base_cost=base_cost,
                vat_rate=countries[code].standard_vat_rate,
                explain=explain,
            )

        if len(codes) == 1:
            return [run(codes[0])]

        workers = min(len(codes), self._max_workers or os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pricing-country") as pool:
            # Each task runs in a copy of the caller's context so log fields propagate
            futures = [pool.submit(contextvars.copy_context().run, run, code) for code in codes]
            return [future.result() for future in futures]
