"""
pricing_services.pricing_engine -- Estimate orchestration.

Responsibility:
    Validates a PricingRequest against reference data, takes one rule
    snapshot, consults the result cache, converts prices into the request
    currency and hands everything to the pure PricingCalculator.

Architecture position:
    Services -- the only layer that reads repositories or the clock. The
    calculator and rule engine below it are pure.

Invariants enforced:
    - Exactly one RuleSnapshot is read per calculation; every country of
      the request is evaluated against it.
    - Validation completes before any computation starts.
    - A cached result is returned only for the same normalized request,
      configuration checksum and rule set version.
    - ``explain`` is never served from or written to the cache.

Failure modes (checked in this order):
    - UnknownReferenceError(kind="country") for an unresolvable country.
    - ValidationError for an inactive country.
    - UnknownReferenceError(kind="service") for an unresolvable service.
    - UnknownReferenceError(kind="additional_service") for an unresolvable
      additional service.
    - ValidationError for a filing frequency some country does not support.
    - CurrencyMismatchError when a price is in another currency and no
      converter is configured.
    - RepositoryError wrapping any failure raised by a repository or the
      converter.
    - RuleExpressionError from the rule engine.

Usage:
    engine = PricingEngine(
        repositories=PricingRepositories(
            countries=InMemoryCountryRepository(countries),
            services=InMemoryServiceRepository(services),
            additional_services=InMemoryAdditionalServiceRepository(extras),
            rules=InMemoryRuleRepository(rules),
        ),
        config=get_pricing_config(),
        cache=ResultCache(),
    )
    result = engine.calculate(request)
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, TypeVar
from uuid import uuid4

from pricing_config import PricingConfig, compute_checksum
from pricing_engines.pricing import PricingCalculator
from pricing_kernel.domain.catalog import AdditionalService, Country, Service
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.pricing import PricingRequest, PricingResult
from pricing_kernel.domain.rules import RuleSnapshot
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    PricingCoreError,
    RepositoryError,
    UnknownReferenceError,
    ValidationError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_services.repositories import (
    AdditionalServiceRepository,
    CountryRepository,
    CurrencyConverter,
    RuleRepository,
    ServiceRepository,
)
from pricing_services.result_cache import ResultCache, build_cache_key

logger = get_logger("services.pricing_engine")

T = TypeVar("T")


@dataclass(frozen=True)
class PricingRepositories:
    """The reference data sources one engine reads."""

    countries: CountryRepository
    services: ServiceRepository
    additional_services: AdditionalServiceRepository
    rules: RuleRepository


@dataclass(frozen=True)
class _ResolvedReferences:
    countries: dict[str, Country]
    service: Service
    additional_services: dict[str, AdditionalService]


class PricingEngine:
    """
    Entry point for filing cost estimates.

    Contract:
        Stateless between calls apart from the optional cache; safe to share
        across threads when the injected repositories are.
    """

    def __init__(
        self,
        repositories: PricingRepositories,
        config: PricingConfig,
        *,
        clock: Clock | None = None,
        cache: ResultCache | None = None,
        converter: CurrencyConverter | None = None,
        calculator: PricingCalculator | None = None,
    ):
        self._repositories = repositories
        self._config = config
        self._config_checksum = compute_checksum(config)
        self._clock = clock or SystemClock()
        self._cache = cache
        self._converter = converter
        self._calculator = calculator or PricingCalculator()

    @property
    def config(self) -> PricingConfig:
        return self._config

    @property
    def config_checksum(self) -> str:
        return self._config_checksum

    @property
    def cache(self) -> ResultCache | None:
        return self._cache

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def calculate(self, request: PricingRequest) -> PricingResult:
        """
        Compute an itemized estimate, serving it from the cache when an
        identical request was priced against the same rule set version.
        """
        return self._run(request, explain=False)

    def explain(self, request: PricingRequest) -> PricingResult:
        """
        Compute an estimate with the full per-rule trace.

        Skipped rules appear in the trace with the reason they were skipped.
        The cache is bypassed in both directions.
        """
        return self._run(request, explain=True)

    def compare(self, requests: Iterable[PricingRequest]) -> tuple[PricingResult, ...]:
        """
        Price several scenarios independently, in the order given.

        Each request reads its own rule snapshot; the first failure
        propagates and no partial tuple is returned.
        """
        requests = tuple(requests)
        logger.info("pricing_comparison_started", extra={"scenario_count": len(requests)})
        results = tuple(self.calculate(r) for r in requests)
        logger.info("pricing_comparison_completed", extra={
            "scenario_count": len(results),
            "totals": [str(r.total_cost.amount) for r in results],
        })
        return results

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _run(self, request: PricingRequest, *, explain: bool) -> PricingResult:
        t0 = time.monotonic()
        normalized = request.normalized(
            as_of=self._clock.today(),
            default_currency=self._config.default_currency,
        )
        as_of = normalized.as_of_date
        currency = Currency(normalized.currency_code)

        with LogContext.bind(request_id=str(uuid4())):
            logger.info("pricing_request_received", extra={
                "country_codes": list(normalized.sorted_country_codes),
                "service_id": normalized.service_id,
                "as_of_date": as_of.isoformat(),
                "currency": currency.code,
                "explain": explain,
            })

            references = self._resolve(normalized, as_of)
            snapshot = self._snapshot(normalized, as_of)

            with LogContext.bind(rule_set_version=snapshot.version):
                cache_key = None
                if self._cache is not None and not explain:
                    cache_key = build_cache_key(normalized, self._config_checksum, snapshot.version)
                    cached = self._cache.get(cache_key)
                    if cached is not None:
                        logger.info("cache_hit", extra={"total_cost": str(cached.total_cost.amount)})
                        return cached
                    logger.info("cache_miss")

                base_price = self._convert(references.service.base_price, currency, as_of)
                additional_costs = {
                    sid: self._convert(svc.cost, currency, as_of)
                    for sid, svc in sorted(references.additional_services.items())
                }

                result = self._calculator.calculate(
                    request=normalized,
                    base_price=base_price,
                    service=references.service,
                    countries=references.countries,
                    additional_costs=additional_costs,
                    snapshot=snapshot,
                    config=self._config,
                    computed_at=self._clock.now(),
                    explain=explain,
                )

                if cache_key is not None:
                    self._cache.put(cache_key, result, snapshot.version)

                logger.info("pricing_request_completed", extra={
                    "total_cost": str(result.total_cost.amount),
                    "currency": currency.code,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                })
                return result

    def _resolve(self, request: PricingRequest, as_of: date) -> _ResolvedReferences:
        countries: dict[str, Country] = {}
        for code in request.sorted_country_codes:
            country = self._fetch("countries", code, self._repositories.countries.get, code, as_of)
            if country is None:
                self._reject("unknown_country", code)
                raise UnknownReferenceError("country", code)
            countries[code] = country

        inactive = [code for code, country in countries.items() if not country.is_active]
        if inactive:
            self._reject("inactive_country", ", ".join(inactive))
            raise ValidationError(
                f"Countries not active: {', '.join(inactive)}",
                field="country_codes",
                errors=[f"Country {code} is not active" for code in inactive],
            )

        service = self._fetch("services", request.service_id, self._repositories.services.get, request.service_id)
        if service is None:
            self._reject("unknown_service", request.service_id)
            raise UnknownReferenceError("service", request.service_id)

        additional: dict[str, AdditionalService] = {}
        for sid in sorted(request.additional_service_ids):
            extra = self._fetch("additional_services", sid, self._repositories.additional_services.get, sid)
            if extra is None:
                self._reject("unknown_additional_service", sid)
                raise UnknownReferenceError("additional_service", sid)
            additional[sid] = extra

        unsupported = [
            code for code, country in countries.items()
            if not country.supports(request.filing_frequency)
        ]
        if unsupported:
            self._reject("unsupported_filing_frequency", ", ".join(unsupported))
            raise ValidationError(
                f"Filing frequency {request.filing_frequency.value} not supported by: "
                f"{', '.join(unsupported)}",
                field="filing_frequency",
                errors=[
                    f"Country {code} does not support {request.filing_frequency.value} filing"
                    for code in unsupported
                ],
            )

        return _ResolvedReferences(countries=countries, service=service, additional_services=additional)

    def _snapshot(self, request: PricingRequest, as_of: date) -> RuleSnapshot:
        codes = request.sorted_country_codes
        snapshot = self._fetch("rules", ",".join(codes), self._repositories.rules.snapshot, codes, as_of)
        logger.debug("rule_snapshot_taken", extra={
            "rule_set_version": snapshot.version,
            "rule_count": len(snapshot),
        })
        return snapshot

    def _convert(self, money: Money, currency: Currency, as_of: date) -> Money:
        if money.currency == currency:
            return money
        if self._converter is None:
            logger.error("currency_conversion_unavailable", extra={
                "from_currency": money.currency.code,
                "to_currency": currency.code,
            })
            raise CurrencyMismatchError(currency.code, money.currency.code)
        converted = self._fetch(
            "currency_converter",
            f"{money.currency.code}->{currency.code}",
            self._converter.convert,
            money,
            currency.code,
            as_of,
        )
        if converted.currency != currency:
            raise CurrencyMismatchError(currency.code, converted.currency.code)
        logger.debug("currency_converted", extra={
            "from_currency": money.currency.code,
            "to_currency": currency.code,
            "amount": str(money.amount),
            "converted_amount": str(converted.amount),
        })
        return converted

    @staticmethod
    def _fetch(repository: str, reference: str, fn: Callable[..., T], *args: Any) -> T:
        """Call a repository; failures that are not pricing errors become RepositoryError."""
        try:
            return fn(*args)
        except PricingCoreError:
            raise
        except Exception as exc:
            logger.error("repository_failed", extra={
                "repository": repository,
                "reference": reference,
                "error_type": type(exc).__name__,
                "error": str(exc),
            })
            raise RepositoryError(repository, reference, exc) from exc

    @staticmethod
    def _reject(reason: str, reference: str) -> None:
        logger.warning("pricing_request_rejected", extra={"reason": reason, "reference": reference})
