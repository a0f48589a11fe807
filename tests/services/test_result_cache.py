"""Tests for the ResultCache, its key builder and the in-memory store."""

import threading
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from pricing_kernel.domain.catalog import FilingFrequency
from pricing_kernel.domain.clock import DeterministicClock
from pricing_kernel.domain.pricing import CountryCalculationResult, PricingRequest, PricingResult
from pricing_kernel.domain.values import Currency, Money
from pricing_services.result_cache import (
    CacheEntry,
    CacheStore,
    InMemoryCacheStore,
    ResultCache,
    build_cache_key,
)


def _result(version="v1", amount="100") -> PricingResult:
    return PricingResult(
        total_cost=Money.of(amount, "EUR"),
        country_results={
            "DE": CountryCalculationResult("DE", Money.of(amount, "EUR"), (), Money.of(amount, "EUR")),
        },
        additional_service_costs={},
        discounts=(),
        currency=Currency("EUR"),
        rule_set_version=version,
    )


def _request(**overrides) -> PricingRequest:
    fields = dict(
        country_codes=frozenset({"DE", "GB"}),
        service_id="vat-return",
        transaction_volume=150,
        filing_frequency=FilingFrequency.MONTHLY,
        as_of_date=date(2024, 3, 1),
        currency_code="EUR",
    )
    fields.update(overrides)
    return PricingRequest(**fields)


class TestBuildCacheKey:
    def test_version_suffix(self):
        key = build_cache_key(_request(), "checksum", "abc123")
        digest, version = key.split(":")
        assert version == "abc123"
        assert len(digest) == 64

    def test_equivalent_requests_equal_keys(self):
        a = build_cache_key(_request(country_codes=frozenset({"DE", "GB"})), "c", "v")
        b = build_cache_key(_request(country_codes=["gb", "de"]), "c", "v")
        assert a == b

    @pytest.mark.parametrize(
        "overrides",
        [
            {"transaction_volume": 151},
            {"filing_frequency": FilingFrequency.QUARTERLY},
            {"as_of_date": date(2024, 3, 2)},
            {"currency_code": "GBP"},
            {"additional_service_ids": frozenset({"fiscal-rep"})},
            {"service_id": "vat-complex"},
        ],
    )
    def test_any_field_changes_key(self, overrides):
        assert build_cache_key(_request(), "c", "v") != build_cache_key(_request(**overrides), "c", "v")

    def test_config_checksum_changes_key(self):
        assert build_cache_key(_request(), "c1", "v") != build_cache_key(_request(), "c2", "v")

    def test_requires_normalized_request(self):
        with pytest.raises(ValueError):
            build_cache_key(_request(as_of_date=None), "c", "v")


class TestResultCache:
    def setup_method(self):
        self.clock = DeterministicClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
        self.cache = ResultCache(clock=self.clock)

    def test_miss_then_hit(self):
        result = _result()
        assert self.cache.get("k:v1") is None
        self.cache.put("k:v1", result, "v1")
        assert self.cache.get("k:v1") is result

    def test_put_rejects_version_mismatch(self):
        with pytest.raises(ValueError):
            self.cache.put("k:v2", _result("v1"), "v2")

    def test_invalidate_by_version(self):
        self.cache.put("a:v1", _result("v1"), "v1")
        self.cache.put("b:v1", _result("v1", "200"), "v1")
        self.cache.put("a:v2", _result("v2"), "v2")

        assert self.cache.invalidate_by_rule_set_version("v1") == 2
        assert self.cache.get("a:v1") is None
        assert self.cache.get("a:v2") is not None

    def test_invalidate_unknown_version(self):
        assert self.cache.invalidate_by_rule_set_version("nope") == 0

    def test_clear(self):
        self.cache.put("a:v1", _result(), "v1")
        self.cache.clear()
        assert self.cache.get("a:v1") is None


class TestResultCacheTtl:
    """TTL measured with the injected clock."""

    def setup_method(self):
        self.clock = DeterministicClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
        self.cache = ResultCache(clock=self.clock, ttl_seconds=60)

    def test_fresh_within_ttl(self):
        self.cache.put("k:v1", _result(), "v1")
        self.clock.advance(59)
        assert self.cache.get("k:v1") is not None

    def test_expired_at_ttl(self):
        self.cache.put("k:v1", _result(), "v1")
        self.clock.advance(60)
        assert self.cache.get("k:v1") is None
        assert len(self.cache.store) == 0

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            ResultCache(ttl_seconds=0)


class TestInMemoryCacheStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryCacheStore(), CacheStore)

    def test_delete_missing_is_noop(self):
        InMemoryCacheStore().delete("missing")

    def test_concurrent_writes(self):
        store = InMemoryCacheStore()
        entry = CacheEntry(_result(), "v1", datetime(2024, 1, 1, tzinfo=UTC))

        def writer(offset):
            for i in range(200):
                store.set(f"{offset}-{i}", entry)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store) == 1600
