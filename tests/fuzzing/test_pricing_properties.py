"""
Hypothesis-based property tests for the pricing engine.

Properties checked over generated requests:
- Totals conserve: total = country subtotals + additional services + discounts
- Discounts never exceed the pre-discount total
- Totals are non-decreasing in transaction volume when no volume discount applies
- Identical requests give equal results, with or without the cache
- explain() reports the same figures as calculate()
"""

from datetime import date

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from pricing_kernel.domain.catalog import FilingFrequency
from pricing_kernel.domain.pricing import PricingRequest
from pricing_kernel.domain.values import Money
from pricing_services import PricingEngine

pytestmark = pytest.mark.property

fixture_settings = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

country_sets = st.sets(st.sampled_from(["DE", "GB", "FR"]), min_size=1)
volumes = st.integers(min_value=0, max_value=5000)
service_ids = st.sampled_from(["vat-return", "vat-complex"])
frequencies = st.sampled_from(list(FilingFrequency))
extras = st.sets(st.sampled_from(["fiscal-rep", "translation"]))
as_of_dates = st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31))


@st.composite
def pricing_requests(draw) -> PricingRequest:
    return PricingRequest(
        country_codes=frozenset(draw(country_sets)),
        service_id=draw(service_ids),
        transaction_volume=draw(volumes),
        filing_frequency=draw(frequencies),
        additional_service_ids=frozenset(draw(extras)),
        as_of_date=draw(as_of_dates),
        currency_code="EUR",
    )


class TestConservation:
    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_total_is_sum_of_lines(self, engine, pricing_request):
        result = engine.calculate(pricing_request)

        assert result.total_cost == result.subtotal_total + result.additional_total + result.discount_total
        for line in result.country_results.values():
            assert line.subtotal == (line.base_cost + line.adjustment_total).round()
        assert set(result.country_results) == pricing_request.country_codes

    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_discounts_bounded(self, repositories, discounted_config, deterministic_clock, pricing_request):
        engine = PricingEngine(repositories, discounted_config, clock=deterministic_clock)
        result = engine.calculate(pricing_request)

        assert all(d.amount.amount <= 0 for d in result.discounts)
        assert result.total_cost.amount >= 0
        assert -result.discount_total.amount <= result.pre_discount_total.amount

    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_amounts_rounded_to_currency(self, engine, pricing_request):
        result = engine.calculate(pricing_request)
        assert result.total_cost.amount == result.total_cost.round().amount
        assert result.total_cost.currency == Money.zero("EUR").currency


class TestMonotonicity:
    @fixture_settings
    @given(
        countries=country_sets,
        service_id=service_ids,
        low=volumes,
        step=st.integers(min_value=0, max_value=2000),
    )
    def test_total_non_decreasing_in_volume(self, engine, countries, service_id, low, step):
        def total(volume: int) -> Money:
            return engine.calculate(
                PricingRequest(
                    country_codes=frozenset(countries),
                    service_id=service_id,
                    transaction_volume=volume,
                    filing_frequency=FilingFrequency.MONTHLY,
                    as_of_date=date(2024, 3, 1),
                    currency_code="EUR",
                )
            ).total_cost

        assert total(low).amount <= total(low + step).amount


class TestDeterminism:
    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_uncached_engines_agree(self, repositories, pricing_config, deterministic_clock, pricing_request):
        first = PricingEngine(repositories, pricing_config, clock=deterministic_clock).calculate(pricing_request)
        deterministic_clock.advance(3600)
        second = PricingEngine(repositories, pricing_config, clock=deterministic_clock).calculate(pricing_request)
        assert first == second

    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_cached_result_equals_fresh(self, engine, repositories, pricing_config, deterministic_clock, pricing_request):
        cached = engine.calculate(pricing_request)
        fresh = PricingEngine(repositories, pricing_config, clock=deterministic_clock).calculate(pricing_request)
        assert cached == fresh

    @fixture_settings
    @given(pricing_request=pricing_requests())
    def test_explain_matches_calculate(self, engine, pricing_request):
        explained = engine.explain(pricing_request)
        calculated = engine.calculate(pricing_request)
        assert explained.total_cost == calculated.total_cost
        assert explained.country_results == calculated.country_results
