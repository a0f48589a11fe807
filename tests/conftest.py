"""
Pytest fixtures for the pricing core test suite.

Provides:
- Structured logging configured for the session, plus a log capture fixture
- A deterministic clock
- A reference catalog (DE, GB, FR, inactive AT) and rule set
- An in-memory PricingEngine wired to those fixtures
- An in-memory SQLite database for the SQLAlchemy adapters
"""

import json
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from pricing_config import PricingConfig, VolumeTier, MultiCountryDiscount, VolumeDiscount
from pricing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from pricing_kernel.domain.catalog import (
    AdditionalService,
    Country,
    FilingFrequency,
    Service,
    ServiceType,
)
from pricing_kernel.domain.clock import DeterministicClock
from pricing_kernel.domain.pricing import PricingRequest
from pricing_kernel.domain.rules import Rule, RuleCondition, RuleType
from pricing_kernel.domain.values import Money
from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pricing_services import (
    InMemoryAdditionalServiceRepository,
    InMemoryCountryRepository,
    InMemoryRuleRepository,
    InMemoryServiceRepository,
    PricingEngine,
    PricingRepositories,
    ResultCache,
)

FIXED_NOW = datetime(2024, 3, 15, 9, 30, 0, tzinfo=UTC)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "sql: test uses the SQLAlchemy adapters")
    config.addinivalue_line("markers", "property: hypothesis property-based test")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pricing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.calculate(request)
            logs = captured_logs()
            assert any(r["message"] == "cache_miss" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pricing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock pinned to 2024-03-15 09:30 UTC."""
    return DeterministicClock(FIXED_NOW)


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def pricing_config() -> PricingConfig:
    """Default tiers, 5% off from two countries, no volume discount."""
    return PricingConfig(
        tiers=(
            VolumeTier(0, Decimal("1.00"), "0-100"),
            VolumeTier(101, Decimal("1.25"), "101-500"),
            VolumeTier(501, Decimal("1.50"), "501-1000"),
            VolumeTier(1001, Decimal("2.00"), "1001+"),
        ),
        multi_country_discounts=(MultiCountryDiscount(2, Decimal("5"), "Multi-country discount"),),
        default_currency="EUR",
        name="test",
    )


@pytest.fixture
def discounted_config() -> PricingConfig:
    """Config with both discount tables populated."""
    return PricingConfig(
        tiers=(
            VolumeTier(0, Decimal("1.00")),
            VolumeTier(101, Decimal("1.25")),
            VolumeTier(501, Decimal("1.50")),
        ),
        volume_discounts=(
            VolumeDiscount(101, Decimal("5")),
            VolumeDiscount(501, Decimal("10")),
        ),
        multi_country_discounts=(
            MultiCountryDiscount(2, Decimal("5")),
            MultiCountryDiscount(3, Decimal("10")),
        ),
    )


# =============================================================================
# Catalog
# =============================================================================


@pytest.fixture
def countries() -> list[Country]:
    return [
        Country("DE", "Germany", Decimal("19"), "EUR"),
        Country("GB", "United Kingdom", Decimal("20"), "GBP"),
        Country("FR", "France", Decimal("20"), "EUR"),
        Country(
            "IT",
            "Italy",
            Decimal("22"),
            "EUR",
            supported_filing_frequencies=frozenset({FilingFrequency.MONTHLY}),
        ),
        Country("AT", "Austria", Decimal("20"), "EUR", is_active=False),
    ]


@pytest.fixture
def services() -> list[Service]:
    return [
        Service("vat-return", "VAT return", Money.of("800", "EUR")),
        Service(
            "vat-complex",
            "Complex VAT return",
            Money.of("1200", "EUR"),
            complexity_level=3,
            service_type=ServiceType.COMPLEX_FILING,
        ),
        Service("vat-gbp", "UK-priced VAT return", Money.of("700", "GBP")),
    ]


@pytest.fixture
def additional_services() -> list[AdditionalService]:
    return [
        AdditionalService("fiscal-rep", "Fiscal representation", Money.of("250", "EUR")),
        AdditionalService("translation", "Document translation", Money.of("33.335", "EUR")),
    ]


@pytest.fixture
def rules() -> list[Rule]:
    return [
        Rule(
            rule_id="DE-VAT",
            country_code="DE",
            rule_type=RuleType.RATE,
            expression="basePrice * 0.19",
            effective_from=date(2020, 1, 1),
            priority=10,
            name="German VAT handling",
        ),
        Rule(
            rule_id="GB-SURCHARGE",
            country_code="GB",
            rule_type=RuleType.SPECIAL_REQUIREMENT,
            expression="50",
            effective_from=date(2020, 1, 1),
            priority=20,
            name="HMRC registration surcharge",
        ),
        Rule(
            rule_id="GB-FILING-FEE",
            country_code="GB",
            rule_type=RuleType.THRESHOLD,
            expression="50",
            effective_from=date(2020, 1, 1),
            priority=20,
            name="Making Tax Digital filing fee",
        ),
        Rule(
            rule_id="GB-COMPLEX",
            country_code="GB",
            rule_type=RuleType.RATE,
            expression="basePrice * 0.20",
            effective_from=date(2020, 1, 1),
            priority=5,
            conditions=(RuleCondition("serviceType", "==", "ComplexFiling"),),
            name="Complex filing uplift",
        ),
    ]


@pytest.fixture
def rule_repository(rules, deterministic_clock) -> InMemoryRuleRepository:
    return InMemoryRuleRepository(rules, clock=deterministic_clock)


@pytest.fixture
def repositories(countries, services, additional_services, rule_repository) -> PricingRepositories:
    return PricingRepositories(
        countries=InMemoryCountryRepository(countries),
        services=InMemoryServiceRepository(services),
        additional_services=InMemoryAdditionalServiceRepository(additional_services),
        rules=rule_repository,
    )


@pytest.fixture
def result_cache(deterministic_clock) -> ResultCache:
    return ResultCache(clock=deterministic_clock)


@pytest.fixture
def engine(repositories, pricing_config, deterministic_clock, result_cache) -> PricingEngine:
    return PricingEngine(
        repositories,
        pricing_config,
        clock=deterministic_clock,
        cache=result_cache,
    )


@pytest.fixture
def scenario_request() -> PricingRequest:
    """DE + GB, standard filing, 150 transactions, monthly."""
    return PricingRequest(
        country_codes=frozenset({"DE", "GB"}),
        service_id="vat-return",
        transaction_volume=150,
        filing_frequency=FilingFrequency.MONTHLY,
        as_of_date=date(2024, 3, 1),
        currency_code="EUR",
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    """Fresh in-memory SQLite database per test."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()
