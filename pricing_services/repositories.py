"""
pricing_services.repositories -- Reference data and rule access.

Responsibility:
    Declares the repository protocols the pricing engine depends on and
    ships two reference implementations of each: in-memory (tests,
    embedding, fixtures) and SQLAlchemy (any database URL).

Architecture position:
    Services -- the only layer that touches storage. Engines receive the
    resolved values, never a repository.

Rule versioning:
    A rule set's version is the content hash of every rule it holds, so two
    stores holding identical rules report the same version, and a publish
    that changes any rule yields a new one. ``snapshot()`` returns only the
    requested countries' rules but stamps the version of the whole set.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from pricing_kernel.db.engine import get_session_factory, session_scope
from pricing_kernel.domain.catalog import AdditionalService, Country, Service
from pricing_kernel.domain.clock import Clock
from pricing_kernel.domain.rules import Rule, RuleCondition, RuleSnapshot
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import CurrencyMismatchError
from pricing_kernel.logging_config import get_logger
from pricing_kernel.models import (
    AdditionalServiceRecord,
    CountryRecord,
    RuleConditionRecord,
    RuleRecord,
    ServiceRecord,
)
from pricing_kernel.utils.hashing import hash_rule_rows

logger = get_logger("services.repositories")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class CountryRepository(Protocol):
    def get(self, code: str, as_of: date) -> Country | None: ...


@runtime_checkable
class ServiceRepository(Protocol):
    def get(self, service_id: str) -> Service | None: ...


@runtime_checkable
class AdditionalServiceRepository(Protocol):
    def get(self, service_id: str) -> AdditionalService | None: ...


@runtime_checkable
class RuleRepository(Protocol):
    def snapshot(self, country_codes: Iterable[str], as_of: date) -> RuleSnapshot:
        """Rules for the given countries, stamped with the rule set version."""
        ...


@runtime_checkable
class CurrencyConverter(Protocol):
    def convert(self, money: Money, to_currency: str, as_of: date) -> Money:
        """Convert at the rate in force on ``as_of``; the result is not rounded."""
        ...


def rule_set_version(rules: Iterable[Rule]) -> str:
    """Content hash of a rule set; independent of rule order."""
    return hash_rule_rows([r.to_dict() for r in rules])


def _superseded_end(
    rule_id: str,
    effective_from: date,
    effective_to: date | None,
    replacement: Rule,
) -> date | None:
    """End date for a rule closed by ``replacement``; never later than its current end."""
    new_end = replacement.effective_from - timedelta(days=1)
    if new_end < effective_from:
        raise ValueError(f"Replacement for {rule_id} must start after {effective_from}")
    if effective_to is not None and effective_to <= new_end:
        return effective_to
    return new_end


def _select_countries(rules: Iterable[Rule], country_codes: Iterable[str]) -> tuple[Rule, ...]:
    wanted = {c.strip().upper() for c in country_codes}
    return tuple(r for r in rules if r.country_code in wanted)


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryCountryRepository:
    """Countries held in a dict keyed by code. ``as_of`` is not consulted."""

    def __init__(self, countries: Iterable[Country] = ()):
        self._countries = {c.code: c for c in countries}

    def get(self, code: str, as_of: date) -> Country | None:
        return self._countries.get(code.strip().upper())

    def add(self, country: Country) -> None:
        self._countries[country.code] = country


class InMemoryServiceRepository:
    def __init__(self, services: Iterable[Service] = ()):
        self._services = {s.service_id: s for s in services}

    def get(self, service_id: str) -> Service | None:
        return self._services.get(service_id)

    def add(self, service: Service) -> None:
        self._services[service.service_id] = service


class InMemoryAdditionalServiceRepository:
    def __init__(self, services: Iterable[AdditionalService] = ()):
        self._services = {s.service_id: s for s in services}

    def get(self, service_id: str) -> AdditionalService | None:
        return self._services.get(service_id)

    def add(self, service: AdditionalService) -> None:
        self._services[service.service_id] = service


class InMemoryRuleRepository:
    """
    Copy-on-write rule store.

    Every publish builds a new immutable rule tuple and swaps it in under a
    lock; readers take the current tuple without locking, so a snapshot
    never sees a half-published rule set.
    """

    def __init__(self, rules: Iterable[Rule] = (), clock: Clock | None = None):
        self._clock = clock
        self._lock = threading.Lock()
        self._state: tuple[tuple[Rule, ...], str] = ((), rule_set_version(()))
        self.publish(rules)

    @property
    def version(self) -> str:
        return self._state[1]

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._state[0]

    def publish(self, rules: Iterable[Rule]) -> str:
        """Replace the whole rule set. Returns the new version."""
        new_rules = tuple(rules)
        with self._lock:
            previous, new_version = self._publish_locked(new_rules)
        self._log_published(new_rules, new_version, previous)
        return new_version

    def add(self, rule: Rule) -> str:
        with self._lock:
            new_rules = self._state[0] + (rule,)
            previous, new_version = self._publish_locked(new_rules)
        self._log_published(new_rules, new_version, previous)
        return new_version

    def supersede(self, rule_id: str, replacement: Rule) -> str:
        """
        Close ``rule_id`` the day before ``replacement`` takes effect and add
        the replacement. Returns the new version.

        A rule that already ends before the replacement starts keeps its
        earlier end date.

        Raises:
            KeyError: If no rule with ``rule_id`` exists.
            ValueError: If the replacement would start on or before the old
                rule's first day.
        """
        with self._lock:
            current = self._state[0]
            old = next((r for r in current if r.rule_id == rule_id), None)
            if old is None:
                raise KeyError(rule_id)
            end = _superseded_end(rule_id, old.effective_from, old.effective_to, replacement)
            closed = old if end == old.effective_to else replace(old, effective_to=end)
            new_rules = tuple(closed if r.rule_id == rule_id else r for r in current) + (replacement,)
            previous, new_version = self._publish_locked(new_rules)
        self._log_published(new_rules, new_version, previous)
        return new_version

    def _publish_locked(self, new_rules: tuple[Rule, ...]) -> tuple[str, str]:
        """Swap in ``new_rules``. Caller holds ``_lock``."""
        ids = [r.rule_id for r in new_rules]
        if len(ids) != len(set(ids)):
            raise ValueError("Rule ids must be unique within a rule set")
        new_version = rule_set_version(new_rules)
        previous = self._state[1]
        self._state = (new_rules, new_version)
        return previous, new_version

    @staticmethod
    def _log_published(new_rules: tuple[Rule, ...], new_version: str, previous: str) -> None:
        logger.info("rule_set_published", extra={
            "rule_count": len(new_rules),
            "rule_set_version": new_version,
            "previous_version": previous,
        })

    def snapshot(self, country_codes: Iterable[str], as_of: date) -> RuleSnapshot:
        rules, version = self._state
        return RuleSnapshot(
            version=version,
            rules=_select_countries(rules, country_codes),
            captured_at=self._clock.now() if self._clock else None,
        )


class FixedRateCurrencyConverter:
    """
    Converts with a fixed table of rates keyed by (from, to) currency code.

    The inverse of a configured pair is derived when only one direction is
    given. Rates do not vary by date.
    """

    def __init__(self, rates: Mapping[tuple[str, str], Decimal]):
        self._rates: dict[tuple[str, str], Decimal] = {}
        for (source, target), rate in rates.items():
            if not isinstance(rate, Decimal) or rate <= 0:
                raise ValueError(f"Rate {source}->{target} must be a positive Decimal")
            self._rates[(source.upper(), target.upper())] = rate

    def convert(self, money: Money, to_currency: str, as_of: date) -> Money:
        target = Currency(to_currency)
        source = money.currency
        if source == target:
            return money
        rate = self._rates.get((source.code, target.code))
        if rate is None:
            inverse = self._rates.get((target.code, source.code))
            if inverse is None:
                raise CurrencyMismatchError(source.code, target.code)
            rate = Decimal(1) / inverse
        return Money(amount=money.amount * rate, currency=target)


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------


def _country_from_record(record: CountryRecord) -> Country:
    return Country(
        code=record.code,
        name=record.name,
        standard_vat_rate=record.standard_vat_rate,
        currency_code=record.currency_code,
        supported_filing_frequencies=frozenset(record.filing_frequencies or ()),
        is_active=record.is_active,
    )


def _service_from_record(record: ServiceRecord) -> Service:
    return Service(
        service_id=record.service_id,
        name=record.name,
        base_price=Money.of(Decimal(record.base_price), record.currency_code),
        complexity_level=record.complexity_level,
        service_type=record.service_type,
    )


def _additional_from_record(record: AdditionalServiceRecord) -> AdditionalService:
    return AdditionalService(
        service_id=record.service_id,
        name=record.name,
        cost=Money.of(Decimal(record.cost), record.currency_code),
    )


def _rule_from_record(record: RuleRecord) -> Rule:
    return Rule(
        rule_id=record.rule_id,
        country_code=record.country_code,
        rule_type=record.rule_type,
        expression=record.expression,
        effective_from=record.effective_from,
        effective_to=record.effective_to,
        priority=record.priority,
        parameters=tuple(record.parameters or ()),
        conditions=tuple(
            RuleCondition(parameter_name=c.parameter_name, operator=c.operator, value=c.value)
            for c in record.conditions
        ),
        is_active=record.is_active,
        name=record.name,
        description=record.description,
    )


def _rule_to_record(rule: Rule) -> RuleRecord:
    return RuleRecord(
        rule_id=rule.rule_id,
        country_code=rule.country_code,
        rule_type=rule.rule_type.value,
        name=rule.name,
        description=rule.description,
        expression=rule.expression,
        parameters=list(rule.parameters),
        effective_from=rule.effective_from,
        effective_to=rule.effective_to,
        priority=rule.priority,
        is_active=rule.is_active,
        conditions=[
            RuleConditionRecord(
                position=index,
                parameter_name=c.parameter_name,
                operator=c.operator,
                value=c.value,
            )
            for index, c in enumerate(rule.conditions)
        ],
    )


class _SqlRepository:
    """Opens one short-lived session per call from a session factory."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory or get_session_factory()


class SqlCountryRepository(_SqlRepository):
    def get(self, code: str, as_of: date) -> Country | None:
        with session_scope(self._session_factory) as session:
            record = session.scalars(
                select(CountryRecord).where(CountryRecord.code == code.strip().upper())
            ).one_or_none()
            return _country_from_record(record) if record is not None else None

    def add(self, country: Country) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                CountryRecord(
                    code=country.code,
                    name=country.name,
                    standard_vat_rate=country.standard_vat_rate.percentage,
                    currency_code=country.currency_code,
                    filing_frequencies=sorted(f.value for f in country.supported_filing_frequencies),
                    is_active=country.is_active,
                )
            )


class SqlServiceRepository(_SqlRepository):
    def get(self, service_id: str) -> Service | None:
        with session_scope(self._session_factory) as session:
            record = session.scalars(
                select(ServiceRecord).where(ServiceRecord.service_id == service_id)
            ).one_or_none()
            return _service_from_record(record) if record is not None else None

    def add(self, service: Service) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                ServiceRecord(
                    service_id=service.service_id,
                    name=service.name,
                    base_price=service.base_price.amount,
                    currency_code=service.base_price.currency.code,
                    complexity_level=service.complexity_level,
                    service_type=service.service_type.value,
                )
            )


class SqlAdditionalServiceRepository(_SqlRepository):
    def get(self, service_id: str) -> AdditionalService | None:
        with session_scope(self._session_factory) as session:
            record = session.scalars(
                select(AdditionalServiceRecord).where(AdditionalServiceRecord.service_id == service_id)
            ).one_or_none()
            return _additional_from_record(record) if record is not None else None

    def add(self, service: AdditionalService) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                AdditionalServiceRecord(
                    service_id=service.service_id,
                    name=service.name,
                    cost=service.cost.amount,
                    currency_code=service.cost.currency.code,
                )
            )


class SqlRuleRepository(_SqlRepository):
    """
    Rules read from the ``pricing_rules`` table.

    A snapshot reads every rule row in one session, so the version and the
    returned rules always describe the same committed state.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None, clock: Clock | None = None):
        super().__init__(session_factory)
        self._clock = clock

    def snapshot(self, country_codes: Iterable[str], as_of: date) -> RuleSnapshot:
        with session_scope(self._session_factory) as session:
            records = session.scalars(select(RuleRecord).order_by(RuleRecord.rule_id)).all()
            rules = tuple(_rule_from_record(r) for r in records)
        version = rule_set_version(rules)
        logger.debug("rule_snapshot_read", extra={
            "rule_count": len(rules),
            "rule_set_version": version,
        })
        return RuleSnapshot(
            version=version,
            rules=_select_countries(rules, country_codes),
            captured_at=self._clock.now() if self._clock else None,
        )

    def add(self, rule: Rule) -> None:
        with session_scope(self._session_factory) as session:
            session.add(_rule_to_record(rule))

    def supersede(self, rule_id: str, replacement: Rule) -> None:
        """
        Close ``rule_id`` the day before ``replacement`` starts and insert it,
        atomically. An earlier end date is kept.
        """
        with session_scope(self._session_factory) as session:
            record = session.scalars(select(RuleRecord).where(RuleRecord.rule_id == rule_id)).one_or_none()
            if record is None:
                raise KeyError(rule_id)
            record.effective_to = _superseded_end(
                rule_id, record.effective_from, record.effective_to, replacement
            )
            session.add(_rule_to_record(replacement))
