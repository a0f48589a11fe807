"""
Rule Engine - Evaluate a country's pricing rules.

Selects the rules in force for a country on the request date, filters them
by their conditions, orders them deterministically and evaluates each
expression over the request parameters, the running subtotal and the
outputs of earlier rules.

Pure functions with no I/O - rules arrive in a RuleSnapshot.

Usage:
    from pricing_engines.rule_engine import RuleEngine, RuleParameters

    outcome = RuleEngine().evaluate(
        country_code="DE",
        snapshot=snapshot,
        parameters=params,
        base_cost=Money.of("1000", "EUR"),
        vat_rate=VatRate(Decimal("19")),
    )
    print(outcome.subtotal)  # Money: 1190.00 EUR

Ordering:
    (priority ascending, rule type RATE < THRESHOLD < COMPLEXITY <
    SPECIAL_REQUIREMENT, rule_id). A rule may read any earlier rule's
    output under that rule's id, so this order is part of the result.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from pricing_engines.expression import ExpressionEvaluator, ExpressionIssue, validate_expression
from pricing_engines.tracer import traced_engine
from pricing_kernel.domain.catalog import FilingFrequency, ServiceType
from pricing_kernel.domain.pricing import RuleAdjustment, RuleTraceEntry, TraceOutcome
from pricing_kernel.domain.rules import PARAMETER_NAMES, Rule, RuleSnapshot, RuleType
from pricing_kernel.domain.values import Money, VatRate
from pricing_kernel.exceptions import ExpressionError, RuleExpressionError
from pricing_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.rule_engine")


@dataclass(frozen=True)
class RuleParameters:
    """
    Request-level inputs shared by every country of one calculation.

    Amounts are plain Decimals in the request currency.
    """

    as_of_date: date
    transaction_volume: int
    filing_frequency: FilingFrequency
    service_type: ServiceType
    complexity_level: int
    country_count: int
    additional_services_total: Decimal = Decimal("0")

    @property
    def additional_services_share(self) -> Decimal:
        if self.country_count <= 0:
            return Decimal("0")
        return self.additional_services_total / Decimal(self.country_count)


@dataclass(frozen=True)
class CountryRuleOutcome:
    """
    Result of evaluating one country's rules.

    ``subtotal`` is unrounded; callers round it once when it becomes a
    displayed line.
    """

    country_code: str
    base_cost: Money
    adjustments: tuple[RuleAdjustment, ...]
    subtotal: Money
    trace: tuple[RuleTraceEntry, ...] = ()

    @property
    def applied_rule_ids(self) -> tuple[str, ...]:
        return tuple(a.rule_id for a in self.adjustments)


def order_rules(rules: tuple[Rule, ...] | list[Rule]) -> tuple[Rule, ...]:
    """Deterministic evaluation order: (priority, rule type order, rule_id)."""
    return tuple(sorted(rules, key=lambda r: r.sort_key))


class RuleEngine:
    """
    Evaluate country rules from a snapshot.

    Pure functions - no I/O, no database access, no wall clock.
    Stateless; one instance may be shared by concurrent calculations.
    """

    def __init__(self, evaluator: ExpressionEvaluator | None = None):
        self._evaluator = evaluator or ExpressionEvaluator()

    def applicable_rules(
        self,
        country_code: str,
        snapshot: RuleSnapshot,
        as_of: date,
        rule_type: RuleType | None = None,
    ) -> tuple[Rule, ...]:
        """Rules in force for a country on ``as_of``, in evaluation order."""
        rules = [r for r in snapshot.for_country(country_code) if r.is_in_force(as_of)]
        if rule_type is not None:
            rules = [r for r in rules if r.rule_type is rule_type]
        return order_rules(rules)

    def validate_rule_expression(
        self,
        expression: str,
        known_rule_ids: frozenset[str] | None = None,
    ) -> list[ExpressionIssue]:
        """Issues in a rule expression; empty when valid.

        Without ``known_rule_ids`` only syntax is checked. With it, names
        must also be a standard parameter or one of those rule ids.
        """
        if known_rule_ids is None:
            return validate_expression(expression)
        return validate_expression(expression, PARAMETER_NAMES | known_rule_ids)

    @traced_engine("rule_engine", "1.0", fingerprint_fields=("country_code", "base_cost", "parameters"))
    def evaluate(
        self,
        *,
        country_code: str,
        snapshot: RuleSnapshot,
        parameters: RuleParameters,
        base_cost: Money,
        vat_rate: VatRate | None = None,
        explain: bool = False,
    ) -> CountryRuleOutcome:
        """
        Evaluate the country's rules in order.

        Args:
            country_code: Country whose rules are evaluated
            snapshot: The calculation's single rule snapshot
            parameters: Request-level parameters
            base_cost: Volume-scaled base price in the request currency
            vat_rate: The country's standard VAT rate, bound as ``vatRate``
            explain: Also record skipped rules and per-rule values

        Returns:
            CountryRuleOutcome with ordered adjustments and the running subtotal

        Raises:
            RuleExpressionError: If any applicable rule fails to evaluate
        """
        t0 = time.monotonic()
        code = country_code.strip().upper()
        currency = base_cost.currency

        with LogContext.bind(country_code=code, rule_set_version=snapshot.version):
            country_rules = order_rules(snapshot.for_country(code))
            logger.info("rule_evaluation_started", extra={
                "rule_count": len(country_rules),
                "as_of_date": parameters.as_of_date.isoformat(),
                "base_cost": str(base_cost.amount),
            })

            bindings = self._initial_bindings(code, parameters, base_cost, vat_rate)
            subtotal = base_cost.amount
            adjustments: list[RuleAdjustment] = []
            trace: list[RuleTraceEntry] = []

            for rule in country_rules:
                if not rule.is_in_force(parameters.as_of_date):
                    reason = "inactive" if not rule.is_active else (
                        f"not in force on {parameters.as_of_date.isoformat()}"
                    )
                    logger.debug("rule_skipped", extra={"rule_id": rule.rule_id, "reason": reason})
                    if explain:
                        trace.append(self._skipped(code, rule, reason))
                    continue

                failed = rule.failed_conditions(bindings)
                if failed:
                    reason = "condition not met: " + "; ".join(c.describe() for c in failed)
                    logger.debug("rule_skipped", extra={"rule_id": rule.rule_id, "reason": reason})
                    if explain:
                        trace.append(self._skipped(code, rule, reason))
                    continue

                value = self._evaluate_rule(rule, code, bindings)
                subtotal = subtotal + value
                bindings[rule.rule_id] = value
                bindings["subtotal"] = subtotal
                adjustments.append(
                    RuleAdjustment(
                        rule_id=rule.rule_id,
                        rule_type=rule.rule_type,
                        delta=Money(amount=value, currency=currency),
                        description=rule.name or rule.description,
                    )
                )
                logger.debug("rule_evaluated", extra={
                    "rule_id": rule.rule_id,
                    "rule_type": rule.rule_type.value,
                    "value": str(value),
                    "subtotal": str(subtotal),
                })
                if explain:
                    trace.append(
                        RuleTraceEntry(
                            country_code=code,
                            rule_id=rule.rule_id,
                            rule_type=rule.rule_type,
                            outcome=TraceOutcome.APPLIED,
                            expression=rule.expression,
                            value=value,
                            subtotal_after=subtotal,
                        )
                    )

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("rule_evaluation_completed", extra={
                "applied_count": len(adjustments),
                "subtotal": str(subtotal),
                "duration_ms": duration_ms,
            })

        return CountryRuleOutcome(
            country_code=code,
            base_cost=base_cost,
            adjustments=tuple(adjustments),
            subtotal=Money(amount=subtotal, currency=currency),
            trace=tuple(trace),
        )

    def _initial_bindings(
        self,
        country_code: str,
        parameters: RuleParameters,
        base_cost: Money,
        vat_rate: VatRate | None,
    ) -> dict[str, Any]:
        return {
            "basePrice": base_cost.amount,
            "baseCost": base_cost.amount,
            "transactionVolume": Decimal(parameters.transaction_volume),
            "filingFrequency": parameters.filing_frequency.value,
            "serviceType": parameters.service_type.value,
            "countryCode": country_code,
            "vatRate": vat_rate.as_fraction if vat_rate is not None else Decimal("0"),
            "complexityLevel": Decimal(parameters.complexity_level),
            "countryCount": Decimal(parameters.country_count),
            "additionalServicesShare": parameters.additional_services_share,
            "subtotal": base_cost.amount,
        }

    def _evaluate_rule(self, rule: Rule, country_code: str, bindings: Mapping[str, Any]) -> Decimal:
        try:
            return self._evaluator.evaluate(rule.expression, bindings, rule.parameters)
        except (ExpressionError, ArithmeticError) as e:
            logger.error("rule_expression_failed", extra={
                "rule_id": rule.rule_id,
                "expression": rule.expression,
                "error_type": type(e).__name__,
                "error": str(e),
            })
            raise RuleExpressionError(rule.rule_id, e, country_code) from e

    @staticmethod
    def _skipped(country_code: str, rule: Rule, reason: str) -> RuleTraceEntry:
        return RuleTraceEntry(
            country_code=country_code,
            rule_id=rule.rule_id,
            rule_type=rule.rule_type,
            outcome=TraceOutcome.SKIPPED,
            reason=reason,
            expression=rule.expression,
        )
