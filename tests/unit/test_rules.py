"""Tests for the rule model: types, conditions, windowing and snapshots."""

from datetime import date
from decimal import Decimal

import pytest

from pricing_kernel.domain.rules import Rule, RuleCondition, RuleSnapshot, RuleType
from pricing_kernel.domain.values import DateRange


def _rule(rule_id="R1", **overrides) -> Rule:
    fields = dict(
        rule_id=rule_id,
        country_code="DE",
        rule_type=RuleType.RATE,
        expression="basePrice * 0.19",
        effective_from=date(2023, 1, 1),
    )
    fields.update(overrides)
    return Rule(**fields)


class TestRuleType:
    def test_canonical_order(self):
        assert [t.order for t in RuleType] == [0, 1, 2, 3]
        assert RuleType.RATE.order < RuleType.SPECIAL_REQUIREMENT.order

    def test_parse_value_and_name(self):
        assert RuleType.parse("VatRate") is RuleType.RATE
        assert RuleType.parse("complexity") is RuleType.COMPLEXITY

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            RuleType.parse("Bonus")


class TestRuleCondition:
    """Condition operators and operand handling."""

    def test_symbolic_operator_normalized(self):
        assert RuleCondition("transactionVolume", ">=", "100").operator == "greaterthanorequal"

    def test_word_operator_case_insensitive(self):
        assert RuleCondition("serviceType", "startsWith", "Complex").operator == "startswith"

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            RuleCondition("transactionVolume", "between", "1")

    def test_numeric_comparison(self):
        condition = RuleCondition("transactionVolume", ">", "100")
        assert condition.is_satisfied_by(Decimal("150"))
        assert not condition.is_satisfied_by(Decimal("100"))

    def test_numeric_equality_ignores_scale(self):
        assert RuleCondition("complexityLevel", "==", "3.0").is_satisfied_by(Decimal("3"))

    def test_text_equality_case_insensitive(self):
        assert RuleCondition("serviceType", "equals", "complexfiling").is_satisfied_by("ComplexFiling")

    def test_text_contains(self):
        assert RuleCondition("serviceType", "contains", "Filing").is_satisfied_by("StandardFiling")

    def test_ordering_operator_on_text_is_unsatisfied(self):
        assert not RuleCondition("serviceType", ">", "A").is_satisfied_by("StandardFiling")

    def test_unbound_parameter_is_unsatisfied(self):
        assert not RuleCondition("missing", "==", "1").evaluate({"other": Decimal("1")})

    def test_describe(self):
        assert RuleCondition("serviceType", "==", "ComplexFiling").describe() == "serviceType equals ComplexFiling"


class TestRule:
    def test_effective_window_validated(self):
        with pytest.raises(ValueError):
            _rule(effective_from=date(2023, 6, 1), effective_to=date(2023, 1, 1))

    def test_empty_expression_rejected(self):
        with pytest.raises(ValueError):
            _rule(expression="  ")

    def test_in_force_inclusive(self):
        rule = _rule(effective_to=date(2023, 6, 30))
        assert rule.is_in_force(date(2023, 1, 1))
        assert rule.is_in_force(date(2023, 6, 30))
        assert not rule.is_in_force(date(2023, 7, 1))
        assert not rule.is_in_force(date(2022, 12, 31))

    def test_inactive_never_in_force(self):
        assert not _rule(is_active=False).is_in_force(date(2023, 3, 1))

    def test_effective_range_matches_window(self):
        rule = _rule(effective_to=date(2023, 6, 30))
        assert rule.effective_range == DateRange(date(2023, 1, 1), date(2023, 6, 30))
        assert _rule().effective_range.end is None

    @pytest.mark.parametrize("rule_id", ["basePrice", "subtotal", "vatRate", "countryCode"])
    def test_parameter_name_rejected_as_id(self, rule_id):
        with pytest.raises(ValueError, match="reserved"):
            _rule(rule_id=rule_id)

    def test_name_and_description_in_dict(self):
        data = _rule(name="German VAT", description="Standard rate").to_dict()
        assert data["name"] == "German VAT"
        assert data["description"] == "Standard rate"

    def test_country_code_normalized(self):
        assert _rule(country_code="de").country_code == "DE"

    def test_sort_key(self):
        assert _rule("B", priority=1, rule_type=RuleType.THRESHOLD).sort_key == (1, 1, "B")

    def test_failed_conditions(self):
        rule = _rule(conditions=(
            RuleCondition("transactionVolume", ">", "100"),
            RuleCondition("serviceType", "==", "ComplexFiling"),
        ))
        failed = rule.failed_conditions({"transactionVolume": Decimal("150"), "serviceType": "StandardFiling"})
        assert [c.parameter_name for c in failed] == ["serviceType"]


class TestRuleSnapshot:
    def test_for_country(self):
        snapshot = RuleSnapshot("v1", (_rule("A"), _rule("B", country_code="GB")))
        assert [r.rule_id for r in snapshot.for_country("gb")] == ["B"]
        assert snapshot.country_codes() == frozenset({"DE", "GB"})
        assert len(snapshot) == 2

    def test_version_required(self):
        with pytest.raises(ValueError):
            RuleSnapshot("", ())

    def test_frozen(self):
        snapshot = RuleSnapshot("v1", ())
        with pytest.raises(AttributeError):
            snapshot.version = "v2"
