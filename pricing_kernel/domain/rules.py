"""
Rules -- Versioned, country-specific pricing rules.

Responsibility:
    Defines the immutable rule model the rule engine evaluates: the closed
    RuleType enum, RuleCondition guards, Rule itself, and RuleSnapshot, the
    version-stamped set of rules a single calculation reads.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - effective_from <= effective_to when effective_to is present.
    - A rule id never shadows one of the bound parameter names.
    - Condition operators are one of a closed set; unknown operators are
      rejected at construction.
    - A snapshot never changes after construction; publishing new rules
      produces a new snapshot with a new version.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pricing_kernel.domain.values import DateRange

# Names bound for every rule evaluation. Rule ids share the namespace, so a
# rule may not take one of these as its id.
PARAMETER_NAMES: frozenset[str] = frozenset({
    "basePrice",
    "baseCost",
    "transactionVolume",
    "filingFrequency",
    "serviceType",
    "countryCode",
    "vatRate",
    "complexityLevel",
    "countryCount",
    "additionalServicesShare",
    "subtotal",
})


class RuleType(str, Enum):
    """
    Kind of pricing rule.

    Declaration order is the canonical evaluation order used to break ties
    between rules of equal priority.
    """

    RATE = "VatRate"
    THRESHOLD = "Threshold"
    COMPLEXITY = "Complexity"
    SPECIAL_REQUIREMENT = "SpecialRequirement"

    @property
    def order(self) -> int:
        return _RULE_TYPE_ORDER[self]

    @classmethod
    def parse(cls, value: str | RuleType) -> RuleType:
        """Accept either the enum value ("VatRate") or the member name ("RATE")."""
        if isinstance(value, RuleType):
            return value
        try:
            return cls(value)
        except ValueError:
            try:
                return cls[str(value).upper()]
            except KeyError:
                raise ValueError(f"Unknown rule type: {value!r}") from None


_RULE_TYPE_ORDER = {rule_type: index for index, rule_type in enumerate(RuleType)}


# Symbolic operator spellings and their word forms.
_OPERATOR_ALIASES: dict[str, str] = {
    "==": "equals",
    "!=": "notequals",
    ">": "greaterthan",
    "<": "lessthan",
    ">=": "greaterthanorequal",
    "<=": "lessthanorequal",
}

_OPERATORS = frozenset({
    "equals",
    "notequals",
    "greaterthan",
    "lessthan",
    "greaterthanorequal",
    "lessthanorequal",
    "contains",
    "startswith",
    "endswith",
})


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass(frozen=True, slots=True)
class RuleCondition:
    """
    Guard that must hold for a rule to apply.

    Comparison is numeric when both sides parse as numbers, otherwise
    case-insensitive text. An operator that makes no sense for the operand
    kind (``contains`` on numbers, ``greaterThan`` on text) is not satisfied.
    """

    parameter_name: str
    operator: str
    value: str

    def __post_init__(self) -> None:
        if not self.parameter_name or not str(self.parameter_name).strip():
            raise ValueError("RuleCondition parameter_name is required")
        raw = str(self.operator).strip()
        normalized = _OPERATOR_ALIASES.get(raw, raw.lower())
        if normalized not in _OPERATORS:
            raise ValueError(f"Unsupported condition operator: {self.operator!r}")
        object.__setattr__(self, "operator", normalized)
        object.__setattr__(self, "value", _as_text(self.value))

    def is_satisfied_by(self, bound: Any) -> bool:
        op = self.operator
        left = _as_decimal(bound)
        right = _as_decimal(self.value)
        if left is not None and right is not None:
            if op == "equals":
                return left == right
            if op == "notequals":
                return left != right
            if op == "greaterthan":
                return left > right
            if op == "lessthan":
                return left < right
            if op == "greaterthanorequal":
                return left >= right
            if op == "lessthanorequal":
                return left <= right
            return False

        text = _as_text(bound).casefold()
        expected = self.value.casefold()
        if op == "equals":
            return text == expected
        if op == "notequals":
            return text != expected
        if op == "contains":
            return expected in text
        if op == "startswith":
            return text.startswith(expected)
        if op == "endswith":
            return text.endswith(expected)
        return False

    def evaluate(self, bindings: Mapping[str, Any]) -> bool:
        """A parameter with no binding leaves the condition unsatisfied."""
        if self.parameter_name not in bindings:
            return False
        return self.is_satisfied_by(bindings[self.parameter_name])

    def describe(self) -> str:
        return f"{self.parameter_name} {self.operator} {self.value}"


@dataclass(frozen=True, slots=True)
class Rule:
    """
    A single versioned, country-specific pricing rule.

    The expression yields a numeric delta in the request currency. Parameters
    lists the names the expression is allowed to read; an empty tuple means
    the expression may read any bound name.
    """

    rule_id: str
    country_code: str
    rule_type: RuleType
    expression: str
    effective_from: date
    effective_to: date | None = None
    priority: int = 0
    parameters: tuple[str, ...] = ()
    conditions: tuple[RuleCondition, ...] = ()
    is_active: bool = True
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not self.rule_id or not str(self.rule_id).strip():
            raise ValueError("Rule rule_id is required")
        if self.rule_id in PARAMETER_NAMES:
            raise ValueError(f"Rule id {self.rule_id!r} is a reserved parameter name")
        if not self.expression or not self.expression.strip():
            raise ValueError(f"Rule {self.rule_id} has an empty expression")
        object.__setattr__(self, "country_code", str(self.country_code).strip().upper())
        object.__setattr__(self, "rule_type", RuleType.parse(self.rule_type))
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        if self.effective_to is not None and self.effective_from > self.effective_to:
            raise ValueError(
                f"Rule {self.rule_id}: effective_from {self.effective_from} "
                f"is after effective_to {self.effective_to}"
            )

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return (self.priority, self.rule_type.order, self.rule_id)

    @property
    def effective_range(self) -> DateRange:
        return DateRange(self.effective_from, self.effective_to)

    def is_in_force(self, on: date) -> bool:
        return self.is_active and self.effective_range.contains(on)

    def failed_conditions(self, bindings: Mapping[str, Any]) -> tuple[RuleCondition, ...]:
        return tuple(c for c in self.conditions if not c.evaluate(bindings))

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "country_code": self.country_code,
            "rule_type": self.rule_type.value,
            "expression": self.expression,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "priority": self.priority,
            "parameters": list(self.parameters),
            "conditions": [
                {"parameter": c.parameter_name, "operator": c.operator, "value": c.value}
                for c in self.conditions
            ],
            "is_active": self.is_active,
            "name": self.name,
            "description": self.description,
        }


@dataclass(frozen=True)
class RuleSnapshot:
    """
    Immutable, version-stamped set of rules read by one calculation.

    ``version`` identifies the content; two snapshots with the same version
    hold the same rules.
    """

    version: str
    rules: tuple[Rule, ...]
    captured_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.version:
            raise ValueError("RuleSnapshot version is required")
        object.__setattr__(self, "rules", tuple(self.rules))

    def for_country(self, country_code: str) -> tuple[Rule, ...]:
        code = country_code.strip().upper()
        return tuple(r for r in self.rules if r.country_code == code)

    def country_codes(self) -> frozenset[str]:
        return frozenset(r.country_code for r in self.rules)

    def __len__(self) -> int:
        return len(self.rules)
