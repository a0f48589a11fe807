"""
Typed Exception Hierarchy for the Pricing Core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A price shown to a customer must be either complete and correct or absent.
Callers therefore need to tell *why* a calculation failed without parsing
message strings:

  - a client sent a bad request           -> fix the request, do not retry
  - a rule administrator broke a rule     -> surface to administrators
  - a configuration or programming defect -> page the owning team

Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (rule_id, country_code, kind, id, ...)

Example - WRONG way to handle errors:
    try:
        engine.calculate(request)
    except Exception as e:
        if "country" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        engine.calculate(request)
    except UnknownReferenceError as e:
        api_response(code=e.code, kind=e.kind, id=e.id)
    except RuleExpressionError as e:
        alert_rule_admins(rule_id=e.rule_id, country=e.country_code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PricingCoreError (base)
    |
    +-- ValidationError
    +-- UnknownReferenceError
    |
    +-- RuleError
    |   +-- RuleExpressionError
    |
    +-- ExpressionError
    |   +-- ExpressionSyntaxError
    |   +-- UnboundParameterError
    |   +-- DivisionByZeroError
    |   +-- ExpressionTypeError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- RepositoryError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | When Raised
----------------|------------------------|------------------------------------------
Request         | VALIDATION_FAILED      | Bad request field (client's fault)
                | UNKNOWN_REFERENCE      | Country/service id does not resolve
----------------|------------------------|------------------------------------------
Rule            | RULE_EXPRESSION_ERROR  | A rule failed to evaluate; country aborted
----------------|------------------------|------------------------------------------
Expression      | EXPRESSION_SYNTAX      | Expression text does not parse
                | UNBOUND_PARAMETER      | Expression names an unbound parameter
                | DIVISION_BY_ZERO       | Expression divides by zero
                | EXPRESSION_TYPE        | Parameter bound to a non-numeric value
----------------|------------------------|------------------------------------------
Currency        | INVALID_CURRENCY       | Not a valid ISO 4217 code
                | CURRENCY_MISMATCH      | Mixed currencies in one operation/result
----------------|------------------------|------------------------------------------
Infrastructure  | REPOSITORY_ERROR       | An injected repository raised
                | CONFIGURATION_ERROR    | Pricing configuration is invalid

===============================================================================
PROPAGATION POLICY
===============================================================================

The core never retries. Repository failures are wrapped in RepositoryError
with the reference that triggered them and chained with ``raise ... from``.
No partial result is ever returned alongside an error.
"""

from __future__ import annotations


class PricingCoreError(Exception):
    """
    Base exception for all pricing core errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PRICING_CORE_ERROR"


# Request exceptions


class ValidationError(PricingCoreError):
    """A request field is malformed or not allowed."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None, errors: list[str] | None = None):
        self.field = field
        self.errors = list(errors) if errors else [message]
        super().__init__(message)


class UnknownReferenceError(PricingCoreError):
    """A referenced country, service or additional service does not exist."""

    code: str = "UNKNOWN_REFERENCE"

    def __init__(self, kind: str, id: str):
        self.kind = kind
        self.id = id
        super().__init__(f"Unknown {kind}: {id}")


# Rule exceptions


class RuleError(PricingCoreError):
    """Base exception for broken rule content."""

    code: str = "RULE_ERROR"


class RuleExpressionError(RuleError):
    """A rule could not be evaluated; the owning country's calculation fails."""

    code: str = "RULE_EXPRESSION_ERROR"

    def __init__(self, rule_id: str, cause: Exception, country_code: str | None = None):
        self.rule_id = rule_id
        self.country_code = country_code
        self.cause = cause
        self.cause_code = getattr(cause, "code", type(cause).__name__)
        where = f" for country {country_code}" if country_code else ""
        super().__init__(f"Rule {rule_id}{where} failed to evaluate: {cause}")


# Expression exceptions


class ExpressionError(PricingCoreError):
    """Base exception for expression parsing and evaluation."""

    code: str = "EXPRESSION_ERROR"


class ExpressionSyntaxError(ExpressionError):
    """Expression text is not valid in the restricted grammar."""

    code: str = "EXPRESSION_SYNTAX"

    def __init__(self, expression: str, message: str, position: int = 0):
        self.expression = expression
        self.position = position
        self.reason = message
        super().__init__(f"{message} at position {position} in {expression!r}")


class UnboundParameterError(ExpressionError):
    """Expression references a parameter with no binding."""

    code: str = "UNBOUND_PARAMETER"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unbound parameter: {name}")


class DivisionByZeroError(ExpressionError):
    """Expression divides by zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, expression: str | None = None):
        self.expression = expression
        super().__init__("Division by zero" + (f" in {expression!r}" if expression else ""))


class ExpressionTypeError(ExpressionError):
    """A parameter used in arithmetic is bound to a non-numeric value."""

    code: str = "EXPRESSION_TYPE"

    def __init__(self, name: str, value_type: str):
        self.name = name
        self.value_type = value_type
        super().__init__(f"Parameter {name} is {value_type}, expected a number")


# Currency exceptions


class CurrencyError(PricingCoreError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class CurrencyMismatchError(CurrencyError):
    """Attempted operation on mismatched currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = currency1
        self.currency2 = currency2
        super().__init__(f"Currency mismatch: {currency1} vs {currency2}")


# Infrastructure exceptions


class RepositoryError(PricingCoreError):
    """An injected repository failed while resolving a reference."""

    code: str = "REPOSITORY_ERROR"

    def __init__(self, repository: str, reference: str, cause: Exception):
        self.repository = repository
        self.reference = reference
        self.cause = cause
        super().__init__(f"{repository} failed for {reference}: {cause}")


class ConfigurationError(PricingCoreError):
    """The pricing configuration is structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message if source is None else f"{source}: {message}")
