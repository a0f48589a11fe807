"""
Tests for the rule expression parser and evaluator.

Verifies:
- Operator precedence and associativity
- Decimal-exact literals
- Comparisons yield 1/0 and do not chain
- Bracketed references to hyphenated rule ids
- Typed errors for syntax, unbound names, division by zero, bad bindings
"""

from decimal import Decimal

import pytest

from pricing_engines.expression import (
    MAX_EXPRESSION_LENGTH,
    ExpressionEvaluator,
    TokenKind,
    evaluate_expression,
    parse_expression,
    tokenize,
    validate_expression,
)
from pricing_kernel.exceptions import (
    DivisionByZeroError,
    ExpressionSyntaxError,
    ExpressionTypeError,
    UnboundParameterError,
)


class TestTokenizer:
    def test_token_kinds(self):
        kinds = [t.kind for t in tokenize("basePrice * 0.19 >= [DE-VAT]")]
        assert kinds == [
            TokenKind.NAME,
            TokenKind.OP,
            TokenKind.NUMBER,
            TokenKind.COMPARE,
            TokenKind.REF,
            TokenKind.END,
        ]

    def test_positions(self):
        tokens = tokenize("a + b")
        assert [t.position for t in tokens] == [0, 2, 4, 5]

    def test_unexpected_character(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            tokenize("a ^ b")
        assert exc_info.value.position == 2

    def test_unterminated_reference(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            tokenize("[DE-VAT + 1")
        assert exc_info.value.position == 0


class TestEvaluation:
    """Arithmetic semantics."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1 + 2 * 3", Decimal("7")),
            ("(1 + 2) * 3", Decimal("9")),
            ("10 - 4 - 3", Decimal("3")),
            ("24 / 4 / 2", Decimal("3")),
            ("-2 * 3", Decimal("-6")),
            ("--2", Decimal("2")),
            ("+5", Decimal("5")),
        ],
    )
    def test_precedence_and_associativity(self, text, expected):
        assert evaluate_expression(text, {}) == expected

    def test_literals_are_exact(self):
        assert evaluate_expression("0.1 + 0.2", {}) == Decimal("0.3")

    def test_names_bound(self):
        assert evaluate_expression("basePrice * 0.19", {"basePrice": Decimal("1000")}) == Decimal("190.00")

    def test_int_binding_accepted(self):
        assert evaluate_expression("countryCount * 2", {"countryCount": 3}) == Decimal("6")

    def test_dotted_name(self):
        assert evaluate_expression("rates.reduced * 2", {"rates.reduced": Decimal("7")}) == Decimal("14")

    def test_bracketed_reference(self):
        assert evaluate_expression("[DE-VAT] + 10", {"DE-VAT": Decimal("190")}) == Decimal("200")

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2 > 1", Decimal(1)),
            ("2 < 1", Decimal(0)),
            ("2 >= 2", Decimal(1)),
            ("2 <= 1", Decimal(0)),
            ("2 == 2.00", Decimal(1)),
            ("2 != 2", Decimal(0)),
        ],
    )
    def test_comparisons_yield_one_or_zero(self, text, expected):
        assert evaluate_expression(text, {}) == expected

    def test_comparison_as_factor(self):
        bindings = {"transactionVolume": Decimal("1500"), "basePrice": Decimal("100")}
        assert evaluate_expression("(transactionVolume > 1000) * basePrice * 0.1", bindings) == Decimal("10.0")


class TestErrors:
    def test_empty_expression(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("   ")

    def test_chained_comparison(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("1 < 2 < 3")

    def test_unbalanced_parenthesis(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("(1 + 2")

    def test_trailing_tokens(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("1 2")
        assert exc_info.value.position == 2

    def test_empty_reference(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("[ ] + 1")

    def test_function_call_rejected(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("max(1, 2)")

    def test_too_long(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("1+" * MAX_EXPRESSION_LENGTH + "1")

    def test_too_deep(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("(" * 100 + "1" + ")" * 100)

    def test_unbound_name(self):
        with pytest.raises(UnboundParameterError) as exc_info:
            evaluate_expression("basePrice * rate", {"basePrice": Decimal("1")})
        assert exc_info.value.name == "rate"
        assert exc_info.value.code == "UNBOUND_PARAMETER"

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZeroError):
            evaluate_expression("basePrice / countryCount", {"basePrice": Decimal("1"), "countryCount": Decimal("0")})

    def test_text_binding_is_type_error(self):
        with pytest.raises(ExpressionTypeError) as exc_info:
            evaluate_expression("serviceType * 2", {"serviceType": "StandardFiling"})
        assert exc_info.value.name == "serviceType"
        assert exc_info.value.value_type == "str"

    def test_bool_binding_is_type_error(self):
        with pytest.raises(ExpressionTypeError):
            evaluate_expression("flag + 1", {"flag": True})


class TestParseCache:
    def test_same_text_same_ast(self):
        assert parse_expression("basePrice * 0.2") is parse_expression("basePrice * 0.2")

    def test_referenced_names(self):
        assert parse_expression("a + [b-c] * (d > 1)").names == frozenset({"a", "b-c", "d"})


class TestValidation:
    def test_valid(self):
        assert validate_expression("basePrice * 0.19") == []

    def test_syntax_issue_has_position(self):
        issues = validate_expression("basePrice * * 2")
        assert len(issues) == 1
        assert issues[0].position == 12

    def test_unknown_names_reported(self):
        issues = validate_expression("basePrice + bogus", frozenset({"basePrice"}))
        assert [i.message for i in issues] == ["Unknown parameter: bogus"]


class TestExpressionEvaluator:
    """Declared-parameter scoping."""

    def setup_method(self):
        self.evaluator = ExpressionEvaluator()

    def test_undeclared_name_hidden(self):
        bindings = {"basePrice": Decimal("100"), "subtotal": Decimal("150")}
        with pytest.raises(UnboundParameterError):
            self.evaluator.evaluate("basePrice + subtotal", bindings, declared=("basePrice",))

    def test_declared_but_unbound(self):
        with pytest.raises(UnboundParameterError) as exc_info:
            self.evaluator.evaluate("1", {}, declared=("transactionVolume",))
        assert exc_info.value.name == "transactionVolume"

    def test_no_declaration_sees_everything(self):
        bindings = {"basePrice": Decimal("100"), "subtotal": Decimal("150")}
        assert self.evaluator.evaluate("basePrice + subtotal", bindings) == Decimal("250")
