"""Tests for canonical JSON and the hashing helpers."""

from datetime import date
from decimal import Decimal

import pytest

from pricing_kernel.domain.rules import RuleType
from pricing_kernel.utils.hashing import canonicalize_json, hash_payload, hash_rule_rows


class TestCanonicalizeJson:
    def test_sorted_compact(self):
        assert canonicalize_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_special_types(self):
        text = canonicalize_json({
            "amount": Decimal("1.50"),
            "as_of": date(2024, 3, 1),
            "type": RuleType.RATE,
            "codes": frozenset({"GB", "DE"}),
        })
        assert '"amount":"1.5"' in text
        assert '"as_of":"2024-03-01"' in text
        assert '"codes":["DE","GB"]' in text

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})


class TestHashes:
    def test_payload_hash_is_sha256_hex(self):
        digest = hash_payload({"a": 1})
        assert len(digest) == 64
        assert digest == hash_payload({"a": 1})

    def test_rule_rows_order_independent(self):
        rows = [
            {"rule_id": "B", "country_code": "GB", "expression": "1"},
            {"rule_id": "A", "country_code": "DE", "expression": "2"},
        ]
        assert hash_rule_rows(rows) == hash_rule_rows(list(reversed(rows)))

    def test_rule_rows_content_sensitive(self):
        row = {"rule_id": "A", "country_code": "DE", "expression": "2"}
        assert hash_rule_rows([row]) != hash_rule_rows([{**row, "expression": "3"}])
