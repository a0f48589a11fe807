"""Kernel utilities."""

from pricing_kernel.utils.hashing import canonicalize_json, hash_payload, hash_rule_rows

__all__ = ["canonicalize_json", "hash_payload", "hash_rule_rows"]
