"""
Pricing Kernel

Value types, the rule model, request/result models, typed exceptions,
structured logging and the reference persistence layer for the VAT filing
pricing core.
"""

__version__ = "0.1.0"
