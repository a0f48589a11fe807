"""
Values -- Immutable, self-validating value objects for pricing.

Responsibility:
    Provides Currency, Money, VatRate, CountryCode and DateRange. These
    replace primitive types (Decimal, str, date pairs) wherever prices,
    rates or jurisdictions appear in domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other module. No outward dependencies except
    pricing_kernel.domain.currency and pricing_kernel.exceptions.

Invariants enforced:
    - Money amounts are Decimal, never float.
    - Money arithmetic never mixes currencies (CurrencyMismatchError).
    - Currency codes are valid ISO 4217 at construction (InvalidCurrencyError).
    - VAT rates lie in [0, 100].
    - Date ranges are ordered; containment is inclusive on both ends.

Failure modes:
    - ValueError on construction with invalid amounts, rates, codes or ranges
    - TypeError when operands have the wrong type
    - CurrencyMismatchError when arithmetic mixes currencies
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.exceptions import CurrencyMismatchError

_COUNTRY_CODE_RE = re.compile(r"^[A-Z]{2}$")


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Contract:
        Wraps a three-letter code, normalized (uppercased) on construction.
        Unknown codes raise InvalidCurrencyError immediately.
    """

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CurrencyRegistry.validate(self.code))

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def quantum(self) -> Decimal:
        """Smallest displayable unit of this currency."""
        return CurrencyRegistry.get_info(self.code).quantum

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency; they are never separated.
        Amounts are kept at full precision. Nothing rounds implicitly:
        callers round explicitly with ``round()`` where a value becomes a
        displayed line.

    Guarantees:
        - Immutable and hashable
        - amount is always a Decimal (never float)
        - Addition, subtraction and ordering require equal currencies
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise TypeError("Money amount must not be a float")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Money amount must be finite, got {self.amount}")

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Build Money from a Decimal, str or int amount (floats are rejected)."""
        if isinstance(amount, (str, int)) and not isinstance(amount, bool):
            amount = Decimal(str(amount))
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's ISO 4217 precision, half-up by default."""
        rounded = self.amount.quantize(self.currency.quantum, rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __mul__(self, factor: Decimal | int) -> Money:
        """Multiply by a scalar."""
        if isinstance(factor, int) and not isinstance(factor, bool):
            factor = Decimal(factor)
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int) -> Money:
        return self.__mul__(factor)

    def __truediv__(self, divisor: Decimal | int) -> Money:
        """Divide by a scalar."""
        if isinstance(divisor, int) and not isinstance(divisor, bool):
            divisor = Decimal(divisor)
        if not isinstance(divisor, Decimal):
            return NotImplemented
        return Money(amount=self.amount / divisor, currency=self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


@dataclass(frozen=True, slots=True)
class VatRate:
    """A VAT rate expressed as a percentage in [0, 100]."""

    percentage: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.percentage, float):
            raise TypeError("VatRate percentage must not be a float")
        if not isinstance(self.percentage, Decimal):
            try:
                object.__setattr__(self, "percentage", Decimal(str(self.percentage)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid VAT rate: {self.percentage}") from e
        if not (Decimal("0") <= self.percentage <= Decimal("100")):
            raise ValueError(f"VAT rate must be between 0 and 100, got {self.percentage}")

    @property
    def as_fraction(self) -> Decimal:
        return self.percentage / Decimal("100")

    @property
    def is_zero_rated(self) -> bool:
        return self.percentage == Decimal("0")

    def __str__(self) -> str:
        return f"{self.percentage}%"


@dataclass(frozen=True, slots=True)
class CountryCode:
    """Two-letter upper-case country code (ISO 3166-1 alpha-2 shape)."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError(f"country code must be str, got {type(self.value)}")
        normalized = self.value.strip().upper()
        if not _COUNTRY_CODE_RE.match(normalized):
            raise ValueError(f"Invalid country code: {self.value!r}")
        object.__setattr__(self, "value", normalized)

    def __lt__(self, other: CountryCode) -> bool:
        if not isinstance(other, CountryCode):
            return NotImplemented
        return self.value < other.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class DateRange:
    """
    Closed date interval; ``end=None`` means open-ended.

    ``contains`` is inclusive on both ends.
    """

    start: date
    end: date | None = None

    def __post_init__(self) -> None:
        if self.end is not None and self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")

    def contains(self, d: date) -> bool:
        if d < self.start:
            return False
        return self.end is None or d <= self.end
