"""Currency -- ISO 4217 registry and display precision for quoted prices."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from pricing_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """One ISO 4217 currency and its minor-unit precision."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest displayable unit, used as the ``quantize`` exponent."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of ISO 4217 currencies a quote may be issued in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        code: CurrencyInfo(code, places, name)
        for code, places, name in (
            # VAT jurisdictions served
            ("EUR", 2, "Euro"), ("GBP", 2, "Pound Sterling"), ("CHF", 2, "Swiss Franc"),
            ("NOK", 2, "Norwegian Krone"), ("SEK", 2, "Swedish Krona"), ("DKK", 2, "Danish Krone"),
            ("PLN", 2, "Polish Zloty"), ("CZK", 2, "Czech Koruna"), ("HUF", 2, "Hungarian Forint"),
            ("RON", 2, "Romanian Leu"), ("BGN", 2, "Bulgarian Lev"), ("ISK", 0, "Icelandic Krona"),
            ("TRY", 2, "Turkish Lira"),
            # Settlement currencies clients are commonly billed in
            ("USD", 2, "US Dollar"), ("CAD", 2, "Canadian Dollar"), ("AUD", 2, "Australian Dollar"),
            ("NZD", 2, "New Zealand Dollar"), ("JPY", 0, "Japanese Yen"), ("KRW", 0, "South Korean Won"),
            ("SGD", 2, "Singapore Dollar"), ("CNY", 2, "Chinese Yuan"), ("INR", 2, "Indian Rupee"),
            ("ZAR", 2, "South African Rand"), ("AED", 2, "UAE Dirham"), ("SAR", 2, "Saudi Riyal"),
            ("MXN", 2, "Mexican Peso"), ("BRL", 2, "Brazilian Real"),
            # Three-decimal currencies
            ("BHD", 3, "Bahraini Dinar"), ("KWD", 3, "Kuwaiti Dinar"), ("OMR", 3, "Omani Rial"),
        )
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Decimal places for a registered currency.

        Raises:
            InvalidCurrencyError: If the code is not registered.
        """
        info = cls.get_info(code)
        if info is None:
            raise InvalidCurrencyError(str(code))
        return info.decimal_places

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code, returning the upper-case form."""
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(repr(code))
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized
