"""
Module: pricing_kernel.models.catalog
Responsibility: ORM persistence for countries, filing services and
    additional services.
Architecture position: Kernel > Models. May import from db/base.py only.

Natural keys (country code, service id) are unique. Money columns pair a
Numeric amount with a three-letter currency column; they are converted to
domain Money by the SQL repositories.
"""

from decimal import Decimal

from sqlalchemy import JSON, Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase


class CountryRecord(TrackedBase):
    """A VAT jurisdiction row."""

    __tablename__ = "pricing_countries"

    __table_args__ = (
        UniqueConstraint("code", name="uq_pricing_country_code"),
    )

    code: Mapped[str] = mapped_column(String(2), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    standard_vat_rate: Mapped[Decimal] = mapped_column(nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)

    # Filing frequency values, e.g. ["Monthly", "Quarterly"]
    filing_frequencies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<CountryRecord {self.code}: {self.name}>"


class ServiceRecord(TrackedBase):
    """A filing service row."""

    __tablename__ = "pricing_services"

    __table_args__ = (
        UniqueConstraint("service_id", name="uq_pricing_service_id"),
    )

    service_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    complexity_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    service_type: Mapped[str] = mapped_column(String(30), nullable=False)

    def __repr__(self) -> str:
        return f"<ServiceRecord {self.service_id}: {self.name}>"


class AdditionalServiceRecord(TrackedBase):
    """An add-on service row."""

    __tablename__ = "pricing_additional_services"

    __table_args__ = (
        UniqueConstraint("service_id", name="uq_pricing_additional_service_id"),
    )

    service_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    cost: Mapped[Decimal] = mapped_column(nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)

    def __repr__(self) -> str:
        return f"<AdditionalServiceRecord {self.service_id}: {self.name}>"
