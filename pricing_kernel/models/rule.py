"""
Module: pricing_kernel.models.rule
Responsibility: ORM persistence for pricing rules and their conditions.
Architecture position: Kernel > Models. May import from db/base.py only.

Rules are versioned by replacement: a changed rule is stored as a new row
with a new rule_id and the old row's effective_to closed. Rows are never
edited in place by the pricing core.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricing_kernel.db.base import Base, TrackedBase, UUIDString


class RuleRecord(TrackedBase):
    """A country-specific pricing rule row."""

    __tablename__ = "pricing_rules"

    __table_args__ = (
        UniqueConstraint("rule_id", name="uq_pricing_rule_id"),
        Index("idx_pricing_rule_country", "country_code"),
    )

    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expression: Mapped[str] = mapped_column(Text, nullable=False)

    # Names the expression is allowed to read
    parameters: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    effective_from: Mapped[date] = mapped_column(nullable=False)
    effective_to: Mapped[date | None] = mapped_column(nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    conditions: Mapped[list["RuleConditionRecord"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="RuleConditionRecord.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RuleRecord {self.rule_id} ({self.country_code})>"


class RuleConditionRecord(Base):
    """One guard of a rule, kept in declaration order."""

    __tablename__ = "pricing_rule_conditions"

    rule_pk: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pricing_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parameter_name: Mapped[str] = mapped_column(String(100), nullable=False)
    operator: Mapped[str] = mapped_column(String(30), nullable=False)
    value: Mapped[str] = mapped_column(String(200), nullable=False)

    rule: Mapped[RuleRecord] = relationship(back_populates="conditions")
