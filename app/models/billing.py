from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin
from app.models.members import Member


PLAN_TYPES = ("monthly", "quarterly", "yearly", "custom")
CONTRACT_STATUSES = ("active", "paused", "expired")
CYCLE_STATUSES = ("unpaid", "paid", "overdue")


class Contract(TimestampMixin, Base):
    __tablename__ = "membership_contracts"
    __table_args__ = (
        CheckConstraint(
            "plan_type IN ('monthly','quarterly','yearly','custom')",
            name="ck_contracts_plan_type",
        ),
        CheckConstraint(
            "status IN ('active','paused','expired')",
            name="ck_contracts_status",
        ),
        CheckConstraint("end_date >= start_date", name="ck_contracts_date_range"),
        Index("ix_membership_contracts_status_end_date", "status", "end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    plan_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    member: Mapped[Member] = relationship(back_populates="contracts")
    cycles: Mapped[list["BillingCycle"]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="BillingCycle.cycle_start",
    )


class BillingCycle(TimestampMixin, Base):
    __tablename__ = "membership_billing_cycles"
    __table_args__ = (
        UniqueConstraint("contract_id", "cycle_start", name="uq_billing_cycles_contract_cycle_start"),
        CheckConstraint(
            "status IN ('unpaid','paid','overdue')",
            name="ck_billing_cycles_status",
        ),
        CheckConstraint("cycle_end >= cycle_start", name="ck_billing_cycles_date_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey("membership_contracts.id", ondelete="CASCADE"), nullable=False
    )
    cycle_start: Mapped[date] = mapped_column(Date, nullable=False)
    cycle_end: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid", index=True)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    contract: Mapped[Contract] = relationship(back_populates="cycles")
