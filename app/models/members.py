from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


MEMBER_STATUSES = ("active", "inactive")


class Member(TimestampMixin, Base):
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("gym_id", "phone", name="uq_members_gym_phone"),
        CheckConstraint("status IN ('active','inactive')", name="ck_members_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    gym_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    membership_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    joined_at: Mapped[date | None] = mapped_column(Date, nullable=True)

    contracts: Mapped[list["Contract"]] = relationship(  # noqa: F821
        back_populates="member",
        cascade="all, delete-orphan",
    )
