from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
import logging
import re

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.billing import PLAN_TYPES, BillingCycle, Contract
from app.models.members import Member
from app.services.billing_engine import create_initial_cycle
from app.services.cycle_calculator import add_calendar_months, compute_cycle_bounds

logger = logging.getLogger(__name__)


class OnboardingValidationError(ValueError):
    pass


INITIAL_PAYMENT_STATUSES = ("paid", "unpaid")


@dataclass(frozen=True)
class OnboardMemberInput:
    gym_id: str
    phone: str
    start_date: date
    plan_type: str
    full_name: str | None = None
    membership_number: str | None = None
    joined_at: date | None = None
    end_date: date | None = None
    initial_payment_status: str = "unpaid"


@dataclass(frozen=True)
class MemberCreated:
    member_id: int
    contract_id: int
    cycle: BillingCycle


@dataclass(frozen=True)
class MemberConflictSameGym:
    existing_member_id: int | None
    existing_status: str | None


@dataclass(frozen=True)
class MemberConflictOtherGym:
    phone: str
    other_gym_count: int


OnboardingResult = MemberCreated | MemberConflictSameGym | MemberConflictOtherGym


def normalize_phone(raw_phone: str) -> str:
    compact = re.sub(r"\s+", "", raw_phone)
    return compact if compact.startswith("+") else f"+{compact}"


def resolve_contract_end_date(*, start_date: date, plan_type: str, end_date: date | None = None) -> date:
    if end_date is not None:
        if end_date < start_date:
            raise OnboardingValidationError("end_date must not be before start_date")
        return end_date
    if plan_type == "custom":
        return add_calendar_months(start_date, 1) - timedelta(days=1)
    return compute_cycle_bounds(start_date, plan_type).end


def _validate(data: OnboardMemberInput) -> None:
    missing = [
        name
        for name, value in (("gym_id", data.gym_id), ("phone", data.phone), ("plan_type", data.plan_type))
        if not (value or "").strip()
    ]
    if missing:
        raise OnboardingValidationError(f"Missing required fields: {', '.join(missing)}")
    if data.plan_type not in PLAN_TYPES:
        raise OnboardingValidationError(f"Unsupported plan_type: {data.plan_type}")
    if data.initial_payment_status not in INITIAL_PAYMENT_STATUSES:
        raise OnboardingValidationError(f"Unsupported initial_payment_status: {data.initial_payment_status}")


def find_phone_conflict(session: Session, *, gym_id: str, phone: str) -> OnboardingResult | None:
    same_gym = session.scalar(select(Member).where(Member.gym_id == gym_id, Member.phone == phone))
    if same_gym is not None:
        return MemberConflictSameGym(existing_member_id=same_gym.id, existing_status=same_gym.status)

    other_gym_count = session.scalar(
        select(func.count()).select_from(Member).where(Member.phone == phone, Member.gym_id != gym_id)
    )
    if other_gym_count:
        return MemberConflictOtherGym(phone=phone, other_gym_count=other_gym_count)
    return None


def onboard_member(session: Session, data: OnboardMemberInput, *, today: date) -> OnboardingResult:
    _validate(data)
    gym_id = data.gym_id.strip()
    phone = normalize_phone(data.phone)
    contract_end = resolve_contract_end_date(
        start_date=data.start_date,
        plan_type=data.plan_type,
        end_date=data.end_date,
    )

    conflict = find_phone_conflict(session, gym_id=gym_id, phone=phone)
    if conflict is not None:
        logger.info("Member onboarding conflict gym_id=%s outcome=%s", gym_id, type(conflict).__name__)
        return conflict

    member = Member(
        gym_id=gym_id,
        phone=phone,
        full_name=(data.full_name or "").strip() or "Member",
        membership_number=data.membership_number,
        status="active",
        joined_at=data.joined_at,
    )
    session.add(member)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info("Member onboarding lost insert race gym_id=%s", gym_id)
        return MemberConflictSameGym(existing_member_id=None, existing_status=None)

    try:
        contract = Contract(
            member_id=member.id,
            start_date=data.start_date,
            end_date=contract_end,
            plan_type=data.plan_type,
            status="active",
        )
        session.add(contract)
        session.flush()

        cycle = create_initial_cycle(
            session,
            contract,
            paid_at_creation=data.initial_payment_status == "paid",
            today=today,
            commit=False,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(cycle)
    logger.info(
        "Member onboarded member_id=%s contract_id=%s plan_type=%s start_date=%s end_date=%s",
        member.id,
        contract.id,
        contract.plan_type,
        contract.start_date,
        contract.end_date,
    )
    return MemberCreated(member_id=member.id, contract_id=contract.id, cycle=cycle)
