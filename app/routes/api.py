from __future__ import annotations

from datetime import date
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.clock import local_today
from app.config import get_settings
from app.db import check_db_health, get_db_session
from app.models.billing import BillingCycle
from app.services.billing_engine import (
    BillingValidationError,
    ContractNotFoundError,
    SweepAuthorizationError,
    list_contract_cycles,
    run_authorized_daily_sweep,
)
from app.services.onboarding_service import (
    MemberConflictOtherGym,
    MemberConflictSameGym,
    MemberCreated,
    OnboardMemberInput,
    OnboardingValidationError,
    onboard_member,
)

logger = logging.getLogger(__name__)

api_router = APIRouter(tags=["api"])


class MemberOnboardRequest(BaseModel):
    gym_id: str = Field(min_length=1, max_length=64)
    phone: str = Field(min_length=1, max_length=32)
    start_date: date
    plan_type: str
    full_name: str | None = Field(default=None, max_length=255)
    membership_number: str | None = Field(default=None, max_length=64)
    joined_at: date | None = None
    end_date: date | None = None
    initial_payment_status: str = "unpaid"
    today: date | None = None


class BillingCycleResponse(BaseModel):
    id: int
    member_id: int
    contract_id: int
    cycle_start: date
    cycle_end: date
    due_date: date
    status: str
    last_payment_date: date | None

    @classmethod
    def from_model(cls, cycle: BillingCycle) -> "BillingCycleResponse":
        return cls(
            id=cycle.id,
            member_id=cycle.member_id,
            contract_id=cycle.contract_id,
            cycle_start=cycle.cycle_start,
            cycle_end=cycle.cycle_end,
            due_date=cycle.due_date,
            status=cycle.status,
            last_payment_date=cycle.last_payment_date,
        )


class DailySweepRequest(BaseModel):
    today: date | None = None


@api_router.get("/health")
def health_check(db: Session = Depends(get_db_session)) -> dict[str, str]:
    try:
        check_db_health(db)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="database unavailable") from exc
    return {"status": "ok"}


@api_router.post("/members", status_code=201)
def members_onboard(payload: MemberOnboardRequest, db: Session = Depends(get_db_session)):
    try:
        result = onboard_member(
            db,
            OnboardMemberInput(
                gym_id=payload.gym_id,
                phone=payload.phone,
                start_date=payload.start_date,
                plan_type=payload.plan_type,
                full_name=payload.full_name,
                membership_number=payload.membership_number,
                joined_at=payload.joined_at,
                end_date=payload.end_date,
                initial_payment_status=payload.initial_payment_status,
            ),
            today=payload.today or local_today(),
        )
    except (OnboardingValidationError, BillingValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Member onboarding failed gym_id=%s", payload.gym_id)
        raise HTTPException(status_code=500, detail="member onboarding failed") from exc

    if isinstance(result, MemberCreated):
        return {
            "outcome": "created",
            "member_id": result.member_id,
            "contract_id": result.contract_id,
            "cycle": BillingCycleResponse.from_model(result.cycle).model_dump(mode="json"),
        }
    if isinstance(result, MemberConflictSameGym):
        return JSONResponse(
            status_code=409,
            content={
                "outcome": "conflict_same_gym",
                "message": "This mobile number is already registered in your gym.",
                "existing_member_id": result.existing_member_id,
                "existing_status": result.existing_status,
            },
        )
    if isinstance(result, MemberConflictOtherGym):
        return JSONResponse(
            status_code=409,
            content={
                "outcome": "conflict_other_gym",
                "message": "This mobile number is registered with another gym.",
                "phone": result.phone,
                "other_gym_count": result.other_gym_count,
            },
        )
    raise TypeError(f"Unhandled onboarding result: {type(result).__name__}")


@api_router.get("/contracts/{contract_id}/cycles", response_model=list[BillingCycleResponse])
def contract_cycles_list(contract_id: int, db: Session = Depends(get_db_session)) -> list[BillingCycleResponse]:
    try:
        cycles = list_contract_cycles(db, contract_id=contract_id)
    except ContractNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [BillingCycleResponse.from_model(cycle) for cycle in cycles]


@api_router.post("/admin/run-daily-sweep")
def run_daily_sweep_api(
    payload: DailySweepRequest,
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    run_today = payload.today or local_today()
    try:
        result = run_authorized_daily_sweep(
            db,
            today=run_today,
            authorization=authorization,
            service_key=get_settings().billing_service_key,
        )
    except SweepAuthorizationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Billing sweep failed today=%s", run_today)
        raise HTTPException(status_code=500, detail="billing sweep failed") from exc

    return {
        "today": result.today.isoformat(),
        "processed": result.processed,
        "created": result.created,
        "expired_contracts": result.expired_contracts,
        "overdue_cycles": result.overdue_cycles,
    }
