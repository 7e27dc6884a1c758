from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import date
import hmac
import logging

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.billing import CONTRACT_STATUSES, PLAN_TYPES, BillingCycle, Contract
from app.services.cycle_calculator import compute_cycle_bounds

logger = logging.getLogger(__name__)


class BillingValidationError(ValueError):
    pass


class ContractNotFoundError(BillingValidationError):
    pass


class SweepAuthorizationError(PermissionError):
    pass


CYCLE_UNIQUE_KEY = ("contract_id", "cycle_start")


@dataclass(frozen=True)
class ContractSpec:
    contract_id: int
    member_id: int
    start_date: date
    end_date: date
    plan_type: str
    status: str


@dataclass(frozen=True)
class CycleSeed:
    member_id: int
    contract_id: int
    cycle_start: date
    cycle_end: date
    due_date: date
    status: str = "unpaid"
    last_payment_date: date | None = None


@dataclass(frozen=True)
class SweepResult:
    today: date
    processed: int
    created: int
    expired_contracts: int
    overdue_cycles: int


def _to_contract_spec(contract: Contract) -> ContractSpec:
    return ContractSpec(
        contract_id=contract.id,
        member_id=contract.member_id,
        start_date=contract.start_date,
        end_date=contract.end_date,
        plan_type=contract.plan_type,
        status=contract.status,
    )


def _seed_to_values(seed: CycleSeed) -> dict[str, object]:
    return {
        "member_id": seed.member_id,
        "contract_id": seed.contract_id,
        "cycle_start": seed.cycle_start,
        "cycle_end": seed.cycle_end,
        "due_date": seed.due_date,
        "status": seed.status,
        "last_payment_date": seed.last_payment_date,
    }


def validate_contract(contract: ContractSpec) -> None:
    if contract.plan_type not in PLAN_TYPES:
        raise BillingValidationError(f"Unsupported plan_type: {contract.plan_type}")
    if contract.status not in CONTRACT_STATUSES:
        raise BillingValidationError(f"Unsupported contract status: {contract.status}")
    if contract.end_date < contract.start_date:
        raise BillingValidationError("end_date must not be before start_date")


def build_initial_cycle_seed(contract: ContractSpec, *, paid_at_creation: bool, today: date) -> CycleSeed:
    validate_contract(contract)
    if contract.status != "active":
        raise BillingValidationError(
            f"Initial cycle requires an active contract, got status '{contract.status}'"
        )

    if contract.plan_type == "custom":
        cycle_end = contract.end_date
    else:
        cycle_end = min(compute_cycle_bounds(contract.start_date, contract.plan_type).end, contract.end_date)

    return CycleSeed(
        member_id=contract.member_id,
        contract_id=contract.contract_id,
        cycle_start=contract.start_date,
        cycle_end=cycle_end,
        due_date=contract.start_date,
        status="paid" if paid_at_creation else "unpaid",
        last_payment_date=today if paid_at_creation else None,
    )


def build_successor_cycle_seed(*, cycle_start: date, contract: ContractSpec) -> CycleSeed | None:
    """Return the cycle following the one that starts on ``cycle_start``, or None when the contract has no more cycles."""
    if contract.status != "active" or contract.plan_type == "custom":
        return None

    current = compute_cycle_bounds(cycle_start, contract.plan_type)
    next_start = current.next_start
    if next_start > contract.end_date:
        return None

    next_end = compute_cycle_bounds(next_start, contract.plan_type).end
    return CycleSeed(
        member_id=contract.member_id,
        contract_id=contract.contract_id,
        cycle_start=next_start,
        cycle_end=min(next_end, contract.end_date),
        due_date=next_start,
    )


def get_contract(session: Session, contract_id: int) -> Contract:
    contract = session.get(Contract, contract_id)
    if contract is None:
        raise ContractNotFoundError(f"Contract {contract_id} not found")
    return contract


def list_contract_cycles(session: Session, *, contract_id: int) -> list[BillingCycle]:
    get_contract(session, contract_id)
    return session.scalars(
        select(BillingCycle)
        .where(BillingCycle.contract_id == contract_id)
        .order_by(BillingCycle.cycle_start.asc())
    ).all()


def create_initial_cycle(
    session: Session,
    contract: Contract,
    *,
    paid_at_creation: bool,
    today: date,
    commit: bool = True,
) -> BillingCycle:
    seed = build_initial_cycle_seed(_to_contract_spec(contract), paid_at_creation=paid_at_creation, today=today)
    cycle = BillingCycle(**_seed_to_values(seed))
    session.add(cycle)
    session.flush()
    if commit:
        session.commit()
        session.refresh(cycle)
    logger.info(
        "Initial billing cycle created contract_id=%s cycle_start=%s cycle_end=%s status=%s",
        seed.contract_id,
        seed.cycle_start,
        seed.cycle_end,
        seed.status,
    )
    return cycle


def authorize_sweep_caller(authorization: str | None, *, service_key: str) -> None:
    if not service_key:
        raise SweepAuthorizationError("Billing service key is not configured")
    expected = f"Bearer {service_key}"
    if authorization is None or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise SweepAuthorizationError("Caller is not authorized to run the billing sweep")


def expire_contracts(session: Session, *, today: date) -> int:
    result = session.execute(
        update(Contract)
        .where(Contract.status == "active", Contract.end_date < today)
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount


def mark_overdue_cycles(session: Session, *, today: date) -> int:
    result = session.execute(
        update(BillingCycle)
        .where(BillingCycle.status == "unpaid", BillingCycle.cycle_end < today)
        .values(status="overdue")
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount


def list_progressable_cycles(session: Session, *, today: date) -> list[tuple[date, date, ContractSpec]]:
    rows = session.execute(
        select(BillingCycle.cycle_start, BillingCycle.cycle_end, Contract)
        .join(Contract, BillingCycle.contract_id == Contract.id)
        .where(
            BillingCycle.cycle_end <= today,
            Contract.status == "active",
            Contract.plan_type != "custom",
        )
        .order_by(BillingCycle.cycle_start.asc(), BillingCycle.contract_id.asc())
    ).all()
    return [(cycle_start, cycle_end, _to_contract_spec(contract)) for cycle_start, cycle_end, contract in rows]


def _read_contract_status(session: Session, contract_id: int) -> str | None:
    return session.scalar(select(Contract.status).where(Contract.id == contract_id))


def insert_cycle_if_absent(session: Session, seed: CycleSeed) -> bool:
    """Insert ``seed`` unless a cycle with the same (contract_id, cycle_start) exists. Returns True on insert."""
    values = _seed_to_values(seed)
    dialect_name = session.get_bind().dialect.name

    if dialect_name in {"sqlite", "postgresql"}:
        dialect_insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
        stmt = (
            dialect_insert(BillingCycle.__table__)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(CYCLE_UNIQUE_KEY))
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    try:
        with session.begin_nested():
            session.add(BillingCycle(**values))
    except IntegrityError:
        return False
    return True


def run_daily_sweep(session: Session, *, today: date) -> SweepResult:
    expired_contracts = expire_contracts(session, today=today)
    logger.info("Billing sweep expired contracts today=%s expired=%s", today, expired_contracts)

    overdue_cycles = mark_overdue_cycles(session, today=today)
    logger.info("Billing sweep marked overdue cycles today=%s overdue=%s", today, overdue_cycles)

    pending = deque(list_progressable_cycles(session, today=today))
    processed = 0
    created = 0
    caught_up = 0
    while pending:
        cycle_start, cycle_end, contract = pending.popleft()
        processed += 1

        status = _read_contract_status(session, contract.contract_id)
        if status != "active":
            logger.debug(
                "Billing sweep skipped contract contract_id=%s status=%s",
                contract.contract_id,
                status,
            )
            continue

        seed = build_successor_cycle_seed(cycle_start=cycle_start, contract=contract)
        if seed is None:
            continue

        inserted = insert_cycle_if_absent(session, seed)
        session.commit()
        if not inserted:
            continue

        created += 1
        # A sweep after missed days keeps walking forward until it reaches today.
        if seed.cycle_end <= today:
            caught_up += 1
            pending.append((seed.cycle_start, seed.cycle_end, contract))

    # Caught-up cycles whose end has passed are overdue within the same run.
    if caught_up:
        late_overdue = mark_overdue_cycles(session, today=today)
        overdue_cycles += late_overdue
        logger.info("Billing sweep marked caught-up cycles overdue today=%s overdue=%s", today, late_overdue)

    logger.info(
        "Billing sweep completed today=%s processed=%s created=%s expired_contracts=%s overdue_cycles=%s",
        today,
        processed,
        created,
        expired_contracts,
        overdue_cycles,
    )
    return SweepResult(
        today=today,
        processed=processed,
        created=created,
        expired_contracts=expired_contracts,
        overdue_cycles=overdue_cycles,
    )


def run_authorized_daily_sweep(
    session: Session,
    *,
    today: date,
    authorization: str | None,
    service_key: str,
) -> SweepResult:
    try:
        authorize_sweep_caller(authorization, service_key=service_key)
    except SweepAuthorizationError:
        logger.warning("Billing sweep rejected unauthorized caller today=%s", today)
        raise
    return run_daily_sweep(session, today=today)
