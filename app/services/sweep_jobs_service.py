from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.models.jobs import JobRun
from app.services.billing_engine import SweepResult, run_daily_sweep

logger = logging.getLogger(__name__)


DAILY_SWEEP_JOB_NAME = "billing_daily_sweep"
REQUIRED_TABLES = {"members", "membership_contracts", "membership_billing_cycles", "job_runs"}


@dataclass(frozen=True)
class GuardedSweepRunResult:
    job_name: str
    run_date: date
    ran: bool
    sweep_result: SweepResult | None


def has_daily_job_run(session: Session, *, job_name: str, run_date: date) -> bool:
    existing = session.scalar(
        select(JobRun.id).where(JobRun.job_name == job_name, JobRun.run_date == run_date)
    )
    return existing is not None


def try_mark_daily_job_run(
    session: Session,
    *,
    job_name: str,
    run_date: date,
    processed_count: int | None = None,
    created_count: int | None = None,
) -> bool:
    session.add(
        JobRun(
            job_name=job_name,
            run_date=run_date,
            processed_count=processed_count,
            created_count=created_count,
        )
    )
    try:
        session.commit()
        return True
    except IntegrityError:
        session.rollback()
        return False


def run_daily_sweep_once_per_day(session: Session, *, today: date) -> GuardedSweepRunResult:
    if has_daily_job_run(session, job_name=DAILY_SWEEP_JOB_NAME, run_date=today):
        logger.info("Billing sweep guard skip job=%s run_date=%s", DAILY_SWEEP_JOB_NAME, today)
        return GuardedSweepRunResult(
            job_name=DAILY_SWEEP_JOB_NAME,
            run_date=today,
            ran=False,
            sweep_result=None,
        )

    # Recorded only after a successful sweep.
    sweep_result = run_daily_sweep(session, today=today)
    recorded = try_mark_daily_job_run(
        session,
        job_name=DAILY_SWEEP_JOB_NAME,
        run_date=today,
        processed_count=sweep_result.processed,
        created_count=sweep_result.created,
    )
    logger.info(
        "Billing sweep guard run job=%s run_date=%s processed=%s created=%s recorded=%s",
        DAILY_SWEEP_JOB_NAME,
        today,
        sweep_result.processed,
        sweep_result.created,
        recorded,
    )
    return GuardedSweepRunResult(
        job_name=DAILY_SWEEP_JOB_NAME,
        run_date=today,
        ran=True,
        sweep_result=sweep_result,
    )


def run_daily_sweep_once_per_day_in_session_if_ready(
    session: Session,
    *,
    today: date,
) -> GuardedSweepRunResult | None:
    inspector = inspect(session.bind)
    tables = set(inspector.get_table_names())
    if not REQUIRED_TABLES.issubset(tables):
        logger.debug("Billing sweep readiness check failed tables=%s", ",".join(sorted(tables)))
        return None
    return run_daily_sweep_once_per_day(session, today=today)


def run_daily_sweep_once_per_day_if_ready(*, today: date) -> GuardedSweepRunResult | None:
    with SessionLocal() as session:
        return run_daily_sweep_once_per_day_in_session_if_ready(session, today=today)
