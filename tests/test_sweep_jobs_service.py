from __future__ import annotations

from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401
from app.models.base import Base
from app.models.billing import BillingCycle, Contract
from app.models.jobs import JobRun
from app.models.members import Member
from app.services.billing_engine import create_initial_cycle
from app.services.sweep_jobs_service import (
    DAILY_SWEEP_JOB_NAME,
    run_daily_sweep_once_per_day,
    run_daily_sweep_once_per_day_in_session_if_ready,
    try_mark_daily_job_run,
)


def _make_session(tmp_path, *, create_schema: bool = True) -> Session:
    db_path = tmp_path / "sweep_jobs.db"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    if create_schema:
        Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return SessionLocal()


def test_job_run_daily_guard_prevents_duplicate_day_marks(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        first = try_mark_daily_job_run(session, job_name=DAILY_SWEEP_JOB_NAME, run_date=date(2025, 2, 1))
        second = try_mark_daily_job_run(session, job_name=DAILY_SWEEP_JOB_NAME, run_date=date(2025, 2, 1))
        third = try_mark_daily_job_run(session, job_name=DAILY_SWEEP_JOB_NAME, run_date=date(2025, 2, 2))

        assert (first, second, third) == (True, False, True)
        assert len(session.scalars(select(JobRun)).all()) == 2
    finally:
        session.close()


def test_guarded_sweep_runs_only_once_per_day(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        member = Member(gym_id="gym-1", phone="+15550001", full_name="Sam")
        session.add(member)
        session.flush()
        contract = Contract(
            member_id=member.id,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 6, 30),
            plan_type="monthly",
            status="active",
        )
        session.add(contract)
        session.commit()
        create_initial_cycle(session, contract, paid_at_creation=True, today=date(2025, 1, 1))

        first = run_daily_sweep_once_per_day(session, today=date(2025, 2, 1))
        second = run_daily_sweep_once_per_day(session, today=date(2025, 2, 1))

        assert first.ran is True
        assert first.sweep_result is not None
        assert first.sweep_result.created == 1
        assert second.ran is False
        assert second.sweep_result is None
        runs = session.scalars(select(JobRun)).all()
        assert [(run.job_name, run.run_date, run.processed_count, run.created_count) for run in runs] == [
            (DAILY_SWEEP_JOB_NAME, date(2025, 2, 1), 1, 1)
        ]
    finally:
        session.close()


def test_guarded_sweep_skips_when_schema_missing(tmp_path) -> None:
    session = _make_session(tmp_path, create_schema=False)
    try:
        assert run_daily_sweep_once_per_day_in_session_if_ready(session, today=date(2025, 2, 1)) is None
    finally:
        session.close()


def test_racing_same_day_sweeps_create_nothing_twice(tmp_path, monkeypatch) -> None:
    session = _make_session(tmp_path)
    try:
        member = Member(gym_id="gym-1", phone="+15550002", full_name="Robin")
        session.add(member)
        session.flush()
        contract = Contract(
            member_id=member.id,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 6, 30),
            plan_type="monthly",
            status="active",
        )
        session.add(contract)
        session.commit()
        create_initial_cycle(session, contract, paid_at_creation=True, today=date(2025, 1, 1))

        # Both start-ups pass the check before either has recorded its run.
        monkeypatch.setattr("app.services.sweep_jobs_service.has_daily_job_run", lambda *args, **kwargs: False)
        first = run_daily_sweep_once_per_day(session, today=date(2025, 2, 1))
        second = run_daily_sweep_once_per_day(session, today=date(2025, 2, 1))

        assert (first.sweep_result.processed, first.sweep_result.created) == (1, 1)
        assert second.ran is True
        assert (second.sweep_result.processed, second.sweep_result.created) == (1, 0)
        assert len(session.scalars(select(BillingCycle)).all()) == 2
        runs = session.scalars(select(JobRun)).all()
        assert [(run.run_date, run.created_count) for run in runs] == [(date(2025, 2, 1), 1)]
    finally:
        session.close()
