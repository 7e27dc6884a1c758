"""Billing core tables

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 09:30:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("gym_id", sa.String(length=64), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("membership_number", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("joined_at", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_members_status"),
        sa.UniqueConstraint("gym_id", "phone", name="uq_members_gym_phone"),
    )
    op.create_index("ix_members_gym_id", "members", ["gym_id"])
    op.create_index("ix_members_phone", "members", ["phone"])

    op.create_table(
        "membership_contracts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("plan_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "plan_type IN ('monthly','quarterly','yearly','custom')",
            name="ck_contracts_plan_type",
        ),
        sa.CheckConstraint("status IN ('active','paused','expired')", name="ck_contracts_status"),
        sa.CheckConstraint("end_date >= start_date", name="ck_contracts_date_range"),
    )
    op.create_index("ix_membership_contracts_status_end_date", "membership_contracts", ["status", "end_date"])

    op.create_table(
        "membership_billing_cycles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("contract_id", sa.Integer(), nullable=False),
        sa.Column("cycle_start", sa.Date(), nullable=False),
        sa.Column("cycle_end", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="unpaid"),
        sa.Column("last_payment_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contract_id"], ["membership_contracts.id"], ondelete="CASCADE"),
        sa.CheckConstraint("status IN ('unpaid','paid','overdue')", name="ck_billing_cycles_status"),
        sa.CheckConstraint("cycle_end >= cycle_start", name="ck_billing_cycles_date_range"),
        sa.UniqueConstraint("contract_id", "cycle_start", name="uq_billing_cycles_contract_cycle_start"),
    )
    op.create_index("ix_membership_billing_cycles_cycle_end", "membership_billing_cycles", ["cycle_end"])
    op.create_index("ix_membership_billing_cycles_status", "membership_billing_cycles", ["status"])

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=64), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("processed_count", sa.Integer(), nullable=True),
        sa.Column("created_count", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("job_name", "run_date", name="uq_job_runs_name_run_date"),
    )


def downgrade() -> None:
    op.drop_table("job_runs")
    op.drop_index("ix_membership_billing_cycles_status", table_name="membership_billing_cycles")
    op.drop_index("ix_membership_billing_cycles_cycle_end", table_name="membership_billing_cycles")
    op.drop_table("membership_billing_cycles")
    op.drop_index("ix_membership_contracts_status_end_date", table_name="membership_contracts")
    op.drop_table("membership_contracts")
    op.drop_index("ix_members_phone", table_name="members")
    op.drop_index("ix_members_gym_id", table_name="members")
    op.drop_table("members")
