"""Create jobs, quota ledger and auth handoff tables.

Revision ID: 8c1d2e3f4a5b
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "8c1d2e3f4a5b"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("mode", sa.String(), nullable=False),
    sa.Column("input", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("model", sa.String(), nullable=True),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("output", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("mode IN ('generate', 'iterate')", name="ck_jobs_mode"),
    sa.CheckConstraint("status IN ('queued', 'processing', 'done', 'error', 'cancelled')", name="ck_jobs_status"),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index("ix_jobs_status_created_at", "jobs", ["status", "created_at"], unique=False)

  op.create_table(
    "subscriptions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("plan_type", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("plan_type IN ('free', 'pro')", name="ck_subscriptions_plan_type"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("user_id"),
  )

  op.create_table(
    "usage_tracking",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("month", sa.String(length=7), nullable=False),
    sa.Column("iterations_used", sa.Integer(), nullable=False),
    sa.Column("extra_iterations_purchased", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("iterations_used >= 0", name="ck_usage_tracking_used_non_negative"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("user_id", "month", name="ux_usage_tracking_user_month"),
  )
  op.create_index(op.f("ix_usage_tracking_user_id"), "usage_tracking", ["user_id"], unique=False)

  op.create_table(
    "iteration_packs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("pack_size", sa.Integer(), nullable=False),
    sa.Column("valid_for_month", sa.String(length=7), nullable=False),
    sa.Column("iterations_remaining", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("checkout_session_id", sa.String(), nullable=True),
    sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("pack_size IN (10, 20, 50)", name="ck_iteration_packs_size"),
    sa.CheckConstraint("iterations_remaining >= 0", name="ck_iteration_packs_remaining_non_negative"),
    sa.CheckConstraint("status IN ('active', 'consumed')", name="ck_iteration_packs_status"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("checkout_session_id"),
  )
  op.create_index("ix_iteration_packs_user_month_status", "iteration_packs", ["user_id", "valid_for_month", "status"], unique=False)

  op.create_table(
    "auth_handoffs",
    sa.Column("state", sa.String(), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("state"),
  )
  op.create_index(op.f("ix_auth_handoffs_expires_at"), "auth_handoffs", ["expires_at"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_auth_handoffs_expires_at"), table_name="auth_handoffs")
  op.drop_table("auth_handoffs")
  op.drop_index("ix_iteration_packs_user_month_status", table_name="iteration_packs")
  op.drop_table("iteration_packs")
  op.drop_index(op.f("ix_usage_tracking_user_id"), table_name="usage_tracking")
  op.drop_table("usage_tracking")
  op.drop_table("subscriptions")
  op.drop_index("ix_jobs_status_created_at", table_name="jobs")
  op.drop_table("jobs")
