"""SQLAlchemy models for subscriptions, monthly usage and prepaid iteration packs."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from crafter.core.database import Base


class PlanType(str, enum.Enum):
  """Subscription plans known to the ledger."""

  FREE = "free"
  PRO = "pro"


class PackStatus(str, enum.Enum):
  ACTIVE = "active"
  CONSUMED = "consumed"


# Monthly iteration allowance per plan.
PLAN_LIMITS: dict[PlanType, int] = {PlanType.FREE: 10, PlanType.PRO: 40}

ALLOWED_PACK_SIZES: tuple[int, ...] = (10, 20, 50)


class Subscription(Base):
  __tablename__ = "subscriptions"
  __table_args__ = (CheckConstraint("plan_type IN ('free', 'pro')", name="ck_subscriptions_plan_type"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  plan_type: Mapped[str] = mapped_column(String, nullable=False, default=PlanType.FREE.value)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UsageRecord(Base):
  __tablename__ = "usage_tracking"
  __table_args__ = (
    UniqueConstraint("user_id", "month", name="ux_usage_tracking_user_month"),
    CheckConstraint("iterations_used >= 0", name="ck_usage_tracking_used_non_negative"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  month: Mapped[str] = mapped_column(String(7), nullable=False)
  iterations_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  extra_iterations_purchased: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class IterationPack(Base):
  __tablename__ = "iteration_packs"
  __table_args__ = (
    CheckConstraint("pack_size IN (10, 20, 50)", name="ck_iteration_packs_size"),
    CheckConstraint("iterations_remaining >= 0", name="ck_iteration_packs_remaining_non_negative"),
    CheckConstraint("status IN ('active', 'consumed')", name="ck_iteration_packs_status"),
    Index("ix_iteration_packs_user_month_status", "user_id", "valid_for_month", "status"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False)
  pack_size: Mapped[int] = mapped_column(Integer, nullable=False)
  valid_for_month: Mapped[str] = mapped_column(String(7), nullable=False)
  iterations_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default=PackStatus.ACTIVE.value)
  checkout_session_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
  purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
