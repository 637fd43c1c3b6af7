from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from crafter.core.database import Base, JSONDocument


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (
    CheckConstraint("mode IN ('generate', 'iterate')", name="ck_jobs_mode"),
    CheckConstraint("status IN ('queued', 'processing', 'done', 'error', 'cancelled')", name="ck_jobs_status"),
    Index("ix_jobs_status_created_at", "status", "created_at"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  mode: Mapped[str] = mapped_column(String, nullable=False)
  input: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
  model: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="queued")
  output: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
