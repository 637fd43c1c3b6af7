from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from crafter.core.database import Base, JSONDocument


class AuthHandoff(Base):
  __tablename__ = "auth_handoffs"

  state: Mapped[str] = mapped_column(String, primary_key=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
