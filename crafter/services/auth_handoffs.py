"""Single-use, expiring hand-off of session data between the OAuth callback and the plugin."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crafter.core.database import dialect_insert, utc_now
from crafter.core.errors import ValidationError
from crafter.schema.auth_handoffs import AuthHandoff
from crafter.utils.db_retry import to_persistence_error

logger = logging.getLogger(__name__)


async def put_handoff(session: AsyncSession, *, state: str, payload: dict[str, Any], ttl_seconds: int, now: datetime.datetime | None = None) -> datetime.datetime:
  """Store (or replace) the payload for an OAuth state value and return its expiry."""
  if not state or not state.strip():
    raise ValidationError("state is required")
  if ttl_seconds <= 0:
    raise ValidationError("ttl_seconds must be positive")
  current = now or utc_now()
  expires_at = current + datetime.timedelta(seconds=ttl_seconds)

  insert_stmt = dialect_insert(session, AuthHandoff).values(state=state, payload=payload, created_at=current, expires_at=expires_at)
  upsert_stmt = insert_stmt.on_conflict_do_update(index_elements=["state"], set_={"payload": insert_stmt.excluded.payload, "created_at": current, "expires_at": expires_at})
  try:
    await session.execute(upsert_stmt)
    await session.commit()
  except SQLAlchemyError as exc:
    await session.rollback()
    raise to_persistence_error("put_handoff", exc) from exc
  return expires_at


async def consume_handoff(session: AsyncSession, *, state: str, now: datetime.datetime | None = None) -> dict[str, Any] | None:
  """Return and delete the payload for a state; None when missing, expired or already consumed."""
  current = now or utc_now()
  try:
    # Lazy sweep: expired rows are removed by the next reader.
    swept = await session.execute(delete(AuthHandoff).where(AuthHandoff.expires_at <= current).execution_options(synchronize_session=False))
    if swept.rowcount:
      logger.info("Swept %d expired auth handoffs", swept.rowcount)

    row = (await session.execute(select(AuthHandoff).where(AuthHandoff.state == state).with_for_update())).scalar_one_or_none()
    if row is None:
      await session.commit()
      return None
    payload = dict(row.payload)
    # Only the request whose delete removes the row gets the payload.
    deleted = await session.execute(delete(AuthHandoff).where(AuthHandoff.state == state).execution_options(synchronize_session=False))
    await session.commit()
  except SQLAlchemyError as exc:
    await session.rollback()
    raise to_persistence_error("consume_handoff", exc) from exc

  if deleted.rowcount != 1:
    return None
  return payload
