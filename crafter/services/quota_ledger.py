"""Monthly iteration ledger: plan allowance first, then prepaid packs oldest-first."""

from __future__ import annotations

import datetime
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crafter.core.database import dialect_insert
from crafter.core.errors import NotFoundError, PersistenceError, ValidationError
from crafter.schema.quotas import ALLOWED_PACK_SIZES, PLAN_LIMITS, IterationPack, PackStatus, PlanType, Subscription, UsageRecord
from crafter.utils.db_retry import to_persistence_error
from crafter.utils.ids import generate_pack_id

logger = logging.getLogger(__name__)

# Each attempt re-reads the counters; a conditional update that matches no row means another
# request changed them first.
_MAX_LEDGER_ATTEMPTS = 5


@dataclass(frozen=True)
class IterationResult:
  """Outcome of recording one iteration."""

  accepted: bool
  iterations_used: int
  iterations_remaining: int
  limit_exceeded: bool
  plan_type: str


@dataclass(frozen=True)
class UsageStatus:
  """Read-only view of a user's allowance for the current month."""

  plan_type: str
  month: str
  iterations_used: int
  iterations_limit: int
  extra_iterations: int
  total_available: int
  can_iterate: bool


def _utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time for deterministic month math."""
  return datetime.datetime.now(datetime.UTC)


def month_key(now: datetime.datetime) -> str:
  """Return the UTC calendar month as YYYY-MM."""
  if now.tzinfo is None:
    raise ValueError("now must be timezone-aware (UTC).")
  return now.astimezone(datetime.UTC).strftime("%Y-%m")


def plan_limit(plan_type: str) -> int:
  """Return the monthly allowance for a plan."""
  try:
    return PLAN_LIMITS[PlanType(plan_type)]
  except ValueError as exc:
    raise PersistenceError(f"Unknown plan type on subscription: {plan_type}") from exc


@asynccontextmanager
async def _ledger_transaction(session: AsyncSession):
  """Start a transaction appropriate for the current session state.

  AsyncSession autobegins on the first statement, so a caller that already ran a
  query gets a SAVEPOINT instead of a second begin().
  """
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  async with session.begin():
    yield


async def _resolve_plan_type(session: AsyncSession, user_id: str) -> str:
  stmt = select(Subscription.plan_type).where(Subscription.user_id == user_id)
  plan_type = (await session.execute(stmt)).scalar_one_or_none()
  if plan_type is None:
    raise NotFoundError(f"No subscription found for user {user_id}")
  return str(plan_type)


async def _ensure_usage_record(session: AsyncSession, *, user_id: str, month: str, now: datetime.datetime) -> None:
  """Create the month's usage row if absent; concurrent creators collapse onto one row."""
  stmt = (
    dialect_insert(session, UsageRecord)
    .values(user_id=user_id, month=month, iterations_used=0, extra_iterations_purchased=0, created_at=now, updated_at=now)
    .on_conflict_do_nothing(index_elements=["user_id", "month"])
  )
  await session.execute(stmt)


def _active_packs_stmt(user_id: str, month: str):
  return (
    select(IterationPack)
    .where(IterationPack.user_id == user_id, IterationPack.valid_for_month == month, IterationPack.status == PackStatus.ACTIVE.value, IterationPack.iterations_remaining > 0)
    .order_by(IterationPack.purchased_at.asc(), IterationPack.id.asc())
  )


async def _record_once(session: AsyncSession, *, user_id: str, month: str, now: datetime.datetime) -> IterationResult | None:
  """Run one read-decide-write pass; return None when a conditional update lost a race."""
  plan_type = await _resolve_plan_type(session, user_id)
  limit = plan_limit(plan_type)
  await _ensure_usage_record(session, user_id=user_id, month=month, now=now)

  usage_stmt = select(UsageRecord).where(UsageRecord.user_id == user_id, UsageRecord.month == month).with_for_update()
  usage = (await session.execute(usage_stmt)).scalar_one()
  packs = list((await session.execute(_active_packs_stmt(user_id, month).with_for_update())).scalars().all())
  pack_total = sum(int(pack.iterations_remaining) for pack in packs)
  used = int(usage.iterations_used)

  if used >= limit and pack_total == 0:
    return IterationResult(accepted=False, iterations_used=used, iterations_remaining=0, limit_exceeded=True, plan_type=plan_type)

  if used < limit:
    # Compare-and-swap on the observed counter keeps the increment exact without row locks.
    stmt = (
      update(UsageRecord)
      .where(UsageRecord.id == usage.id, UsageRecord.iterations_used == used, UsageRecord.iterations_used < limit)
      .values(iterations_used=UsageRecord.iterations_used + 1, updated_at=now)
      .execution_options(synchronize_session=False)
    )
    if (await session.execute(stmt)).rowcount != 1:
      return None
    new_used = used + 1
    return IterationResult(accepted=True, iterations_used=new_used, iterations_remaining=limit - new_used + pack_total, limit_exceeded=False, plan_type=plan_type)

  pack = packs[0]
  observed = int(pack.iterations_remaining)
  remaining_in_pack = observed - 1
  values: dict[str, object] = {"iterations_remaining": remaining_in_pack}
  if remaining_in_pack == 0:
    values.update(status=PackStatus.CONSUMED.value, consumed_at=now)
  stmt = (
    update(IterationPack)
    .where(IterationPack.id == pack.id, IterationPack.status == PackStatus.ACTIVE.value, IterationPack.iterations_remaining == observed, IterationPack.iterations_remaining > 0)
    .values(**values)
    .execution_options(synchronize_session=False)
  )
  if (await session.execute(stmt)).rowcount != 1:
    return None
  if remaining_in_pack == 0:
    logger.info("Iteration pack consumed pack_id=%s user_id=%s", pack.id, user_id)
  return IterationResult(accepted=True, iterations_used=used, iterations_remaining=pack_total - 1, limit_exceeded=False, plan_type=plan_type)


async def record_iteration(session: AsyncSession, *, user_id: str, now: datetime.datetime | None = None) -> IterationResult:
  """Record one successful generation against the user's monthly allowance or packs.

  A rejected iteration (allowance and packs exhausted) is a normal result with
  limit_exceeded=True. Raises ValidationError for a blank user id, NotFoundError
  when the user has no subscription and PersistenceError when storage fails; in
  every error case nothing is written.
  """
  if not user_id or not user_id.strip():
    raise ValidationError("user_id is required")
  current = now or _utc_now()
  month = month_key(current)

  try:
    for attempt in range(1, _MAX_LEDGER_ATTEMPTS + 1):
      async with _ledger_transaction(session):
        result = await _record_once(session, user_id=user_id, month=month, now=current)
      if result is not None:
        logger.info("Recorded iteration user_id=%s month=%s accepted=%s used=%d remaining=%d", user_id, month, result.accepted, result.iterations_used, result.iterations_remaining)
        return result
      logger.info("Ledger update lost a race user_id=%s attempt=%d/%d; re-reading.", user_id, attempt, _MAX_LEDGER_ATTEMPTS)
  except SQLAlchemyError as exc:
    logger.error("Ledger write failed user_id=%s month=%s", user_id, month, exc_info=True)
    raise to_persistence_error("record_iteration", exc) from exc

  raise PersistenceError(f"record_iteration gave up after {_MAX_LEDGER_ATTEMPTS} contended attempts", retryable=True)


async def get_usage_status(session: AsyncSession, *, user_id: str, now: datetime.datetime | None = None) -> UsageStatus:
  """Summarize the current month's allowance without creating any rows."""
  if not user_id or not user_id.strip():
    raise ValidationError("user_id is required")
  current = now or _utc_now()
  month = month_key(current)

  try:
    plan_type = await _resolve_plan_type(session, user_id)
    limit = plan_limit(plan_type)
    used_stmt = select(UsageRecord.iterations_used).where(UsageRecord.user_id == user_id, UsageRecord.month == month)
    used = int((await session.execute(used_stmt)).scalar_one_or_none() or 0)
    extra_stmt = select(func.coalesce(func.sum(IterationPack.iterations_remaining), 0)).where(
      IterationPack.user_id == user_id, IterationPack.valid_for_month == month, IterationPack.status == PackStatus.ACTIVE.value
    )
    extra = int((await session.execute(extra_stmt)).scalar_one())
  except SQLAlchemyError as exc:
    raise to_persistence_error("get_usage_status", exc) from exc

  total_available = max(limit - used, 0) + extra
  return UsageStatus(plan_type=plan_type, month=month, iterations_used=used, iterations_limit=limit, extra_iterations=extra, total_available=total_available, can_iterate=total_available > 0)


async def add_iteration_pack(session: AsyncSession, *, user_id: str, pack_size: int, checkout_session_id: str | None = None, now: datetime.datetime | None = None) -> IterationPack:
  """Record a purchased pack valid for the current month.

  Recording the same checkout session twice returns the existing pack.
  """
  if not user_id or not user_id.strip():
    raise ValidationError("user_id is required")
  if pack_size not in ALLOWED_PACK_SIZES:
    raise ValidationError(f"pack_size must be one of: {', '.join(str(size) for size in ALLOWED_PACK_SIZES)}")
  current = now or _utc_now()
  month = month_key(current)
  pack_id = generate_pack_id()

  try:
    async with _ledger_transaction(session):
      # Redelivered webhooks race on the checkout session; only the insert that writes a row credits the pack.
      insert_stmt = (
        dialect_insert(session, IterationPack)
        .values(
          id=pack_id,
          user_id=user_id,
          pack_size=pack_size,
          valid_for_month=month,
          iterations_remaining=pack_size,
          status=PackStatus.ACTIVE.value,
          checkout_session_id=checkout_session_id,
          purchased_at=current,
        )
        .on_conflict_do_nothing(index_elements=["checkout_session_id"])
      )
      inserted = (await session.execute(insert_stmt)).rowcount == 1
      if inserted:
        await _ensure_usage_record(session, user_id=user_id, month=month, now=current)
        bump = (
          update(UsageRecord)
          .where(UsageRecord.user_id == user_id, UsageRecord.month == month)
          .values(extra_iterations_purchased=UsageRecord.extra_iterations_purchased + pack_size, updated_at=current)
          .execution_options(synchronize_session=False)
        )
        await session.execute(bump)
        lookup = select(IterationPack).where(IterationPack.id == pack_id)
      else:
        lookup = select(IterationPack).where(IterationPack.checkout_session_id == checkout_session_id)
      pack = (await session.execute(lookup)).scalar_one()
  except SQLAlchemyError as exc:
    logger.error("Failed to record iteration pack user_id=%s size=%s", user_id, pack_size, exc_info=True)
    raise to_persistence_error("add_iteration_pack", exc) from exc

  if inserted:
    logger.info("Recorded iteration pack pack_id=%s user_id=%s size=%d month=%s", pack.id, user_id, pack_size, month)
  else:
    logger.info("Iteration pack already recorded checkout_session_id=%s pack_id=%s", checkout_session_id, pack.id)
  return pack
