import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crafter.api.models import RecordIterationRequest, RecordIterationResponse, UsageStatusResponse
from crafter.core.database import get_db
from crafter.core.errors import NotFoundError, PersistenceError, ValidationError
from crafter.services import quota_ledger

router = APIRouter()
logger = logging.getLogger("crafter.api.routes.usage")


def _failure(status_code: int, message: str) -> JSONResponse:
  return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/record-iteration", response_model=RecordIterationResponse)
async def record_iteration(  # noqa: B008
  request: RecordIterationRequest,
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
):
  """Count one successful generation against the caller's allowance."""
  user_id = (request.user_id or "").strip()
  try:
    result = await quota_ledger.record_iteration(db_session, user_id=user_id)
  except ValidationError as exc:
    return _failure(status.HTTP_400_BAD_REQUEST, str(exc))
  except NotFoundError as exc:
    return _failure(status.HTTP_404_NOT_FOUND, str(exc))
  except PersistenceError:
    logger.error("Failed to record iteration user_id=%s", user_id, exc_info=True)
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to record iteration")

  if result.limit_exceeded:
    return JSONResponse(
      status_code=status.HTTP_403_FORBIDDEN,
      content={
        "success": False,
        "limit_exceeded": True,
        "iterations_used": result.iterations_used,
        "iterations_remaining": 0,
        "plan_type": result.plan_type,
        "message": f"You've reached your {quota_ledger.plan_limit(result.plan_type)} iteration limit for this month.",
      },
    )
  return RecordIterationResponse(success=True, iterations_used=result.iterations_used, iterations_remaining=result.iterations_remaining, plan_type=result.plan_type, limit_exceeded=False)


@router.get("/status", response_model=UsageStatusResponse)
async def usage_status(  # noqa: B008
  user_id: str = Query(default=""),
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> UsageStatusResponse:
  """Summarize the current month's allowance for a user."""
  snapshot = await quota_ledger.get_usage_status(db_session, user_id=user_id.strip())
  return UsageStatusResponse(
    plan_type=snapshot.plan_type,
    month=snapshot.month,
    iterations_used=snapshot.iterations_used,
    iterations_limit=snapshot.iterations_limit,
    extra_iterations=snapshot.extra_iterations,
    total_available=snapshot.total_available,
    can_iterate=snapshot.can_iterate,
  )
