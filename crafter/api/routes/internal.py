import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from crafter.api.deps import require_task_secret
from crafter.api.models import PackCreateRequest, PackResponse, format_timestamp
from crafter.core.database import get_db
from crafter.services import quota_ledger

router = APIRouter(dependencies=[Depends(require_task_secret)])
logger = logging.getLogger("crafter.api.routes.internal")


@router.post("/usage/packs", response_model=PackResponse, status_code=status.HTTP_201_CREATED)
async def record_iteration_pack(  # noqa: B008
  payload: PackCreateRequest,
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> PackResponse:
  """Record a purchased iteration pack, called by the billing webhook."""
  pack = await quota_ledger.add_iteration_pack(db_session, user_id=payload.user_id, pack_size=payload.pack_size, checkout_session_id=payload.checkout_session_id)
  return PackResponse(
    id=pack.id,
    user_id=pack.user_id,
    pack_size=pack.pack_size,
    valid_for_month=pack.valid_for_month,
    iterations_remaining=pack.iterations_remaining,
    status=pack.status,
    checkout_session_id=pack.checkout_session_id,
    purchased_at=format_timestamp(pack.purchased_at),
  )
