import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crafter.api.deps import require_task_secret
from crafter.api.models import AuthHandoffRequest, AuthHandoffStoredResponse, format_timestamp
from crafter.config import Settings, get_settings
from crafter.core.database import get_db
from crafter.core.errors import NotFoundError
from crafter.services import auth_handoffs

router = APIRouter()
logger = logging.getLogger("crafter.api.routes.auth")


@router.post("/handoff", response_model=AuthHandoffStoredResponse, dependencies=[Depends(require_task_secret)])
async def store_handoff(  # noqa: B008
  payload: AuthHandoffRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> AuthHandoffStoredResponse:
  """Park session data under an OAuth state value until the plugin collects it."""
  expires_at = await auth_handoffs.put_handoff(db_session, state=payload.state, payload=payload.payload, ttl_seconds=settings.auth_handoff_ttl_seconds)
  return AuthHandoffStoredResponse(state=payload.state, expires_at=format_timestamp(expires_at) or "")


@router.get("/handoff/{state}")
async def collect_handoff(  # noqa: B008
  state: str,
  db_session: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
  """Return the parked session data once; later calls get 404."""
  payload = await auth_handoffs.consume_handoff(db_session, state=state)
  if payload is None:
    raise NotFoundError("Auth handoff not found or expired")
  return payload
