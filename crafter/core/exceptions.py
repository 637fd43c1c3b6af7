import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crafter.core.errors import InvalidStateError, JobValidationError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger("uvicorn.error")


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _error_payload(message: Any, *, request_id: str | None = None, **extra: Any) -> dict[str, Any]:
  """Build a client-facing error body without internal details."""
  payload: dict[str, Any] = {"error": message, **extra}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "ctx", "url"}}
    scrubbed["loc"] = [str(item) for item in scrubbed.get("loc", ())]
    sanitized.append(scrubbed)
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors and return a sanitized 500."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Reject malformed bodies with 400, the same status as domain validation failures."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(list(exc.errors()))
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload("Invalid request body", request_id=request_id, details=sanitized_errors))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while avoiding leaking internal diagnostics."""
  from crafter.config import get_settings

  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  # Log 4xx HTTPExceptions when explicitly enabled for debugging.
  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
  extra: dict[str, Any] = {}
  if isinstance(exc, JobValidationError) and exc.missing_fields:
    extra["missingFields"] = exc.missing_fields
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), **extra))


async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
  return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload("not found"))


async def invalid_state_error_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload(str(exc)))


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
  """Log storage failures with a traceback; callers only see a generic message."""
  request_id = _request_id(request)
  logger.error("Persistence failure request_id=%s path=%s retryable=%s", request_id, request.url.path, exc.retryable, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))
