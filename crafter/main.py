from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from crafter.api.routes import auth, internal, jobs, usage
from crafter.config import get_settings
from crafter.core.errors import InvalidStateError, NotFoundError, PersistenceError, ValidationError
from crafter.core.exceptions import (
  global_exception_handler,
  http_exception_handler,
  invalid_state_error_handler,
  not_found_error_handler,
  persistence_error_handler,
  request_validation_exception_handler,
  validation_error_handler,
)
from crafter.core.lifespan import lifespan
from crafter.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Crafter Engine", lifespan=lifespan, docs_url=None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization", "x-crafter-task-secret"], expose_headers=["x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ValidationError, validation_error_handler)
app.add_exception_handler(NotFoundError, not_found_error_handler)
app.add_exception_handler(InvalidStateError, invalid_state_error_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(usage.router, prefix="/v1/usage", tags=["usage"])
app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(internal.router, prefix="/internal", tags=["internal"])
