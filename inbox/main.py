from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from inbox import __version__
from inbox.api.routes import notifications, preferences
from inbox.config import get_settings
from inbox.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from inbox.core.lifespan import lifespan
from inbox.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="Inbox", version=__version__, lifespan=lifespan)

app.add_middleware(
  CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"], allow_headers=["content-type", "x-username"], expose_headers=["content-length", "x-request-id"]
)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])
app.include_router(preferences.router, prefix="/v1/preferences", tags=["preferences"])
