import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("inbox.core.middleware")

# Identity header values are usernames; never echo credentials-like headers into logs.
_REDACTED_HEADERS = {"authorization", "cookie"}


def _build_request_url(scope: Scope) -> str:
  """Build a readable URL path for logging without touching the body."""
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


def _normalize_headers(scope: Scope) -> dict[str, str]:
  header_map = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
  return {key: ("***" if key in _REDACTED_HEADERS else value) for key, value in header_map.items()}


class RequestLoggingMiddleware:
  """Tag each HTTP request with an id and log who called what and how long it took.

  Bodies are never read; notification messages can carry private DM text.
  """

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    # WebSocket and lifespan scopes pass straight through.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    headers = _normalize_headers(scope)
    acting_user = headers.get("x-username") or "-"
    started = time.perf_counter()
    logger.info("Request started request_id=%s user=%s %s %s", request_id, acting_user, scope.get("method", "UNKNOWN"), _build_request_url(scope))
    if headers.get("content-type") or headers.get("content-length"):
      logger.debug("Request metadata request_id=%s content-type=%s content-length=%s", request_id, headers.get("content-type"), headers.get("content-length"))

    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id
      await send(message)

    await self.app(scope, receive, send_wrapper)

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("Request finished request_id=%s user=%s status=%s in %.2fms", request_id, acting_user, status_code or 0, elapsed_ms)


class SecurityHeadersMiddleware:
  """Strip server-identifying headers and forbid content sniffing of JSON responses."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        if "server" in headers:
          del headers["server"]
        headers.setdefault("x-content-type-options", "nosniff")
      await send(message)

    await self.app(scope, receive, send_wrapper)
