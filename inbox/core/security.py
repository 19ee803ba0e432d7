from __future__ import annotations

from typing import Annotated

from fastapi import Header, HTTPException, status

USERNAME_HEADER = "X-Username"


def _normalize_username(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


async def get_current_username(x_username: Annotated[str | None, Header(alias=USERNAME_HEADER)] = None) -> str:
  """Resolve the acting user from the identity header set by the upstream gateway."""
  username = _normalize_username(x_username)
  if username is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")
  return username
