"""Tunables for the client-side delivery controller and its transports."""

from __future__ import annotations

import os
from dataclasses import dataclass

from inbox.config import _parse_bool


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@dataclass(frozen=True)
class ClientSettings:
  """Client configuration; defaults mirror the cadence the web client has always used."""

  base_url: str = "http://localhost:8000"
  fast_poll_seconds: float = 1.0
  slow_poll_seconds: float = 30.0
  banner_seconds: float = 5.0
  digest_banner_seconds: float = 10.0
  mark_suppressed_read: bool = True
  request_timeout_seconds: float = 10.0
  reconnect_initial_seconds: float = 1.0
  reconnect_max_seconds: float = 30.0

  @property
  def stream_url(self) -> str:
    """WebSocket URL of the push stream derived from the HTTP base URL."""
    base = self.base_url.rstrip("/")
    if base.startswith("https://"):
      base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
      base = "ws://" + base[len("http://") :]
    return f"{base}/v1/notifications/stream"

  @classmethod
  def from_env(cls) -> ClientSettings:
    mark_suppressed_read = os.getenv("INBOX_CLIENT_MARK_SUPPRESSED_READ")
    return cls(
      base_url=(os.getenv("INBOX_CLIENT_BASE_URL") or "http://localhost:8000").strip(),
      fast_poll_seconds=_positive_float("INBOX_CLIENT_FAST_POLL_SECONDS", "1"),
      slow_poll_seconds=_positive_float("INBOX_CLIENT_SLOW_POLL_SECONDS", "30"),
      banner_seconds=_positive_float("INBOX_CLIENT_BANNER_SECONDS", "5"),
      digest_banner_seconds=_positive_float("INBOX_CLIENT_DIGEST_BANNER_SECONDS", "10"),
      mark_suppressed_read=True if mark_suppressed_read is None else _parse_bool(mark_suppressed_read),
      request_timeout_seconds=_positive_float("INBOX_CLIENT_TIMEOUT_SECONDS", "10"),
      reconnect_initial_seconds=_positive_float("INBOX_CLIENT_RECONNECT_INITIAL_SECONDS", "1"),
      reconnect_max_seconds=_positive_float("INBOX_CLIENT_RECONNECT_MAX_SECONDS", "30"),
    )
