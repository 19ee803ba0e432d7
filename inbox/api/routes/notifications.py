from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict, Field

from inbox.api.deps import get_notification_service, get_push_hub, get_summary_aggregator, get_summary_scheduler
from inbox.core.security import get_current_username
from inbox.notifications.contracts import FailureReason, NotificationCategory, StoreFailure
from inbox.notifications.push_hub import PushHub
from inbox.notifications.scheduler import SummaryScheduler
from inbox.notifications.service import NotificationService
from inbox.notifications.summary import SummaryAggregator, SummaryOutcome

logger = logging.getLogger(__name__)

router = APIRouter()

_FAILURE_STATUS = {FailureReason.NOT_FOUND: status.HTTP_404_NOT_FOUND, FailureReason.FORBIDDEN: status.HTTP_403_FORBIDDEN, FailureReason.UNAVAILABLE: status.HTTP_500_INTERNAL_SERVER_ERROR}


class CreateNotificationRequest(BaseModel):
  """Event producer payload for a single ordinary notification."""

  recipient: str = Field(min_length=1, max_length=256)
  category: NotificationCategory
  title: str = Field(min_length=1, max_length=256)
  message: str = Field(min_length=1, max_length=4096)
  related_id: str | None = Field(default=None, alias="relatedId", max_length=256)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


def _raise_for_failure(failure: StoreFailure) -> None:
  raise HTTPException(status_code=_FAILURE_STATUS[failure.reason], detail=failure.message)


@router.get("/", response_model=list[dict[str, Any]])
async def list_notifications(
  username: str = Depends(get_current_username),  # noqa: B008
  service: NotificationService = Depends(get_notification_service),  # noqa: B008
  unread_only: bool = Query(False, alias="unreadOnly"),  # noqa: B008
) -> list[dict[str, Any]]:
  """
  Return the user's notifications, newest first.

  - **unreadOnly**: only return notifications that have not been read (used by polling clients).
  """
  result = await service.list_notifications(username, unread_only=unread_only)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return [item.to_payload() for item in result]


@router.get("/count")
async def unread_count(username: str = Depends(get_current_username), service: NotificationService = Depends(get_notification_service)) -> dict[str, int]:  # noqa: B008
  """Return how many ordinary notifications are unread; digests are not counted."""
  result = await service.unread_count(username)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return {"count": result}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_notification(
  payload: CreateNotificationRequest,
  _producer: str = Depends(get_current_username),  # noqa: B008
  service: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> dict[str, Any]:
  """Persist a notification for its recipient and push it to their live sessions."""
  result = await service.notify(recipient=payload.recipient, category=payload.category, title=payload.title, message=payload.message, related_id=payload.related_id)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return result.to_payload()


@router.patch("/read-all")
async def mark_all_read(username: str = Depends(get_current_username), service: NotificationService = Depends(get_notification_service)) -> dict[str, int]:  # noqa: B008
  result = await service.mark_all_read(username)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return {"updated": result}


@router.delete("/clear-all")
async def clear_all(username: str = Depends(get_current_username), service: NotificationService = Depends(get_notification_service)) -> dict[str, int]:  # noqa: B008
  result = await service.clear_all(username)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return {"deleted": result}


@router.post("/generate-summary")
async def generate_summary(username: str = Depends(get_current_username), scheduler: SummaryScheduler = Depends(get_summary_scheduler)) -> dict[str, Any]:  # noqa: B008
  """Generate the user's digest now instead of waiting for their summary time."""
  result = await scheduler.run_for_user(username)
  if result.outcome is SummaryOutcome.NOT_ELIGIBLE:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.detail or "User does not have summarized notifications enabled")
  if result.outcome is SummaryOutcome.NOTHING_TO_SUMMARIZE:
    return {"message": result.detail or "No new notifications to summarize"}
  if result.outcome is SummaryOutcome.FAILED or result.notification is None:
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.detail or "Summary generation failed")
  return result.notification.to_payload()


@router.get("/{notification_id}/summary-breakdown")
async def summary_breakdown(notification_id: str, username: str = Depends(get_current_username), aggregator: SummaryAggregator = Depends(get_summary_aggregator)) -> dict[str, Any]:  # noqa: B008
  """Return the chats, communities and job fairs behind one of the user's digests."""
  result = await aggregator.breakdown(username, notification_id)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return result.to_payload()


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, username: str = Depends(get_current_username), service: NotificationService = Depends(get_notification_service)) -> dict[str, Any]:  # noqa: B008
  result = await service.mark_read(notification_id, username=username)
  if isinstance(result, StoreFailure):
    _raise_for_failure(result)
  return result.to_payload()


@router.websocket("/stream")
async def stream(websocket: WebSocket, username: str = Query(..., min_length=1), hub: PushHub = Depends(get_push_hub)) -> None:  # noqa: B008
  """Join the user's push room; the server only sends, client frames are ignored."""
  await websocket.accept()
  await hub.join(username, websocket)
  try:
    while True:
      await websocket.receive_text()
  except WebSocketDisconnect:
    logger.debug("Push stream closed for %s", username)
  finally:
    await hub.leave(username, websocket)
