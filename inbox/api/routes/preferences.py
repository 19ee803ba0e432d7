"""Routes for reading and updating per-user notification preferences."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from inbox.api.deps import get_profile_source
from inbox.core.security import get_current_username
from inbox.notifications.activity_repo import ProfileSource
from inbox.notifications.contracts import NotificationPreferences, parse_summary_time

router = APIRouter()


class PreferencesUpdateRequest(BaseModel):
  """Partial update; omitted fields keep their stored value."""

  enabled: bool | None = None
  summarized: bool | None = None
  summary_time: str | None = Field(default=None, alias="summaryTime")
  dm_enabled: bool | None = Field(default=None, alias="dmEnabled")
  job_fair_enabled: bool | None = Field(default=None, alias="jobFairEnabled")
  community_enabled: bool | None = Field(default=None, alias="communityEnabled")
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("summary_time")
  @classmethod
  def validate_summary_time(cls, value: str | None) -> str | None:
    if value is None:
      return None
    normalized = value.strip()
    if parse_summary_time(normalized) is None:
      raise PydanticCustomError("summary_time_format", "summaryTime must use the HH:MM format.")
    return normalized


@router.get("/")
async def get_preferences(username: str = Depends(get_current_username), profiles: ProfileSource = Depends(get_profile_source)) -> dict[str, Any]:  # noqa: B008
  profile = await profiles.get_profile(username)
  if profile is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  return profile.preferences.to_mapping()


@router.put("/")
async def update_preferences(payload: PreferencesUpdateRequest, username: str = Depends(get_current_username), profiles: ProfileSource = Depends(get_profile_source)) -> dict[str, Any]:  # noqa: B008
  profile = await profiles.get_profile(username)
  if profile is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

  merged = profile.preferences.to_mapping()
  merged.update(payload.model_dump(by_alias=True, exclude_none=True))
  updated = await profiles.update_preferences(username, NotificationPreferences.from_mapping(merged))
  if updated is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  return updated.preferences.to_mapping()
