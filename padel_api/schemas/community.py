from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CommunityCreate(BaseModel):
    name:        str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    location:    Optional[str] = None
    manager_id:  Optional[int] = None


class CommunityRead(BaseModel):
    id:                  int
    parent_community_id: Optional[int]
    manager_id:          Optional[int]
    name:                str
    description:         Optional[str]
    location:            Optional[str]
    created_at:          datetime

    model_config = {"from_attributes": True}


class CommunityNotificationCreate(BaseModel):
    title:            str = Field(min_length=1, max_length=120)
    message:          str = Field(min_length=1, max_length=1000)
    sub_community_id: Optional[int] = None


class NotificationResult(BaseModel):
    sent:             int
    failed:           int
    total_recipients: int = 0
    message:          Optional[str] = None
