"""App schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AppBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=1024)
    settings: Dict[str, Any] = Field(default_factory=dict)


class AppCreate(AppBase):
    type: str = Field(..., min_length=1, max_length=120)


class AppUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=1024)
    settings: Optional[Dict[str, Any]] = None


class AppResponse(AppBase):
    id: int
    type: str
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
