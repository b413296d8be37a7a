"""Permission schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from authcore.models.permission import PermissionRole


class PermissionUpsert(BaseModel):
    app_id: int
    user_id: Optional[int] = None
    group_id: Optional[int] = None
    role: Optional[PermissionRole] = None
    accesses: Optional[List[str]] = None
    features: Optional[List[str]] = None


class PermissionResponse(BaseModel):
    id: int
    user_id: Optional[int]
    group_id: Optional[int]
    app_id: Optional[int]
    role: Optional[PermissionRole]
    accesses: List[str]
    features: List[str]
    municipalities: List[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EffectivePermissionsResponse(BaseModel):
    features: List[str]
    accesses: List[str]


class GroupMunicipalitiesRequest(BaseModel):
    group_id: int
    municipalities: List[int] = Field(default_factory=list)


class MunicipalityResponse(BaseModel):
    id: int
    name: str


class MunicipalityUser(BaseModel):
    id: int
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class AppAccessResponse(BaseModel):
    allowed: bool
