"""User and membership schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from authcore.models.user import UserType
from authcore.models.user_group import UserGroupRole
from authcore.schemas.permission import EffectivePermissionsResponse


class UserBase(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)


class UserCreate(UserBase):
    type: UserType = UserType.USER
    apps_ids: List[int] = Field(default_factory=list)


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)
    type: Optional[UserType] = None
    apps_ids: Optional[List[int]] = None


class UserResponse(UserBase):
    id: int
    type: UserType
    apps_ids: List[int]
    full_name: str
    last_logged_in_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MembershipRequest(BaseModel):
    group_id: int
    role: UserGroupRole = UserGroupRole.USER


class AssignGroupsRequest(BaseModel):
    groups: List[MembershipRequest]
    unassign: bool = True


class AssignGroupsResponse(BaseModel):
    changed: bool


class MembershipResponse(BaseModel):
    id: int
    user_id: int
    group_id: int
    role: UserGroupRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ToggleAppsRequest(BaseModel):
    apps_ids: List[int] = Field(..., min_length=1)


class ToggleAppsResponse(BaseModel):
    already_had_app: bool


class UserGroupView(BaseModel):
    id: int
    name: str
    role: UserGroupRole
    company_code: Optional[str] = None


class UserViewResponse(UserResponse):
    groups: Optional[List[UserGroupView]] = None
    inherited_apps_ids: Optional[List[int]] = None
    permissions: Optional[Dict[str, EffectivePermissionsResponse]] = None
    municipalities: Optional[List[int]] = None
