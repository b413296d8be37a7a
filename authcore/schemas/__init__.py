"""Pydantic schemas for API payloads."""

from authcore.schemas.app import AppCreate, AppResponse, AppUpdate
from authcore.schemas.group import (
    CompanyUpsert,
    GroupCreate,
    GroupDetailResponse,
    GroupResponse,
    GroupTreeResponse,
    GroupUpdate,
    ToggleAppRequest,
    ToggleAppResponse,
)
from authcore.schemas.permission import (
    EffectivePermissionsResponse,
    GroupMunicipalitiesRequest,
    MunicipalityResponse,
    PermissionResponse,
    PermissionUpsert,
)
from authcore.schemas.user import (
    AssignGroupsRequest,
    MembershipRequest,
    MembershipResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
    UserViewResponse,
)
from authcore.schemas.visibility import VisibleIdsResponse

__all__ = [
    "AppCreate",
    "AppResponse",
    "AppUpdate",
    "AssignGroupsRequest",
    "CompanyUpsert",
    "EffectivePermissionsResponse",
    "GroupCreate",
    "GroupDetailResponse",
    "GroupMunicipalitiesRequest",
    "GroupResponse",
    "GroupTreeResponse",
    "GroupUpdate",
    "MembershipRequest",
    "MembershipResponse",
    "MunicipalityResponse",
    "PermissionResponse",
    "PermissionUpsert",
    "ToggleAppRequest",
    "ToggleAppResponse",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
    "UserViewResponse",
    "VisibleIdsResponse",
]
