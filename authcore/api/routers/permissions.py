"""Permission HTTP endpoints: records, effective grants and municipality lookups."""

from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from authcore.api.dependencies import RequestContext, get_permission_service, get_request_context
from authcore.models.user_group import UserGroupRole
from authcore.schemas.permission import (
    AppAccessResponse,
    EffectivePermissionsResponse,
    GroupMunicipalitiesRequest,
    MunicipalityResponse,
    MunicipalityUser,
    PermissionResponse,
    PermissionUpsert,
)
from authcore.services.cache import get_permission_cache
from authcore.services.errors import BadRequestError
from authcore.services.permissions import PermissionService

router = APIRouter()


@router.put(
    "",
    response_model=PermissionResponse,
)
def upsert_permission(
    payload: PermissionUpsert,
    response: Response,
    service: PermissionService = Depends(get_permission_service),
    context: RequestContext = Depends(get_request_context),
) -> PermissionResponse:
    permission, created = service.upsert_permission(
        app_id=payload.app_id,
        user_id=payload.user_id,
        group_id=payload.group_id,
        role=payload.role,
        accesses=payload.accesses,
        features=payload.features,
        actor_id=context.actor_id,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return PermissionResponse.model_validate(permission, from_attributes=True)


@router.get(
    "",
    response_model=List[PermissionResponse],
)
def list_permissions(
    user_id: Optional[int] = Query(default=None, alias="user"),
    group_id: Optional[int] = Query(default=None, alias="group"),
    app_id: Optional[int] = Query(default=None, alias="app"),
    service: PermissionService = Depends(get_permission_service),
) -> List[PermissionResponse]:
    permissions = service.list_permissions(user_id=user_id, group_id=group_id, app_id=app_id)
    return [PermissionResponse.model_validate(permission, from_attributes=True) for permission in permissions]


@router.get(
    "/effective",
    response_model=EffectivePermissionsResponse,
)
def effective_permissions(
    user_id: int = Query(..., alias="user"),
    app_id: int = Query(..., alias="app"),
    service: PermissionService = Depends(get_permission_service),
) -> EffectivePermissionsResponse:
    return EffectivePermissionsResponse(**service.effective_permissions(user_id, app_id))


@router.get(
    "/users/{user_id}/apps",
    response_model=Dict[str, EffectivePermissionsResponse],
)
def permissions_by_app(
    user_id: int,
    service: PermissionService = Depends(get_permission_service),
) -> Dict[str, EffectivePermissionsResponse]:
    return {
        app_type: EffectivePermissionsResponse(**grants)
        for app_type, grants in service.permissions_by_app(user_id).items()
    }


@router.get(
    "/users/{user_id}/apps/{app_id}/access",
    response_model=AppAccessResponse,
)
def validate_app_access(
    user_id: int,
    app_id: int,
    service: PermissionService = Depends(get_permission_service),
) -> AppAccessResponse:
    return AppAccessResponse(allowed=service.validate_app_access(user_id, app_id))


@router.get(
    "/users/{user_id}/municipalities",
    response_model=List[int],
)
def user_municipalities(
    user_id: int,
    service: PermissionService = Depends(get_permission_service),
) -> List[int]:
    return service.user_municipalities(user_id)


@router.get(
    "/users-by-access",
    response_model=List[MunicipalityUser],
)
def users_by_access(
    access: str = Query(..., min_length=1),
    municipality: Optional[int] = Query(default=None),
    service: PermissionService = Depends(get_permission_service),
) -> List[MunicipalityUser]:
    users = service.find_users_by_access(access, municipality)
    return [MunicipalityUser.model_validate(user, from_attributes=True) for user in users]


@router.get(
    "/municipalities",
    response_model=List[MunicipalityResponse],
)
def list_municipalities(
    service: PermissionService = Depends(get_permission_service),
) -> List[MunicipalityResponse]:
    return [MunicipalityResponse(**item) for item in service.list_municipalities()]


@router.put(
    "/municipalities",
    response_model=PermissionResponse,
)
def set_group_municipalities(
    payload: GroupMunicipalitiesRequest,
    service: PermissionService = Depends(get_permission_service),
    context: RequestContext = Depends(get_request_context),
) -> PermissionResponse:
    permission = service.set_group_municipalities(
        payload.group_id,
        payload.municipalities,
        actor_id=context.actor_id,
    )
    return PermissionResponse.model_validate(permission, from_attributes=True)


@router.get(
    "/municipalities/{municipality_id}/users",
    response_model=List[MunicipalityUser],
)
def users_in_municipality(
    municipality_id: int,
    role: Optional[UserGroupRole] = Query(default=None),
    service: PermissionService = Depends(get_permission_service),
    context: RequestContext = Depends(get_request_context),
) -> List[MunicipalityUser]:
    if context.app_id is None:
        raise BadRequestError("App context is required for this operation.")
    users = service.users_in_municipality(context.actor_id, context.app_id, municipality_id, role)
    return [MunicipalityUser.model_validate(user, from_attributes=True) for user in users]


@router.post(
    "/cache/clean",
    status_code=status.HTTP_204_NO_CONTENT,
)
def clean_cache() -> Response:
    get_permission_cache().invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{permission_id}",
    response_model=PermissionResponse,
)
def get_permission(
    permission_id: int,
    service: PermissionService = Depends(get_permission_service),
) -> PermissionResponse:
    return PermissionResponse.model_validate(service.get_permission(permission_id), from_attributes=True)


@router.delete(
    "/{permission_id}",
    response_model=PermissionResponse,
)
def remove_permission(
    permission_id: int,
    service: PermissionService = Depends(get_permission_service),
    context: RequestContext = Depends(get_request_context),
) -> PermissionResponse:
    permission = service.remove_permission(permission_id, actor_id=context.actor_id)
    return PermissionResponse.model_validate(permission, from_attributes=True)
