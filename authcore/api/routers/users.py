"""User and membership HTTP endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from authcore.api.dependencies import (
    RequestContext,
    get_request_context,
    get_user_service,
    get_user_view_resolver,
)
from authcore.models.user import UserType
from authcore.models.user_group import UserGroupRole
from authcore.schemas.group import ToggleAppRequest, ToggleAppResponse
from authcore.schemas.user import (
    AssignGroupsRequest,
    AssignGroupsResponse,
    MembershipResponse,
    ToggleAppsRequest,
    ToggleAppsResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
    UserViewResponse,
)
from authcore.services.users import UserService
from authcore.services.views import UserViewResolver

router = APIRouter()


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: UserCreate,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> UserResponse:
    user = service.create_user(payload, actor_id=context.actor_id, app_id=context.app_id)
    return UserResponse.model_validate(user, from_attributes=True)


@router.get(
    "",
    response_model=List[UserResponse],
)
def list_users(
    group_id: Optional[int] = Query(default=None, alias="group"),
    user_types: Optional[List[UserType]] = Query(default=None, alias="type"),
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> List[UserResponse]:
    users = service.list_users(
        actor_id=context.actor_id,
        app_id=context.app_id,
        group_id=group_id,
        types=user_types,
    )
    return [UserResponse.model_validate(user, from_attributes=True) for user in users]


@router.get(
    "/{user_id}",
    response_model=UserViewResponse,
    response_model_exclude_none=True,
)
def get_user(
    user_id: int,
    groups: bool = Query(default=False),
    inherited_apps: bool = Query(default=False, alias="inheritedApps"),
    permissions: bool = Query(default=False),
    municipalities: bool = Query(default=False),
    service: UserService = Depends(get_user_service),
    views: UserViewResolver = Depends(get_user_view_resolver),
    context: RequestContext = Depends(get_request_context),
) -> UserViewResponse:
    service.get_user(user_id, actor_id=context.actor_id, app_id=context.app_id)
    return views.resolve_user_view(
        user_id,
        with_groups=groups,
        with_inherited_apps=inherited_apps,
        with_permissions=permissions,
        with_municipalities=municipalities,
    )


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
)
def update_user(
    user_id: int,
    payload: UserUpdate,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> UserResponse:
    user = service.update_user(user_id, payload, actor_id=context.actor_id, app_id=context.app_id)
    return UserResponse.model_validate(user, from_attributes=True)


@router.delete(
    "/{user_id}",
    response_model=UserResponse,
)
def remove_user(
    user_id: int,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> UserResponse:
    user = service.remove_user(user_id, actor_id=context.actor_id, app_id=context.app_id)
    return UserResponse.model_validate(user, from_attributes=True)


@router.get(
    "/{user_id}/groups",
    response_model=List[MembershipResponse],
)
def list_user_groups(
    user_id: int,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> List[MembershipResponse]:
    memberships = service.memberships(user_id, actor_id=context.actor_id, app_id=context.app_id)
    return [MembershipResponse.model_validate(membership, from_attributes=True) for membership in memberships]


@router.post(
    "/{user_id}/groups",
    response_model=AssignGroupsResponse,
)
def assign_groups(
    user_id: int,
    payload: AssignGroupsRequest,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> AssignGroupsResponse:
    changed = service.assign_groups(
        user_id,
        payload.groups,
        unassign=payload.unassign,
        actor_id=context.actor_id,
        app_id=context.app_id,
    )
    return AssignGroupsResponse(changed=changed)


@router.put(
    "/{user_id}/groups/{group_id}",
    response_model=MembershipResponse,
)
def assign_membership(
    user_id: int,
    group_id: int,
    role: UserGroupRole = Query(default=UserGroupRole.USER),
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> MembershipResponse:
    membership, _ = service.assign(user_id, group_id, role, actor_id=context.actor_id)
    return MembershipResponse.model_validate(membership, from_attributes=True)


@router.delete(
    "/{user_id}/groups/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def unassign_membership(
    user_id: int,
    group_id: int,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    service.unassign(user_id, group_id, actor_id=context.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{user_id}/apps",
    response_model=ToggleAppResponse,
)
def toggle_user_app(
    user_id: int,
    payload: ToggleAppRequest,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> ToggleAppResponse:
    changed = service.toggle_app_on_user(user_id, payload.app_id, payload.append, actor_id=context.actor_id)
    return ToggleAppResponse(changed=changed)


@router.post(
    "/{user_id}/apps/toggle",
    response_model=ToggleAppsResponse,
)
def toggle_user_apps(
    user_id: int,
    payload: ToggleAppsRequest,
    service: UserService = Depends(get_user_service),
    context: RequestContext = Depends(get_request_context),
) -> ToggleAppsResponse:
    already_had = service.toggle_apps_on_user(user_id, payload.apps_ids, actor_id=context.actor_id)
    return ToggleAppsResponse(already_had_app=already_had)
