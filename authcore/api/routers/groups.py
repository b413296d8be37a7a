"""Group HTTP endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from authcore.api.dependencies import RequestContext, get_group_service, get_request_context
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
from authcore.schemas.user import MembershipResponse
from authcore.services.group_tree import GroupNode
from authcore.services.groups import GroupService

router = APIRouter()


def _tree_response(node: GroupNode) -> GroupTreeResponse:
    return GroupTreeResponse(
        id=node.group.id,
        name=node.group.name,
        parent_id=node.group.parent_id,
        apps_ids=list(node.group.apps_ids),
        children=[_tree_response(child) for child in node.children],
    )


@router.post(
    "",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_group(
    payload: GroupCreate,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> GroupResponse:
    group = service.create_group(payload, actor_id=context.actor_id, app_id=context.app_id)
    return GroupResponse.model_validate(group, from_attributes=True)


@router.put(
    "/companies",
    response_model=GroupResponse,
)
def upsert_company(
    payload: CompanyUpsert,
    response: Response,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> GroupResponse:
    group, created = service.find_or_create_company_group(payload, actor_id=context.actor_id)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return GroupResponse.model_validate(group, from_attributes=True)


@router.get(
    "",
    response_model=List[GroupResponse],
)
def list_groups(
    parent_id: Optional[int] = Query(default=None, alias="parent"),
    companies: bool = Query(default=False),
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> List[GroupResponse]:
    groups = service.list_groups(
        actor_id=context.actor_id,
        app_id=context.app_id,
        parent_id=parent_id,
        companies=companies,
    )
    return [GroupResponse.model_validate(group, from_attributes=True) for group in groups]


@router.get(
    "/{group_id}",
    response_model=GroupDetailResponse,
)
def get_group(
    group_id: int,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> GroupDetailResponse:
    group = service.get_group(group_id, actor_id=context.actor_id, app_id=context.app_id)
    children = service.group_tree(group_id, actor_id=context.actor_id, app_id=context.app_id)
    detail = GroupDetailResponse.model_validate(group, from_attributes=True)
    detail.inherited_apps_ids = service.inherited_apps(group_id)
    detail.children = [_tree_response(node) for node in children]
    detail.users_count = service.users_count(group_id, actor_id=context.actor_id, app_id=context.app_id)
    return detail


@router.get(
    "/{group_id}/tree",
    response_model=List[GroupTreeResponse],
)
def get_group_tree(
    group_id: int,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> List[GroupTreeResponse]:
    nodes = service.group_tree(group_id, actor_id=context.actor_id, app_id=context.app_id)
    return [_tree_response(node) for node in nodes]


@router.get(
    "/{group_id}/members",
    response_model=List[MembershipResponse],
)
def list_group_members(
    group_id: int,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> List[MembershipResponse]:
    memberships = service.group_members(group_id, actor_id=context.actor_id, app_id=context.app_id)
    return [MembershipResponse.model_validate(membership, from_attributes=True) for membership in memberships]


@router.patch(
    "/{group_id}",
    response_model=GroupResponse,
)
def update_group(
    group_id: int,
    payload: GroupUpdate,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> GroupResponse:
    group = service.update_group(group_id, payload, actor_id=context.actor_id, app_id=context.app_id)
    return GroupResponse.model_validate(group, from_attributes=True)


@router.delete(
    "/{group_id}",
    response_model=GroupResponse,
)
def remove_group(
    group_id: int,
    move_to_group: Optional[int] = Query(default=None, alias="moveToGroup"),
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> GroupResponse:
    group = service.remove_group(
        group_id,
        actor_id=context.actor_id,
        app_id=context.app_id,
        move_to_group=move_to_group,
    )
    return GroupResponse.model_validate(group, from_attributes=True)


@router.post(
    "/{group_id}/apps",
    response_model=ToggleAppResponse,
)
def toggle_group_app(
    group_id: int,
    payload: ToggleAppRequest,
    service: GroupService = Depends(get_group_service),
    context: RequestContext = Depends(get_request_context),
) -> ToggleAppResponse:
    changed = service.toggle_app_on_group(group_id, payload.app_id, payload.append, actor_id=context.actor_id)
    return ToggleAppResponse(changed=changed)
