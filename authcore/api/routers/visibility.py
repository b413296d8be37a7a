"""Visible group/user id sets for the acting principal."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from authcore.api.dependencies import RequestContext, get_request_context, get_visibility_resolver
from authcore.schemas.visibility import VisibleIdsResponse
from authcore.services.errors import BadRequestError
from authcore.services.visibility import VisibilityResolver

router = APIRouter()


def _require_app(context: RequestContext) -> int:
    if context.app_id is None:
        raise BadRequestError("App context is required for this operation.")
    return context.app_id


@router.get(
    "/groups",
    response_model=VisibleIdsResponse,
)
def visible_groups(
    edit: bool = Query(default=False),
    resolver: VisibilityResolver = Depends(get_visibility_resolver),
    context: RequestContext = Depends(get_request_context),
) -> VisibleIdsResponse:
    app_id = _require_app(context)
    ids = resolver.visible_group_ids(context.actor_id, app_id, edit=edit)
    return VisibleIdsResponse(actor_id=context.actor_id, app_id=app_id, edit=edit, ids=sorted(ids))


@router.get(
    "/users",
    response_model=VisibleIdsResponse,
)
def visible_users(
    edit: bool = Query(default=False),
    resolver: VisibilityResolver = Depends(get_visibility_resolver),
    context: RequestContext = Depends(get_request_context),
) -> VisibleIdsResponse:
    app_id = _require_app(context)
    ids = resolver.visible_user_ids(context.actor_id, app_id, edit=edit)
    return VisibleIdsResponse(actor_id=context.actor_id, app_id=app_id, edit=edit, ids=sorted(ids))
