"""App HTTP endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from authcore.api.dependencies import RequestContext, get_app_service, get_request_context
from authcore.schemas.app import AppCreate, AppResponse, AppUpdate
from authcore.services.apps import AppService

router = APIRouter()


@router.post(
    "",
    response_model=AppResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_app_record(
    payload: AppCreate,
    service: AppService = Depends(get_app_service),
    context: RequestContext = Depends(get_request_context),
) -> AppResponse:
    app = service.create_app(payload, actor_id=context.actor_id)
    return AppResponse.model_validate(app, from_attributes=True)


@router.get(
    "",
    response_model=List[AppResponse],
)
def list_apps(
    group_id: Optional[int] = Query(default=None, alias="group"),
    service: AppService = Depends(get_app_service),
    context: RequestContext = Depends(get_request_context),
) -> List[AppResponse]:
    apps = service.visible_apps(context.actor_id, group_id=group_id)
    return [AppResponse.model_validate(app, from_attributes=True) for app in apps]


@router.get(
    "/{app_id}",
    response_model=AppResponse,
)
def get_app_record(
    app_id: int,
    service: AppService = Depends(get_app_service),
) -> AppResponse:
    return AppResponse.model_validate(service.get_app(app_id), from_attributes=True)


@router.patch(
    "/{app_id}",
    response_model=AppResponse,
)
def update_app_record(
    app_id: int,
    payload: AppUpdate,
    service: AppService = Depends(get_app_service),
    context: RequestContext = Depends(get_request_context),
) -> AppResponse:
    app = service.update_app(app_id, payload, actor_id=context.actor_id)
    return AppResponse.model_validate(app, from_attributes=True)


@router.delete(
    "/{app_id}",
    response_model=AppResponse,
)
def remove_app_record(
    app_id: int,
    service: AppService = Depends(get_app_service),
    context: RequestContext = Depends(get_request_context),
) -> AppResponse:
    app = service.remove_app(app_id, actor_id=context.actor_id)
    return AppResponse.model_validate(app, from_attributes=True)
