"""Router registrations."""

from fastapi import APIRouter

from authcore.api.routers import apps, groups, health, permissions, users, visibility


def get_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router, tags=["health"])
    router.include_router(apps.router, prefix="/api/v1/apps", tags=["apps"])
    router.include_router(groups.router, prefix="/api/v1/groups", tags=["groups"])
    router.include_router(users.router, prefix="/api/v1/users", tags=["users"])
    router.include_router(permissions.router, prefix="/api/v1/permissions", tags=["permissions"])
    router.include_router(visibility.router, prefix="/api/v1/visibility", tags=["visibility"])
    return router
