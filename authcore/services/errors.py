"""Error taxonomy shared by the resolution engine and the CRUD services."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AuthCoreError(Exception):
    """Base class carrying a stable error kind and an HTTP status."""

    kind = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal error."

    def __init__(self, message: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or self.default_message)
        self.data = data or {}


class NotFoundError(AuthCoreError):
    """Referenced group/user/app/permission is absent or not visible."""

    kind = "NOT_FOUND"
    status_code = 404
    default_message = "Not found."


class UnauthorizedError(AuthCoreError):
    """Actor lacks the role required for the requested scope."""

    kind = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized."


class BadRequestError(AuthCoreError):
    """Malformed scope combination or unusable input."""

    kind = "BAD_REQUEST"
    status_code = 400
    default_message = "Bad request."


class ValidationError(AuthCoreError):
    """Invariant violation such as a group cycle or a duplicate unique key."""

    kind = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Validation error."
