"""SQLAlchemy ORM models for the authorization core."""

from authcore.models.base import Base  # noqa: F401
from authcore.models.app import App, AppType  # noqa: F401
from authcore.models.group import Group  # noqa: F401
from authcore.models.permission import Permission, PermissionRole  # noqa: F401
from authcore.models.platform_event import PlatformEvent  # noqa: F401
from authcore.models.user import User, UserType  # noqa: F401
from authcore.models.user_group import UserGroup, UserGroupRole  # noqa: F401
