"""Business logic service layer."""

from authcore.services.apps import AppService  # noqa: F401
from authcore.services.groups import GroupService  # noqa: F401
from authcore.services.permissions import PermissionService  # noqa: F401
from authcore.services.users import UserService  # noqa: F401
from authcore.services.views import UserViewResolver  # noqa: F401
from authcore.services.visibility import VisibilityResolver  # noqa: F401
