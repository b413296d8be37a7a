import os
import sys
from pathlib import Path
from typing import Iterable, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("AUTHCORE_ENVIRONMENT", "test")
os.environ.setdefault("AUTHCORE_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTHCORE_REDIS_URL", "")
os.environ.setdefault("AUTHCORE_REDIS_TOKEN", "")
os.environ.setdefault("AUTHCORE_EVENT_TOPIC_ARN", "")
os.environ.setdefault("AUTHCORE_MUNICIPALITIES_HOST", "")
os.environ.setdefault("AUTHCORE_LOG_JSON", "false")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from authcore.core.config import get_settings

get_settings.cache_clear()

from authcore.core.database import engine, session_scope  # noqa: E402
from authcore.events_engine.dispatcher import EventDispatcher, set_event_dispatcher  # noqa: E402
from authcore.events_engine.publisher import RecordingEventPublisher  # noqa: E402
from authcore.main import create_app  # noqa: E402
from authcore.models import App, Base, Group, Permission, PermissionRole, User, UserGroup  # noqa: E402
from authcore.models.user import UserType  # noqa: E402
from authcore.models.user_group import UserGroupRole  # noqa: E402
from authcore.services import cache as cache_module  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    cache_module._shared_cache = cache_module.InMemoryPermissionCache()
    set_event_dispatcher(EventDispatcher(publisher=RecordingEventPublisher(), default_source="authcore-test"))
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client() -> TestClient:  # noqa: ANN001
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def recording_dispatcher():
    publisher = RecordingEventPublisher()
    dispatcher = EventDispatcher(publisher=publisher, default_source="authcore-test")
    set_event_dispatcher(dispatcher)
    yield dispatcher


class DirectoryBuilder:
    """Writes directory rows straight through the ORM, one committed transaction per call."""

    def app(self, app_type: str, name: Optional[str] = None) -> int:
        return self._add(App(name=name or app_type.title(), type=app_type, settings={}))

    def group(
        self,
        name: str,
        *,
        parent: Optional[int] = None,
        apps: Iterable[int] = (),
        company_code: Optional[str] = None,
    ) -> int:
        return self._add(Group(name=name, parent_id=parent, apps_ids=list(apps), company_code=company_code))

    def user(self, user_type: UserType = UserType.USER, *, apps: Iterable[int] = (), email: Optional[str] = None) -> int:
        return self._add(User(type=user_type, apps_ids=list(apps), email=email, first_name="Test"))

    def member(self, user_id: int, group_id: int, role: UserGroupRole = UserGroupRole.USER) -> int:
        return self._add(UserGroup(user_id=user_id, group_id=group_id, role=role))

    def permission(
        self,
        app_id: Optional[int],
        *,
        user: Optional[int] = None,
        group: Optional[int] = None,
        role: Optional[PermissionRole] = None,
        features: Iterable[str] = (),
        accesses: Iterable[str] = (),
        municipalities: Iterable[int] = (),
    ) -> int:
        return self._add(
            Permission(
                app_id=app_id,
                user_id=user,
                group_id=group,
                role=role,
                features=list(features),
                accesses=list(accesses),
                municipalities=list(municipalities),
            )
        )

    @staticmethod
    def _add(row) -> int:  # noqa: ANN001
        with session_scope() as session:
            session.add(row)
            session.flush()
            return row.id


@pytest.fixture()
def directory() -> DirectoryBuilder:
    return DirectoryBuilder()
