"""App model: one tenant/product boundary."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base, SoftDeleteMixin, TimestampMixin
from authcore.models.types import JSONType


class AppType(str, Enum):
    """Reserved app types; any other string names an ordinary product."""

    ADMIN = "ADMIN"
    USERS = "USERS"


class App(TimestampMixin, SoftDeleteMixin, Base):
    """Tenant registered with the authorization core."""

    __tablename__ = "apps"
    __table_args__ = (
        UniqueConstraint("type", name="uq_apps_type"),
        Index("ix_apps_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    type: Mapped[str] = mapped_column(String(length=120), nullable=False)
    api_key: Mapped[str | None] = mapped_column(String(length=1024), nullable=True)
    url: Mapped[str | None] = mapped_column(String(length=1024), nullable=True)
    settings: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.type == AppType.ADMIN.value
