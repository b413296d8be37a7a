"""Scoped permission grant."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from sqlalchemy import Enum as SqlEnum
from sqlalchemy import ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base, SoftDeleteMixin, TimestampMixin
from authcore.models.types import IdList, StringList


class PermissionRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Permission(TimestampMixin, SoftDeleteMixin, Base):
    """Grant of features/accesses within one app.

    The scope is given by which of ``user_id``/``group_id`` are set:

    * user only: the user's own grant
    * user and group: the grant of one membership edge
    * group only: a group grant, filtered by ``role`` against the member's role
    * neither: a user-type grant where ``role`` names the user type
    """

    __tablename__ = "permissions"
    __table_args__ = (
        Index("ix_permissions_user", "user_id"),
        Index("ix_permissions_group", "group_id"),
        Index("ix_permissions_app", "app_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    group_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
    )
    app_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("apps.id", ondelete="CASCADE"),
        nullable=True,
    )
    role: Mapped[Optional[PermissionRole]] = mapped_column(
        SqlEnum(
            PermissionRole,
            name="permission_role",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )
    accesses: Mapped[List[str]] = mapped_column(StringList, default=list, nullable=False)
    features: Mapped[List[str]] = mapped_column(StringList, default=list, nullable=False)
    municipalities: Mapped[List[int]] = mapped_column(IdList, default=list, nullable=False)
