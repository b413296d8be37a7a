"""Membership edge between a user and a group."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Enum as SqlEnum
from sqlalchemy import ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base, SoftDeleteMixin, TimestampMixin


class UserGroupRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class UserGroup(TimestampMixin, SoftDeleteMixin, Base):
    """Role is carried per edge, not per user."""

    __tablename__ = "user_groups"
    __table_args__ = (
        Index("ix_user_groups_user", "user_id"),
        Index("ix_user_groups_group", "group_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[UserGroupRole] = mapped_column(
        SqlEnum(
            UserGroupRole,
            name="user_group_role",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=UserGroupRole.USER,
        nullable=False,
    )
